from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from config import DATABASE_URL
import logging
from typing import Generator, Optional
from contextlib import contextmanager

logger = logging.getLogger(__name__)

# Configure connect_args based on database type
# SQLite requires check_same_thread=False, PostgreSQL doesn't need it
connect_args = {}
if DATABASE_URL.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(DATABASE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_user_key_prefix(user_id: int) -> str:
    """Generate the storage key prefix for a user (user_<id>:)."""
    return f"user_{user_id}:"


def user_key(user_id: int, concern: str) -> str:
    """Build the namespaced key for one concern (collection, watchlist, badges) of a user."""
    return f"{get_user_key_prefix(user_id)}{concern}"


def make_session_factory(database_url: str) -> sessionmaker:
    """
    Create a sessionmaker for an arbitrary database URL.
    Used by tests and by callers that keep their data outside DATABASE_URL.
    """
    args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    other_engine = create_engine(database_url, connect_args=args)
    init_db(other_engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=other_engine)


@contextmanager
def get_db_context(session_factory: Optional[sessionmaker] = None) -> Generator[Session, None, None]:
    """
    Context manager yielding a database session that is always closed.
    """
    db = (session_factory or SessionLocal)()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Optional[Engine] = None):
    """
    Initialize database: create the key-value table if it does not exist.
    """
    import models  # noqa: F401  registers tables on Base.metadata

    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database initialized with kv_entries table")
