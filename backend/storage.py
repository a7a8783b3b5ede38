"""
Key-value persistence used by the collection, watchlist and badge services.

Values are JSON-serialisable Python objects. Keys are opaque strings,
namespaced per user and per concern by database.user_key().
"""
import copy
import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from database import SessionLocal, get_db_context
from errors import StorageFailure
from models import KeyValueEntry

logger = logging.getLogger(__name__)


class KeyValueStore:
    """Interface shared by every store implementation."""

    def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    def set(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError


class InMemoryStore(KeyValueStore):
    """Dict-backed store. Values are deep-copied so callers never share state with it."""

    def __init__(self):
        self._data: Dict[str, Any] = {}

    def get(self, key: str) -> Optional[Any]:
        value = self._data.get(key)
        return copy.deepcopy(value) if value is not None else None

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self):
        return list(self._data.keys())


class SqlAlchemyStore(KeyValueStore):
    """
    Store backed by the kv_entries table.
    Every call opens and closes its own session; writes commit immediately.
    """

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self.session_factory = session_factory or SessionLocal

    def get(self, key: str) -> Optional[Any]:
        try:
            with get_db_context(self.session_factory) as db:
                entry = db.query(KeyValueEntry).filter(KeyValueEntry.key == key).first()
                return entry.value if entry else None
        except SQLAlchemyError as e:
            logger.error(f"Error reading key {key}: {str(e)}", exc_info=True)
            raise StorageFailure(key, str(e)) from e

    def set(self, key: str, value: Any) -> None:
        with get_db_context(self.session_factory) as db:
            try:
                entry = db.query(KeyValueEntry).filter(KeyValueEntry.key == key).first()
                if entry:
                    entry.value = value
                else:
                    db.add(KeyValueEntry(key=key, value=value))
                db.commit()
                logger.debug(f"Stored key {key}")
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Error writing key {key}: {str(e)}", exc_info=True)
                raise StorageFailure(key, str(e)) from e

    def remove(self, key: str) -> None:
        with get_db_context(self.session_factory) as db:
            try:
                db.query(KeyValueEntry).filter(KeyValueEntry.key == key).delete()
                db.commit()
                logger.debug(f"Removed key {key}")
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Error removing key {key}: {str(e)}", exc_info=True)
                raise StorageFailure(key, str(e)) from e
