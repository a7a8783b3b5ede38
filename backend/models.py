from sqlalchemy import Column, String, JSON, DateTime
from sqlalchemy.sql import func
from database import Base

class KeyValueEntry(Base):
    __tablename__ = "kv_entries"

    key = Column(String, primary_key=True, index=True)  # e.g. user_1:collection
    value = Column(JSON)  # JSON-serialisable payload (list of films, watchlist items, badge rows)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
