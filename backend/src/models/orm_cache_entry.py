"""
SQLAlchemy ORM Model: CacheEntry
Backing table for the persistent result cache backend.
"""

from sqlalchemy import String, Text, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column
from models.base import Base
from datetime import datetime


class CacheEntry(Base):
    __tablename__ = "cache_entries"
    __table_args__ = (
        Index('idx_cache_entries_expires', 'expires_at'),
    )

    cache_key: Mapped[str] = mapped_column(String(255), primary_key=True)
    payload: Mapped[str] = mapped_column(Text, nullable=False, comment="JSON-encoded value")
    cached_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    def __repr__(self) -> str:
        return f"<CacheEntry(cache_key='{self.cache_key}', expires_at={self.expires_at})>"
