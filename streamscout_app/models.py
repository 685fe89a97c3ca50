"""
================================================================================
StreamScout v1.0 - Database Models
================================================================================
SQLAlchemy models. The only persistent table is the search result cache used
by the database cache backend (SEARCH_CACHE_BACKEND=database).
================================================================================
"""

from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime, JSON, Index
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SearchCacheEntry(Base):
    """Cached EnrichedResult payload, keyed by the normalized query key."""
    __tablename__ = 'search_cache'

    key = Column(String(255), primary_key=True)
    data = Column(JSON, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        Index('ix_search_cache_expires_at', 'expires_at'),
    )

    def __repr__(self):
        return f"<SearchCacheEntry(key='{self.key}', expires_at={self.expires_at})>"
