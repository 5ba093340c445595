"""AccessControlCache SQLAlchemy model"""

import uuid

from sqlalchemy import Boolean, Column, DateTime, Index, Text, Uuid

from .base import Base, utcnow


class AccessControlCache(Base):
    """Memoized access decision keyed by the canonical context hash.

    Rows are dropped per user whenever that user's assignments change and
    purged by the periodic cleanup once expired.
    """
    __tablename__ = "access_control_cache"
    __table_args__ = (
        Index("ix_access_control_cache_user_id", "user_id"),
        Index("ix_access_control_cache_expires_at", "expires_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    context_hash = Column(Text, nullable=False, unique=True)
    user_id = Column(Uuid, nullable=False)
    resource = Column(Text, nullable=False)
    action = Column(Text, nullable=False)
    has_permission = Column(Boolean, nullable=False)
    cached_at = Column(DateTime, nullable=False, default=utcnow)
    expires_at = Column(DateTime, nullable=False)
