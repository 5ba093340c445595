"""RoleAssignment and UserProfile SQLAlchemy models"""

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Text, Uuid, text
from sqlalchemy.orm import relationship

from .base import Base, utcnow


class RoleAssignment(Base):
    """A principal holding a role, optionally inside one organization.

    Rows are never hard-deleted: revocation clears is_active and stamps
    deactivated_at so the audit trail survives. The partial unique index
    backs the "one active assignment per (user, role, organization)" rule
    at the store level; expiry is enforced in code.
    """
    __tablename__ = "role_assignment"
    __table_args__ = (
        Index("ix_role_assignment_user_id", "user_id"),
        Index("ix_role_assignment_role_id", "role_id"),
        Index(
            "uq_role_assignment_active",
            "user_id",
            "role_id",
            "organization_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False)
    role_id = Column(Uuid, ForeignKey("role.id", ondelete="RESTRICT"), nullable=False)
    organization_id = Column(Uuid, nullable=True)
    assigned_by = Column(Uuid, nullable=True)
    assigned_at = Column(DateTime, nullable=False, default=utcnow)
    expires_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    deactivated_at = Column(DateTime, nullable=True)

    role = relationship("Role")

    def is_expired(self, now) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def __repr__(self):
        return (
            f"<RoleAssignment(user_id={self.user_id}, role_id={self.role_id}, "
            f"organization_id={self.organization_id}, is_active={self.is_active})>"
        )


class UserProfile(Base):
    """Professional profile of a user; the primary one supplies the default active role."""
    __tablename__ = "user_profile"
    __table_args__ = (
        Index("ix_user_profile_user_id", "user_id"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False)
    profession = Column(Text, nullable=False)
    is_primary = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
