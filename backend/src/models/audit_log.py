"""AuditLog SQLAlchemy model"""

import uuid

from sqlalchemy import Boolean, Column, DateTime, Index, Text, Uuid

from .base import Base, PortableJSONB, utcnow


class AuditLog(Base):
    """AuditLog model for immutable access and isolation event logging.

    Records every access decision and every tenant-boundary violation.
    Entries are append-only; the only deletion path is age-based pruning.
    """
    __tablename__ = "audit_log"
    __table_args__ = (
        Index("ix_audit_log_tenant_id_created_at", "tenant_id", "created_at"),
        Index("ix_audit_log_user_id", "user_id"),
        Index("ix_audit_log_created_at", "created_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    event_type = Column(Text, nullable=False)
    user_id = Column(Uuid, nullable=True)
    organization_id = Column(Uuid, nullable=True)
    tenant_id = Column(Text, nullable=True)
    resource_type = Column(Text, nullable=True)
    resource_id = Column(Text, nullable=True)
    action = Column(Text, nullable=False)
    success = Column(Boolean, nullable=False)
    error_message = Column(Text, nullable=True)
    metadata_json = Column(PortableJSONB, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def to_dict(self):
        """Convert audit log entry to dictionary representation"""
        return {
            "id": str(self.id),
            "event_type": self.event_type,
            "user_id": str(self.user_id) if self.user_id else None,
            "organization_id": str(self.organization_id) if self.organization_id else None,
            "tenant_id": self.tenant_id,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "action": self.action,
            "success": self.success,
            "error_message": self.error_message,
            "metadata": self.metadata_json,
            "created_at": self.created_at.isoformat(),
        }
