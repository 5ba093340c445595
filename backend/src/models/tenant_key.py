"""TenantKey SQLAlchemy model"""

import uuid

from sqlalchemy import Boolean, Column, DateTime, Integer, Text, UniqueConstraint, Uuid

from .base import Base, utcnow


class TenantKey(Base):
    """Metadata of one version of a tenant's encryption key.

    Key material is never stored; it is re-derived from the master key,
    the tenant ID and the version. Retired versions stay readable so older
    payloads can still be decrypted after a rotation.
    """
    __tablename__ = "tenant_key"
    __table_args__ = (
        UniqueConstraint("tenant_id", "version", name="uq_tenant_key_version"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Text, nullable=False)
    version = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    rotated_at = Column(DateTime, nullable=True)

    @property
    def key_id(self) -> str:
        return f"{self.tenant_id}:v{self.version}"
