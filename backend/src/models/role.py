"""Role, Permission and RolePermission SQLAlchemy models"""

import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship, validates

from .base import Base, PortableJSONB, utcnow


PROFESSIONS = (
    "avocat",
    "notaire",
    "huissier",
    "magistrat",
    "etudiant",
    "juriste_entreprise",
    "admin",
)

SCOPES = ("global", "organization", "personal", "role_specific")


def normalize_actions(actions) -> list:
    """Sorted, de-duplicated action list used for storage and dedup."""
    return sorted({str(action) for action in actions})


class Role(Base):
    """Professional role, either a seeded system role or an org-specific custom role.

    organization_id NULL marks a global/system role. Custom roles are never
    deleted; is_active is cleared instead so assignment history stays valid.
    """
    __tablename__ = "role"
    __table_args__ = (
        UniqueConstraint("name", "profession", "organization_id", name="uq_role_name_profession_org"),
        CheckConstraint(
            "profession IN ('avocat', 'notaire', 'huissier', 'magistrat', "
            "'etudiant', 'juriste_entreprise', 'admin')",
            name="ck_role_profession",
        ),
        Index("ix_role_profession", "profession"),
        Index("ix_role_organization_id", "organization_id"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    profession = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    organization_id = Column(Uuid, nullable=True)
    is_custom = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_by = Column(Uuid, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    permission_links = relationship("RolePermission", back_populates="role")

    @validates("profession")
    def validate_profession(self, key, value):
        if value not in PROFESSIONS:
            raise ValueError(f"Unknown profession: {value}")
        return value

    @validates("name")
    def validate_name(self, key, value):
        if not value or not value.strip():
            raise ValueError("Role name cannot be empty")
        return value.strip()

    def __repr__(self):
        return f"<Role(id={self.id}, name='{self.name}', profession='{self.profession}')>"


class Permission(Base):
    """Permission granting a set of actions on one resource at one scope.

    Permissions are shared between roles and deduplicated on
    (resource, scope, actions_key), where actions_key is the normalized
    action set.
    """
    __tablename__ = "permission"
    __table_args__ = (
        UniqueConstraint("resource", "scope", "actions_key", name="uq_permission_resource_scope_actions"),
        CheckConstraint(
            "scope IN ('global', 'organization', 'personal', 'role_specific')",
            name="ck_permission_scope",
        ),
        Index("ix_permission_resource", "resource"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    resource = Column(Text, nullable=False)
    actions = Column(PortableJSONB, nullable=False)
    actions_key = Column(Text, nullable=False)
    scope = Column(Text, nullable=False)
    conditions = Column(PortableJSONB, nullable=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    role_links = relationship("RolePermission", back_populates="permission")

    @validates("scope")
    def validate_scope(self, key, value):
        if value not in SCOPES:
            raise ValueError(f"Unknown permission scope: {value}")
        return value

    def __repr__(self):
        return f"<Permission(resource='{self.resource}', scope='{self.scope}', actions={self.actions})>"


class RolePermission(Base):
    """Link between a role and a permission.

    conditions, when set, overrides the permission's own conditions for
    holders of this role.
    """
    __tablename__ = "role_permission"
    __table_args__ = (
        UniqueConstraint("role_id", "permission_id", name="uq_role_permission"),
        Index("ix_role_permission_role_id", "role_id"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    role_id = Column(Uuid, ForeignKey("role.id", ondelete="CASCADE"), nullable=False)
    permission_id = Column(Uuid, ForeignKey("permission.id", ondelete="CASCADE"), nullable=False)
    conditions = Column(PortableJSONB, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    role = relationship("Role", back_populates="permission_links")
    permission = relationship("Permission", back_populates="role_links")
