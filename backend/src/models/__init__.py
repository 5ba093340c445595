"""SQLAlchemy Models for LexAccess"""

from .base import Base, PortableJSONB, utcnow
from .role import Role, Permission, RolePermission, PROFESSIONS, SCOPES, normalize_actions
from .role_assignment import RoleAssignment, UserProfile
from .access_cache import AccessControlCache
from .audit_log import AuditLog
from .tenant_key import TenantKey

__all__ = [
    "Base",
    "PortableJSONB",
    "utcnow",
    "Role",
    "Permission",
    "RolePermission",
    "PROFESSIONS",
    "SCOPES",
    "normalize_actions",
    "RoleAssignment",
    "UserProfile",
    "AccessControlCache",
    "AuditLog",
    "TenantKey",
]
