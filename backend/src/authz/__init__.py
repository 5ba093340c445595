"""Authorization module - role based access control for legal professions.

This module provides:
- Professions, permission scopes and the default permission sets
- The permission catalog and role assignment registry (authz.catalog)
- The access evaluator with decision cache and audit (authz.evaluator)
- FastAPI dependencies enforcing permissions (authz.dependencies)
"""

from .errors import (
    AuthorizationError,
    RoleNotFound,
    RoleConflict,
    EvaluationFailure,
    EncryptionKeyUnavailable,
    TenantDecryptionError,
    IsolationViolation,
)
from .professions import Profession, PermissionScope
from .schemas import (
    AccessContext,
    OrganizationContext,
    PermissionCheckResult,
    PermissionDefinition,
    RoleDefinition,
)

# Catalog and evaluator are imported lazily to avoid circular dependencies
# Use: from authz.evaluator import AccessEvaluator

__all__ = [
    "AuthorizationError",
    "RoleNotFound",
    "RoleConflict",
    "EvaluationFailure",
    "EncryptionKeyUnavailable",
    "TenantDecryptionError",
    "IsolationViolation",
    "Profession",
    "PermissionScope",
    "AccessContext",
    "OrganizationContext",
    "PermissionCheckResult",
    "PermissionDefinition",
    "RoleDefinition",
]
