"""Tenant context factory.

A tenant is the isolation boundary around one organization's data. Its
identifier is never the organization id itself: tenant ids are derived
with HMAC-SHA256 under TENANT_ID_SECRET, so they are deterministic for an
organization but cannot be reversed or forged without the secret.
"""

import hashlib
import hmac
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, Optional, Tuple
from uuid import UUID

from authz.professions import get_role_permissions
from config import settings
from observability.request_id import tenant_id_var

TENANT_ID_LENGTH = 16


def derive_tenant_id(organization_id: UUID, secret: Optional[str] = None) -> str:
    """Opaque tenant id for an organization (first 16 hex chars of the HMAC).

    Examples:
        >>> derive_tenant_id(UUID("7c9e6679-7425-40de-944b-e07fc1f90ae7")) == \\
        ...     derive_tenant_id(UUID("7c9e6679-7425-40de-944b-e07fc1f90ae7"))
        True
    """
    key = (secret or settings.TENANT_ID_SECRET).encode("utf-8")
    digest = hmac.new(key, str(organization_id).encode("utf-8"), hashlib.sha256).hexdigest()
    return digest[:TENANT_ID_LENGTH]


@dataclass(frozen=True)
class TenantContext:
    """Who is acting, for which tenant, with which static permissions."""
    tenant_id: str
    organization_id: UUID
    user_id: UUID
    user_role: str
    permissions: Tuple[str, ...] = field(default_factory=tuple)

    def has_permission(self, permission: str) -> bool:
        return "*" in self.permissions or permission in self.permissions


def create_tenant_context(user_id: UUID, organization_id: UUID, user_role: str) -> TenantContext:
    """Build the tenant context for a principal acting inside an organization.

    Permissions come from the static role table; an unknown role gets none.
    """
    role = getattr(user_role, "value", user_role)
    return TenantContext(
        tenant_id=derive_tenant_id(organization_id),
        organization_id=organization_id,
        user_id=user_id,
        user_role=role,
        permissions=tuple(get_role_permissions(role)),
    )


@contextmanager
def bind_tenant(context: TenantContext) -> Iterator[TenantContext]:
    """Expose the tenant id to log records for the duration of the block."""
    token = tenant_id_var.set(context.tenant_id)
    try:
        yield context
    finally:
        tenant_id_var.reset(token)
