"""Tenancy module - tenant contexts, tenant encryption and query isolation.

This module provides:
- Opaque tenant ids derived from organization ids
- Per-tenant AES-256-GCM encryption with an authenticated tenant tag
- Resource access validation across tenant boundaries
- Tenant predicates injected into every node of a bulk query
"""

from .context import TenantContext, create_tenant_context, derive_tenant_id
from .schemas import TenantIntegrityReport

# Crypto and the service are imported lazily to avoid circular dependencies
# Use: from tenancy.service import TenantIsolationService

__all__ = [
    "TenantContext",
    "create_tenant_context",
    "derive_tenant_id",
    "TenantIntegrityReport",
]
