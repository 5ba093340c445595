"""Multi-organization test fixtures for tenant isolation testing.

This module provides two organizations, a principal in each, and an
in-memory resource ownership registry, enabling cross-tenant tests.

Usage:
    def test_cross_tenant_access(isolation_service, ownership, tenant_a, tenant_b):
        ownership.add("dossier_client", "D-1", tenant_b, owner=tenant_b.user_id)

        with pytest.raises(IsolationViolation):
            isolation_service.validate_resource_access("dossier_client", "D-1", tenant_a, "read_dossier")
"""

from typing import Any, Dict, Optional, Tuple
from uuid import UUID, uuid4

import pytest

from tenancy.context import TenantContext, create_tenant_context
from tenancy.resource_access import ResourceOwner, ResourceOwnershipPort


class InMemoryOwnership(ResourceOwnershipPort):
    """Ownership registry keyed by (resource_type, resource_id)."""

    def __init__(self):
        self._owners: Dict[Tuple[str, str], ResourceOwner] = {}

    def add(self, resource_type: str, resource_id: Any, context: TenantContext, owner: Optional[UUID] = None):
        self._owners[(resource_type, str(resource_id))] = ResourceOwner(
            tenant_id=context.tenant_id,
            owner_user_id=owner,
        )

    def get_owner(self, resource_type: str, resource_id: Any) -> Optional[ResourceOwner]:
        return self._owners.get((resource_type, str(resource_id)))


@pytest.fixture
def org_a() -> UUID:
    """Organization A (a law firm)."""
    return uuid4()


@pytest.fixture
def org_b() -> UUID:
    """Organization B (another law firm)."""
    return uuid4()


@pytest.fixture
def tenant_a(org_a) -> TenantContext:
    """A lawyer acting inside organization A."""
    return create_tenant_context(uuid4(), org_a, "avocat")


@pytest.fixture
def tenant_b(org_b) -> TenantContext:
    """A lawyer acting inside organization B."""
    return create_tenant_context(uuid4(), org_b, "avocat")


@pytest.fixture
def ownership() -> InMemoryOwnership:
    return InMemoryOwnership()
