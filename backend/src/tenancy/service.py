"""Tenant isolation service.

Single entry point for everything that crosses a tenant boundary:
building tenant contexts, encrypting and decrypting tenant data,
validating access to individual resources, constraining bulk queries and
checking a tenant's integrity.

IsolationViolation is never turned into a plain False: it is audited and
re-raised so callers cannot mistake an attack for an ordinary denial.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Optional, Union
from uuid import UUID

from audit.service import AuditLogger
from authz.errors import IsolationViolation
from models.base import utcnow

from .context import TenantContext, create_tenant_context
from .crypto import EncryptedPayload, TenantCryptoBoundary
from .keys import TenantKeyProvider
from .query_filter import IsolatedQuery, QuerySpec, apply_tenant_isolation
from .resource_access import ResourceOwnershipPort, role_rule_allows
from .schemas import TenantIntegrityReport

logger = logging.getLogger(__name__)

INTEGRITY_LOOKBACK = timedelta(hours=24)


class TenantIsolationService:
    """Tenant boundary operations over a key provider, an audit logger and an ownership port."""

    def __init__(
        self,
        key_provider: TenantKeyProvider,
        audit: AuditLogger,
        ownership: Optional[ResourceOwnershipPort] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.key_provider = key_provider
        self.audit = audit
        self.ownership = ownership
        self._clock = clock
        self.crypto = TenantCryptoBoundary(key_provider, audit, clock=clock)

    @staticmethod
    def create_tenant_context(user_id: UUID, organization_id: UUID, user_role: str) -> TenantContext:
        return create_tenant_context(user_id, organization_id, user_role)

    def encrypt_tenant_data(self, data: Any, context: TenantContext) -> EncryptedPayload:
        return self.crypto.encrypt_tenant_data(data, context)

    def decrypt_tenant_data(self, payload: Union[EncryptedPayload, str], context: TenantContext) -> Any:
        return self.crypto.decrypt_tenant_data(payload, context)

    @staticmethod
    def apply_tenant_isolation(query: QuerySpec, context: TenantContext) -> IsolatedQuery:
        return apply_tenant_isolation(query, context)

    def validate_resource_access(
        self,
        resource_type: str,
        resource_id: Any,
        context: TenantContext,
        required_permission: str,
    ) -> bool:
        """Check ownership, static permission and profession rule for one resource.

        Returns:
            True only when all three checks pass. A missing resource is False.

        Raises:
            IsolationViolation: If the resource belongs to another tenant
        """
        if self.ownership is None:
            raise RuntimeError("TenantIsolationService has no ResourceOwnershipPort configured")

        def deny(reason: str) -> bool:
            logger.info(
                f"Resource access denied: {resource_type}/{resource_id}: {reason}",
                extra={"user_id": context.user_id, "tenant_id": context.tenant_id},
            )
            self.audit.log_resource_access(
                context, resource_type, resource_id, required_permission, False, reason=reason
            )
            return False

        try:
            owner = self.ownership.get_owner(resource_type, resource_id)
        except Exception as e:
            logger.error(f"Ownership lookup failed for {resource_type}/{resource_id}: {e}")
            return deny(f"Ownership lookup failed: {e}")

        if owner is None:
            return deny("Resource not found")

        if owner.tenant_id != context.tenant_id:
            reason = "Tenant isolation violation: resource belongs to another tenant"
            self.audit.log_isolation_violation(
                context, owner.tenant_id, required_permission, reason,
                resource_type=resource_type, resource_id=resource_id,
            )
            self.audit.log_resource_access(
                context, resource_type, resource_id, required_permission, False, reason=reason
            )
            raise IsolationViolation(reason, expected_tenant_id=context.tenant_id, actual_tenant_id=owner.tenant_id)

        if not context.has_permission(required_permission):
            return deny(f"Missing permission {required_permission}")

        if not role_rule_allows(resource_type, owner, context):
            return deny(f"Role {context.user_role} may not access {resource_type}")

        self.audit.log_resource_access(context, resource_type, resource_id, required_permission, True)
        return True

    def validate_tenant_integrity(self, tenant_id: str) -> TenantIntegrityReport:
        """Check key rotation and recent suspicious access for a tenant."""
        now = self._clock()
        violations = []
        recommendations = []

        if self.key_provider.is_key_rotation_needed(tenant_id):
            recommendations.append("Rotate the tenant encryption key")

        suspicious = self.audit.detect_suspicious_access(tenant_id, now - INTEGRITY_LOOKBACK, now)
        if suspicious:
            violations.append(f"Detected {len(suspicious)} suspicious access pattern(s) in the last 24 hours")
            recommendations.append("Review the access logs")

        if violations:
            logger.warning(f"Tenant integrity check failed: {violations}", extra={"tenant_id": tenant_id})

        return TenantIntegrityReport(
            tenant_id=tenant_id,
            is_valid=not violations,
            violations=violations,
            recommendations=recommendations,
            checked_at=now,
        )
