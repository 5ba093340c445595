"""Access evaluator: the core allow/deny decision.

check_permission answers "may this principal perform this action on this
resource in this context?" and fails secure: any error while resolving
roles, permissions or conditions yields a denial, which is audited with the
error detail. A decision is never raised as an exception.

Decision procedure for a permission:
1. resource equals the requested resource exactly
2. the action is one of the permission's actions
3. the scope holds (global always, organization only with an organization
   in context, personal and role_specific at this layer always)
4. every condition holds against the context
The principal is allowed iff at least one permission matches.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, Optional
from uuid import UUID

from audit.service import AuditLogger
from config import settings
from models.base import utcnow

from .cache import PermissionCache, make_cache_key
from .catalog import RoleCatalog
from .conditions import evaluate_conditions, parse_conditions
from .professions import PermissionScope, Profession
from .schemas import AccessContext, EffectivePermission, PermissionCheckResult

logger = logging.getLogger(__name__)

NO_MATCH_REASON = "No matching permission found"
FAILURE_REASON = "Permission check failed"

# Context fields readable by conditions, with their camelCase aliases
_CONTEXT_FIELDS = {
    "user_id": "user_id",
    "userId": "user_id",
    "organization_id": "organization_id",
    "organizationId": "organization_id",
    "resource_id": "resource_id",
    "resourceId": "resource_id",
    "resource_type": "resource_type",
    "resourceType": "resource_type",
    "active_role": "active_role",
    "activeRole": "active_role",
}


def resolve_context_field(context: AccessContext, field: str) -> Any:
    """Value a condition field refers to; unknown fields come from additional_context."""
    attribute = _CONTEXT_FIELDS.get(field)
    if attribute is not None:
        return getattr(context, attribute)
    return context.additional_context.get(field)


def scope_holds(scope: str, context: AccessContext) -> bool:
    try:
        scope = PermissionScope(scope)
    except ValueError:
        return False
    if scope == PermissionScope.ORGANIZATION:
        return context.organization_id is not None
    return True


def permission_matches(permission: EffectivePermission, resource: str, action: str, context: AccessContext) -> bool:
    if permission.resource != resource or action not in permission.actions:
        return False
    if not scope_holds(permission.scope, context):
        return False
    conditions = parse_conditions(permission.conditions)
    return evaluate_conditions(conditions, lambda field: resolve_context_field(context, field))


def first_match(
    permissions: Iterable[EffectivePermission], resource: str, action: str, context: AccessContext
) -> Optional[EffectivePermission]:
    for permission in permissions:
        if permission_matches(permission, resource, action, context):
            return permission
    return None


class AccessEvaluator:
    """Evaluates access requests against the role catalog, with caching and audit."""

    def __init__(
        self,
        catalog: RoleCatalog,
        cache: PermissionCache,
        audit: AuditLogger,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.catalog = catalog
        self.cache = cache
        self.audit = audit
        self._clock = clock

    def _materialize(self, user_id: UUID, context: Optional[AccessContext]) -> AccessContext:
        context = context or AccessContext()
        updates: Dict[str, Any] = {"user_id": user_id}
        if context.active_role is None:
            updates["active_role"] = self.catalog.get_primary_profession(user_id)
        return context.model_copy(update=updates)

    def check_permission(
        self,
        user_id: UUID,
        resource: str,
        action: str,
        context: Optional[AccessContext] = None,
    ) -> bool:
        """Decide whether the principal may perform action on resource.

        Returns:
            True if allowed. False when denied or when evaluation failed.
        """
        organization_id = context.organization_id if context else None
        resource_id = context.resource_id if context else None

        try:
            full_context = self._materialize(user_id, context)
            context_hash = make_cache_key(user_id, resource, action, full_context)

            cached = self.cache.get(context_hash)
            if cached is not None:
                self.audit.log_access(
                    user_id, resource, action, cached,
                    organization_id=organization_id,
                    resource_id=resource_id,
                    metadata={"cached": True, "active_role": full_context.active_role.value},
                )
                return cached

            permissions = self.catalog.get_effective_permissions(user_id, full_context)
            matched = first_match(permissions, resource, action, full_context)
            allowed = matched is not None
        except Exception as e:
            logger.error(
                f"Permission check failed for {resource}:{action}: {e}",
                extra={"user_id": user_id, "org_id": organization_id},
            )
            self.audit.log_access(
                user_id, resource, action, False,
                organization_id=organization_id,
                resource_id=resource_id,
                error_message=f"{FAILURE_REASON}: {e}",
            )
            return False

        self._store(context_hash, user_id, resource, action, allowed)
        self.audit.log_access(
            user_id, resource, action, allowed,
            organization_id=organization_id,
            resource_id=resource_id,
            error_message=None if allowed else NO_MATCH_REASON,
            metadata={
                "cached": False,
                "active_role": full_context.active_role.value,
                "matched_scope": matched.scope if matched else None,
            },
        )
        return allowed

    def _store(self, context_hash: str, user_id: UUID, resource: str, action: str, allowed: bool) -> None:
        # Cached decisions never outlive the user's earliest expiring assignment
        try:
            not_after = self.catalog.next_assignment_expiry(user_id)
        except Exception as e:
            logger.warning(f"Could not bound cache entry by assignment expiry, not caching: {e}")
            return
        self.cache.set(context_hash, user_id, resource, action, allowed, not_after=not_after)

    def check_permission_detailed(
        self,
        user_id: UUID,
        resource: str,
        action: str,
        context: Optional[AccessContext] = None,
    ) -> PermissionCheckResult:
        """Explain the current decision.

        Reads the catalog directly (never the cache) and is not audited.
        """
        try:
            full_context = self._materialize(user_id, context)
            permissions = self.catalog.get_effective_permissions(user_id, full_context)
            matched = first_match(permissions, resource, action, full_context)
        except Exception as e:
            logger.error(f"Detailed permission check failed for {resource}:{action}: {e}")
            return PermissionCheckResult(has_permission=False, reason=FAILURE_REASON)

        if matched is None:
            return PermissionCheckResult(
                has_permission=False, scope=PermissionScope.PERSONAL, reason=NO_MATCH_REASON,
            )
        return PermissionCheckResult(
            has_permission=True,
            scope=PermissionScope(matched.scope),
            conditions=[c.to_dict() for c in parse_conditions(matched.conditions)] or None,
        )

    def switch_active_role(
        self,
        user_id: UUID,
        new_role: Profession,
        organization_id: Optional[UUID] = None,
    ) -> bool:
        """Allow the switch iff the user holds a valid role of that profession.

        Cached decisions of the user are dropped on success.
        """
        try:
            if not self.catalog.has_active_role(user_id, Profession(new_role), organization_id):
                logger.info(f"User {user_id} holds no active {new_role} role", extra={"user_id": user_id})
                return False
            self.cache.invalidate_user(user_id)
        except Exception as e:
            logger.error(f"Role switch failed for user {user_id}: {e}", extra={"user_id": user_id})
            return False
        return True

    def cleanup_expired_data(self, retention_days: Optional[int] = None) -> Dict[str, Any]:
        """Purge expired cache rows and audit entries past retention.

        Failures are logged and reported in the result, never raised.
        """
        days = retention_days if retention_days is not None else settings.AUDIT_RETENTION_DAYS
        result: Dict[str, Any] = {"cache_entries_removed": 0, "audit_entries_removed": 0, "errors": []}

        try:
            result["cache_entries_removed"] = self.cache.purge_expired()
        except Exception as e:
            logger.error(f"Cache cleanup failed: {e}")
            result["errors"].append(f"cache: {e}")

        try:
            result["audit_entries_removed"] = self.audit.prune(self._clock() - timedelta(days=days))
        except Exception as e:
            logger.error(f"Audit cleanup failed: {e}")
            result["errors"].append(f"audit: {e}")

        logger.info(
            f"Cleanup finished: {result['cache_entries_removed']} cache entries, "
            f"{result['audit_entries_removed']} audit entries removed"
        )
        return result
