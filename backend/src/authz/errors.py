"""Error taxonomy of the authorization and tenant-isolation engine.

A denied permission is not an error: it is a False result or a
PermissionCheckResult with has_permission=False. Everything here is raised.
"""

from typing import Optional


class AuthorizationError(Exception):
    """Base class for all engine errors."""
    pass


class RoleNotFound(AuthorizationError):
    """Raised when a role does not exist or is inactive."""
    pass


class RoleConflict(AuthorizationError):
    """Raised when an active, unexpired assignment or a same-named role already exists."""
    pass


class EvaluationFailure(AuthorizationError):
    """Raised when permission resolution fails (store outage, malformed conditions).

    The boolean access API never lets this escape; it is converted into a
    denial and audited.
    """
    pass


class EncryptionKeyUnavailable(AuthorizationError):
    """Raised when a tenant key cannot be derived or the referenced key version is unknown."""
    pass


class TenantDecryptionError(AuthorizationError):
    """Raised when a tenant payload fails authentication or cannot be parsed."""
    pass


class IsolationViolation(AuthorizationError):
    """Raised when data or a resource of one tenant is requested under another tenant.

    Always audited as a security event and never coerced into a plain denial.
    """

    def __init__(
        self,
        message: str,
        expected_tenant_id: Optional[str] = None,
        actual_tenant_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.expected_tenant_id = expected_tenant_id
        self.actual_tenant_id = actual_tenant_id
