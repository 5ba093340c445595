"""FastAPI dependencies for permission enforcement.

This module provides dependency injection functions for:
- Extracting the principal from a Bearer token
- Enforcing a (resource, action) permission through the access evaluator
- Requiring an organization the principal actually belongs to

Usage:
    @app.get("/dossiers/{resource_id}")
    def read_dossier(
        resource_id: UUID,
        principal: Principal = Depends(require_permission("dossier", "read")),
    ):
        ...

Tests and alternative wirings replace the evaluator with
app.dependency_overrides[get_access_evaluator].
"""

from typing import Callable, Optional

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError

from .evaluator import AccessEvaluator
from .jwt import decode_token
from .professions import Profession
from .schemas import AccessContext, Principal
from .wiring import get_access_evaluator

# auto_error=False so a missing header is a 401 rather than FastAPI's default
security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Principal:
    """Decode the Bearer token into a Principal.

    Raises:
        HTTPException 401: If the token is missing, invalid, expired or lacks a subject
    """
    if credentials is None:
        raise _unauthorized("Authentication required")

    try:
        payload = decode_token(credentials.credentials)
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token has expired")
    except jwt.InvalidTokenError as e:
        raise _unauthorized(str(e))

    if not payload.get("sub"):
        raise _unauthorized("Invalid token: missing user ID claim")

    try:
        return Principal(
            user_id=payload["sub"],
            organization_id=payload.get("org_id"),
            active_role=payload.get("active_role"),
        )
    except ValidationError as e:
        raise _unauthorized(f"Invalid token claims: {e.error_count()} invalid field(s)")


def require_permission(resource: str, action: str, resource_id_param: str = "resource_id") -> Callable:
    """Create a dependency that allows the request only if check_permission does.

    The resource id is taken from the path parameter named resource_id_param
    when the route has one.

    Raises:
        HTTPException 401: Without a valid principal
        HTTPException 403: When the evaluator denies access
    """

    def permission_dependency(
        request: Request,
        principal: Principal = Depends(get_current_principal),
        evaluator: AccessEvaluator = Depends(get_access_evaluator),
    ) -> Principal:
        context = AccessContext(
            user_id=principal.user_id,
            active_role=principal.active_role,
            organization_id=principal.organization_id,
            resource_id=request.path_params.get(resource_id_param),
            resource_type=resource,
        )
        if not evaluator.check_permission(principal.user_id, resource, action, context):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Insufficient permissions for {action} on {resource}",
            )
        return principal

    return permission_dependency


def require_organization() -> Callable:
    """Create a dependency requiring an organization the principal holds a role in.

    Raises:
        HTTPException 400: If the token carries no organization
        HTTPException 403: If the principal has no active role in it
    """

    def organization_dependency(
        principal: Principal = Depends(get_current_principal),
        evaluator: AccessEvaluator = Depends(get_access_evaluator),
    ) -> Principal:
        if principal.organization_id is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Organization context required")

        roles = evaluator.catalog.get_user_roles(principal.user_id)
        member = any(
            role.organization_id == principal.organization_id
            or (role.profession == Profession.ADMIN and not role.is_custom)
            for role in roles
        )
        if not member:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="No access to this organization")
        return principal

    return organization_dependency
