"""JWT bearer tokens identifying a principal.

Token Claims:
- sub: User ID as UUID string
- org_id: Organization the principal acts in (optional)
- active_role: Profession the principal acts under (optional; the primary
  profession is used when absent)
- iat / exp: Issue and expiry timestamps (JWT_EXPIRY_MINUTES, default 60)

Example Token Payload:
{
  "sub": "550e8400-e29b-41d4-a716-446655440000",
  "org_id": "7c9e6679-7425-40de-944b-e07fc1f90ae7",
  "active_role": "avocat",
  "iat": 1704368400,
  "exp": 1704372000
}
"""

import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from uuid import UUID

import jwt

from config import settings


def _get_jwt_secret() -> str:
    """JWT_SECRET from the environment, falling back to settings.

    Raises:
        ValueError: If no secret is configured
    """
    secret = os.getenv("JWT_SECRET") or settings.JWT_SECRET
    if not secret:
        raise ValueError("JWT_SECRET is not set")
    return secret


def create_access_token(
    user_id: UUID,
    org_id: Optional[UUID] = None,
    active_role: Optional[str] = None,
    expires_minutes: Optional[int] = None,
) -> str:
    """Create a signed access token for a principal."""
    now = datetime.now(timezone.utc)
    expiration = now + timedelta(minutes=expires_minutes if expires_minutes is not None else settings.JWT_EXPIRY_MINUTES)

    payload: Dict[str, Any] = {
        "sub": str(user_id),
        "iat": int(now.timestamp()),
        "exp": int(expiration.timestamp()),
    }
    if org_id is not None:
        payload["org_id"] = str(org_id)
    if active_role is not None:
        payload["active_role"] = getattr(active_role, "value", active_role)

    return jwt.encode(payload, _get_jwt_secret(), algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    """Decode and validate a JWT token.

    Raises:
        jwt.ExpiredSignatureError: If token has expired
        jwt.InvalidTokenError: If token is invalid or tampered
    """
    try:
        return jwt.decode(token, _get_jwt_secret(), algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise jwt.ExpiredSignatureError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise jwt.InvalidTokenError(f"Invalid token: {str(e)}")
