"""Permission decision cache.

Decisions are memoized in the access_control_cache table under a SHA-256
hash of a canonical context record. The record is normalized (UUIDs and
enums to strings, empty values to None) and serialized with sorted keys,
so incidental field ordering never changes the key.

Concurrent writers racing on the same key are harmless: both computed the
decision from the same inputs, and the last write wins.
"""

import hashlib
import json
import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Optional
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from database import session_scope
from models.access_cache import AccessControlCache
from models.base import utcnow

from .schemas import AccessContext

logger = logging.getLogger(__name__)

DEFAULT_TTL_MINUTES = 15


def _canonical(value: Any) -> Any:
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if value == "":
        return None
    return value


def make_cache_key(user_id: UUID, resource: str, action: str, context: AccessContext) -> str:
    """Canonical, order-independent hash of everything a decision depends on.

    additional_context is part of the key because conditions may read it.
    """
    record = {
        "user_id": _canonical(user_id),
        "resource": resource,
        "action": action,
        "active_role": _canonical(context.active_role),
        "organization_id": _canonical(context.organization_id),
        "resource_id": _canonical(context.resource_id),
        "resource_type": _canonical(context.resource_type),
        "additional_context": {
            key: _canonical(value) for key, value in context.additional_context.items()
        } or None,
    }
    payload = json.dumps(record, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class PermissionCache:
    """Short-TTL store of access decisions.

    Read and write failures degrade to a miss / a skipped write; they are
    logged and never change a decision.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        ttl_minutes: int = DEFAULT_TTL_MINUTES,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self.ttl = timedelta(minutes=ttl_minutes)
        self._clock = clock

    def get(self, context_hash: str) -> Optional[bool]:
        """Return the cached decision, or None on miss, expiry or store error."""
        try:
            with session_scope(self._session_factory) as session:
                return session.execute(
                    select(AccessControlCache.has_permission).where(
                        AccessControlCache.context_hash == context_hash,
                        AccessControlCache.expires_at > self._clock(),
                    )
                ).scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Permission cache read failed: {e}")
            return None

    def set(
        self,
        context_hash: str,
        user_id: UUID,
        resource: str,
        action: str,
        has_permission: bool,
        not_after: Optional[datetime] = None,
    ) -> None:
        """Store a decision until now + TTL, or until not_after if that is sooner."""
        now = self._clock()
        expires_at = now + self.ttl
        if not_after is not None and not_after < expires_at:
            expires_at = not_after
        if expires_at <= now:
            return

        for attempt in range(2):
            try:
                with session_scope(self._session_factory) as session:
                    self._upsert(session, context_hash, user_id, resource, action, has_permission, now, expires_at)
                return
            except IntegrityError:
                # Another writer inserted the same key first; retry as an update
                if attempt == 1:
                    logger.warning(f"Permission cache write lost a race for {context_hash[:12]}")
            except SQLAlchemyError as e:
                logger.error(f"Permission cache write failed: {e}")
                return

    @staticmethod
    def _upsert(session: Session, context_hash, user_id, resource, action, has_permission, now, expires_at):
        entry = session.execute(
            select(AccessControlCache).where(AccessControlCache.context_hash == context_hash)
        ).scalar_one_or_none()
        if entry is None:
            entry = AccessControlCache(context_hash=context_hash)
            session.add(entry)
        entry.user_id = user_id
        entry.resource = resource
        entry.action = action
        entry.has_permission = has_permission
        entry.cached_at = now
        entry.expires_at = expires_at

    def invalidate_user(self, user_id: UUID, session: Optional[Session] = None) -> int:
        """Drop every cached decision of a user.

        When a session is given the delete joins the caller's transaction,
        so it commits or rolls back together with the assignment change.
        """
        stmt = delete(AccessControlCache).where(AccessControlCache.user_id == user_id)
        if session is not None:
            return session.execute(stmt).rowcount or 0
        with session_scope(self._session_factory) as own_session:
            return own_session.execute(stmt).rowcount or 0

    def purge_expired(self) -> int:
        """Delete expired rows. Returns the number of rows removed."""
        with session_scope(self._session_factory) as session:
            result = session.execute(
                delete(AccessControlCache).where(AccessControlCache.expires_at <= self._clock())
            )
            return result.rowcount or 0
