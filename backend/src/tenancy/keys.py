"""Per-tenant encryption key management.

Tenant keys are never stored. Each key version is re-derived on demand
from TENANT_MASTER_KEY with HKDF-SHA256, using an info string that binds
the tenant id and the version:

    lexaccess-tenant-key:<tenant_id>:v<version>

Only key metadata (version, active flag, timestamps) is persisted in the
tenant_key table. Rotation retires the active version and activates the
next one; retired versions stay derivable so older payloads still decrypt.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from authz.errors import EncryptionKeyUnavailable
from config import settings
from database import session_scope
from models.base import utcnow
from models.tenant_key import TenantKey

logger = logging.getLogger(__name__)

HKDF_INFO_PREFIX = "lexaccess-tenant-key"
MASTER_KEY_BYTES = 32


@dataclass(frozen=True)
class TenantKeyMaterial:
    """A usable key version. repr hides the key bytes."""
    key_id: str
    tenant_id: str
    version: int
    created_at: datetime
    key: bytes

    def __repr__(self) -> str:
        return f"TenantKeyMaterial(key_id={self.key_id!r}, created_at={self.created_at!r})"


def make_key_id(tenant_id: str, version: int) -> str:
    return f"{tenant_id}:v{version}"


def parse_key_id(key_id: str):
    """Split "<tenant_id>:v<version>".

    Raises:
        EncryptionKeyUnavailable: If the key id is malformed
    """
    tenant_id, sep, version = key_id.rpartition(":v")
    if not sep or not tenant_id or not version.isdigit():
        raise EncryptionKeyUnavailable(f"Malformed key id: {key_id!r}")
    return tenant_id, int(version)


class TenantKeyProvider(ABC):
    """Source of per-tenant key material."""

    @abstractmethod
    def get_active_key(self, tenant_id: str) -> TenantKeyMaterial:
        ...

    @abstractmethod
    def get_key(self, tenant_id: str, key_id: str) -> TenantKeyMaterial:
        ...

    @abstractmethod
    def rotate_key(self, tenant_id: str) -> TenantKeyMaterial:
        ...

    @abstractmethod
    def is_key_rotation_needed(self, tenant_id: str) -> bool:
        ...


class DerivedTenantKeyProvider(TenantKeyProvider):
    """HKDF-derived tenant keys with metadata in the tenant_key table.

    Example:
        provider = DerivedTenantKeyProvider(SessionLocal)
        key = provider.get_active_key("3f9a1c0d5e7b2a48")
        AESGCM(key.key).encrypt(nonce, plaintext, aad)
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        master_key: Optional[str] = None,
        rotation_days: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self._master_key_hex = master_key if master_key is not None else settings.TENANT_MASTER_KEY
        self.rotation_days = rotation_days if rotation_days is not None else settings.KEY_ROTATION_DAYS
        self._clock = clock

    def _master_key(self) -> bytes:
        if not self._master_key_hex:
            raise EncryptionKeyUnavailable("TENANT_MASTER_KEY is not configured")
        try:
            master = bytes.fromhex(self._master_key_hex)
        except ValueError as e:
            raise EncryptionKeyUnavailable("TENANT_MASTER_KEY must be hex encoded") from e
        if len(master) != MASTER_KEY_BYTES:
            raise EncryptionKeyUnavailable(f"TENANT_MASTER_KEY must be {MASTER_KEY_BYTES * 2} hex characters")
        return master

    def derive_key(self, tenant_id: str, version: int) -> bytes:
        """Derive the 256-bit key of one tenant key version."""
        hkdf = HKDF(
            algorithm=hashes.SHA256(),
            length=32,
            salt=None,
            info=f"{HKDF_INFO_PREFIX}:{tenant_id}:v{version}".encode(),
        )
        return hkdf.derive(self._master_key())

    def _material(self, row: TenantKey) -> TenantKeyMaterial:
        return TenantKeyMaterial(
            key_id=make_key_id(row.tenant_id, row.version),
            tenant_id=row.tenant_id,
            version=row.version,
            created_at=row.created_at,
            key=self.derive_key(row.tenant_id, row.version),
        )

    @staticmethod
    def _active_row(session: Session, tenant_id: str) -> Optional[TenantKey]:
        return session.execute(
            select(TenantKey)
            .where(TenantKey.tenant_id == tenant_id, TenantKey.is_active.is_(True))
            .order_by(TenantKey.version.desc())
            .limit(1)
        ).scalar_one_or_none()

    def get_active_key(self, tenant_id: str) -> TenantKeyMaterial:
        """Active key of the tenant; version 1 is provisioned on first use."""
        self._master_key()
        try:
            with session_scope(self._session_factory) as session:
                row = self._active_row(session, tenant_id)
                if row is None:
                    row = TenantKey(tenant_id=tenant_id, version=1, is_active=True, created_at=self._clock())
                    session.add(row)
                    session.flush()
                    logger.info(f"Provisioned key version 1 for tenant {tenant_id}", extra={"tenant_id": tenant_id})
                return self._material(row)
        except IntegrityError:
            # A concurrent request provisioned the key first
            with session_scope(self._session_factory) as session:
                row = self._active_row(session, tenant_id)
                if row is None:
                    raise EncryptionKeyUnavailable(f"No active key for tenant {tenant_id}")
                return self._material(row)

    def get_key(self, tenant_id: str, key_id: str) -> TenantKeyMaterial:
        """Key version named by key_id, active or retired.

        Raises:
            EncryptionKeyUnavailable: If the key id belongs to another tenant
                or names a version that was never provisioned
        """
        key_tenant, version = parse_key_id(key_id)
        if key_tenant != tenant_id:
            raise EncryptionKeyUnavailable(f"Key {key_id} does not belong to tenant {tenant_id}")
        with session_scope(self._session_factory) as session:
            row = session.execute(
                select(TenantKey).where(TenantKey.tenant_id == tenant_id, TenantKey.version == version)
            ).scalar_one_or_none()
            if row is None:
                raise EncryptionKeyUnavailable(f"Unknown key {key_id}")
            return self._material(row)

    def rotate_key(self, tenant_id: str) -> TenantKeyMaterial:
        """Retire the active version and activate the next one."""
        self._master_key()
        now = self._clock()
        with session_scope(self._session_factory) as session:
            latest = session.execute(
                select(TenantKey).where(TenantKey.tenant_id == tenant_id).order_by(TenantKey.version.desc()).limit(1)
            ).scalar_one_or_none()
            active = session.execute(
                select(TenantKey).where(TenantKey.tenant_id == tenant_id, TenantKey.is_active.is_(True))
            ).scalars().all()
            for row in active:
                row.is_active = False
                row.rotated_at = now
            session.flush()

            new_row = TenantKey(
                tenant_id=tenant_id,
                version=(latest.version + 1) if latest else 1,
                is_active=True,
                created_at=now,
            )
            session.add(new_row)
            session.flush()
            material = self._material(new_row)

        logger.info(f"Rotated tenant key to {material.key_id}", extra={"tenant_id": tenant_id})
        return material

    def is_key_rotation_needed(self, tenant_id: str) -> bool:
        """True when the tenant has no active key or it is older than rotation_days."""
        with session_scope(self._session_factory) as session:
            row = self._active_row(session, tenant_id)
            if row is None:
                return True
            return self._clock() - row.created_at > timedelta(days=self.rotation_days)
