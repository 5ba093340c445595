"""Tenant crypto boundary using AES-256-GCM.

Every tenant-scoped record persisted by the platform passes through this
boundary. The plaintext is wrapped in an envelope carrying the
authoritative tenant tag:

    {"data": <data>, "_tenant": {"tenant_id", "organization_id",
                                  "created_by", "created_at"}}

and encrypted under the tenant's own key. The payload also carries a
plaintext tenant_id header, authenticated as associated data together with
the key id. The header is only ever used to refuse work early; access is
granted solely on the tag found inside the authenticated envelope.

Decryption order:
1. header tenant differs from the caller's tenant: IsolationViolation
2. authentication fails: TenantDecryptionError
3. embedded tag differs from the caller's tenant: IsolationViolation
All three outcomes are audited.
"""

import base64
import binascii
import json
import logging
import os
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Callable, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from audit.service import AuditLogger
from authz.errors import EncryptionKeyUnavailable, IsolationViolation, TenantDecryptionError
from models.base import utcnow

from .context import TenantContext
from .keys import TenantKeyProvider

logger = logging.getLogger(__name__)

PAYLOAD_VERSION = 1
ALGORITHM = "AES-256-GCM"
NONCE_BYTES = 12


@dataclass
class EncryptedPayload:
    """Encrypted tenant record as stored by callers.

    Attributes:
        version: Payload format version
        tenant_id: Plaintext tenant header (authenticated, not secret)
        key_id: Tenant key version used, "<tenant_id>:v<n>"
        nonce: Base64-encoded 96-bit nonce
        ciphertext: Base64-encoded ciphertext with GCM tag
        algorithm: Always AES-256-GCM for version 1
    """
    version: int
    tenant_id: str
    key_id: str
    nonce: str
    ciphertext: str
    algorithm: str = ALGORITHM

    def to_json(self) -> str:
        """Serialize to JSON string for database storage."""
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, data: str) -> "EncryptedPayload":
        """Deserialize from JSON string.

        Raises:
            TenantDecryptionError: If the string is not a payload
        """
        try:
            parsed = json.loads(data)
            return cls(
                version=parsed["version"],
                tenant_id=parsed["tenant_id"],
                key_id=parsed["key_id"],
                nonce=parsed["nonce"],
                ciphertext=parsed["ciphertext"],
                algorithm=parsed.get("algorithm", ALGORITHM),
            )
        except (ValueError, KeyError, TypeError) as e:
            raise TenantDecryptionError(f"Malformed encrypted payload: {e}") from e


def associated_data(tenant_id: str, key_id: str, version: int) -> bytes:
    return f"{tenant_id}|{key_id}|v{version}".encode()


def check_json_native(data: Any, path: str = "data") -> None:
    """Reject values that would not come back unchanged from a JSON round trip.

    Tuples decode as lists and non-string keys as strings, so both are refused.

    Raises:
        TypeError: On the first offending value, naming its path
    """
    if data is None or isinstance(data, (bool, int, float, str)):
        return
    if isinstance(data, list):
        for index, item in enumerate(data):
            check_json_native(item, f"{path}[{index}]")
        return
    if isinstance(data, dict):
        for key, value in data.items():
            if not isinstance(key, str):
                raise TypeError(f"{path} has a non-string key {key!r}")
            check_json_native(value, f"{path}.{key}")
        return
    raise TypeError(f"{path} is a {type(data).__name__}, only JSON-native values can be encrypted")


class TenantCryptoBoundary:
    """Encrypts and decrypts tenant data under per-tenant keys.

    Example:
        boundary = TenantCryptoBoundary(key_provider, audit_logger)
        payload = boundary.encrypt_tenant_data({"note": "secret"}, context)
        store(payload.to_json())
        ...
        data = boundary.decrypt_tenant_data(EncryptedPayload.from_json(raw), context)
    """

    def __init__(
        self,
        key_provider: TenantKeyProvider,
        audit: AuditLogger,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.key_provider = key_provider
        self.audit = audit
        self._clock = clock

    def encrypt_tenant_data(self, data: Any, context: TenantContext) -> EncryptedPayload:
        """Encrypt JSON-native data for the context's tenant.

        Only None, booleans, numbers, strings, lists and str-keyed dicts are
        accepted, so decryption returns a value equal to the input.

        Raises:
            EncryptionKeyUnavailable: If no tenant key can be obtained
            TypeError: If data contains a value JSON cannot reproduce
        """
        check_json_native(data)
        key = self.key_provider.get_active_key(context.tenant_id)
        envelope = {
            "data": data,
            "_tenant": {
                "tenant_id": context.tenant_id,
                "organization_id": str(context.organization_id),
                "created_by": str(context.user_id),
                "created_at": self._clock().isoformat(),
            },
        }
        plaintext = json.dumps(envelope).encode()
        nonce = os.urandom(NONCE_BYTES)
        ciphertext = AESGCM(key.key).encrypt(
            nonce, plaintext, associated_data(context.tenant_id, key.key_id, PAYLOAD_VERSION)
        )

        return EncryptedPayload(
            version=PAYLOAD_VERSION,
            tenant_id=context.tenant_id,
            key_id=key.key_id,
            nonce=base64.b64encode(nonce).decode(),
            ciphertext=base64.b64encode(ciphertext).decode(),
        )

    def decrypt_tenant_data(self, payload: Union[EncryptedPayload, str], context: TenantContext) -> Any:
        """Decrypt a payload for the context's tenant and return the original data.

        Raises:
            IsolationViolation: If the payload belongs to another tenant
            TenantDecryptionError: If the payload fails authentication
            EncryptionKeyUnavailable: If the payload's key cannot be derived
        """
        if isinstance(payload, str):
            payload = EncryptedPayload.from_json(payload)

        if payload.tenant_id != context.tenant_id:
            raise self._violation(
                context, payload.tenant_id, "Tenant isolation violation: payload belongs to another tenant"
            )

        if payload.version != PAYLOAD_VERSION or payload.algorithm != ALGORITHM:
            raise self._decryption_failed(
                context, payload.key_id, f"Unsupported payload format: v{payload.version} {payload.algorithm}"
            )

        try:
            key = self.key_provider.get_key(context.tenant_id, payload.key_id)
        except EncryptionKeyUnavailable as e:
            self.audit.log_decryption_failure(context, payload.key_id, str(e))
            raise

        try:
            nonce = base64.b64decode(payload.nonce, validate=True)
            ciphertext = base64.b64decode(payload.ciphertext, validate=True)
            plaintext = AESGCM(key.key).decrypt(
                nonce, ciphertext, associated_data(payload.tenant_id, payload.key_id, payload.version)
            )
            envelope = json.loads(plaintext.decode())
        except (InvalidTag, binascii.Error, ValueError) as e:
            raise self._decryption_failed(
                context, payload.key_id, f"Decryption failed - tampered or corrupted payload: {e!r}"
            ) from e

        tag = envelope.get("_tenant") if isinstance(envelope, dict) else None
        if not isinstance(tag, dict) or "data" not in envelope:
            raise self._violation(context, None, "Tenant isolation violation: payload carries no tenant tag")
        if tag.get("tenant_id") != context.tenant_id or tag.get("organization_id") != str(context.organization_id):
            raise self._violation(
                context, tag.get("tenant_id"), "Tenant isolation violation: embedded tenant tag does not match"
            )

        return envelope["data"]

    def _violation(self, context: TenantContext, actual_tenant_id, reason: str) -> IsolationViolation:
        self.audit.log_isolation_violation(context, actual_tenant_id, "decrypt", reason)
        return IsolationViolation(reason, expected_tenant_id=context.tenant_id, actual_tenant_id=actual_tenant_id)

    def _decryption_failed(self, context: TenantContext, key_id: str, reason: str) -> TenantDecryptionError:
        logger.error(reason, extra={"tenant_id": context.tenant_id, "user_id": context.user_id})
        self.audit.log_decryption_failure(context, key_id, reason)
        return TenantDecryptionError(reason)
