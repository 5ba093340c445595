"""Integration tests for tenant encryption, key rotation and tenant integrity

Tests cover:
- Round trip for the owning tenant and any JSON-native value
- Values JSON cannot reproduce rejected at encryption
- Cross-tenant decryption refused and audited as an isolation violation
- Tampered payloads refused and audited as decryption failures
- Embedded tenant tag checked against the caller's organization
- Key rotation keeping older payloads readable
"""

import base64
import dataclasses
import json
import pytest
from uuid import uuid4

from audit.schemas import AuditEventType
from authz.errors import EncryptionKeyUnavailable, IsolationViolation, TenantDecryptionError
from tenancy.crypto import EncryptedPayload
from tenancy.keys import DerivedTenantKeyProvider, make_key_id
from tenancy.service import TenantIsolationService

RECORD = {"client": "SCI Les Tilleuls", "honoraires": 2400, "pieces": ["assignation", "conclusions"]}


class TestRoundTrip:

    def test_owner_can_decrypt(self, isolation_service, tenant_a):
        payload = isolation_service.encrypt_tenant_data(RECORD, tenant_a)

        assert payload.tenant_id == tenant_a.tenant_id
        assert payload.key_id == make_key_id(tenant_a.tenant_id, 1)
        assert "Tilleuls" not in payload.ciphertext
        assert isolation_service.decrypt_tenant_data(payload, tenant_a) == RECORD

    def test_serialized_payload_round_trip(self, isolation_service, tenant_a):
        stored = isolation_service.encrypt_tenant_data(RECORD, tenant_a).to_json()
        assert isolation_service.decrypt_tenant_data(stored, tenant_a) == RECORD

    def test_colleague_in_same_organization_can_decrypt(self, isolation_service, tenant_a):
        colleague = isolation_service.create_tenant_context(uuid4(), tenant_a.organization_id, "notaire")
        payload = isolation_service.encrypt_tenant_data(RECORD, tenant_a)
        assert isolation_service.decrypt_tenant_data(payload, colleague) == RECORD

    @pytest.mark.parametrize("data", [
        None,
        0,
        False,
        "",
        2400.5,
        "Société Générale, 12 rue de l'Émeraude, Ἀθῆναι",
        ["assignation", 3, None, True],
        {"dossier": {"parties": [{"nom": "Dupont", "roles": ["demandeur"]}, []], "audiences": [[{"salle": "1A"}]]}},
    ])
    def test_any_json_native_value_round_trips(self, isolation_service, tenant_a, data):
        stored = isolation_service.encrypt_tenant_data(data, tenant_a).to_json()
        assert isolation_service.decrypt_tenant_data(stored, tenant_a) == data

    @pytest.mark.parametrize("data", [
        ("assignation", "conclusions"),
        {1: "x"},
        {"pieces": [{"cote": ("A", 1)}]},
        {"depot": {"montant", "frais"}},
        b"raw bytes",
    ])
    def test_values_json_cannot_reproduce_are_rejected(self, isolation_service, tenant_a, data):
        with pytest.raises(TypeError):
            isolation_service.encrypt_tenant_data(data, tenant_a)

    def test_nonces_are_unique(self, isolation_service, tenant_a):
        first = isolation_service.encrypt_tenant_data(RECORD, tenant_a)
        second = isolation_service.encrypt_tenant_data(RECORD, tenant_a)
        assert first.nonce != second.nonce
        assert first.ciphertext != second.ciphertext


class TestCrossTenant:

    def test_other_tenant_is_refused_and_audited(self, isolation_service, tenant_a, tenant_b, audit_entries):
        payload = isolation_service.encrypt_tenant_data(RECORD, tenant_a)

        with pytest.raises(IsolationViolation) as exc_info:
            isolation_service.decrypt_tenant_data(payload, tenant_b)

        assert exc_info.value.expected_tenant_id == tenant_b.tenant_id
        assert exc_info.value.actual_tenant_id == tenant_a.tenant_id
        [entry] = audit_entries()
        assert entry["event_type"] == AuditEventType.ISOLATION_VIOLATION.value
        assert entry["success"] is False
        assert "isolation" in entry["error_message"].lower()
        assert entry["user_id"] == str(tenant_b.user_id)

    def test_rewritten_header_fails_authentication(self, isolation_service, tenant_a, tenant_b, audit_entries):
        payload = isolation_service.encrypt_tenant_data(RECORD, tenant_a)
        # Stolen payload relabelled for tenant B: B's key cannot open it
        isolation_service.key_provider.get_active_key(tenant_b.tenant_id)
        forged = dataclasses.replace(
            payload, tenant_id=tenant_b.tenant_id, key_id=make_key_id(tenant_b.tenant_id, 1)
        )

        with pytest.raises(TenantDecryptionError):
            isolation_service.decrypt_tenant_data(forged, tenant_b)
        assert audit_entries()[-1]["event_type"] == AuditEventType.DECRYPTION_FAILURE.value

    def test_embedded_organization_mismatch_is_a_violation(self, isolation_service, tenant_a):
        payload = isolation_service.encrypt_tenant_data(RECORD, tenant_a)
        impostor = dataclasses.replace(tenant_a, organization_id=uuid4(), user_id=uuid4())

        with pytest.raises(IsolationViolation):
            isolation_service.decrypt_tenant_data(payload, impostor)


class TestTampering:

    def test_modified_ciphertext_is_refused_and_audited(self, isolation_service, tenant_a, audit_entries):
        payload = isolation_service.encrypt_tenant_data(RECORD, tenant_a)
        raw = bytearray(base64.b64decode(payload.ciphertext))
        raw[0] ^= 0x01
        tampered = dataclasses.replace(payload, ciphertext=base64.b64encode(bytes(raw)).decode())

        with pytest.raises(TenantDecryptionError):
            isolation_service.decrypt_tenant_data(tampered, tenant_a)

        [entry] = audit_entries()
        assert entry["event_type"] == AuditEventType.DECRYPTION_FAILURE.value
        assert entry["metadata"]["key_id"] == payload.key_id

    def test_unknown_key_version(self, isolation_service, tenant_a, audit_entries):
        payload = isolation_service.encrypt_tenant_data(RECORD, tenant_a)
        unknown = dataclasses.replace(payload, key_id=make_key_id(tenant_a.tenant_id, 7))

        with pytest.raises(EncryptionKeyUnavailable):
            isolation_service.decrypt_tenant_data(unknown, tenant_a)
        assert audit_entries()[-1]["event_type"] == AuditEventType.DECRYPTION_FAILURE.value

    @pytest.mark.parametrize("raw", ["not json", json.dumps({"version": 1}), "[]"])
    def test_malformed_serialized_payload(self, isolation_service, tenant_a, raw):
        with pytest.raises(TenantDecryptionError):
            isolation_service.decrypt_tenant_data(raw, tenant_a)


class TestKeys:

    def test_missing_master_key(self, session_factory, audit_logger, tenant_a, clock):
        service = TenantIsolationService(
            DerivedTenantKeyProvider(session_factory, master_key="", clock=clock), audit_logger, clock=clock
        )
        with pytest.raises(EncryptionKeyUnavailable):
            service.encrypt_tenant_data(RECORD, tenant_a)

    @pytest.mark.parametrize("master_key", ["zz" * 32, "00" * 16])
    def test_invalid_master_key(self, session_factory, master_key):
        provider = DerivedTenantKeyProvider(session_factory, master_key=master_key)
        with pytest.raises(EncryptionKeyUnavailable):
            provider.get_active_key("3f9a1c0d5e7b2a48")

    def test_keys_differ_per_tenant_and_version(self, key_provider, tenant_a, tenant_b):
        assert key_provider.derive_key(tenant_a.tenant_id, 1) != key_provider.derive_key(tenant_b.tenant_id, 1)
        assert key_provider.derive_key(tenant_a.tenant_id, 1) != key_provider.derive_key(tenant_a.tenant_id, 2)
        assert key_provider.derive_key(tenant_a.tenant_id, 1) == key_provider.derive_key(tenant_a.tenant_id, 1)

    def test_key_repr_hides_material(self, key_provider, tenant_a):
        material = key_provider.get_active_key(tenant_a.tenant_id)
        assert material.key.hex() not in repr(material)

    def test_key_of_another_tenant_is_refused(self, key_provider, tenant_a, tenant_b):
        key_provider.get_active_key(tenant_b.tenant_id)
        with pytest.raises(EncryptionKeyUnavailable):
            key_provider.get_key(tenant_a.tenant_id, make_key_id(tenant_b.tenant_id, 1))

    def test_rotation_keeps_old_payloads_readable(self, isolation_service, key_provider, tenant_a):
        old = isolation_service.encrypt_tenant_data(RECORD, tenant_a)

        rotated = key_provider.rotate_key(tenant_a.tenant_id)
        new = isolation_service.encrypt_tenant_data({"after": True}, tenant_a)

        assert rotated.version == 2
        assert new.key_id == make_key_id(tenant_a.tenant_id, 2)
        assert isolation_service.decrypt_tenant_data(old, tenant_a) == RECORD
        assert isolation_service.decrypt_tenant_data(new, tenant_a) == {"after": True}

    def test_rotation_needed_after_rotation_period(self, key_provider, clock, tenant_a):
        assert key_provider.is_key_rotation_needed(tenant_a.tenant_id) is True

        key_provider.get_active_key(tenant_a.tenant_id)
        assert key_provider.is_key_rotation_needed(tenant_a.tenant_id) is False

        clock.advance(days=91)
        assert key_provider.is_key_rotation_needed(tenant_a.tenant_id) is True

        key_provider.rotate_key(tenant_a.tenant_id)
        assert key_provider.is_key_rotation_needed(tenant_a.tenant_id) is False


class TestTenantIntegrity:

    def test_healthy_tenant(self, isolation_service, tenant_a):
        isolation_service.key_provider.get_active_key(tenant_a.tenant_id)

        report = isolation_service.validate_tenant_integrity(tenant_a.tenant_id)

        assert report.is_valid is True
        assert report.violations == []
        assert report.recommendations == []

    def test_stale_key_is_a_recommendation(self, isolation_service, clock, tenant_a):
        isolation_service.key_provider.get_active_key(tenant_a.tenant_id)
        clock.advance(days=100)

        report = isolation_service.validate_tenant_integrity(tenant_a.tenant_id)

        assert report.is_valid is True
        assert report.recommendations == ["Rotate the tenant encryption key"]

    def test_suspicious_access_invalidates_tenant(self, isolation_service, audit_logger, clock, tenant_a):
        isolation_service.key_provider.get_active_key(tenant_a.tenant_id)
        for _ in range(6):
            audit_logger.log_access(tenant_a.user_id, "dossier", "delete", False,
                                    organization_id=tenant_a.organization_id)
            clock.advance(minutes=5)

        report = isolation_service.validate_tenant_integrity(tenant_a.tenant_id)

        assert report.is_valid is False
        assert report.violations == ["Detected 1 suspicious access pattern(s) in the last 24 hours"]
        assert "Review the access logs" in report.recommendations
