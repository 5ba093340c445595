"""Unit tests for principal bearer tokens

Tests cover:
- Token creation with principal claims
- Optional organization and role claims
- Expiration and tampering
"""

import pytest
from uuid import uuid4
import jwt

from authz.jwt import create_access_token, decode_token
from authz.professions import Profession


class TestCreateAccessToken:
    """Test JWT token creation"""

    def test_token_contains_principal_claims(self, monkeypatch):
        monkeypatch.setenv('JWT_SECRET', 'test-secret-key-256-bits-minimum-length-required-for-security')

        user_id, org_id = uuid4(), uuid4()
        token = create_access_token(user_id, org_id, Profession.AVOCAT)
        payload = decode_token(token)

        assert payload["sub"] == str(user_id)
        assert payload["org_id"] == str(org_id)
        assert payload["active_role"] == "avocat"
        assert payload["exp"] > payload["iat"]

    def test_organization_and_role_are_optional(self, monkeypatch):
        monkeypatch.setenv('JWT_SECRET', 'test-secret-key-256-bits-minimum-length-required-for-security')

        payload = decode_token(create_access_token(uuid4()))

        assert "org_id" not in payload
        assert "active_role" not in payload


class TestDecodeToken:
    """Test JWT token validation"""

    def test_expired_token_rejected(self, monkeypatch):
        monkeypatch.setenv('JWT_SECRET', 'test-secret-key-256-bits-minimum-length-required-for-security')

        token = create_access_token(uuid4(), expires_minutes=-1)

        with pytest.raises(jwt.ExpiredSignatureError):
            decode_token(token)

    def test_token_signed_with_other_secret_rejected(self, monkeypatch):
        monkeypatch.setenv('JWT_SECRET', 'secret-one-secret-one-secret-one-secret-one')
        token = create_access_token(uuid4())

        monkeypatch.setenv('JWT_SECRET', 'secret-two-secret-two-secret-two-secret-two')
        with pytest.raises(jwt.InvalidTokenError):
            decode_token(token)

    def test_tampered_token_rejected(self, monkeypatch):
        monkeypatch.setenv('JWT_SECRET', 'test-secret-key-256-bits-minimum-length-required-for-security')

        header, payload, signature = create_access_token(uuid4()).split('.')
        tampered = f"{header}.{payload}.{signature[:-4]}AAAA"

        with pytest.raises(jwt.InvalidTokenError):
            decode_token(tampered)

    def test_garbage_rejected(self, monkeypatch):
        monkeypatch.setenv('JWT_SECRET', 'test-secret-key-256-bits-minimum-length-required-for-security')

        with pytest.raises(jwt.InvalidTokenError):
            decode_token("not-a-token")
