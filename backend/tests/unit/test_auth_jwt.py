"""Unit tests for JWT token handling

Tests cover:
- Token creation with tenant claims
- Token decoding and validation
- Expired and tampered tokens
- Principal construction from claims
"""

import pytest
from uuid import uuid4
import jwt

from auth.jwt import create_access_token, decode_token, principal_from_claims
from config import get_settings


class TestCreateAccessToken:
    def test_token_contains_claims(self):
        principal_id, tenant_a, tenant_b = uuid4(), uuid4(), uuid4()

        token = create_access_token(principal_id, tenant_id=tenant_a, tenant_ids=[tenant_a, tenant_b], role="staff")
        payload = decode_token(token)

        assert payload["sub"] == str(principal_id)
        assert payload["tenant_id"] == str(tenant_a)
        assert payload["tenant_ids"] == [str(tenant_a), str(tenant_b)]
        assert payload["role"] == "staff"
        assert payload["exp"] > payload["iat"]

    def test_optional_claims_are_omitted(self):
        payload = decode_token(create_access_token(uuid4()))

        assert "tenant_id" not in payload
        assert "tenant_ids" not in payload
        assert "role" not in payload


class TestDecodeToken:
    def test_expired_token(self):
        token = create_access_token(uuid4(), expires_in_minutes=-1)

        with pytest.raises(jwt.ExpiredSignatureError):
            decode_token(token)

    def test_wrong_secret(self):
        settings = get_settings()
        token = jwt.encode({"sub": str(uuid4())}, "another-secret-key-of-sufficient-length!!", algorithm=settings.JWT_ALGORITHM)

        with pytest.raises(jwt.InvalidTokenError):
            decode_token(token)


class TestPrincipalFromClaims:
    def test_full_claims(self):
        principal_id, tenant_a, tenant_b = uuid4(), uuid4(), uuid4()

        principal = principal_from_claims({
            "sub": str(principal_id),
            "tenant_id": str(tenant_a),
            "tenant_ids": [str(tenant_b)],
            "role": "auditor",
        })

        assert principal.principal_id == principal_id
        assert principal.default_tenant_id == tenant_a
        assert principal.tenant_ids == frozenset({tenant_b})
        assert principal.claims_tenant(tenant_a)
        assert principal.claims_tenant(tenant_b)
        assert not principal.claims_tenant(uuid4())

    def test_subject_only(self):
        principal = principal_from_claims({"sub": str(uuid4())})

        assert principal.default_tenant_id is None
        assert principal.tenant_ids == frozenset()

    @pytest.mark.parametrize("payload", [
        {},
        {"sub": "not-a-uuid"},
        {"sub": str(uuid4()), "tenant_id": "nope"},
        {"sub": str(uuid4()), "tenant_ids": "not-a-list"},
    ])
    def test_malformed_claims(self, payload):
        with pytest.raises(ValueError):
            principal_from_claims(payload)
