"""Unit tests for password hashing and JWT handling."""

from __future__ import annotations

import uuid

import jwt

from app.config import settings
from app.core.security import (
    ALGORITHM,
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)


class TestPasswords:
    def test_hash_and_verify(self):
        hashed = hash_password("Secret123")
        assert hashed != "Secret123"
        assert verify_password("Secret123", hashed)
        assert not verify_password("wrong", hashed)

    def test_malformed_hash_is_rejected(self):
        assert verify_password("Secret123", "not-a-bcrypt-hash") is False


class TestTokens:
    def test_round_trip(self):
        user_id = uuid.uuid4()
        claims = decode_access_token(create_access_token(user_id, "company_admin"))
        assert claims["sub"] == str(user_id)
        assert claims["role"] == "company_admin"

    def test_invalid_tokens(self):
        assert decode_access_token("") is None
        assert decode_access_token("garbage") is None

    def test_wrong_audience(self):
        token = jwt.encode(
            {"sub": "x", "aud": "someone-else", "iss": settings.JWT_ISSUER},
            settings.SECRET_KEY,
            algorithm=ALGORITHM,
        )
        assert decode_access_token(token) is None
