import jwt
import pytest
from fastapi import HTTPException

from realsingles.auth import security


@pytest.fixture(autouse=True)
def _secret(monkeypatch):
    monkeypatch.setattr(security, "JWT_SECRET", "unit-test-secret")


def test_access_token_round_trip_claims():
    token = security.create_access_token("user-1", "ava@example.com", ttl_minutes=5)
    claims = security.decode_access_token(token)
    assert claims["sub"] == "user-1"
    assert claims["email"] == "ava@example.com"
    assert claims["exp"] - claims["iat"] == 300


def test_decode_rejects_expired_wrong_type_and_foreign_signature():
    expired = jwt.encode({"sub": "u", "typ": "access", "exp": 1}, "unit-test-secret", algorithm="HS256")
    with pytest.raises(HTTPException, match="expired"):
        security.decode_access_token(expired)

    not_access = jwt.encode({"sub": "u", "typ": "refresh", "exp": 4102444800}, "unit-test-secret", algorithm="HS256")
    with pytest.raises(HTTPException) as wrong_type:
        security.decode_access_token(not_access)
    assert wrong_type.value.status_code == 401

    foreign = jwt.encode({"sub": "u", "typ": "access", "exp": 4102444800}, "other-secret", algorithm="HS256")
    with pytest.raises(HTTPException, match="Invalid token"):
        security.decode_access_token(foreign)


def test_missing_secret_is_a_server_error(monkeypatch):
    monkeypatch.setattr(security, "JWT_SECRET", "")
    with pytest.raises(HTTPException) as exc:
        security.create_access_token("u", "a@example.com")
    assert exc.value.status_code == 500


def test_refresh_tokens_store_only_a_digest():
    token, digest = security.new_refresh_token()
    assert token != digest
    assert security.hash_refresh_token(token) == digest
    assert security.new_refresh_token()[0] != token


def test_password_hash_verifies():
    hashed = security.hash_password("verysecurepw")
    assert hashed.startswith("$argon2")
    assert security.verify_password("verysecurepw", hashed)
    assert not security.verify_password("nope", hashed)
