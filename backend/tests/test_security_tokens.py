from datetime import timedelta

import pytest
from jose import jwt

from app.core.security import PasswordHasher, TokenCodec, password_fits_hasher
from conftest import make_auth_config


def _codec(**overrides) -> TokenCodec:
    return TokenCodec(make_auth_config(**overrides))


def test_access_token_round_trip():
    codec = _codec()
    token = codec.create_access_token("u-1", "alice@x.com", "Manager", ["products:read", "orders:write"])
    payload = codec.decode_access_token(token)
    assert payload is not None
    assert payload["sub"] == "u-1"
    assert payload["email"] == "alice@x.com"
    assert payload["role"] == "Manager"
    assert payload["permissions"] == ["products:read", "orders:write"]
    assert payload["iss"] == "inventory-system"
    assert payload["aud"] == "inventory-users"


def test_access_token_keeps_permission_order_and_duplicates():
    codec = _codec()
    token = codec.create_access_token("u-1", "a@x.com", "R", ["b:read", "a:read", "b:read"])
    assert codec.decode_access_token(token)["permissions"] == ["b:read", "a:read", "b:read"]


def test_refresh_token_carries_only_subject_and_type():
    codec = _codec()
    payload = codec.decode_refresh_token(codec.create_refresh_token("u-9"))
    assert payload is not None
    assert payload["sub"] == "u-9"
    assert payload["type"] == "refresh"
    assert "email" not in payload
    assert "permissions" not in payload


def test_tokens_are_not_interchangeable():
    codec = _codec()
    access = codec.create_access_token("u-1", "a@x.com", "R", [])
    refresh = codec.create_refresh_token("u-1")
    assert codec.decode_access_token(refresh) is None
    assert codec.decode_refresh_token(access) is None


def test_refresh_secret_cannot_forge_access_token():
    codec = _codec()
    forged = jwt.encode(
        {"sub": "u-1", "email": "a@x.com", "role": "Admin", "permissions": ["users:manage"],
         "iss": "inventory-system", "aud": "inventory-users"},
        "refresh-secret",
        algorithm="HS256",
    )
    assert codec.decode_access_token(forged) is None


def test_expired_tokens_are_rejected():
    codec = _codec(access_ttl=timedelta(seconds=-5), refresh_ttl=timedelta(seconds=-5))
    assert codec.decode_access_token(codec.create_access_token("u-1", "a@x.com", "R", [])) is None
    assert codec.decode_refresh_token(codec.create_refresh_token("u-1")) is None


def test_tampered_token_is_rejected():
    codec = _codec()
    token = codec.create_access_token("u-1", "a@x.com", "R", [])
    header, payload, signature = token.split(".")
    tampered = ".".join([header, payload, signature[:-2] + ("AA" if signature[-2:] != "AA" else "BB")])
    assert codec.decode_access_token(tampered) is None


def test_wrong_audience_is_rejected():
    issuing = _codec(audience="someone-else")
    verifying = _codec()
    assert verifying.decode_access_token(issuing.create_access_token("u-1", "a@x.com", "R", [])) is None


def test_password_hash_verifies():
    hasher = PasswordHasher(rounds=4)
    hashed = hasher.hash("Secret#1")
    assert hashed != "Secret#1"
    assert hashed.startswith("$2")
    assert hasher.verify("Secret#1", hashed)
    assert not hasher.verify("Wrong", hashed)


def test_password_hash_is_salted():
    hasher = PasswordHasher(rounds=4)
    assert hasher.hash("Secret#1") != hasher.hash("Secret#1")


def test_verify_malformed_hash_returns_false():
    assert PasswordHasher(rounds=4).verify("Secret#1", "not-a-bcrypt-hash") is False


def test_hasher_rejects_overlong_input():
    long_password = "é" * 40  # 80 bytes
    assert not password_fits_hasher(long_password)
    with pytest.raises(ValueError):
        PasswordHasher(rounds=4).hash(long_password)
