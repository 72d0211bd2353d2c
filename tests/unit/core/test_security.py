"""
Unit tests for password hashing and local session tokens.
"""
from datetime import timedelta

import pytest
from jose import JWTError

from plankalink.core.security import create_access_token, get_password_hash, verify_password, verify_token


def test_password_hash_roundtrip():
    hashed = get_password_hash("secret")

    assert hashed.startswith("$argon2")
    assert verify_password("secret", hashed)
    assert not verify_password("other", hashed)


def test_verify_password_with_unknown_hash_format():
    assert verify_password("secret", "not-a-hash") is False


def test_access_token_carries_subject_and_type():
    payload = verify_token(create_access_token({"sub": "user-1"}))

    assert payload["sub"] == "user-1"
    assert payload["type"] == "access"
    assert payload["exp"] > payload["iat"]


def test_expired_token_is_rejected():
    token = create_access_token({"sub": "user-1"}, expires_delta=timedelta(seconds=-10))

    with pytest.raises(JWTError):
        verify_token(token)


def test_wrong_token_type_is_rejected():
    with pytest.raises(JWTError):
        verify_token(create_access_token({"sub": "user-1"}), token_type="refresh")
