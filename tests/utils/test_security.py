"""Tests for password hashing and JWT helpers."""

from datetime import timedelta

import jwt
import pytest

from cryptofolio.core.security import (
    ACCESS_TOKEN_TYPE,
    REFRESH_TOKEN_TYPE,
    create_access_token,
    create_refresh_token,
    decode_token,
    get_password_hash,
    verify_password,
)

pytestmark = pytest.mark.unit


def test_password_hashing():
    hashed = get_password_hash("TestPass123")

    assert hashed != "TestPass123"
    assert hashed.startswith("$argon2")
    assert verify_password("TestPass123", hashed)
    assert not verify_password("WrongPass123", hashed)


def test_same_password_hashes_differently():
    assert get_password_hash("TestPass123") != get_password_hash("TestPass123")


def test_access_token_round_trip():
    token = create_access_token(data={"sub": "42"})

    payload = decode_token(token, expected_type=ACCESS_TOKEN_TYPE)

    assert payload["sub"] == "42"
    assert payload["type"] == ACCESS_TOKEN_TYPE
    assert payload["exp"] > payload["iat"]


def test_refresh_token_outlives_access_token():
    access = decode_token(create_access_token(data={"sub": "1"}))
    refresh = decode_token(create_refresh_token(data={"sub": "1"}))

    assert refresh["type"] == REFRESH_TOKEN_TYPE
    assert refresh["exp"] > access["exp"]


def test_wrong_token_type_is_rejected():
    refresh = create_refresh_token(data={"sub": "1"})

    with pytest.raises(jwt.InvalidTokenError):
        decode_token(refresh, expected_type=ACCESS_TOKEN_TYPE)


def test_expired_token_is_rejected():
    token = create_access_token(data={"sub": "1"}, expires_delta=timedelta(seconds=-1))

    with pytest.raises(jwt.ExpiredSignatureError):
        decode_token(token)


def test_tampered_token_is_rejected():
    token = create_access_token(data={"sub": "1"})

    with pytest.raises(jwt.InvalidTokenError):
        decode_token(token[:-2] + ("AA" if not token.endswith("AA") else "BB"))


def test_input_data_is_not_mutated():
    data = {"sub": "1"}

    create_access_token(data=data)

    assert data == {"sub": "1"}
