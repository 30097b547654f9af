"""Password hashing and JWT helpers.

Tokens carry a ``type`` claim so a long-lived refresh token can never be
used where an access token is expected.
"""

from datetime import UTC, datetime, timedelta
from typing import Any

import jwt
from pwdlib import PasswordHash

from cryptofolio.core.config import settings

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

# Argon2
password_hash = PasswordHash.recommended()


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return password_hash.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return password_hash.hash(password)


def _encode(data: dict[str, Any], token_type: str, lifetime: timedelta) -> str:
    issued_at = datetime.now(UTC)
    claims = {**data, "iat": issued_at, "exp": issued_at + lifetime, "type": token_type}
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_access_token(data: dict[str, Any], expires_delta: timedelta | None = None) -> str:
    """
    Create a JWT access token.

    Args:
        data: Claims to encode, typically ``{"sub": str(user.id)}``
        expires_delta: Lifetime; defaults to ``ACCESS_TOKEN_EXPIRE_MINUTES``

    Returns:
        The encoded token
    """
    lifetime = expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    return _encode(data, ACCESS_TOKEN_TYPE, lifetime)


def create_refresh_token(data: dict[str, Any]) -> str:
    """Create a JWT refresh token valid for ``REFRESH_TOKEN_EXPIRE_DAYS``."""
    return _encode(data, REFRESH_TOKEN_TYPE, timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS))


def decode_token(token: str, *, expected_type: str | None = None) -> dict[str, Any]:
    """
    Decode and verify a JWT token.

    Args:
        token: The encoded token
        expected_type: When given, the token's "type" claim must match it

    Returns:
        The decoded claims

    Raises:
        jwt.InvalidTokenError: If the token is invalid, expired or of the
            wrong type
    """
    payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    if expected_type is not None and payload.get("type") != expected_type:
        raise jwt.InvalidTokenError(f"Expected a {expected_type} token")
    return payload
