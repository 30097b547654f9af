"""Tests for user service functions."""

import jwt
import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from cryptofolio.core.exceptions import AuthenticationError, ConflictError, ValidationError
from cryptofolio.core.security import create_access_token, decode_token
from cryptofolio.models.user import User
from cryptofolio.schemas.auth import UserRegister
from cryptofolio.services import user_service

pytestmark = pytest.mark.integration


async def test_authenticate_user_success_with_username(
    test_db: AsyncSession, test_user: User
) -> None:
    """Test successful authentication using username."""
    authenticated_user = await user_service.authenticate_user(test_db, "testuser", "TestPass123")

    assert authenticated_user.id == test_user.id


async def test_authenticate_user_success_with_email(
    test_db: AsyncSession, test_user: User
) -> None:
    """Test successful authentication using email."""
    authenticated_user = await user_service.authenticate_user(
        test_db, "test@example.com", "TestPass123"
    )

    assert authenticated_user.id == test_user.id


async def test_authenticate_user_invalid_password(test_db: AsyncSession, test_user: User) -> None:
    """Test authentication with incorrect password."""
    with pytest.raises(AuthenticationError) as exc_info:
        await user_service.authenticate_user(test_db, "testuser", "WrongPassword")

    assert exc_info.value.status_code == 401
    assert exc_info.value.detail == "Incorrect username or password"


async def test_authenticate_user_inactive_user(
    test_db: AsyncSession, test_inactive_user: User
) -> None:
    """Test authentication with inactive user."""
    with pytest.raises(ValidationError) as exc_info:
        await user_service.authenticate_user(test_db, "inactiveuser", "InactivePass123")

    assert exc_info.value.detail == "Inactive user"


async def test_anonymous_user_cannot_log_in_with_password(test_db: AsyncSession) -> None:
    """Test that a user without a password never authenticates."""
    user = await user_service.create_anonymous_user(test_db)

    with pytest.raises(AuthenticationError):
        await user_service.authenticate_user(test_db, user.username, "")


async def test_create_user_tokens_subject_is_user_id(
    test_db: AsyncSession, test_user: User
) -> None:
    """Test that issued tokens identify the user by id."""
    tokens = await user_service.create_user_tokens(
        test_db, "testuser", "TestPass123", include_refresh=True
    )

    access = decode_token(tokens["access_token"], expected_type="access")
    refresh = decode_token(tokens["refresh_token"], expected_type="refresh")
    assert access["sub"] == str(test_user.id)
    assert refresh["sub"] == str(test_user.id)


async def test_create_user_tokens_without_refresh(test_db: AsyncSession, test_user: User) -> None:
    tokens = await user_service.create_user_tokens(test_db, "testuser", "TestPass123")

    assert set(tokens) == {"access_token"}


async def test_register_user(test_db: AsyncSession) -> None:
    user = await user_service.register_user(
        test_db,
        UserRegister(email="new@example.com", username="newuser", password="NewPass123"),
    )

    assert user.id is not None
    assert user.hashed_password != "NewPass123"
    assert user.is_anonymous is False


async def test_register_duplicate_username_conflicts(
    test_db: AsyncSession, test_user: User
) -> None:
    with pytest.raises(ConflictError):
        await user_service.register_user(
            test_db,
            UserRegister(email="fresh@example.com", username="testuser", password="NewPass123"),
        )


async def test_register_duplicate_email_conflicts(test_db: AsyncSession, test_user: User) -> None:
    with pytest.raises(ConflictError):
        await user_service.register_user(
            test_db,
            UserRegister(email="test@example.com", username="fresh", password="NewPass123"),
        )


async def test_create_anonymous_user(test_db: AsyncSession) -> None:
    user = await user_service.create_anonymous_user(test_db)

    assert user.is_anonymous is True
    assert user.email is None
    assert user.hashed_password is None
    assert user.username.startswith("anon-")


async def test_refresh_access_token(test_db: AsyncSession, test_user: User) -> None:
    tokens = user_service.issue_tokens(test_user, include_refresh=True)

    access_token = await user_service.refresh_access_token(test_db, tokens["refresh_token"])

    assert decode_token(access_token, expected_type="access")["sub"] == str(test_user.id)


async def test_refresh_rejects_access_token(test_db: AsyncSession, test_user: User) -> None:
    access_token = create_access_token(data={"sub": str(test_user.id)})

    with pytest.raises(AuthenticationError):
        await user_service.refresh_access_token(test_db, access_token)


async def test_refresh_rejects_garbage(test_db: AsyncSession) -> None:
    with pytest.raises(AuthenticationError) as exc_info:
        await user_service.refresh_access_token(test_db, "not-a-jwt")

    assert isinstance(exc_info.value.__cause__, jwt.InvalidTokenError)
