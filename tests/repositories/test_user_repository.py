"""Tests for UserRepository."""

import pytest

from cryptofolio.models.user import User
from cryptofolio.repositories.user import UserRepository


@pytest.mark.asyncio
async def test_get_by_email(test_db, test_user):
    """Test getting user by email."""
    repo = UserRepository(User, test_db)
    user = await repo.get_by_email(test_user.email)

    assert user is not None
    assert user.id == test_user.id


@pytest.mark.asyncio
async def test_get_by_email_not_found(test_db):
    """Test getting user by email when user doesn't exist."""
    repo = UserRepository(User, test_db)

    assert await repo.get_by_email("nonexistent@example.com") is None


@pytest.mark.asyncio
async def test_get_by_username_or_email(test_db, test_user):
    """Test lookup by either identifier."""
    repo = UserRepository(User, test_db)

    by_username = await repo.get_by_username_or_email(test_user.username)
    by_email = await repo.get_by_username_or_email(test_user.email)

    assert by_username.id == test_user.id
    assert by_email.id == test_user.id


@pytest.mark.asyncio
async def test_exists_checks(test_db, test_user):
    """Test email and username existence checks."""
    repo = UserRepository(User, test_db)

    assert await repo.exists_by_email("test@example.com") is True
    assert await repo.exists_by_email("missing@example.com") is False
    assert await repo.exists_by_username("testuser") is True
    assert await repo.exists_by_username("missing") is False
