"""Service layer for user accounts and token issuance.

Route handlers call these functions instead of touching ``UserRepository``
directly. Failures are raised as ``AppException`` subclasses so the
central handler maps them to HTTP responses.
"""

import logging
import secrets
from datetime import timedelta

import jwt
from sqlalchemy.ext.asyncio import AsyncSession

from cryptofolio.core.config import settings
from cryptofolio.core.exceptions import AuthenticationError, ConflictError, ValidationError
from cryptofolio.core.security import (
    REFRESH_TOKEN_TYPE,
    create_access_token,
    create_refresh_token,
    decode_token,
    get_password_hash,
    verify_password,
)
from cryptofolio.db.session import transactional
from cryptofolio.models.user import User
from cryptofolio.repositories.user import UserRepository
from cryptofolio.schemas.auth import UserRegister

logger = logging.getLogger(__name__)

ANONYMOUS_USERNAME_PREFIX = "anon-"


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    """Retrieve a user by their email address.

    Example:
        >>> user = await get_user_by_email(db, "user@example.com")
    """
    repo = UserRepository(User, db)
    return await repo.get_by_email(email)


async def get_user_by_username(db: AsyncSession, username: str) -> User | None:
    """Retrieve a user by their username."""
    repo = UserRepository(User, db)
    return await repo.get_by_username(username)


async def get_user_by_username_or_email(db: AsyncSession, identifier: str) -> User | None:
    """Retrieve a user by username, falling back to email.

    Args:
        db: Async database session
        identifier: Username or email address

    Returns:
        User model instance if found, None otherwise
    """
    repo = UserRepository(User, db)
    return await repo.get_by_username_or_email(identifier)


async def authenticate_user(
    db: AsyncSession,
    username_or_email: str,
    password: str,
) -> User:
    """Authenticate a user by username/email and password.

    Anonymous users have no password and can never log in this way.

    Args:
        db: Async database session
        username_or_email: Username or email address
        password: Plain text password to verify

    Returns:
        User: Authenticated user instance

    Raises:
        AuthenticationError: If the credentials are invalid
        ValidationError: If the user is inactive

    Example:
        >>> user = await authenticate_user(db, "john@example.com", "secret123")
        >>> print(user.username)
        johndoe
    """
    user = await get_user_by_username_or_email(db, username_or_email)

    if (
        user is None
        or user.hashed_password is None
        or not verify_password(password, user.hashed_password)
    ):
        raise AuthenticationError("Incorrect username or password")

    if not user.is_active:
        raise ValidationError("Inactive user")

    return user


def issue_tokens(user: User, *, include_refresh: bool = False) -> dict[str, str]:
    """Create JWT tokens for a user.

    Args:
        user: Token subject
        include_refresh: Whether to include a refresh token

    Returns:
        Dictionary with ``access_token`` and, if requested, ``refresh_token``
    """
    subject = {"sub": str(user.id)}
    tokens = {
        "access_token": create_access_token(
            data=subject,
            expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        )
    }
    if include_refresh:
        tokens["refresh_token"] = create_refresh_token(data=subject)
    return tokens


async def create_user_tokens(
    db: AsyncSession,
    username_or_email: str,
    password: str,
    *,
    include_refresh: bool = False,
) -> dict[str, str]:
    """Authenticate a user and create JWT tokens.

    Args:
        db: Async database session
        username_or_email: Username or email address
        password: Plain text password to verify
        include_refresh: Whether to include a refresh token

    Returns:
        Dictionary containing:
        - access_token: JWT access token
        - refresh_token: JWT refresh token (only if include_refresh=True)

    Raises:
        AuthenticationError: If the credentials are invalid
        ValidationError: If the user is inactive

    Example:
        >>> tokens = await create_user_tokens(
        ...     db, "john@example.com", "secret123", include_refresh=True
        ... )
        >>> print(tokens["refresh_token"])
    """
    user = await authenticate_user(db, username_or_email, password)
    return issue_tokens(user, include_refresh=include_refresh)


async def register_user(db: AsyncSession, user_data: UserRegister) -> User:
    """Register a new password-protected user.

    Raises:
        ConflictError: If the username or email is already registered
    """
    repo = UserRepository(User, db)
    if await repo.exists_by_username(user_data.username):
        raise ConflictError("Username already registered")
    if await repo.exists_by_email(user_data.email):
        raise ConflictError("Email already registered")

    async with transactional(db):
        user = await repo.create(
            obj_in={
                "email": user_data.email,
                "username": user_data.username,
                "hashed_password": get_password_hash(user_data.password),
                "is_active": True,
                "is_superuser": False,
                "is_anonymous": False,
            }
        )

    await db.refresh(user)
    logger.info(f"Registered user {user.id}")
    return user


async def create_anonymous_user(db: AsyncSession) -> User:
    """Create a user without credentials for a try-before-you-register session.

    The returned user can only be reached through the tokens issued for it.
    """
    repo = UserRepository(User, db)
    async with transactional(db):
        user = await repo.create(
            obj_in={
                "username": f"{ANONYMOUS_USERNAME_PREFIX}{secrets.token_hex(8)}",
                "email": None,
                "hashed_password": None,
                "is_active": True,
                "is_anonymous": True,
            }
        )

    await db.refresh(user)
    logger.info(f"Created anonymous user {user.id}")
    return user


async def refresh_access_token(db: AsyncSession, refresh_token: str) -> str:
    """Exchange a refresh token for a new access token.

    Raises:
        AuthenticationError: If the token is invalid, expired, not a
            refresh token, or its user no longer exists or is inactive
    """
    try:
        payload = decode_token(refresh_token, expected_type=REFRESH_TOKEN_TYPE)
        user_id = int(payload["sub"])
    except (jwt.InvalidTokenError, KeyError, ValueError) as e:
        raise AuthenticationError("Invalid refresh token") from e

    user = await UserRepository(User, db).get(user_id)
    if user is None or not user.is_active:
        raise AuthenticationError("Invalid refresh token")

    return issue_tokens(user)["access_token"]
