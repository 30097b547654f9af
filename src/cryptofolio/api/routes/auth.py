"""Authentication routes."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession

from cryptofolio.core.config import settings
from cryptofolio.core.deps import CurrentActiveUser
from cryptofolio.core.rate_limit import limiter
from cryptofolio.db.session import get_db
from cryptofolio.models.user import User
from cryptofolio.schemas.auth import Token, TokenPair, TokenRefresh, UserRegister
from cryptofolio.schemas.user import UserResponse
from cryptofolio.services import user_service

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.AUTH_RATE_LIMIT)
async def register(
    request: Request,
    user_data: UserRegister,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """
    Register a new user.

    Args:
        user_data: User registration data
        db: Database session

    Returns:
        The created user

    Raises:
        ConflictError: 409 if username or email already exists
    """
    return await user_service.register_user(db, user_data)


@router.post("/login", response_model=Token)
@limiter.limit(settings.AUTH_RATE_LIMIT)
async def login(
    request: Request,
    form_data: Annotated[OAuth2PasswordRequestForm, Depends()],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Token:
    """
    OAuth2 compatible token login.

    Get an access token for future requests using username (or email) and
    password.

    Raises:
        AuthenticationError: 401 if credentials are invalid
    """
    tokens = await user_service.create_user_tokens(
        db, form_data.username, form_data.password, include_refresh=False
    )
    return Token(access_token=tokens["access_token"])


@router.post("/login/tokens", response_model=TokenPair)
@limiter.limit(settings.AUTH_RATE_LIMIT)
async def login_with_refresh(
    request: Request,
    form_data: Annotated[OAuth2PasswordRequestForm, Depends()],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TokenPair:
    """
    Login and get both access and refresh tokens.

    Raises:
        AuthenticationError: 401 if credentials are invalid
    """
    tokens = await user_service.create_user_tokens(
        db, form_data.username, form_data.password, include_refresh=True
    )
    return TokenPair(
        access_token=tokens["access_token"],
        refresh_token=tokens["refresh_token"],
    )


@router.post("/refresh", response_model=Token)
@limiter.limit(settings.AUTH_RATE_LIMIT)
async def refresh(
    request: Request,
    body: TokenRefresh,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Token:
    """
    Exchange a refresh token for a new access token.

    Raises:
        AuthenticationError: 401 if the refresh token is invalid or expired
    """
    access_token = await user_service.refresh_access_token(db, body.refresh_token)
    return Token(access_token=access_token)


@router.post("/anonymous", response_model=TokenPair, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.AUTH_RATE_LIMIT)
async def start_anonymous_session(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TokenPair:
    """
    Create an anonymous user and return its tokens.

    The anonymous user has no password; keep the refresh token to come
    back to the same portfolio.
    """
    user = await user_service.create_anonymous_user(db)
    tokens = user_service.issue_tokens(user, include_refresh=True)
    return TokenPair(
        access_token=tokens["access_token"],
        refresh_token=tokens["refresh_token"],
    )


@router.get("/me", response_model=UserResponse)
async def read_users_me(current_user: CurrentActiveUser) -> User:
    """
    Get current authenticated user.

    Args:
        current_user: The authenticated user (from dependency)

    Returns:
        The current user
    """
    return current_user
