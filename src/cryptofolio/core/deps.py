"""Dependencies for FastAPI routes."""

from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from cryptofolio.core.security import ACCESS_TOKEN_TYPE, decode_token
from cryptofolio.db.session import get_db
from cryptofolio.models.user import User
from cryptofolio.repositories.user import UserRepository
from cryptofolio.schemas.auth import TokenData
from cryptofolio.services.market_data_service import MarketDataService

# OAuth2 scheme for extracting token from Authorization header
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


async def get_current_user(
    token: Annotated[str, Depends(oauth2_scheme)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """
    Get the current authenticated user from JWT token.

    Only access tokens are accepted; a refresh token is rejected.

    Args:
        token: JWT token from Authorization header
        db: Database session

    Returns:
        The authenticated user

    Raises:
        HTTPException: If credentials are invalid or user not found
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = decode_token(token, expected_type=ACCESS_TOKEN_TYPE)
        subject: str | None = payload.get("sub")
        if subject is None:
            raise credentials_exception
        token_data = TokenData(user_id=int(subject))
    except (jwt.InvalidTokenError, ValueError):
        raise credentials_exception

    user = await UserRepository(User, db).get(token_data.user_id)
    if user is None:
        raise credentials_exception

    return user


async def get_current_active_user(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """
    Get the current authenticated and active user.

    Raises:
        HTTPException: If the user is inactive
    """
    if not current_user.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Inactive user",
        )

    return current_user


def get_market_data_service(request: Request) -> MarketDataService:
    """Return the market data service created at application start-up."""
    return request.app.state.market_data_service


# Type aliases for cleaner dependency injection
CurrentUser = Annotated[User, Depends(get_current_user)]
CurrentActiveUser = Annotated[User, Depends(get_current_active_user)]
MarketService = Annotated[MarketDataService, Depends(get_market_data_service)]
