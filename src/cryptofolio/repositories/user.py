"""User repository."""

from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import InstrumentedAttribute

from cryptofolio.models.user import User
from cryptofolio.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    """Account lookups used by login and registration.

    Anonymous users have no email, so they can only be found by id or
    username.

    Example:
        >>> repo = UserRepository(User, db)
        >>> user = await repo.get_by_username_or_email("test@example.com")
    """

    async def _get_by(self, column: InstrumentedAttribute[Any], value: str) -> User | None:
        result = await self.db.execute(select(User).where(column == value))
        return result.scalar_one_or_none()

    async def _count_by(self, column: InstrumentedAttribute[Any], value: str) -> int:
        result = await self.db.execute(
            select(func.count()).select_from(User).where(column == value)
        )
        return result.scalar_one()

    async def get_by_email(self, email: str) -> User | None:
        return await self._get_by(User.email, email)

    async def get_by_username(self, username: str) -> User | None:
        return await self._get_by(User.username, username)

    async def get_by_username_or_email(self, identifier: str) -> User | None:
        """Look the identifier up as a username first, then as an email."""
        return await self.get_by_username(identifier) or await self.get_by_email(identifier)

    async def exists_by_email(self, email: str) -> bool:
        return await self._count_by(User.email, email) > 0

    async def exists_by_username(self, username: str) -> bool:
        return await self._count_by(User.username, username) > 0
