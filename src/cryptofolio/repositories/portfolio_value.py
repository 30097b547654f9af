"""Portfolio value repository for P&L history operations."""

from datetime import datetime

from sqlalchemy import delete, select

from cryptofolio.models.portfolio_value import PortfolioValueSnapshot
from cryptofolio.repositories.base import BaseRepository


class PortfolioValueRepository(BaseRepository[PortfolioValueSnapshot]):
    """Repository for PortfolioValueSnapshot model.

    Example:
        >>> repo = PortfolioValueRepository(PortfolioValueSnapshot, db)
        >>> points = await repo.get_since(user.id, since=thirty_days_ago)
    """

    async def get_latest(self, user_id: int) -> PortfolioValueSnapshot | None:
        """Get the most recent recorded point for an owner."""
        result = await self.db.execute(
            select(PortfolioValueSnapshot)
            .where(PortfolioValueSnapshot.user_id == user_id)
            .order_by(PortfolioValueSnapshot.recorded_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_since(self, user_id: int, *, since: datetime) -> list[PortfolioValueSnapshot]:
        """Get an owner's points recorded at or after ``since``.

        Args:
            user_id: Owner's user ID
            since: Earliest recorded_at to include

        Returns:
            Points ordered oldest first
        """
        result = await self.db.execute(
            select(PortfolioValueSnapshot)
            .where(
                PortfolioValueSnapshot.user_id == user_id,
                PortfolioValueSnapshot.recorded_at >= since,
            )
            .order_by(PortfolioValueSnapshot.recorded_at)
        )
        return list(result.scalars().all())

    async def prune(self, user_id: int, *, older_than: datetime, keep_latest: int) -> int:
        """Delete old points while always keeping the most recent ones.

        Args:
            user_id: Owner's user ID
            older_than: Points recorded before this are candidates for deletion
            keep_latest: Number of most recent points that are never deleted

        Returns:
            Number of rows deleted

        Example:
            >>> # Keep 90 days, but never fewer than 10 points
            >>> await repo.prune(user.id, older_than=cutoff, keep_latest=10)
        """
        keep_result = await self.db.execute(
            select(PortfolioValueSnapshot.id)
            .where(PortfolioValueSnapshot.user_id == user_id)
            .order_by(PortfolioValueSnapshot.recorded_at.desc())
            .limit(keep_latest)
        )
        keep_ids = list(keep_result.scalars().all())

        query = delete(PortfolioValueSnapshot).where(
            PortfolioValueSnapshot.user_id == user_id,
            PortfolioValueSnapshot.recorded_at < older_than,
        )
        if keep_ids:
            query = query.where(PortfolioValueSnapshot.id.notin_(keep_ids))

        # The session may hold freshly loaded points with naive timestamps
        result = await self.db.execute(query.execution_options(synchronize_session=False))
        return result.rowcount
