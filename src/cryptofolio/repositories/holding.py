"""Holding repository for holdings snapshot operations."""

from sqlalchemy import delete, select

from cryptofolio.models.holding import HoldingSnapshot
from cryptofolio.repositories.base import BaseRepository
from cryptofolio.services.aggregation_service import HoldingAggregate


class HoldingRepository(BaseRepository[HoldingSnapshot]):
    """Repository for HoldingSnapshot model.

    Snapshots are derived data: they are written only from an aggregate
    and removed when nothing is held.

    Example:
        >>> repo = HoldingRepository(HoldingSnapshot, db)
        >>> holdings = await repo.get_by_owner(user.id)
    """

    async def get_by_owner(self, user_id: int) -> list[HoldingSnapshot]:
        """Get all of an owner's holdings.

        Args:
            user_id: Owner's user ID

        Returns:
            Snapshots ordered by total invested descending, then symbol
        """
        result = await self.db.execute(
            select(HoldingSnapshot)
            .where(HoldingSnapshot.user_id == user_id)
            .order_by(HoldingSnapshot.total_invested.desc(), HoldingSnapshot.asset_symbol)
        )
        return list(result.scalars().all())

    async def get_by_owner_and_asset(
        self,
        user_id: int,
        asset_id: str,
    ) -> HoldingSnapshot | None:
        """Get an owner's snapshot for one asset.

        Args:
            user_id: Owner's user ID
            asset_id: Asset ID

        Returns:
            The snapshot if the asset is held, None otherwise
        """
        result = await self.db.execute(
            select(HoldingSnapshot).where(
                HoldingSnapshot.user_id == user_id,
                HoldingSnapshot.asset_id == asset_id,
            )
        )
        return result.scalar_one_or_none()

    async def upsert_from_aggregate(
        self,
        *,
        user_id: int,
        aggregate: HoldingAggregate,
    ) -> HoldingSnapshot:
        """Insert or overwrite the snapshot for an aggregate's asset.

        Args:
            user_id: Owner's user ID
            aggregate: Freshly computed aggregate

        Returns:
            The written snapshot (flushed, not yet committed)
        """
        values = {
            "asset_symbol": aggregate.asset_symbol,
            "asset_name": aggregate.asset_name,
            "asset_icon_url": aggregate.asset_icon_url,
            "quantity_held": aggregate.quantity_held,
            "total_invested": aggregate.total_invested,
            "average_unit_cost": aggregate.average_unit_cost,
            "transaction_count": aggregate.transaction_count,
            "last_transaction_at": aggregate.last_transaction_at,
            "venue": aggregate.venue,
        }

        snapshot = await self.get_by_owner_and_asset(user_id, aggregate.asset_id)
        if snapshot is None:
            return await self.create(
                obj_in={"user_id": user_id, "asset_id": aggregate.asset_id, **values}
            )
        return await self.update(db_obj=snapshot, obj_in=values)

    async def delete_by_owner_and_asset(self, user_id: int, asset_id: str) -> bool:
        """Remove an owner's snapshot for one asset.

        Returns:
            True if a row was deleted
        """
        result = await self.db.execute(
            delete(HoldingSnapshot).where(
                HoldingSnapshot.user_id == user_id,
                HoldingSnapshot.asset_id == asset_id,
            )
        )
        return result.rowcount > 0

    async def delete_all_for_owner(self, user_id: int) -> int:
        """Remove every snapshot an owner has.

        Returns:
            Number of rows deleted
        """
        result = await self.db.execute(
            delete(HoldingSnapshot).where(HoldingSnapshot.user_id == user_id)
        )
        return result.rowcount
