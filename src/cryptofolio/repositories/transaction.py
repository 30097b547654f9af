"""Transaction repository for transaction-specific database operations."""

from datetime import datetime
from decimal import Decimal
from typing import NamedTuple
from uuid import UUID

from sqlalchemy import case, delete, func, select

from cryptofolio.core.constants import DECIMAL_QUANTUM
from cryptofolio.models.transaction import Transaction, TransactionType
from cryptofolio.repositories.base import BaseRepository


class AssetActivity(NamedTuple):
    """Per-asset totals computed by the database."""

    count: int
    net_quantity: Decimal
    last_occurred_at: datetime


class TransactionRepository(BaseRepository[Transaction]):
    """Repository for Transaction model with owner-scoped queries.

    Every query takes the owner's user id. Looking a transaction up by id
    alone is reserved for internal use through ``get``.

    Example:
        >>> repo = TransactionRepository(Transaction, db)
        >>> btc = await repo.get_for_asset(user_id=user.id, asset_id="bitcoin")
    """

    async def get_by_id_and_owner(
        self,
        transaction_id: UUID,
        user_id: int,
    ) -> Transaction | None:
        """Get a transaction by ID, ensuring it belongs to the owner.

        Args:
            transaction_id: Transaction ID
            user_id: Owner's user ID

        Returns:
            Transaction if found and owned by the user, None otherwise
        """
        result = await self.db.execute(
            select(Transaction).where(
                Transaction.id == transaction_id,
                Transaction.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_by_owner(
        self,
        user_id: int,
        *,
        asset_id: str | None = None,
        transaction_type: TransactionType | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[Transaction]:
        """List an owner's transactions with optional filters.

        Args:
            user_id: Owner's user ID
            asset_id: Only transactions for this asset
            transaction_type: Only buys or only sells
            start: Only transactions on or after this time
            end: Only transactions on or before this time
            skip: Number of records to skip (offset)
            limit: Maximum number of records to return

        Returns:
            Transactions ordered by occurred_at descending (most recent first)

        Example:
            >>> sells = await repo.get_by_owner(
            ...     user.id, asset_id="bitcoin", transaction_type=TransactionType.SELL
            ... )
        """
        query = select(Transaction).where(Transaction.user_id == user_id)
        if asset_id is not None:
            query = query.where(Transaction.asset_id == asset_id)
        if transaction_type is not None:
            query = query.where(Transaction.transaction_type == transaction_type)
        if start is not None:
            query = query.where(Transaction.occurred_at >= start)
        if end is not None:
            query = query.where(Transaction.occurred_at <= end)

        result = await self.db.execute(
            query.order_by(Transaction.occurred_at.desc(), Transaction.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_for_asset(self, *, user_id: int, asset_id: str) -> list[Transaction]:
        """Get every transaction an owner has for one asset.

        Args:
            user_id: Owner's user ID
            asset_id: Asset ID

        Returns:
            All matching transactions, unpaginated
        """
        result = await self.db.execute(
            select(Transaction).where(
                Transaction.user_id == user_id,
                Transaction.asset_id == asset_id,
            )
        )
        return list(result.scalars().all())

    async def summarize_by_asset(self, user_id: int) -> dict[str, AssetActivity]:
        """Summarize an owner's transactions per asset.

        ``net_quantity`` is bought minus sold, so a sold-out asset reports
        zero without replaying its history.

        Args:
            user_id: Owner's user ID

        Returns:
            Mapping of asset ID to its transaction count, net quantity and
            latest occurred_at

        Example:
            >>> activity = await repo.summarize_by_asset(user.id)
            >>> activity["bitcoin"].count
            3
        """
        signed_quantity = case(
            (Transaction.transaction_type == TransactionType.SELL, -Transaction.quantity),
            else_=Transaction.quantity,
        )
        result = await self.db.execute(
            select(
                Transaction.asset_id,
                func.count(Transaction.id),
                func.sum(signed_quantity),
                func.max(Transaction.occurred_at),
            )
            .where(Transaction.user_id == user_id)
            .group_by(Transaction.asset_id)
        )
        # SQLite sums NUMERIC as floating point
        return {
            asset_id: AssetActivity(
                count,
                Decimal(str(net_quantity or 0)).quantize(DECIMAL_QUANTUM),
                last_occurred_at,
            )
            for asset_id, count, net_quantity, last_occurred_at in result.all()
        }

    async def delete_for_asset(self, *, user_id: int, asset_id: str) -> int:
        """Delete every transaction an owner has for one asset.

        Args:
            user_id: Owner's user ID
            asset_id: Asset ID

        Returns:
            Number of rows deleted
        """
        result = await self.db.execute(
            delete(Transaction)
            .where(
                Transaction.user_id == user_id,
                Transaction.asset_id == asset_id,
            )
        )
        return result.rowcount

    async def get_asset_ids(self, user_id: int) -> list[str]:
        """Get the distinct asset IDs an owner has transactions for."""
        result = await self.db.execute(
            select(Transaction.asset_id)
            .where(Transaction.user_id == user_id)
            .distinct()
            .order_by(Transaction.asset_id)
        )
        return list(result.scalars().all())
