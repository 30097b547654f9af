"""Service layer for holdings snapshots.

Snapshots are never edited directly. Every change goes through
``recompute_holding``, which replays the owner's transactions for one asset
and either writes the result or removes the row when nothing is held.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from cryptofolio.core.exceptions import NotFoundError
from cryptofolio.db.base import as_utc
from cryptofolio.db.session import transactional
from cryptofolio.models.holding import HoldingSnapshot
from cryptofolio.models.transaction import Transaction
from cryptofolio.repositories.holding import HoldingRepository
from cryptofolio.repositories.transaction import TransactionRepository
from cryptofolio.services.aggregation_service import aggregate_transactions

logger = logging.getLogger(__name__)


async def recompute_holding(
    db: AsyncSession,
    user_id: int,
    asset_id: str,
) -> HoldingSnapshot | None:
    """Rebuild one owner's snapshot for one asset from its transactions.

    Must run inside the caller's transaction: the flushed transaction
    writes and the snapshot change are committed (or rolled back) together.

    Args:
        db: Async database session
        user_id: Owner's user ID
        asset_id: Asset whose snapshot to rebuild

    Returns:
        The written snapshot, or None if the asset is no longer held

    Raises:
        InsufficientHoldingsError: If the transactions sell more than held
        DataIntegrityError: If a stored transaction is invalid
    """
    transactions = await TransactionRepository(Transaction, db).get_for_asset(
        user_id=user_id, asset_id=asset_id
    )
    aggregate = aggregate_transactions(transactions)

    holding_repo = HoldingRepository(HoldingSnapshot, db)
    if aggregate is None:
        if await holding_repo.delete_by_owner_and_asset(user_id, asset_id):
            logger.info(f"Removed holding {asset_id} for user {user_id}: nothing held")
        return None

    snapshot = await holding_repo.upsert_from_aggregate(user_id=user_id, aggregate=aggregate)
    logger.debug(
        f"Recomputed holding {asset_id} for user {user_id}: "
        f"qty={aggregate.quantity_held} invested={aggregate.total_invested}"
    )
    return snapshot


async def _stale_asset_ids(db: AsyncSession, user_id: int) -> list[str]:
    """Find assets whose snapshot disagrees with the stored transactions.

    A snapshot is stale when its asset has no transactions left or when
    its transaction count or last transaction time differs from the live
    ones. An asset with no snapshot is stale only while its net quantity is
    positive; a sold-out asset correctly has none.
    """
    activity = await TransactionRepository(Transaction, db).summarize_by_asset(user_id)
    snapshots = await HoldingRepository(HoldingSnapshot, db).get_by_owner(user_id)

    stale = []
    for snapshot in snapshots:
        live = activity.get(snapshot.asset_id)
        if (
            live is None
            or live.count != snapshot.transaction_count
            or as_utc(live.last_occurred_at) != as_utc(snapshot.last_transaction_at)
        ):
            stale.append(snapshot.asset_id)

    snapshot_ids = {s.asset_id for s in snapshots}
    missing = [
        asset_id
        for asset_id, live in activity.items()
        if asset_id not in snapshot_ids and live.net_quantity > 0
    ]
    return sorted(stale) + sorted(missing)


async def list_holdings(db: AsyncSession, user_id: int) -> list[HoldingSnapshot]:
    """List an owner's holdings, repairing any snapshot found out of date.

    Snapshots are rewritten on every transaction write, so a mismatch here
    means something bypassed the service layer. Such keys are recomputed
    before the read completes rather than served as-is.

    Args:
        db: Async database session
        user_id: Owner's user ID

    Returns:
        Snapshots ordered by total invested descending

    Example:
        >>> holdings = await list_holdings(db, user.id)
        >>> for h in holdings:
        ...     print(h.asset_symbol, h.quantity_held, h.average_unit_cost)
    """
    holding_repo = HoldingRepository(HoldingSnapshot, db)
    candidates = await _stale_asset_ids(db, user_id)

    if candidates:
        async with transactional(db):
            for asset_id in candidates:
                await recompute_holding(db, user_id, asset_id)
                logger.warning(
                    f"Holding {asset_id} for user {user_id} was out of sync with "
                    f"its transactions and has been recomputed"
                )

    return await holding_repo.get_by_owner(user_id)


async def get_holding(db: AsyncSession, user_id: int, asset_id: str) -> HoldingSnapshot:
    """Get an owner's holding for one asset.

    Raises:
        NotFoundError: If the asset is not currently held
    """
    holdings = await list_holdings(db, user_id)
    for holding in holdings:
        if holding.asset_id == asset_id:
            return holding
    raise NotFoundError(f"No holding for asset '{asset_id}'")


async def rebuild_holdings(db: AsyncSession, user_id: int) -> list[HoldingSnapshot]:
    """Drop and rebuild every snapshot an owner has.

    Args:
        db: Async database session
        user_id: Owner's user ID

    Returns:
        The rebuilt snapshots
    """
    holding_repo = HoldingRepository(HoldingSnapshot, db)
    asset_ids = await TransactionRepository(Transaction, db).get_asset_ids(user_id)

    async with transactional(db):
        removed = await holding_repo.delete_all_for_owner(user_id)
        for asset_id in asset_ids:
            await recompute_holding(db, user_id, asset_id)

    holdings = await holding_repo.get_by_owner(user_id)
    logger.info(
        f"Rebuilt holdings for user {user_id}: {removed} removed, {len(holdings)} written "
        f"from {len(asset_ids)} assets"
    )
    return holdings
