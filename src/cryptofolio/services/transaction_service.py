"""Service layer for recording and correcting transactions.

Every write follows the same unit of work:

1. Apply the change to the transactions table and flush.
2. Recompute the holdings snapshot of each affected asset.
3. Commit everything together.

If any step fails (for example a sell larger than the quantity held) the
whole unit is rolled back, so the snapshot table never reflects a partial
write.
"""

import logging
from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from cryptofolio.core.constants import UNKNOWN_VENUE
from cryptofolio.core.exceptions import NotFoundError, ValidationError
from cryptofolio.db.base import as_utc
from cryptofolio.db.session import transactional
from cryptofolio.models.transaction import Transaction, TransactionType
from cryptofolio.repositories.transaction import TransactionRepository
from cryptofolio.schemas.transaction import TransactionCreate, TransactionUpdate
from cryptofolio.services.holding_service import recompute_holding

logger = logging.getLogger(__name__)


def _check_positive(field: str, value: Decimal | None) -> None:
    if value is not None and value <= 0:
        raise ValidationError(f"{field} must be greater than 0, got {value}")


def _build_values(user_id: int, data: TransactionCreate) -> dict:
    """Turn a validated create schema into model column values.

    Raises:
        ValidationError: If the values break a rule the schema can't enforce
    """
    _check_positive("quantity", data.quantity)
    _check_positive("unit_price", data.unit_price)
    for field in ("asset_id", "asset_symbol", "asset_name"):
        if not getattr(data, field).strip():
            raise ValidationError(f"{field} cannot be blank")

    return {
        "user_id": user_id,
        "asset_id": data.asset_id.strip(),
        "asset_symbol": data.asset_symbol.strip().upper(),
        "asset_name": data.asset_name.strip(),
        "asset_icon_url": data.asset_icon_url,
        "transaction_type": TransactionType(data.transaction_type),
        "quantity": data.quantity,
        "unit_price": data.unit_price,
        "occurred_at": as_utc(data.occurred_at) if data.occurred_at else datetime.now(UTC),
        "venue": data.venue.strip() or UNKNOWN_VENUE,
        "notes": data.notes,
    }


async def get_transaction(db: AsyncSession, user_id: int, transaction_id: UUID) -> Transaction:
    """Get one of the owner's transactions.

    Raises:
        NotFoundError: If the transaction doesn't exist or belongs to
            someone else
    """
    repo = TransactionRepository(Transaction, db)
    transaction = await repo.get_by_id_and_owner(transaction_id, user_id)
    if transaction is None:
        raise NotFoundError(f"Transaction {transaction_id} not found")
    return transaction


async def list_transactions(
    db: AsyncSession,
    user_id: int,
    *,
    asset_id: str | None = None,
    transaction_type: TransactionType | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    skip: int = 0,
    limit: int = 100,
) -> list[Transaction]:
    """List the owner's transactions, most recent first.

    Args:
        db: Async database session
        user_id: Owner's user ID
        asset_id: Optional asset filter
        transaction_type: Optional buy/sell filter
        start: Optional lower bound on occurred_at
        end: Optional upper bound on occurred_at
        skip: Pagination offset
        limit: Pagination size

    Raises:
        ValidationError: If start is after end
    """
    if start is not None and end is not None and as_utc(start) > as_utc(end):
        raise ValidationError("start must not be after end")

    repo = TransactionRepository(Transaction, db)
    return await repo.get_by_owner(
        user_id,
        asset_id=asset_id,
        transaction_type=transaction_type,
        start=as_utc(start) if start else None,
        end=as_utc(end) if end else None,
        skip=skip,
        limit=limit,
    )


async def create_transaction(
    db: AsyncSession,
    user_id: int,
    data: TransactionCreate,
) -> Transaction:
    """Record a transaction and update the asset's holding.

    Args:
        db: Async database session
        user_id: Owner's user ID
        data: Validated transaction data

    Returns:
        The committed transaction

    Raises:
        ValidationError: If the data breaks a write-time rule
        InsufficientHoldingsError: If a sell exceeds the quantity held

    Example:
        >>> tx = await create_transaction(
        ...     db,
        ...     user.id,
        ...     TransactionCreate(
        ...         asset_id="bitcoin", asset_symbol="btc", asset_name="Bitcoin",
        ...         transaction_type="buy", quantity=Decimal("0.25"),
        ...         unit_price=Decimal("45000"),
        ...     ),
        ... )
    """
    values = _build_values(user_id, data)
    repo = TransactionRepository(Transaction, db)

    async with transactional(db):
        transaction = await repo.create(obj_in=values)
        await recompute_holding(db, user_id, transaction.asset_id)

    logger.info(
        f"User {user_id} recorded {transaction.transaction_type.value} of "
        f"{transaction.quantity} {transaction.asset_symbol} @ {transaction.unit_price}"
    )
    return transaction


async def create_transactions_batch(
    db: AsyncSession,
    user_id: int,
    items: list[TransactionCreate],
) -> list[Transaction]:
    """Record several transactions as one all-or-nothing unit.

    Holdings for every affected asset are recomputed once, after all rows
    are written, so a batch may contain a buy and a later sell of the same
    asset in any order.

    Args:
        db: Async database session
        user_id: Owner's user ID
        items: Validated transactions to record

    Returns:
        The committed transactions, in input order

    Raises:
        ValidationError: If any item breaks a write-time rule (nothing is written)
        InsufficientHoldingsError: If the batch would over-sell any asset
            (nothing is written)
    """
    if not items:
        raise ValidationError("Batch must contain at least one transaction")

    rows = [_build_values(user_id, item) for item in items]
    repo = TransactionRepository(Transaction, db)

    async with transactional(db):
        created = [await repo.create(obj_in=row) for row in rows]
        for asset_id in sorted({t.asset_id for t in created}):
            await recompute_holding(db, user_id, asset_id)

    logger.info(f"User {user_id} recorded a batch of {len(created)} transactions")
    return created


async def update_transaction(
    db: AsyncSession,
    user_id: int,
    transaction_id: UUID,
    changes: TransactionUpdate,
) -> Transaction:
    """Correct an existing transaction and update the asset's holding.

    Only kind, quantity, unit price, date, venue and notes can change.

    Raises:
        NotFoundError: If the transaction doesn't exist or isn't the owner's
        ValidationError: If a new value breaks a write-time rule
        InsufficientHoldingsError: If the correction would over-sell
    """
    update_data = changes.model_dump(exclude_unset=True)
    if not update_data:
        raise ValidationError("No changes supplied")

    for field in ("quantity", "unit_price", "transaction_type"):
        if field in update_data and update_data[field] is None:
            raise ValidationError(f"{field} cannot be null")
    _check_positive("quantity", update_data.get("quantity"))
    _check_positive("unit_price", update_data.get("unit_price"))

    if "occurred_at" in update_data:
        if update_data["occurred_at"] is None:
            raise ValidationError("occurred_at cannot be null")
        update_data["occurred_at"] = as_utc(update_data["occurred_at"])
    if "venue" in update_data:
        update_data["venue"] = (update_data["venue"] or "").strip() or UNKNOWN_VENUE

    transaction = await get_transaction(db, user_id, transaction_id)
    asset_id = transaction.asset_id
    repo = TransactionRepository(Transaction, db)

    async with transactional(db):
        transaction = await repo.update(db_obj=transaction, obj_in=update_data)
        await recompute_holding(db, user_id, asset_id)

    logger.info(
        f"User {user_id} updated transaction {transaction_id}: {sorted(update_data)}"
    )
    return transaction


async def delete_transaction(db: AsyncSession, user_id: int, transaction_id: UUID) -> None:
    """Delete a transaction and update the asset's holding.

    Deleting a buy can leave later sells uncovered; such a delete is
    rejected like any other over-sell.

    Raises:
        NotFoundError: If the transaction doesn't exist or isn't the owner's
        InsufficientHoldingsError: If removing it would over-sell
    """
    transaction = await get_transaction(db, user_id, transaction_id)
    asset_id = transaction.asset_id
    repo = TransactionRepository(Transaction, db)

    async with transactional(db):
        await repo.delete(transaction)
        await recompute_holding(db, user_id, asset_id)

    logger.info(f"User {user_id} deleted transaction {transaction_id} ({asset_id})")


async def delete_asset_transactions(db: AsyncSession, user_id: int, asset_id: str) -> int:
    """Remove an asset from the portfolio by deleting all of its transactions.

    The owner's snapshot for the asset disappears in the same commit.

    Args:
        db: Async database session
        user_id: Owner's user ID
        asset_id: Asset to remove

    Returns:
        Number of transactions deleted

    Raises:
        NotFoundError: If the owner has no transactions for the asset
    """
    repo = TransactionRepository(Transaction, db)

    async with transactional(db):
        deleted = await repo.delete_for_asset(user_id=user_id, asset_id=asset_id)
        if not deleted:
            raise NotFoundError(f"No transactions for asset '{asset_id}'")
        await recompute_holding(db, user_id, asset_id)

    logger.info(f"User {user_id} removed {asset_id} and its {deleted} transactions")
    return deleted
