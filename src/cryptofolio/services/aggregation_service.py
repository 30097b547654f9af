"""Moving-average cost aggregation of transactions into holdings.

This module is pure: it reads transaction attributes and returns values,
with no database access, no clock reads and no randomness. The same set of
transactions always produces the same result regardless of input order.

Accounting method:
    Transactions are replayed in time order. A buy adds its quantity and
    its full value to the invested capital. A sell removes its quantity and
    reduces invested capital at the running average cost, so the average
    cost of what remains is unchanged by a partial sell.

    >>> # buy 0.25 @ 45000, buy 0.25 @ 47000, sell 0.2 @ 50000
    >>> # quantity 0.3, invested 13800, average 46000

Numeric semantics:
    All arithmetic uses Decimal with 40 significant digits. Results are
    quantized to 8 decimal places, matching the Numeric(28, 8) columns.
"""

import logging
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import ROUND_HALF_EVEN, Decimal, localcontext

from cryptofolio.core.constants import DECIMAL_QUANTUM, UNKNOWN_VENUE, AggregationConstants
from cryptofolio.core.exceptions import DataIntegrityError, InsufficientHoldingsError
from cryptofolio.db.base import as_utc
from cryptofolio.models.transaction import Transaction, TransactionType

logger = logging.getLogger(__name__)

_ZERO = Decimal(0)
_EPOCH = datetime.min.replace(tzinfo=UTC)


@dataclass(frozen=True)
class HoldingAggregate:
    """Aggregated position for one owner and asset.

    Attributes:
        asset_id: Stable external asset id
        asset_symbol: Symbol from the most recent transaction
        asset_name: Name from the most recent transaction
        asset_icon_url: Icon from the most recent transaction
        quantity_held: Remaining quantity, always > 0
        total_invested: Cost basis of the remaining quantity
        average_unit_cost: total_invested / quantity_held
        transaction_count: Number of transactions aggregated
        last_transaction_at: Latest occurred_at across the set
        venue: Most recent known venue, or "Unknown"
    """

    asset_id: str
    asset_symbol: str
    asset_name: str
    asset_icon_url: str
    quantity_held: Decimal
    total_invested: Decimal
    average_unit_cost: Decimal
    transaction_count: int
    last_transaction_at: datetime
    venue: str


def _quantize(value: Decimal) -> Decimal:
    return value.quantize(DECIMAL_QUANTUM, rounding=ROUND_HALF_EVEN)


def _sort_key(transaction: Transaction) -> tuple[datetime, datetime, str]:
    created_at = transaction.created_at
    return (
        as_utc(transaction.occurred_at),
        as_utc(created_at) if created_at is not None else _EPOCH,
        str(transaction.id) if transaction.id is not None else "",
    )


def _checked_kind(transaction: Transaction) -> TransactionType:
    """Return the transaction kind, refusing rows that should never be stored.

    Raises:
        DataIntegrityError: If kind, quantity or unit price is invalid
    """
    try:
        kind = TransactionType(transaction.transaction_type)
    except ValueError as e:
        raise DataIntegrityError(
            f"Transaction {transaction.id} has unknown kind {transaction.transaction_type!r}"
        ) from e

    if transaction.quantity is None or transaction.quantity <= 0:
        raise DataIntegrityError(
            f"Transaction {transaction.id} has non-positive quantity {transaction.quantity}"
        )
    if transaction.unit_price is None or transaction.unit_price <= 0:
        raise DataIntegrityError(
            f"Transaction {transaction.id} has non-positive unit price {transaction.unit_price}"
        )
    return kind


def aggregate_transactions(transactions: Iterable[Transaction]) -> HoldingAggregate | None:
    """Aggregate one owner's transactions for one asset.

    Args:
        transactions: Every transaction for a single (owner, asset) pair,
            in any order

    Returns:
        The aggregated holding, or None when nothing is held (no input,
        or everything bought has been sold)

    Raises:
        DataIntegrityError: If a transaction has an unknown kind or a
            non-positive quantity or unit price, or if the set mixes assets
        InsufficientHoldingsError: If, replayed in time order, a sell
            exceeds the quantity held at that moment

    Example:
        >>> aggregate = aggregate_transactions(btc_transactions)
        >>> if aggregate:
        ...     print(aggregate.quantity_held, aggregate.average_unit_cost)
    """
    ordered: Sequence[Transaction] = sorted(transactions, key=_sort_key)
    if not ordered:
        return None

    asset_ids = {transaction.asset_id for transaction in ordered}
    if len(asset_ids) > 1:
        raise DataIntegrityError(f"Cannot aggregate mixed assets: {sorted(asset_ids)}")

    with localcontext() as ctx:
        ctx.prec = AggregationConstants.DECIMAL_PRECISION

        quantity = _ZERO
        invested = _ZERO
        for transaction in ordered:
            kind = _checked_kind(transaction)
            if kind is TransactionType.BUY:
                quantity += transaction.quantity
                invested += transaction.quantity * transaction.unit_price
                continue

            if transaction.quantity > quantity:
                raise InsufficientHoldingsError(
                    f"Cannot sell {transaction.quantity.normalize()} "
                    f"{transaction.asset_symbol}: only {quantity.normalize()} held "
                    f"at {as_utc(transaction.occurred_at).isoformat()}"
                )
            if transaction.quantity == quantity:
                quantity = _ZERO
                invested = _ZERO
            else:
                invested -= transaction.quantity * (invested / quantity)
                quantity -= transaction.quantity

        if quantity <= 0:
            logger.debug(f"Nothing held for {ordered[0].asset_id} after {len(ordered)} rows")
            return None

        average_unit_cost = invested / quantity

    latest = ordered[-1]
    venue = next(
        (t.venue for t in reversed(ordered) if t.venue and t.venue != UNKNOWN_VENUE),
        UNKNOWN_VENUE,
    )

    return HoldingAggregate(
        asset_id=latest.asset_id,
        asset_symbol=latest.asset_symbol,
        asset_name=latest.asset_name,
        asset_icon_url=latest.asset_icon_url or "",
        quantity_held=_quantize(quantity),
        total_invested=_quantize(invested),
        average_unit_cost=_quantize(average_unit_cost),
        transaction_count=len(ordered),
        last_transaction_at=max(as_utc(t.occurred_at) for t in ordered),
        venue=venue,
    )


def aggregate_by_asset(transactions: Iterable[Transaction]) -> dict[str, HoldingAggregate]:
    """Aggregate a mixed list of one owner's transactions per asset.

    Args:
        transactions: Transactions for any number of assets

    Returns:
        Mapping of asset id to aggregate, containing only assets still held
    """
    by_asset: dict[str, list[Transaction]] = defaultdict(list)
    for transaction in transactions:
        by_asset[transaction.asset_id].append(transaction)

    result: dict[str, HoldingAggregate] = {}
    for asset_id in sorted(by_asset):
        aggregate = aggregate_transactions(by_asset[asset_id])
        if aggregate is not None:
            result[asset_id] = aggregate
    return result
