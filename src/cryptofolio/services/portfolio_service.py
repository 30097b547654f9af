"""Service layer for portfolio totals and profit-and-loss history.

The rollup values each holding at its current market price. One missing
price never fails the whole computation: the asset is skipped and listed
in ``excluded_assets``, and assets priced from cached data are listed in
``stale_assets``.
"""

import logging
from datetime import UTC, datetime, timedelta
from decimal import ROUND_HALF_EVEN, Decimal

import pandas as pd  # type: ignore[import-untyped]
from sqlalchemy.ext.asyncio import AsyncSession

from cryptofolio.core.config import settings
from cryptofolio.core.constants import DECIMAL_QUANTUM, PortfolioConstants
from cryptofolio.core.exceptions import ValidationError
from cryptofolio.db.base import as_utc
from cryptofolio.db.session import transactional
from cryptofolio.models.portfolio_value import PortfolioValueSnapshot
from cryptofolio.repositories.portfolio_value import PortfolioValueRepository
from cryptofolio.schemas.portfolio import (
    HoldingValuation,
    PortfolioHistory,
    PortfolioHistoryPoint,
    PortfolioSummary,
)
from cryptofolio.services import holding_service
from cryptofolio.services.market_data_service import MarketDataService

logger = logging.getLogger(__name__)

_ZERO = Decimal(0)


def _quantize(value: Decimal) -> Decimal:
    return value.quantize(DECIMAL_QUANTUM, rounding=ROUND_HALF_EVEN)


def percentage_change(profit_loss: Decimal, invested: Decimal) -> Decimal:
    """Profit or loss as a percentage of the absolute amount invested.

    Returns:
        0 when nothing was invested, never a division error
    """
    if invested == 0:
        return _ZERO
    return _quantize(profit_loss / abs(invested) * PortfolioConstants.PERCENT)


async def get_portfolio_summary(
    db: AsyncSession,
    user_id: int,
    market: MarketDataService,
    *,
    record_history: bool = True,
) -> PortfolioSummary:
    """Compute the owner's portfolio value and profit or loss.

    Args:
        db: Async database session
        user_id: Owner's user ID
        market: Market data service for current prices
        record_history: Store the result as a history point (throttled)

    Returns:
        Portfolio totals with per-holding valuations. ``total_invested``
        covers every holding; ``total_profit_loss`` and its percentage
        cover only the holdings that could be priced.

    Example:
        >>> summary = await get_portfolio_summary(db, user.id, market)
        >>> if not summary.is_complete:
        ...     print("No price for", summary.excluded_assets)
    """
    holdings = await holding_service.list_holdings(db, user_id)
    quotes = await market.get_current_prices(
        (h.asset_id for h in holdings), allow_fallback=False
    )

    valuations: list[HoldingValuation] = []
    excluded: list[str] = []
    stale: list[str] = []
    total_value = _ZERO
    total_invested = _ZERO
    priced_invested = _ZERO

    for holding in holdings:
        total_invested += holding.total_invested
        valuation = HoldingValuation(
            asset_id=holding.asset_id,
            asset_symbol=holding.asset_symbol,
            asset_name=holding.asset_name,
            asset_icon_url=holding.asset_icon_url,
            quantity_held=holding.quantity_held,
            total_invested=holding.total_invested,
            average_unit_cost=holding.average_unit_cost,
        )

        quote = quotes.get(holding.asset_id)
        if quote is None:
            excluded.append(holding.asset_id)
            valuations.append(valuation)
            continue

        current_value = _quantize(holding.quantity_held * quote.price)
        profit_loss = current_value - holding.total_invested
        valuation = valuation.model_copy(
            update={
                "current_price": quote.price,
                "current_value": current_value,
                "profit_loss": profit_loss,
                "profit_loss_percentage": percentage_change(profit_loss, holding.total_invested),
                "price_source": quote.source,
                "is_stale": quote.is_stale,
                "price_updated_at": quote.fetched_at,
            }
        )
        valuations.append(valuation)
        total_value += current_value
        priced_invested += holding.total_invested
        if quote.is_stale:
            stale.append(holding.asset_id)

    total_profit_loss = total_value - priced_invested
    summary = PortfolioSummary(
        total_value=_quantize(total_value),
        total_invested=_quantize(total_invested),
        total_profit_loss=_quantize(total_profit_loss),
        profit_loss_percentage=percentage_change(total_profit_loss, priced_invested),
        holdings=valuations,
        excluded_assets=excluded,
        stale_assets=stale,
        is_complete=not excluded,
        calculated_at=datetime.now(UTC),
    )

    if excluded:
        logger.warning(f"Portfolio for user {user_id} excludes unpriced assets {excluded}")

    if record_history and holdings and summary.is_complete:
        await record_portfolio_value(db, user_id, summary)

    return summary


async def record_portfolio_value(
    db: AsyncSession,
    user_id: int,
    summary: PortfolioSummary,
) -> PortfolioValueSnapshot | None:
    """Store a summary as a history point and prune old points.

    At most one point is stored per ``PORTFOLIO_SNAPSHOT_MIN_INTERVAL_SECONDS``.
    Points older than ``PORTFOLIO_HISTORY_RETENTION_DAYS`` are deleted, but
    the newest ``PORTFOLIO_HISTORY_MIN_POINTS`` are always kept.

    Returns:
        The stored point, or None when throttled
    """
    repo = PortfolioValueRepository(PortfolioValueSnapshot, db)
    latest = await repo.get_latest(user_id)
    min_interval = timedelta(seconds=settings.PORTFOLIO_SNAPSHOT_MIN_INTERVAL_SECONDS)
    if latest is not None and summary.calculated_at - as_utc(latest.recorded_at) < min_interval:
        return None

    async with transactional(db):
        point = await repo.create(
            obj_in={
                "user_id": user_id,
                "recorded_at": summary.calculated_at,
                "total_value": summary.total_value,
                "total_invested": summary.total_invested,
                "profit_loss": summary.total_profit_loss,
                "percentage_change": summary.profit_loss_percentage,
            }
        )
        cutoff = summary.calculated_at - timedelta(days=settings.PORTFOLIO_HISTORY_RETENTION_DAYS)
        pruned = await repo.prune(
            user_id,
            older_than=cutoff,
            keep_latest=settings.PORTFOLIO_HISTORY_MIN_POINTS,
        )

    if pruned:
        logger.info(f"Pruned {pruned} portfolio history points for user {user_id}")
    return point


async def get_portfolio_history(
    db: AsyncSession,
    user_id: int,
    *,
    days: int = 30,
    interval: str = "raw",
) -> PortfolioHistory:
    """Get recorded portfolio values for charting.

    Args:
        db: Async database session
        user_id: Owner's user ID
        days: How far back to look
        interval: "raw" for every point, or "hourly"/"daily" to keep the
            last point of each period

    Raises:
        ValidationError: If days or interval is invalid
    """
    if interval not in PortfolioConstants.HISTORY_INTERVALS:
        raise ValidationError(
            f"interval must be one of {sorted(PortfolioConstants.HISTORY_INTERVALS)}"
        )
    if not 1 <= days <= PortfolioConstants.MAX_HISTORY_DAYS:
        raise ValidationError(f"days must be between 1 and {PortfolioConstants.MAX_HISTORY_DAYS}")

    repo = PortfolioValueRepository(PortfolioValueSnapshot, db)
    since = datetime.now(UTC) - timedelta(days=days)
    rows = await repo.get_since(user_id, since=since)
    points = [
        PortfolioHistoryPoint(
            recorded_at=as_utc(row.recorded_at),
            total_value=row.total_value,
            total_invested=row.total_invested,
            profit_loss=row.profit_loss,
            percentage_change=row.percentage_change,
        )
        for row in rows
    ]

    rule = PortfolioConstants.HISTORY_INTERVALS[interval]
    if rule is not None and points:
        points = _resample_last(points, rule)

    return PortfolioHistory(days=days, interval=interval, points=points)


def _resample_last(points: list[PortfolioHistoryPoint], rule: str) -> list[PortfolioHistoryPoint]:
    """Keep the last point of every period.

    Args:
        points: Points ordered oldest first
        rule: pandas offset alias, e.g. "h" or "D"
    """
    df = pd.DataFrame([p.model_dump() for p in points])
    df.index = pd.DatetimeIndex(pd.to_datetime(df["recorded_at"], utc=True))
    resampled = df.resample(rule).last().dropna(subset=["recorded_at"])
    return [PortfolioHistoryPoint.model_validate(row) for row in resampled.to_dict("records")]
