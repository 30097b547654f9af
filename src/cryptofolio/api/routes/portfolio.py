"""Portfolio endpoints."""

from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from cryptofolio.core.constants import PortfolioConstants
from cryptofolio.core.deps import CurrentActiveUser, MarketService
from cryptofolio.db.session import get_db
from cryptofolio.schemas.portfolio import PortfolioHistory, PortfolioSummary
from cryptofolio.services import portfolio_service

router = APIRouter()


@router.get("/summary", response_model=PortfolioSummary)
async def get_portfolio_summary(
    current_user: CurrentActiveUser,
    market: MarketService,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> PortfolioSummary:
    """
    Get the current value and profit or loss of the user's portfolio.

    Assets without any available price are left out of the totals and
    listed in ``excluded_assets``; ``is_complete`` is False in that case.
    Assets valued from cached prices are listed in ``stale_assets``.
    """
    return await portfolio_service.get_portfolio_summary(db, current_user.id, market)


@router.get("/history", response_model=PortfolioHistory)
async def get_portfolio_history(
    current_user: CurrentActiveUser,
    db: Annotated[AsyncSession, Depends(get_db)],
    days: Annotated[int, Query(ge=1, le=PortfolioConstants.MAX_HISTORY_DAYS)] = 30,
    interval: Literal["raw", "hourly", "daily"] = "raw",
) -> PortfolioHistory:
    """
    Get recorded portfolio values for charting.

    Args:
        days: How far back to look
        interval: "raw" for every recorded point, "hourly" or "daily" for
            the last point of each period
    """
    return await portfolio_service.get_portfolio_history(
        db, current_user.id, days=days, interval=interval
    )
