"""Portfolio schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel

from cryptofolio.schemas.market import PriceSource


class HoldingValuation(BaseModel):
    """A holding valued at the current market price.

    Valuation fields are None when no price is available for the asset.
    """

    asset_id: str
    asset_symbol: str
    asset_name: str
    asset_icon_url: str
    quantity_held: Decimal
    total_invested: Decimal
    average_unit_cost: Decimal
    current_price: Decimal | None = None
    current_value: Decimal | None = None
    profit_loss: Decimal | None = None
    profit_loss_percentage: Decimal | None = None
    price_source: PriceSource | None = None
    is_stale: bool = False
    price_updated_at: datetime | None = None


class PortfolioSummary(BaseModel):
    """Portfolio totals across all holdings."""

    total_value: Decimal
    total_invested: Decimal
    total_profit_loss: Decimal
    profit_loss_percentage: Decimal
    holdings: list[HoldingValuation]
    excluded_assets: list[str]
    stale_assets: list[str]
    is_complete: bool
    calculated_at: datetime


class PortfolioHistoryPoint(BaseModel):
    """Recorded portfolio value at one point in time."""

    recorded_at: datetime
    total_value: Decimal
    total_invested: Decimal
    profit_loss: Decimal
    percentage_change: Decimal

    model_config = {"from_attributes": True}


class PortfolioHistory(BaseModel):
    """Portfolio value history for charting."""

    days: int
    interval: Literal["raw", "hourly", "daily"]
    points: list[PortfolioHistoryPoint]
