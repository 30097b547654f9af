"""Holding schemas."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel


class HoldingResponse(BaseModel):
    """Schema for a holdings snapshot row."""

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
    updated_at: datetime

    model_config = {"from_attributes": True}


class HoldingsRebuildResponse(BaseModel):
    """Result of rebuilding all holdings from transactions."""

    holdings: list[HoldingResponse]
    rebuilt_assets: int
