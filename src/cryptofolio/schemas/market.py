"""Market data schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

PriceSource = Literal["live", "cache", "fallback"]


class MarketAsset(BaseModel):
    """One row of the market listing, shaped like CoinGecko /coins/markets."""

    id: str
    symbol: str
    name: str
    image: str = ""
    current_price: Decimal | None = None
    price_change_percentage_24h: Decimal | None = None
    market_cap: Decimal | None = None
    market_cap_rank: int | None = None
    total_volume: Decimal | None = None
    last_updated: datetime | None = None


class MarketListing(BaseModel):
    """Top assets by market cap, with data freshness flags."""

    assets: list[MarketAsset]
    source: PriceSource
    is_stale: bool = False
    is_fallback: bool = False
    fetched_at: datetime


class PriceQuote(BaseModel):
    """Current price of one asset.

    ``is_stale`` is set when the price is older than the price TTL or comes
    from the fallback listing.
    """

    asset_id: str
    price: Decimal
    source: PriceSource
    is_stale: bool = False
    fetched_at: datetime


class PricePoint(BaseModel):
    """Single point of a price chart."""

    timestamp: datetime
    price: Decimal


class PriceChart(BaseModel):
    """Historical prices for one asset."""

    asset_id: str
    days: int
    points: list[PricePoint]
    source: PriceSource
    is_stale: bool = False


class MarketStatus(BaseModel):
    """Diagnostics for the market data provider."""

    provider_url: str
    reachable: bool
    rate_limited: bool
    rate_limited_until: datetime | None = None
    cache_backend: str
    cached_assets: int = Field(0, description="Assets in the cached listing")
