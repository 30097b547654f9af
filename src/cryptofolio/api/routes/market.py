"""Market data endpoints.

Public, unauthenticated and rate limited. Every response reports whether
it came from CoinGecko, the cache or the built-in fallback listing.
"""

from typing import Annotated

from fastapi import APIRouter, Query, Request

from cryptofolio.core.config import settings
from cryptofolio.core.constants import MarketDataConstants
from cryptofolio.core.deps import MarketService
from cryptofolio.core.exceptions import NotFoundError
from cryptofolio.core.rate_limit import limiter
from cryptofolio.schemas.market import MarketListing, MarketStatus, PriceChart, PriceQuote

router = APIRouter()


@router.get("/assets", response_model=MarketListing)
@limiter.limit(settings.MARKET_RATE_LIMIT)
async def list_assets(
    request: Request,
    market: MarketService,
    limit: Annotated[int, Query(ge=1, le=1000)] = settings.MARKET_DEFAULT_LISTING_SIZE,
) -> MarketListing:
    """
    Get the top assets by market cap.

    Never fails because of the provider: falls back to cached data, then
    to a built-in listing flagged ``is_fallback``.
    """
    return await market.get_top_assets(limit)


@router.get("/assets/search", response_model=MarketListing)
@limiter.limit(settings.MARKET_RATE_LIMIT)
async def search_assets(
    request: Request,
    market: MarketService,
    q: Annotated[str, Query(min_length=1, max_length=100)],
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> MarketListing:
    """
    Search assets by symbol, name or id.

    Example:
        GET /api/v1/market/assets/search?q=btc
    """
    return await market.search_assets(q, limit)


@router.get("/assets/{asset_id}/price", response_model=PriceQuote)
@limiter.limit(settings.MARKET_RATE_LIMIT)
async def get_asset_price(
    request: Request,
    asset_id: str,
    market: MarketService,
) -> PriceQuote:
    """
    Get the current price of one asset.

    Raises:
        NotFoundError: 404 if no price is available from any source
    """
    quote = await market.get_current_price(asset_id, allow_fallback=True)
    if quote is None:
        raise NotFoundError(f"No price available for '{asset_id}'")
    return quote


@router.get("/assets/{asset_id}/chart", response_model=PriceChart)
@limiter.limit(settings.MARKET_RATE_LIMIT)
async def get_asset_chart(
    request: Request,
    asset_id: str,
    market: MarketService,
    days: Annotated[int, Query(ge=1, le=MarketDataConstants.MAX_CHART_DAYS)] = 7,
) -> PriceChart:
    """
    Get historical prices of one asset.

    Raises:
        NotFoundError: 404 if CoinGecko doesn't know the asset
        ExternalAPIError: 503 if CoinGecko fails and nothing is cached
    """
    return await market.get_price_chart(asset_id, days)


@router.get("/status", response_model=MarketStatus)
async def get_market_status(market: MarketService) -> MarketStatus:
    """Report provider reachability, rate-limit cooldown and cache backend."""
    return await market.get_status()
