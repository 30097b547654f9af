"""Market data from CoinGecko with caching, rate-limit handling and fallbacks.

A single ``MarketDataService`` is created at application start-up and
shared by every request. Callers never see a provider failure as long as
some older data exists: each result reports where it came from.

Degradation order for prices and listings:
    1. Fresh cache entry (younger than its TTL): served without a live call
    2. Live CoinGecko response: cached for later use
    3. Last-known cache entry of any age: ``is_stale=True``
    4. Static fallback listing (listings, and prices when allowed)
    5. Unavailable: the asset is omitted, the caller decides what to do

Rate limiting:
    A 429 from CoinGecko puts the service in cache-only mode for
    ``MARKET_RATE_LIMIT_COOLDOWN_SECONDS``. No live requests are sent
    during the cooldown.

Sources:
    - /simple/price: current prices, batched
    - /coins/markets: listing by market cap, 250 per page
    - /coins/{id}/market_chart: price history
    - /ping: reachability
"""

import asyncio
import json
import logging
import math
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any

import httpx
import pandas as pd  # type: ignore[import-untyped]

from cryptofolio.core.cache import MarketDataCache
from cryptofolio.core.config import settings
from cryptofolio.core.constants import MarketDataConstants
from cryptofolio.core.exceptions import ExternalAPIError, NotFoundError, ValidationError
from cryptofolio.data.fallback_assets import get_fallback_assets
from cryptofolio.db.base import as_utc
from cryptofolio.schemas.market import (
    MarketAsset,
    MarketListing,
    MarketStatus,
    PriceChart,
    PricePoint,
    PriceQuote,
)

logger = logging.getLogger(__name__)


def _age_seconds(fetched_at: datetime) -> float:
    return (datetime.now(UTC) - as_utc(fetched_at)).total_seconds()


def build_http_client() -> httpx.AsyncClient:
    """Create the shared HTTP client for CoinGecko.

    Returns:
        AsyncClient with base URL, timeouts and API key header set
    """
    headers = {"Accept": "application/json"}
    if settings.MARKET_API_KEY:
        headers["x-cg-demo-api-key"] = settings.MARKET_API_KEY

    return httpx.AsyncClient(
        base_url=settings.MARKET_API_BASE_URL,
        headers=headers,
        timeout=httpx.Timeout(
            settings.MARKET_REQUEST_TIMEOUT_SECONDS,
            connect=settings.MARKET_CONNECT_TIMEOUT_SECONDS,
        ),
    )


class MarketDataService:
    """CoinGecko client with cache and fallback.

    Example:
        >>> service = MarketDataService(MarketDataCache(redis_client))
        >>> quote = await service.get_current_price("bitcoin")
        >>> if quote:
        ...     print(quote.price, quote.source, quote.is_stale)
        >>> await service.aclose()
    """

    def __init__(
        self,
        cache: MarketDataCache,
        client: httpx.AsyncClient | None = None,
        *,
        vs_currency: str = settings.MARKET_VS_CURRENCY,
        request_timeout: float = settings.MARKET_REQUEST_TIMEOUT_SECONDS,
        cooldown_seconds: int = settings.MARKET_RATE_LIMIT_COOLDOWN_SECONDS,
    ) -> None:
        """Initialize the service.

        Args:
            cache: Cache for prices, listings and charts
            client: HTTP client; one is built from settings if omitted
            vs_currency: Quote currency for every price
            request_timeout: Upper bound in seconds on any single call
            cooldown_seconds: Cache-only period after a 429
        """
        self.cache = cache
        self._client = client or build_http_client()
        self._vs_currency = vs_currency
        self._request_timeout = request_timeout
        self._cooldown = timedelta(seconds=cooldown_seconds)
        self.rate_limited_until: datetime | None = None

    @property
    def is_rate_limited(self) -> bool:
        """True while the service is in cache-only mode."""
        return (
            self.rate_limited_until is not None
            and datetime.now(UTC) < self.rate_limited_until
        )

    async def _request(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """Send a GET to CoinGecko and decode the JSON body.

        Floats are decoded as Decimal so prices never pass through binary
        floating point.

        Raises:
            ExternalAPIError: On rate limiting, timeouts, transport errors,
                server errors or malformed bodies
            NotFoundError: If CoinGecko answers 404
        """
        if self.is_rate_limited:
            raise ExternalAPIError(
                f"CoinGecko rate limit cooldown active until "
                f"{self.rate_limited_until.isoformat()}",
                error_code="RATE_LIMITED",
            )

        try:
            response = await asyncio.wait_for(
                self._client.get(path, params=params),
                timeout=self._request_timeout,
            )
        except TimeoutError as e:
            raise ExternalAPIError(f"CoinGecko request to {path} timed out") from e
        except httpx.HTTPError as e:
            raise ExternalAPIError(f"CoinGecko request to {path} failed: {e}") from e

        if response.status_code == 429:
            self.rate_limited_until = datetime.now(UTC) + self._cooldown
            logger.warning(
                f"CoinGecko rate limit hit on {path}; cache-only until "
                f"{self.rate_limited_until.isoformat()}"
            )
            raise ExternalAPIError("CoinGecko rate limit exceeded", error_code="RATE_LIMITED")
        if response.status_code == 404:
            raise NotFoundError(f"CoinGecko has no resource at {path}")

        try:
            response.raise_for_status()
            return json.loads(response.text, parse_float=Decimal)
        except httpx.HTTPStatusError as e:
            raise ExternalAPIError(
                f"CoinGecko returned {response.status_code} for {path}"
            ) from e
        except ValueError as e:
            raise ExternalAPIError(f"CoinGecko returned invalid JSON for {path}") from e

    # ------------------------------------------------------------------
    # Prices
    # ------------------------------------------------------------------

    async def _cached_quote(self, asset_id: str) -> PriceQuote | None:
        cached = await self.cache.get(f"price:{asset_id}")
        if cached is None:
            return None
        quote = PriceQuote.model_validate(cached)
        is_fresh = _age_seconds(quote.fetched_at) < settings.MARKET_PRICE_TTL_SECONDS
        return quote.model_copy(update={"source": "cache", "is_stale": not is_fresh})

    async def _store_quotes(self, quotes: Iterable[PriceQuote]) -> None:
        await self.cache.set_many(
            {f"price:{q.asset_id}": q.model_dump(mode="json") for q in quotes},
            ttl_seconds=settings.MARKET_STALE_RETENTION_SECONDS,
        )

    async def get_current_prices(
        self,
        asset_ids: Iterable[str],
        *,
        allow_fallback: bool = False,
    ) -> dict[str, PriceQuote]:
        """Get current prices for several assets with one live call.

        Args:
            asset_ids: CoinGecko asset ids
            allow_fallback: Use the static fallback listing for assets that
                have neither a live nor a cached price

        Returns:
            Mapping of asset id to quote. Assets with no price at all are
            left out.

        Example:
            >>> quotes = await service.get_current_prices(["bitcoin", "ethereum"])
            >>> stale = [q.asset_id for q in quotes.values() if q.is_stale]
        """
        wanted = sorted(set(asset_ids))
        if not wanted:
            return {}

        quotes: dict[str, PriceQuote] = {}
        last_known: dict[str, PriceQuote] = {}
        for asset_id in wanted:
            cached = await self._cached_quote(asset_id)
            if cached is None:
                continue
            if cached.is_stale:
                last_known[asset_id] = cached
            else:
                quotes[asset_id] = cached

        to_fetch = [asset_id for asset_id in wanted if asset_id not in quotes]
        if to_fetch:
            live = await self._fetch_live_prices(to_fetch)
            quotes.update(live)
            for asset_id in to_fetch:
                if asset_id not in quotes and asset_id in last_known:
                    quotes[asset_id] = last_known[asset_id]

        if allow_fallback:
            fallback = {a["id"]: a for a in get_fallback_assets()}
            now = datetime.now(UTC)
            for asset_id in wanted:
                if asset_id not in quotes and asset_id in fallback:
                    quotes[asset_id] = PriceQuote(
                        asset_id=asset_id,
                        price=Decimal(fallback[asset_id]["current_price"]),
                        source=MarketDataConstants.SOURCE_FALLBACK,
                        is_stale=True,
                        fetched_at=now,
                    )

        missing = [asset_id for asset_id in wanted if asset_id not in quotes]
        if missing:
            logger.warning(f"No price available for {missing}")
        return quotes

    async def _fetch_live_prices(self, asset_ids: list[str]) -> dict[str, PriceQuote]:
        try:
            payload = await self._request(
                "/simple/price",
                {
                    "ids": ",".join(asset_ids),
                    "vs_currencies": self._vs_currency,
                    "include_last_updated_at": "true",
                },
            )
        except (ExternalAPIError, NotFoundError) as e:
            logger.warning(f"Live price lookup failed for {len(asset_ids)} assets: {e.detail}")
            return {}

        now = datetime.now(UTC)
        quotes: dict[str, PriceQuote] = {}
        for asset_id in asset_ids:
            price = (payload.get(asset_id) or {}).get(self._vs_currency)
            if price is None or Decimal(price) <= 0:
                continue
            quotes[asset_id] = PriceQuote(
                asset_id=asset_id,
                price=Decimal(price),
                source=MarketDataConstants.SOURCE_LIVE,
                is_stale=False,
                fetched_at=now,
            )

        await self._store_quotes(quotes.values())
        return quotes

    async def get_current_price(
        self,
        asset_id: str,
        *,
        allow_fallback: bool = True,
    ) -> PriceQuote | None:
        """Get the current price of one asset.

        Args:
            asset_id: CoinGecko asset id
            allow_fallback: Use the static fallback listing as a last resort

        Returns:
            The quote, or None when no price is available
        """
        quotes = await self.get_current_prices([asset_id], allow_fallback=allow_fallback)
        return quotes.get(asset_id)

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    def _listing_key(self) -> str:
        return f"listing:{self._vs_currency}"

    async def get_top_assets(
        self, limit: int = settings.MARKET_DEFAULT_LISTING_SIZE
    ) -> MarketListing:
        """Get the top assets by market cap.

        Args:
            limit: Number of assets wanted (1 to 1000)

        Returns:
            Listing flagged with its source; never raises on provider failure

        Raises:
            ValidationError: If limit is out of range
        """
        if not 1 <= limit <= 1000:
            raise ValidationError("limit must be between 1 and 1000")

        cached = await self.cache.get(self._listing_key())
        if cached is not None:
            listing = MarketListing.model_validate(cached)
            fresh = _age_seconds(listing.fetched_at) < settings.MARKET_LISTING_TTL_SECONDS
            if fresh and len(listing.assets) >= limit:
                return listing.model_copy(
                    update={"assets": listing.assets[:limit], "source": "cache"}
                )

        try:
            assets = await self._fetch_markets(limit)
        except (ExternalAPIError, NotFoundError) as e:
            logger.warning(f"Live market listing failed: {e.detail}")
            if cached is not None:
                return listing.model_copy(
                    update={"assets": listing.assets[:limit], "source": "cache", "is_stale": True}
                )
            logger.warning("No cached listing, serving fallback assets")
            return MarketListing(
                assets=[MarketAsset.model_validate(a) for a in get_fallback_assets()][:limit],
                source=MarketDataConstants.SOURCE_FALLBACK,
                is_stale=True,
                is_fallback=True,
                fetched_at=datetime.now(UTC),
            )

        listing = MarketListing(
            assets=assets,
            source=MarketDataConstants.SOURCE_LIVE,
            fetched_at=datetime.now(UTC),
        )
        await self.cache.set(
            self._listing_key(),
            listing.model_dump(mode="json"),
            ttl_seconds=settings.MARKET_STALE_RETENTION_SECONDS,
        )
        await self._store_quotes(
            PriceQuote(
                asset_id=asset.id,
                price=asset.current_price,
                source=MarketDataConstants.SOURCE_LIVE,
                fetched_at=listing.fetched_at,
            )
            for asset in assets
            if asset.current_price is not None and asset.current_price > 0
        )
        logger.info(f"Fetched {len(assets)} assets from CoinGecko markets")
        return listing

    async def _fetch_markets(self, limit: int) -> list[MarketAsset]:
        page_size = MarketDataConstants.MAX_PAGE_SIZE
        assets: list[MarketAsset] = []
        for page in range(1, math.ceil(limit / page_size) + 1):
            per_page = min(page_size, limit - len(assets))
            rows = await self._request(
                "/coins/markets",
                {
                    "vs_currency": self._vs_currency,
                    "order": "market_cap_desc",
                    "per_page": per_page,
                    "page": page,
                    "sparkline": "false",
                    "price_change_percentage": "24h",
                },
            )
            assets.extend(MarketAsset.model_validate(row) for row in rows)
            if len(rows) < per_page:
                break
        return assets[:limit]

    async def search_assets(self, query: str, limit: int = 20) -> MarketListing:
        """Search the market listing by name, symbol or id.

        Exact symbol matches rank first, then prefix matches, then any
        substring match; ties keep market cap order.

        Args:
            query: Case-insensitive search text
            limit: Maximum number of results

        Raises:
            ValidationError: If the query is blank
        """
        needle = query.strip().lower()
        if not needle:
            raise ValidationError("Search query cannot be blank")

        listing = await self.get_top_assets(settings.MARKET_SEARCH_UNIVERSE_SIZE)

        def rank(asset: MarketAsset) -> int | None:
            symbol, name = asset.symbol.lower(), asset.name.lower()
            if symbol == needle or asset.id == needle:
                return 0
            if symbol.startswith(needle) or name.startswith(needle):
                return 1
            if needle in symbol or needle in name or needle in asset.id:
                return 2
            return None

        ranked = [(r, i, a) for i, a in enumerate(listing.assets) if (r := rank(a)) is not None]
        ranked.sort(key=lambda item: (item[0], item[1]))
        return listing.model_copy(update={"assets": [a for _, _, a in ranked[:limit]]})

    # ------------------------------------------------------------------
    # Charts
    # ------------------------------------------------------------------

    async def get_price_chart(self, asset_id: str, days: int = 7) -> PriceChart:
        """Get historical prices for an asset.

        CoinGecko returns hourly points up to 7 days and daily points
        beyond; daily granularity is requested explicitly above that.

        Args:
            asset_id: CoinGecko asset id
            days: Number of days of history (1 to 365)

        Raises:
            ValidationError: If days is out of range
            NotFoundError: If CoinGecko doesn't know the asset
            ExternalAPIError: If the provider fails and nothing is cached
        """
        if not 1 <= days <= MarketDataConstants.MAX_CHART_DAYS:
            raise ValidationError(
                f"days must be between 1 and {MarketDataConstants.MAX_CHART_DAYS}"
            )

        key = f"chart:{asset_id}:{days}:{self._vs_currency}"
        cached = await self.cache.get(key)
        if cached is not None:
            chart = PriceChart.model_validate(cached["chart"])
            fetched_at = datetime.fromisoformat(cached["fetched_at"])
            if _age_seconds(fetched_at) < settings.MARKET_CHART_TTL_SECONDS:
                return chart.model_copy(update={"source": "cache"})

        params: dict[str, Any] = {"vs_currency": self._vs_currency, "days": days}
        if days > MarketDataConstants.DAILY_INTERVAL_THRESHOLD_DAYS:
            params["interval"] = "daily"

        try:
            payload = await self._request(f"/coins/{asset_id}/market_chart", params)
        except ExternalAPIError:
            if cached is not None:
                logger.warning(f"Serving stale chart for {asset_id} ({days}d)")
                return chart.model_copy(update={"source": "cache", "is_stale": True})
            raise

        chart = PriceChart(
            asset_id=asset_id,
            days=days,
            points=self._parse_chart_points(payload.get("prices", [])),
            source=MarketDataConstants.SOURCE_LIVE,
        )
        await self.cache.set(
            key,
            {"chart": chart.model_dump(mode="json"), "fetched_at": datetime.now(UTC).isoformat()},
            ttl_seconds=settings.MARKET_STALE_RETENTION_SECONDS,
        )
        return chart

    @staticmethod
    def _parse_chart_points(prices: list[list[Any]]) -> list[PricePoint]:
        """Normalize CoinGecko ``[[ms, price], ...]`` pairs.

        Drops duplicate timestamps and non-positive prices and sorts by
        time.
        """
        if not prices:
            return []

        df = pd.DataFrame(prices, columns=["timestamp", "price"])
        df["timestamp"] = pd.to_datetime(df["timestamp"], unit="ms", utc=True)
        df = df[df["price"].map(lambda p: p is not None and Decimal(str(p)) > 0)]
        df = df.drop_duplicates(subset="timestamp", keep="last").sort_values("timestamp")

        return [
            PricePoint(timestamp=row.timestamp.to_pydatetime(), price=Decimal(str(row.price)))
            for row in df.itertuples(index=False)
        ]

    # ------------------------------------------------------------------
    # Diagnostics and lifecycle
    # ------------------------------------------------------------------

    async def get_status(self) -> MarketStatus:
        """Report provider reachability, rate-limit state and cache backend."""
        reachable = False
        if not self.is_rate_limited:
            try:
                await self._request("/ping")
                reachable = True
            except (ExternalAPIError, NotFoundError) as e:
                logger.warning(f"CoinGecko ping failed: {e.detail}")

        cached = await self.cache.get(self._listing_key())
        return MarketStatus(
            provider_url=str(self._client.base_url),
            reachable=reachable,
            rate_limited=self.is_rate_limited,
            rate_limited_until=self.rate_limited_until if self.is_rate_limited else None,
            cache_backend=self.cache.backend,
            cached_assets=len(cached["assets"]) if cached else 0,
        )

    async def aclose(self) -> None:
        """Close the HTTP client and the cache connection."""
        await self._client.aclose()
        await self.cache.aclose()
