"""Application-wide constants.

Groups the fixed numbers used by aggregation, market data and the portfolio
rollup. Values an operator may want to tune live in ``core.config`` instead.
"""

from decimal import Decimal


class AggregationConstants:
    """Constants for the moving-average cost aggregation."""

    # Working precision for intermediate arithmetic. Quantities carry up to
    # 20 integer digits and 8 decimals, so 40 significant digits leaves room
    # for products of quantity and price without rounding.
    DECIMAL_PRECISION = 40

    # Persisted values are quantized to the column scale
    DECIMAL_PLACES = 8
    QUANTUM = Decimal(1).scaleb(-DECIMAL_PLACES)  # Decimal("0.00000001")

    # Label used when the venue of a transaction is not known
    UNKNOWN_VENUE = "Unknown"


class MarketDataConstants:
    """Constants for the CoinGecko market data client."""

    # CoinGecko caps /coins/markets at 250 results per page
    MAX_PAGE_SIZE = 250

    # /coins/{id}/market_chart switches to daily candles above this range
    DAILY_INTERVAL_THRESHOLD_DAYS = 7
    MAX_CHART_DAYS = 365

    # Redis key prefix for every market data entry
    CACHE_NAMESPACE = "cryptofolio:market"

    # Price sources reported on quotes
    SOURCE_LIVE = "live"
    SOURCE_CACHE = "cache"
    SOURCE_FALLBACK = "fallback"


class PortfolioConstants:
    """Constants for portfolio rollup and history."""

    PERCENT = Decimal(100)

    # Allowed resampling intervals for history, mapped to pandas offset aliases
    HISTORY_INTERVALS = {"raw": None, "hourly": "h", "daily": "D"}
    MAX_HISTORY_DAYS = 365


class APIConstants:
    """Constants for API behavior, limits, and defaults."""

    # Pagination defaults for list endpoints
    DEFAULT_PAGE_SIZE = 100  # Default items per page
    MAX_PAGE_SIZE = 1000  # Maximum allowed items per page

    # Upper bound on items accepted by the batch transaction endpoint
    MAX_BATCH_SIZE = 500


# Module-level shortcuts for the values most code needs
UNKNOWN_VENUE = AggregationConstants.UNKNOWN_VENUE
DECIMAL_QUANTUM = AggregationConstants.QUANTUM
