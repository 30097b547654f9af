"""Rate limiting configuration using slowapi."""

import re

from fastapi import Request
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from cryptofolio.core.config import settings

_SECONDS_PER_UNIT = {
    "second": 1,
    "minute": 60,
    "hour": 3600,
    "day": 86400,
}


def _retry_after_seconds(detail: str) -> int:
    """Derive a Retry-After value from a slowapi limit description.

    slowapi describes limits as "X per Y unit" (e.g. "5 per 1 minute").

    Args:
        detail: The limit description from the exception

    Returns:
        Seconds until the window resets, 60 when the text can't be parsed
    """
    match = re.search(r"(\d+)\s+per\s+(\d+)\s+(\w+)", detail)
    if not match:
        return 60

    window = int(match.group(2))
    unit = match.group(3).rstrip("s")
    return window * _SECONDS_PER_UNIT.get(unit, 60)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """
    Custom exception handler for rate limit exceeded errors.

    Provides a consistent response format with proper retry_after information
    and X-RateLimit-* headers.

    Args:
        request: The incoming request
        exc: The RateLimitExceeded exception

    Returns:
        JSONResponse with error details, retry_after, and rate limit headers
    """
    retry_after = _retry_after_seconds(str(exc.detail))

    response = JSONResponse(
        status_code=429,
        content={
            "detail": f"Rate limit exceeded: {exc.detail}",
            "error_code": "RATE_LIMITED",
            "retry_after": retry_after,
        },
    )
    response.headers["Retry-After"] = str(retry_after)

    # SlowAPIMiddleware is not installed, so the X-RateLimit-* headers are
    # only attached to 429 responses here
    view_rate_limit = getattr(request.state, "view_rate_limit", None)
    if view_rate_limit:
        rate_limit_item = view_rate_limit[0]
        window_stats = request.app.state.limiter.limiter.get_window_stats(
            rate_limit_item, *view_rate_limit[1]
        )
        response.headers["X-RateLimit-Limit"] = str(rate_limit_item.amount)
        response.headers["X-RateLimit-Remaining"] = str(window_stats[1])
        response.headers["X-RateLimit-Reset"] = str(int(1 + window_stats[0]))

    return response


# Create limiter instance
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],  # No default limits - each endpoint sets its own limit
    enabled=settings.RATE_LIMIT_ENABLED,
    headers_enabled=False,  # Disabled due to compatibility issues with FastAPI response models
)
