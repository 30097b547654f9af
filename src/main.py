"""FastAPI application entry point."""

import logging
import logging.config
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded

from cryptofolio.api.routes import auth, health, holdings, market, portfolio, transactions
from cryptofolio.core.cache import MarketDataCache, create_redis_client
from cryptofolio.core.config import settings
from cryptofolio.core.exceptions import AppException, app_exception_handler
from cryptofolio.core.middleware import RequestLoggingMiddleware
from cryptofolio.core.rate_limit import limiter, rate_limit_exceeded_handler
from cryptofolio.db.base import Base
from cryptofolio.db.session import engine
from cryptofolio.services.market_data_service import MarketDataService

# Configure logging
logging.config.dictConfig(settings.LOGGING_CONFIG)
logging.getLogger("cryptofolio").setLevel(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan events."""
    logger.info(f"Starting {settings.APP_NAME} ({settings.ENVIRONMENT})")

    # Create tables (use Alembic in production)
    if settings.ENVIRONMENT == "development":
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    # One market data service shared by every request
    cache = MarketDataCache(await create_redis_client())
    app.state.market_data_service = MarketDataService(cache)
    logger.info(f"Market data cache backend: {cache.backend}")

    yield

    logger.info("Shutting down application")
    await app.state.market_data_service.aclose()
    await engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    debug=settings.DEBUG,
    lifespan=lifespan,
)

# Add rate limiter to app state
app.state.limiter = limiter

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.CORS_CREDENTIALS,
    allow_methods=settings.CORS_METHODS,
    allow_headers=settings.CORS_HEADERS,
)

# Middleware is applied in reverse order, so this is the outermost layer
app.add_middleware(RequestLoggingMiddleware)

# Register exception handlers
app.add_exception_handler(AppException, app_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)  # type: ignore[arg-type]

# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(auth.router, prefix="/api/v1/auth", tags=["auth"])
app.include_router(transactions.router, prefix="/api/v1/transactions", tags=["transactions"])
app.include_router(holdings.router, prefix="/api/v1/holdings", tags=["holdings"])
app.include_router(portfolio.router, prefix="/api/v1/portfolio", tags=["portfolio"])
app.include_router(market.router, prefix="/api/v1/market", tags=["market"])
