"""Health check endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cryptofolio.core.deps import MarketService
from cryptofolio.db.session import get_db

router = APIRouter()


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


@router.get("/health/db")
async def database_health(db: Annotated[AsyncSession, Depends(get_db)]):
    """Database health check."""
    try:
        await db.execute(text("SELECT 1"))
        return {"status": "healthy", "database": "connected"}
    except SQLAlchemyError as e:
        return {"status": "unhealthy", "database": str(e)}


@router.get("/health/cache")
async def cache_health(market: MarketService):
    """
    Market data cache health check.

    Reports the active backend ("redis" or "memory"). The in-process
    backend is always healthy; Redis is pinged.
    """
    cache = market.cache
    if await cache.ping():
        return {"status": "healthy", "cache": {"backend": cache.backend}}
    return {"status": "unhealthy", "cache": {"backend": cache.backend}}
