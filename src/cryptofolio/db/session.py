"""Async engine, session factory and the unit-of-work helper."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from cryptofolio.core.config import settings
from cryptofolio.core.exceptions import AppException

logger = logging.getLogger(__name__)


def _engine_options(database_url: str) -> dict[str, Any]:
    # SQLite uses a static pool that rejects the sizing options
    if database_url.startswith("sqlite"):
        return {}
    return {
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_timeout": settings.DB_POOL_TIMEOUT,
        "pool_recycle": settings.DB_POOL_RECYCLE,
        "pool_pre_ping": True,
    }


engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DB_ECHO,
    **_engine_options(settings.DATABASE_URL),
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield one session per request.

    Whatever the handler left pending is committed when it returns and
    rolled back when it raises.

    Example:
        ```python
        @router.get("/transactions")
        async def list_transactions(db: Annotated[AsyncSession, Depends(get_db)]):
            ...
        ```
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def transactional(db: AsyncSession) -> AsyncGenerator[AsyncSession, None]:
    """Commit everything done in the block, or nothing.

    A transaction write and the holding recompute it triggers share one
    block, so a rejected over-sell leaves neither the transaction nor a
    changed snapshot behind.

    Example:
        ```python
        async with transactional(db):
            db.add(Transaction(**values))
            await db.flush()
            await recompute_holding(db, owner_id, asset_id)
        ```
    """
    try:
        yield db
        await db.commit()
    except Exception as e:
        await db.rollback()
        message = f"Transaction rolled back due to error: {type(e).__name__}: {e}"
        # 4xx application errors are client rejections
        if isinstance(e, AppException) and e.status_code < 500:
            logger.warning(message)
        else:
            logger.error(message)
        raise
