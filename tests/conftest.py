"""Pytest fixtures for testing."""

import json
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from cryptofolio.core.cache import MarketDataCache
from cryptofolio.core.deps import get_market_data_service
from cryptofolio.core.rate_limit import limiter
from cryptofolio.core.security import create_access_token, get_password_hash
from cryptofolio.db.base import Base
from cryptofolio.db.session import get_db
from cryptofolio.models.transaction import Transaction, TransactionType
from cryptofolio.models.user import User
from cryptofolio.services.market_data_service import MarketDataService
from main import app

# Test database URL (SQLite in-memory for fast tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

COINGECKO_TEST_URL = "https://coingecko.test/api/v3"


class FakeCoinGecko:
    """In-memory stand-in for the CoinGecko HTTP API.

    Tests set ``prices`` and ``markets`` and can force a status code for
    every request with ``fail_with``. Every request is recorded in
    ``requests``.
    """

    def __init__(self) -> None:
        self.prices: dict[str, str] = {"bitcoin": "50000", "ethereum": "3000"}
        self.markets: list[dict[str, Any]] = [
            {"id": "bitcoin", "symbol": "btc", "name": "Bitcoin", "current_price": 50000,
             "market_cap": 990000000000, "market_cap_rank": 1},
            {"id": "ethereum", "symbol": "eth", "name": "Ethereum", "current_price": 3000,
             "market_cap": 360000000000, "market_cap_rank": 2},
            {"id": "wrapped-bitcoin", "symbol": "wbtc", "name": "Wrapped Bitcoin",
             "current_price": 49900, "market_cap": 8000000000, "market_cap_rank": 3},
        ]  # fmt: skip
        self.charts: dict[str, list[list[float]]] = {
            "bitcoin": [
                [1700000000000, 35000.5],
                [1700003600000, 35100.25],
                [1700003600000, 35100.25],
                [1700007200000, 0],
            ]
        }
        self.fail_with: int | None = None
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, json={"error": "forced failure"})

        path = request.url.path.removeprefix("/api/v3")
        if path == "/ping":
            return httpx.Response(200, json={"gecko_says": "(V3) To the Moon!"})
        if path == "/simple/price":
            ids = request.url.params["ids"].split(",")
            body = {
                asset_id: {"usd": json.loads(self.prices[asset_id])}
                for asset_id in ids
                if asset_id in self.prices
            }
            return httpx.Response(200, json=body)
        if path == "/coins/markets":
            per_page = int(request.url.params["per_page"])
            page = int(request.url.params["page"])
            start = (page - 1) * per_page
            return httpx.Response(200, json=self.markets[start : start + per_page])
        if path.startswith("/coins/") and path.endswith("/market_chart"):
            asset_id = path.split("/")[2]
            if asset_id not in self.charts:
                return httpx.Response(404, json={"error": "coin not found"})
            return httpx.Response(200, json={"prices": self.charts[asset_id]})
        return httpx.Response(404, json={"error": "unknown path"})

    def paths(self) -> list[str]:
        return [r.url.path.removeprefix("/api/v3") for r in self.requests]


@pytest.fixture(autouse=True)
def reset_limiter():
    """Reset rate limiter storage before each test."""
    limiter.reset()
    yield
    limiter.reset()


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        future=True,
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_db(test_engine) -> AsyncGenerator[AsyncSession]:
    """Create a test database session."""
    async_session_maker = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with async_session_maker() as session:
        yield session


@pytest.fixture(scope="function")
def coingecko() -> FakeCoinGecko:
    """Fake CoinGecko API with two priced assets."""
    return FakeCoinGecko()


@pytest_asyncio.fixture(scope="function")
async def market_service(coingecko: FakeCoinGecko) -> AsyncGenerator[MarketDataService]:
    """Market data service wired to the fake CoinGecko and an in-process cache."""
    http_client = httpx.AsyncClient(
        base_url=COINGECKO_TEST_URL,
        transport=httpx.MockTransport(coingecko.handler),
    )
    service = MarketDataService(MarketDataCache(None), http_client, request_timeout=5)
    yield service
    await service.aclose()


@pytest_asyncio.fixture(scope="function")
async def client(
    test_db: AsyncSession, market_service: MarketDataService
) -> AsyncGenerator[AsyncClient]:
    """Create a test client with database and market data overrides."""

    async def override_get_db() -> AsyncGenerator[AsyncSession]:
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_market_data_service] = lambda: market_service

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as test_client:
        yield test_client

    app.dependency_overrides.clear()


async def _create_user(db: AsyncSession, **fields: Any) -> User:
    user = User(is_superuser=False, **fields)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest_asyncio.fixture(scope="function")
async def test_user(test_db: AsyncSession) -> User:
    """Create a test user."""
    return await _create_user(
        test_db,
        email="test@example.com",
        username="testuser",
        hashed_password=get_password_hash("TestPass123"),
        is_active=True,
    )


@pytest_asyncio.fixture(scope="function")
async def other_user(test_db: AsyncSession) -> User:
    """Create a second user whose data must stay invisible to test_user."""
    return await _create_user(
        test_db,
        email="other@example.com",
        username="otheruser",
        hashed_password=get_password_hash("OtherPass123"),
        is_active=True,
    )


@pytest_asyncio.fixture(scope="function")
async def test_inactive_user(test_db: AsyncSession) -> User:
    """Create an inactive test user."""
    return await _create_user(
        test_db,
        email="inactive@example.com",
        username="inactiveuser",
        hashed_password=get_password_hash("InactivePass123"),
        is_active=False,
    )


@pytest.fixture(scope="function")
def user_token(test_user: User) -> str:
    """Generate a valid access token for test user."""
    return create_access_token(data={"sub": str(test_user.id)})


@pytest.fixture(scope="function")
def auth_headers(user_token: str) -> dict[str, str]:
    """Generate authorization headers with user token."""
    return {"Authorization": f"Bearer {user_token}"}


@pytest.fixture(scope="function")
def other_auth_headers(other_user: User) -> dict[str, str]:
    """Generate authorization headers for other_user."""
    token = create_access_token(data={"sub": str(other_user.id)})
    return {"Authorization": f"Bearer {token}"}


def make_transaction(
    kind: str,
    quantity: str,
    unit_price: str,
    *,
    asset_id: str = "bitcoin",
    symbol: str = "BTC",
    day: int = 1,
    venue: str = "Unknown",
    user_id: int = 1,
) -> Transaction:
    """Build an unsaved transaction occurring on day ``day`` of January 2025."""
    occurred_at = datetime(2025, 1, 1, 12, tzinfo=UTC) + timedelta(days=day - 1)
    return Transaction(
        user_id=user_id,
        asset_id=asset_id,
        asset_symbol=symbol,
        asset_name=asset_id.title(),
        asset_icon_url="",
        transaction_type=TransactionType(kind),
        quantity=Decimal(quantity),
        unit_price=Decimal(unit_price),
        occurred_at=occurred_at,
        venue=venue,
        created_at=occurred_at,
    )
