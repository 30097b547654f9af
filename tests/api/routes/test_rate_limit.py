"""Tests for rate limiting functionality."""

import pytest
from httpx import AsyncClient

from cryptofolio.core.rate_limit import _retry_after_seconds
from cryptofolio.models.user import User

pytestmark = pytest.mark.integration


async def _exhaust_login(client: AsyncClient, attempts: int = 5) -> None:
    for i in range(attempts):
        response = await client.post(
            "/api/v1/auth/login",
            data={"username": "testuser", "password": "TestPass123"},
        )
        assert response.status_code in (200, 401), f"Request {i + 1} got {response.status_code}"


async def test_rate_limit_enforced_on_login(client: AsyncClient, test_user: User) -> None:
    """Test that the sixth login within a minute is rejected."""
    await _exhaust_login(client)

    response = await client.post(
        "/api/v1/auth/login",
        data={"username": "testuser", "password": "TestPass123"},
    )

    assert response.status_code == 429
    data = response.json()
    assert "rate limit" in data["detail"].lower()
    assert data["error_code"] == "RATE_LIMITED"
    assert data["retry_after"] == 60


async def test_rate_limit_headers_present(client: AsyncClient, test_user: User) -> None:
    """Test that rate limit headers are included in 429 responses."""
    await _exhaust_login(client)

    response = await client.post(
        "/api/v1/auth/login",
        data={"username": "testuser", "password": "TestPass123"},
    )

    assert response.status_code == 429
    assert response.headers["Retry-After"] == "60"
    assert response.headers["X-RateLimit-Limit"] == "5"
    assert "X-RateLimit-Remaining" in response.headers
    assert "X-RateLimit-Reset" in response.headers


async def test_limits_are_per_endpoint(client: AsyncClient, test_user: User) -> None:
    """Test that exhausting login does not block public market data."""
    await _exhaust_login(client)

    response = await client.get("/api/v1/market/assets/bitcoin/price")

    assert response.status_code == 200


@pytest.mark.unit
@pytest.mark.parametrize(
    ("detail", "expected"),
    [
        ("5 per 1 minute", 60),
        ("30 per 1 minute", 60),
        ("100 per 1 hour", 3600),
        ("10 per 2 seconds", 2),
        ("unparseable", 60),
    ],
)
def test_retry_after_seconds(detail: str, expected: int) -> None:
    assert _retry_after_seconds(detail) == expected
