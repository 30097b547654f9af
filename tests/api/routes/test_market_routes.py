"""Tests for the public market data endpoints."""

import pytest
from fastapi import status
from httpx import AsyncClient

from conftest import FakeCoinGecko

pytestmark = pytest.mark.integration

BASE = "/api/v1/market"


async def test_assets_need_no_authentication(client: AsyncClient) -> None:
    response = await client.get(f"{BASE}/assets", params={"limit": 2})

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert [a["id"] for a in body["assets"]] == ["bitcoin", "ethereum"]
    assert body["source"] == "live"
    assert body["is_fallback"] is False


async def test_assets_fall_back_to_builtin_listing(
    client: AsyncClient, coingecko: FakeCoinGecko
) -> None:
    coingecko.fail_with = 500

    response = await client.get(f"{BASE}/assets", params={"limit": 5})

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["is_fallback"] is True
    assert body["source"] == "fallback"
    assert body["assets"]


async def test_search(client: AsyncClient) -> None:
    response = await client.get(f"{BASE}/assets/search", params={"q": "btc"})

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["assets"][0]["id"] == "bitcoin"


async def test_search_requires_query(client: AsyncClient) -> None:
    response = await client.get(f"{BASE}/assets/search")

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


async def test_price(client: AsyncClient) -> None:
    response = await client.get(f"{BASE}/assets/bitcoin/price")

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert float(body["price"]) == 50000
    assert body["source"] == "live"
    assert body["is_stale"] is False


async def test_price_for_unknown_asset_is_not_found(client: AsyncClient) -> None:
    response = await client.get(f"{BASE}/assets/no-such-coin-anywhere/price")

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["error_code"] == "NOT_FOUND"


async def test_chart(client: AsyncClient) -> None:
    response = await client.get(f"{BASE}/assets/bitcoin/chart", params={"days": 1})

    assert response.status_code == status.HTTP_200_OK
    assert len(response.json()["points"]) == 2


async def test_chart_provider_failure_is_503(
    client: AsyncClient, coingecko: FakeCoinGecko
) -> None:
    coingecko.fail_with = 502

    response = await client.get(f"{BASE}/assets/bitcoin/chart")

    assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
    assert response.json()["error_code"] == "EXTERNAL_API_ERROR"


async def test_chart_days_out_of_range(client: AsyncClient) -> None:
    response = await client.get(f"{BASE}/assets/bitcoin/chart", params={"days": 0})

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


async def test_status(client: AsyncClient) -> None:
    response = await client.get(f"{BASE}/status")

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["reachable"] is True
    assert body["rate_limited"] is False
    assert body["cache_backend"] == "memory"


async def test_status_after_provider_rate_limit(
    client: AsyncClient, coingecko: FakeCoinGecko
) -> None:
    coingecko.fail_with = 429
    await client.get(f"{BASE}/assets/bitcoin/price")

    response = await client.get(f"{BASE}/status")

    body = response.json()
    assert body["rate_limited"] is True
    assert body["reachable"] is False
    assert body["rate_limited_until"] is not None
