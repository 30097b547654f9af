"""Tests for holdings snapshot maintenance."""

import logging
from datetime import UTC, datetime
from decimal import Decimal

import pytest
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import make_transaction
from cryptofolio.core.exceptions import NotFoundError
from cryptofolio.db.base import as_utc
from cryptofolio.models.holding import HoldingSnapshot
from cryptofolio.models.user import User
from cryptofolio.services import holding_service

pytestmark = pytest.mark.integration


async def _store(db: AsyncSession, *transactions) -> None:
    """Write transactions directly, bypassing the snapshot recompute."""
    db.add_all(transactions)
    await db.commit()


class TestRecomputeHolding:
    """Tests for recompute_holding."""

    async def test_writes_snapshot_from_transactions(
        self, test_db: AsyncSession, test_user: User
    ) -> None:
        user_id = test_user.id
        await _store(
            test_db,
            make_transaction("buy", "0.25", "45000", user_id=user_id, day=1),
            make_transaction("buy", "0.25", "47000", user_id=user_id, day=2),
        )

        snapshot = await holding_service.recompute_holding(test_db, user_id, "bitcoin")
        await test_db.commit()

        assert snapshot.quantity_held == Decimal("0.5")
        assert snapshot.average_unit_cost == Decimal("46000")
        assert snapshot.transaction_count == 2

    async def test_returns_none_without_transactions(
        self, test_db: AsyncSession, test_user: User
    ) -> None:
        assert await holding_service.recompute_holding(test_db, test_user.id, "bitcoin") is None


class TestListHoldings:
    """Tests for list_holdings and its staleness repair."""

    async def test_repairs_missing_snapshot(
        self, test_db: AsyncSession, test_user: User, caplog
    ) -> None:
        user_id = test_user.id
        await _store(test_db, make_transaction("buy", "2", "10", user_id=user_id))

        with caplog.at_level(logging.WARNING):
            holdings = await holding_service.list_holdings(test_db, user_id)

        assert [h.asset_id for h in holdings] == ["bitcoin"]
        assert holdings[0].quantity_held == Decimal("2")
        assert "out of sync" in caplog.text

    async def test_repairs_snapshot_with_wrong_count(
        self, test_db: AsyncSession, test_user: User
    ) -> None:
        user_id = test_user.id
        await _store(test_db, make_transaction("buy", "1", "10", user_id=user_id, day=1))
        await holding_service.list_holdings(test_db, user_id)

        await _store(test_db, make_transaction("buy", "1", "30", user_id=user_id, day=2))
        holdings = await holding_service.list_holdings(test_db, user_id)

        assert holdings[0].quantity_held == Decimal("2")
        assert holdings[0].total_invested == Decimal("40")
        assert holdings[0].transaction_count == 2

    async def test_closed_position_is_not_recomputed_on_read(
        self, test_db: AsyncSession, test_user: User, monkeypatch
    ) -> None:
        user_id = test_user.id
        await _store(
            test_db,
            make_transaction("buy", "1", "10", user_id=user_id, day=1),
            make_transaction("sell", "1", "12", user_id=user_id, day=2),
        )
        recomputed: list[str] = []
        recompute = holding_service.recompute_holding

        async def recording_recompute(db, owner_id, asset_id):
            recomputed.append(asset_id)
            return await recompute(db, owner_id, asset_id)

        monkeypatch.setattr(holding_service, "recompute_holding", recording_recompute)
        for _ in range(3):
            assert await holding_service.list_holdings(test_db, user_id) == []

        assert recomputed == []

    async def test_repairs_snapshot_with_moved_transaction(
        self, test_db: AsyncSession, test_user: User
    ) -> None:
        user_id = test_user.id
        moved = make_transaction("buy", "1", "10", user_id=user_id, day=1)
        await _store(test_db, moved)
        await holding_service.list_holdings(test_db, user_id)

        moved.occurred_at = datetime(2025, 3, 1, 12, tzinfo=UTC)
        await test_db.commit()
        holdings = await holding_service.list_holdings(test_db, user_id)

        assert holdings[0].transaction_count == 1
        assert as_utc(holdings[0].last_transaction_at) == datetime(2025, 3, 1, 12, tzinfo=UTC)

    async def test_sold_out_assets_are_not_listed(
        self, test_db: AsyncSession, test_user: User
    ) -> None:
        user_id = test_user.id
        await _store(
            test_db,
            make_transaction("buy", "1", "10", user_id=user_id, day=1),
            make_transaction("sell", "1", "12", user_id=user_id, day=2),
        )

        assert await holding_service.list_holdings(test_db, user_id) == []

    async def test_ordered_by_total_invested(
        self, test_db: AsyncSession, test_user: User
    ) -> None:
        user_id = test_user.id
        await _store(
            test_db,
            make_transaction("buy", "1", "10", user_id=user_id),
            make_transaction("buy", "1", "3000", asset_id="ethereum", symbol="ETH",
                             user_id=user_id),
        )

        holdings = await holding_service.list_holdings(test_db, user_id)

        assert [h.asset_id for h in holdings] == ["ethereum", "bitcoin"]

    async def test_only_owner_holdings_are_listed(
        self, test_db: AsyncSession, test_user: User, other_user: User
    ) -> None:
        user_id, other_id = test_user.id, other_user.id
        await _store(test_db, make_transaction("buy", "1", "10", user_id=other_id))

        assert await holding_service.list_holdings(test_db, user_id) == []
        assert len(await holding_service.list_holdings(test_db, other_id)) == 1


async def test_get_holding_not_held(test_db: AsyncSession, test_user: User) -> None:
    with pytest.raises(NotFoundError):
        await holding_service.get_holding(test_db, test_user.id, "bitcoin")


async def test_rebuild_restores_dropped_snapshots(
    test_db: AsyncSession, test_user: User
) -> None:
    user_id = test_user.id
    await _store(
        test_db,
        make_transaction("buy", "1", "10", user_id=user_id),
        make_transaction("buy", "2", "3000", asset_id="ethereum", symbol="ETH", user_id=user_id),
    )
    await holding_service.list_holdings(test_db, user_id)
    await test_db.execute(delete(HoldingSnapshot).where(HoldingSnapshot.user_id == user_id))
    await test_db.commit()

    rebuilt = await holding_service.rebuild_holdings(test_db, user_id)

    assert {h.asset_id: h.quantity_held for h in rebuilt} == {
        "bitcoin": Decimal("1"),
        "ethereum": Decimal("2"),
    }
