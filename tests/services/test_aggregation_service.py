"""Tests for moving-average cost aggregation."""

import itertools
from decimal import Decimal

import pytest

from conftest import make_transaction
from cryptofolio.core.exceptions import DataIntegrityError, InsufficientHoldingsError
from cryptofolio.services.aggregation_service import aggregate_by_asset, aggregate_transactions

pytestmark = pytest.mark.unit


def _btc_history():
    return [
        make_transaction("buy", "0.25", "45000", day=1),
        make_transaction("buy", "0.25", "47000", day=2),
        make_transaction("sell", "0.2", "50000", day=3),
    ]


class TestWorkedExamples:
    """The BTC buy, buy, sell, sell walkthrough."""

    def test_single_buy(self):
        aggregate = aggregate_transactions([make_transaction("buy", "0.25", "45000")])

        assert aggregate is not None
        assert aggregate.quantity_held == Decimal("0.25")
        assert aggregate.total_invested == Decimal("11250")
        assert aggregate.average_unit_cost == Decimal("45000")
        assert aggregate.transaction_count == 1

    def test_second_buy_moves_average(self):
        aggregate = aggregate_transactions(_btc_history()[:2])

        assert aggregate.quantity_held == Decimal("0.5")
        assert aggregate.total_invested == Decimal("23000")
        assert aggregate.average_unit_cost == Decimal("46000")

    def test_partial_sell_keeps_average_cost(self):
        aggregate = aggregate_transactions(_btc_history())

        assert aggregate.quantity_held == Decimal("0.3")
        assert aggregate.total_invested == Decimal("13800")
        assert aggregate.average_unit_cost == Decimal("46000")
        assert aggregate.transaction_count == 3

    def test_selling_everything_leaves_nothing_held(self):
        transactions = _btc_history() + [make_transaction("sell", "0.3", "52000", day=4)]

        assert aggregate_transactions(transactions) is None

    def test_sell_with_nothing_held_is_rejected(self):
        with pytest.raises(InsufficientHoldingsError) as exc_info:
            aggregate_transactions([make_transaction("sell", "1.0", "50000")])

        assert exc_info.value.status_code == 400
        assert exc_info.value.error_code == "INSUFFICIENT_HOLDINGS"


class TestProperties:
    """Determinism, ordering and edge-case guarantees."""

    def test_aggregating_twice_gives_identical_result(self):
        transactions = _btc_history()

        assert aggregate_transactions(transactions) == aggregate_transactions(transactions)

    def test_input_order_does_not_matter(self):
        transactions = _btc_history() + [make_transaction("buy", "0.1", "51000", day=5)]
        expected = aggregate_transactions(transactions)

        for permutation in itertools.permutations(transactions):
            assert aggregate_transactions(list(permutation)) == expected

    def test_oversell_is_detected_in_time_order(self):
        # The buy on day 3 comes too late to cover the sell on day 2
        transactions = [
            make_transaction("buy", "1", "100", day=1),
            make_transaction("sell", "2", "110", day=2),
            make_transaction("buy", "5", "90", day=3),
        ]

        with pytest.raises(InsufficientHoldingsError):
            aggregate_transactions(transactions)

    def test_empty_input_returns_none(self):
        assert aggregate_transactions([]) is None

    def test_full_sell_then_rebuy_starts_fresh_cost_basis(self):
        transactions = [
            make_transaction("buy", "1", "100", day=1),
            make_transaction("sell", "1", "200", day=2),
            make_transaction("buy", "2", "50", day=3),
        ]

        aggregate = aggregate_transactions(transactions)

        assert aggregate.quantity_held == Decimal("2")
        assert aggregate.total_invested == Decimal("100")
        assert aggregate.average_unit_cost == Decimal("50")

    def test_results_are_quantized_to_eight_places(self):
        transactions = [
            make_transaction("buy", "3", "10", day=1),
            make_transaction("sell", "1", "10", day=2),
        ]

        aggregate = aggregate_transactions(transactions)

        assert aggregate.total_invested == Decimal("20.00000000")
        assert aggregate.total_invested.as_tuple().exponent == -8

    def test_repeating_thirds_stay_finite(self):
        transactions = [
            make_transaction("buy", "3", "1", day=1),
            make_transaction("buy", "3", "2", day=2),
            make_transaction("sell", "1", "5", day=3),
        ]

        aggregate = aggregate_transactions(transactions)

        assert aggregate.quantity_held == Decimal("5")
        assert aggregate.total_invested == Decimal("7.5")
        assert aggregate.average_unit_cost == Decimal("1.5")


class TestIdentityAndVenue:
    """Denormalized identity and venue selection."""

    def test_identity_comes_from_latest_transaction(self):
        transactions = [
            make_transaction("buy", "1", "1", asset_id="polygon", symbol="MATIC", day=1),
            make_transaction("buy", "1", "1", asset_id="polygon", symbol="POL", day=2),
        ]

        aggregate = aggregate_transactions(transactions)

        assert aggregate.asset_symbol == "POL"

    def test_latest_known_venue_wins(self):
        transactions = [
            make_transaction("buy", "1", "1", day=1, venue="Kraken"),
            make_transaction("buy", "1", "1", day=2, venue="Binance"),
            make_transaction("buy", "1", "1", day=3, venue="Unknown"),
        ]

        assert aggregate_transactions(transactions).venue == "Binance"

    def test_venue_defaults_to_unknown(self):
        aggregate = aggregate_transactions([make_transaction("buy", "1", "1")])

        assert aggregate.venue == "Unknown"

    def test_last_transaction_at_is_latest_occurrence(self):
        transactions = _btc_history()

        aggregate = aggregate_transactions(reversed(transactions))

        assert aggregate.last_transaction_at == transactions[-1].occurred_at


class TestInvalidData:
    """Rows that should never have been stored."""

    def test_mixed_assets_are_refused(self):
        transactions = [
            make_transaction("buy", "1", "1", asset_id="bitcoin"),
            make_transaction("buy", "1", "1", asset_id="ethereum"),
        ]

        with pytest.raises(DataIntegrityError):
            aggregate_transactions(transactions)

    def test_non_positive_quantity_is_a_data_integrity_error(self):
        transaction = make_transaction("buy", "1", "100")
        transaction.quantity = Decimal("0")

        with pytest.raises(DataIntegrityError) as exc_info:
            aggregate_transactions([transaction])

        assert exc_info.value.status_code == 500

    def test_non_positive_price_is_a_data_integrity_error(self):
        transaction = make_transaction("buy", "1", "100")
        transaction.unit_price = Decimal("-5")

        with pytest.raises(DataIntegrityError):
            aggregate_transactions([transaction])

    def test_unknown_kind_is_a_data_integrity_error(self):
        transaction = make_transaction("buy", "1", "100")
        transaction.transaction_type = "transfer"

        with pytest.raises(DataIntegrityError):
            aggregate_transactions([transaction])


def test_aggregate_by_asset_skips_closed_positions():
    transactions = [
        make_transaction("buy", "1", "100", asset_id="bitcoin", day=1),
        make_transaction("buy", "2", "10", asset_id="ethereum", symbol="ETH", day=1),
        make_transaction("sell", "2", "12", asset_id="ethereum", symbol="ETH", day=2),
    ]

    result = aggregate_by_asset(transactions)

    assert list(result) == ["bitcoin"]
    assert result["bitcoin"].quantity_held == Decimal("1")
