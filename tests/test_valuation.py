"""
Unit tests for holding valuation and portfolio totals.

Tests cover:
- Single-holding valuation math
- Zero-cost holdings
- Totals derived from holdings
"""

import math

import pytest

from src.portfolio import Asset, Holding, PortfolioTotals, recompute_totals
from src.portfolio.valuation import current_value, gain_loss, gain_loss_percent, valuation


def make_holding(symbol, quantity, total_cost, price):
    return Holding(
        asset=Asset(symbol, current_price=price),
        quantity=quantity,
        average_price=total_cost / quantity,
        total_cost=total_cost,
    )


class TestValuation:
    """Test the pure valuation functions."""

    def test_current_value(self):
        assert current_value(10, 120.0) == 1200.0

    def test_gain_loss(self):
        assert gain_loss(1200.0, 1005.0) == 195.0
        assert gain_loss(1000.0, 1005.0) == -5.0

    def test_gain_loss_percent(self):
        assert gain_loss_percent(195.0, 1005.0) == pytest.approx(19.4029850746)

    def test_gain_loss_percent_zero_cost(self):
        """Free shares have no meaningful percent return."""
        assert gain_loss_percent(500.0, 0.0) == 0.0

    def test_valuation_tuple(self):
        value, gain, pct = valuation(10, 100.0, 1005.0)

        assert value == 1000.0
        assert gain == -5.0
        assert pct == pytest.approx(-0.4975124378)

    def test_non_finite_price_propagates(self):
        value, gain, _ = valuation(10, float("nan"), 1000.0)

        assert math.isnan(value)
        assert math.isnan(gain)


class TestHoldingValuation:
    """Test that Holding derives its valuation on construction."""

    def test_derived_fields(self):
        holding = make_holding("AAPL", 10, 1005.0, 100.0)

        assert holding.current_value == 1000.0
        assert holding.gain_loss == -5.0
        assert holding.gain_loss_percent == pytest.approx(-0.4975, abs=1e-4)
        assert not holding.is_profitable

    def test_repricing_recomputes(self):
        holding = make_holding("AAPL", 10, 1005.0, 100.0)
        repriced = holding.with_asset(Asset("AAPL", current_price=120.0))

        assert repriced.current_value == 1200.0
        assert repriced.gain_loss == 195.0
        assert repriced.total_cost == 1005.0
        assert holding.current_value == 1000.0

    def test_non_positive_quantity_rejected(self):
        with pytest.raises(ValueError):
            Holding(
                asset=Asset("AAPL", current_price=100.0),
                quantity=0,
                average_price=100.0,
                total_cost=0.0,
            )

    def test_dict_roundtrip_recomputes_derived(self):
        holding = make_holding("MSFT", 5, 1500.0, 310.0)

        data = holding.to_dict()
        data["current_value"] = 0.0

        restored = Holding.from_dict(data)
        assert restored == holding
        assert restored.current_value == 1550.0


class TestRecomputeTotals:
    """Test portfolio totals."""

    def test_empty(self):
        totals = recompute_totals(())

        assert totals == PortfolioTotals()
        assert totals.total_gain_loss_percent == 0.0

    def test_sums_holdings(self):
        holdings = (
            make_holding("AAPL", 10, 1005.0, 120.0),
            make_holding("MSFT", 5, 1500.0, 300.0),
        )

        totals = recompute_totals(holdings)

        assert totals.total_value == 2700.0
        assert totals.total_cost == 2505.0
        assert totals.total_gain_loss == 195.0
        assert totals.total_gain_loss_percent == pytest.approx(195.0 / 2505.0 * 100)

    def test_order_independent(self):
        holdings = [
            make_holding("A", 3, 0.1, 0.1),
            make_holding("B", 7, 0.2, 0.7),
            make_holding("C", 1, 0.3, 1e-8),
        ]

        forward = recompute_totals(holdings)
        backward = recompute_totals(reversed(holdings))

        assert forward == backward

    def test_to_dict(self):
        totals = recompute_totals((make_holding("AAPL", 1, 50.0, 100.0),))

        assert totals.to_dict() == {
            "total_value": 100.0,
            "total_cost": 50.0,
            "total_gain_loss": 50.0,
            "total_gain_loss_percent": 100.0,
        }
