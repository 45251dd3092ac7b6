"""
Unit tests for spread, profit and risk calculations.
"""

from decimal import Decimal

import pytest

from crossarb.core.types import RiskLevel
from crossarb.strategy.calculator import (
    classify_risk,
    estimate_net_profit,
    gross_profit,
    inverse_spread_pct,
    spread_pct,
)


class TestSpread:
    """Tests for spread_pct."""

    def test_one_percent(self) -> None:
        assert spread_pct(Decimal("100"), Decimal("101")) == Decimal("1")

    def test_negative_direction(self) -> None:
        assert spread_pct(Decimal("101"), Decimal("100")) < 0

    def test_zero_buy_price(self) -> None:
        assert spread_pct(Decimal("0"), Decimal("100")) == 0

    @pytest.mark.parametrize(
        "p1, p2",
        [("100", "101"), ("100", "99"), ("0.0512", "0.0519"), ("64000", "64150.5")],
    )
    def test_symmetry(self, p1: str, p2: str) -> None:
        """spread(A->B) is the inverse of spread(B->A), not its negation."""
        a_to_b = spread_pct(Decimal(p1), Decimal(p2))
        b_to_a = spread_pct(Decimal(p2), Decimal(p1))

        assert float(a_to_b) == pytest.approx(float(inverse_spread_pct(b_to_a)), rel=1e-12)

    def test_not_naive_negation(self) -> None:
        a_to_b = spread_pct(Decimal("100"), Decimal("101"))
        b_to_a = spread_pct(Decimal("101"), Decimal("100"))

        assert a_to_b != -b_to_a


class TestProfit:
    """Tests for standardized profit estimates."""

    def test_gross_profit(self) -> None:
        assert gross_profit(Decimal("10"), Decimal("100"), Decimal("102")) == Decimal("0.2")

    def test_net_profit_subtracts_fees(self) -> None:
        net = estimate_net_profit(Decimal("10"), Decimal("100"), Decimal("102"), Decimal("0.002"))

        assert net == Decimal("0.18")

    def test_net_profit_floored_at_zero(self) -> None:
        net = estimate_net_profit(Decimal("10"), Decimal("100"), Decimal("100.1"), Decimal("0.002"))

        assert net == 0


class TestRisk:
    """Tests for classify_risk."""

    @pytest.mark.parametrize(
        "spread, level",
        [
            ("0.5", RiskLevel.LOW),
            ("1.0", RiskLevel.LOW),
            ("1.5", RiskLevel.MEDIUM),
            ("2.0", RiskLevel.MEDIUM),
            ("2.5", RiskLevel.HIGH),
        ],
    )
    def test_levels(self, spread: str, level: RiskLevel) -> None:
        assert classify_risk(Decimal(spread)) is level
