"""
Unit tests for decimal helpers and lot-size rounding.
"""

from decimal import Decimal

import pytest

from crossarb.core.types import SymbolRules
from crossarb.utils.math import format_decimal, round_step, safe_divide, to_decimal


class TestRoundStep:
    """Quantities are floored to the lot step, never rounded up."""

    def test_rounds_down(self) -> None:
        assert round_step(Decimal("0.123456"), Decimal("0.0001")) == Decimal("0.1234")

    def test_never_rounds_up(self) -> None:
        assert round_step(Decimal("0.99999"), Decimal("0.01")) == Decimal("0.99")

    def test_exact_multiple_unchanged(self) -> None:
        assert round_step(Decimal("1.5"), Decimal("0.5")) == Decimal("1.5")

    def test_float_drift_input(self) -> None:
        """0.1 + 0.2 as a float would floor to 0.2999; via str it stays exact."""
        assert round_step(to_decimal(0.3), Decimal("0.1")) == Decimal("0.3")

    def test_symbol_rules_match(self) -> None:
        rules = SymbolRules("BTCUSDT", "BTC", "USDT", step_size=Decimal("0.0001"), min_qty=Decimal("0.001"))

        assert rules.round_quantity(Decimal("0.123456")) == Decimal("0.1234")
        assert rules.is_valid_quantity(Decimal("0.1234"))
        assert not rules.is_valid_quantity(Decimal("0.0009"))


class TestToDecimal:
    """Tests for to_decimal."""

    def test_string(self) -> None:
        assert to_decimal("0.00010000") == Decimal("0.00010000")

    def test_float_via_str(self) -> None:
        assert to_decimal(0.1) == Decimal("0.1")

    def test_default_on_blank(self) -> None:
        assert to_decimal("", Decimal("0")) == Decimal("0")

    def test_invalid_raises(self) -> None:
        with pytest.raises(ValueError):
            to_decimal("abc")


class TestFormatting:
    """Tests for format_decimal and safe_divide."""

    @pytest.mark.parametrize(
        "value, text",
        [("0.00100000", "0.001"), ("50000.000", "50000"), ("1E-8", "0.00000001"), ("0", "0")],
    )
    def test_format_decimal(self, value: str, text: str) -> None:
        assert format_decimal(Decimal(value)) == text

    def test_safe_divide(self) -> None:
        assert safe_divide(Decimal("1"), Decimal("0")) == 0
        assert safe_divide(Decimal("1"), Decimal("4")) == Decimal("0.25")
