"""
Unit tests for symbol normalisation.
"""

from decimal import Decimal

import pytest

from crossarb.market.symbols import normalize_prices, normalize_symbol, split_pair


class TestNormalizeSymbol:
    """Tests for normalize_symbol."""

    @pytest.mark.parametrize("raw", ["BTCUSDT", "BTC-USDT", "BTC/USDT", "btc_usdt", " btcusdt "])
    def test_usdt_pairs(self, raw: str) -> None:
        assert normalize_symbol(raw) == "BTC"

    @pytest.mark.parametrize("raw", ["ETHBTC", "BTC-USDC", "USDT", ""])
    def test_other_quotes_rejected(self, raw: str) -> None:
        assert normalize_symbol(raw) is None

    def test_custom_quote(self) -> None:
        assert normalize_symbol("ETH-USDC", quote="USDC") == "ETH"
        assert normalize_symbol("ETHUSDT", quote="USDC") is None


class TestSplitPair:
    """Tests for split_pair."""

    @pytest.mark.parametrize("symbol", ["BTC", "btc", "BTCUSDT", "BTC-USDT", "BTC/USDT"])
    def test_forms(self, symbol: str) -> None:
        assert split_pair(symbol) == ("BTC", "USDT")


class TestNormalizePrices:
    """Tests for normalize_prices."""

    def test_binance_and_okx_keys_align(self) -> None:
        binance = normalize_prices({"BTCUSDT": Decimal("100"), "ETHBTC": Decimal("0.05")})
        okx = normalize_prices({"BTC-USDT": Decimal("101"), "ETH-BTC": Decimal("0.05")})

        assert binance == {"BTC": Decimal("100")}
        assert okx == {"BTC": Decimal("101")}

    def test_tracked_filter(self) -> None:
        prices = {"BTCUSDT": Decimal("1"), "ETHUSDT": Decimal("2"), "SOLUSDT": Decimal("3")}

        assert set(normalize_prices(prices, tracked=["btc", "SOL"])) == {"BTC", "SOL"}

    def test_non_positive_prices_dropped(self) -> None:
        assert normalize_prices({"BTCUSDT": Decimal("0")}) == {}
