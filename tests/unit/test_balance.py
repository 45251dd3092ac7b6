"""
Unit tests for live capital resolution.
"""

from decimal import Decimal

import pytest

from crossarb.core.errors import ConfigurationError
from crossarb.exchange.registry import AdapterRegistry
from crossarb.execution.balance import BalanceResolver, CapitalAssessment
from tests.mocks.exchange import MockExchangeAdapter


class TestCapitalAssessment:
    """Tests for the capital rule."""

    def make(self, asset: str, quote: str, price: str = "100") -> CapitalAssessment:
        return CapitalAssessment(
            exchange="binance",
            asset="BTC",
            quote_asset="USDT",
            price=Decimal(price),
            asset_available=Decimal(asset),
            quote_available=Decimal(quote),
            safety_margin=Decimal("0.95"),
        )

    def test_quote_side_wins(self) -> None:
        assessment = self.make(asset="0.01", quote="100")

        assert assessment.capital == Decimal("95")

    def test_held_asset_wins(self) -> None:
        assessment = self.make(asset="1", quote="10")

        assert assessment.capital == Decimal("100")

    def test_nothing_available(self) -> None:
        assert self.make(asset="0", quote="0").capital == 0

    def test_holds(self) -> None:
        assessment = self.make(asset="0.1", quote="0")

        assert assessment.holds(Decimal("0.1"))
        assert not assessment.holds(Decimal("0.1001"))
        assert not assessment.holds(Decimal("0"))


class TestBalanceResolver:
    """Tests for BalanceResolver against a mock exchange."""

    @pytest.mark.asyncio
    async def test_resolve_from_quote(self, registry: AdapterRegistry) -> None:
        resolver = BalanceResolver(registry, safety_margin=0.95)

        capital = await resolver.resolve_available_capital("binance", "BTC", "USDT", Decimal("100"))

        assert capital == Decimal("950")

    @pytest.mark.asyncio
    async def test_live_balances_requeried(
        self,
        registry: AdapterRegistry,
        binance: MockExchangeAdapter,
    ) -> None:
        resolver = BalanceResolver(registry, safety_margin=0.95)
        await resolver.assess("binance", "BTC", "USDT", Decimal("100"))

        binance.balances["USDT"] = Decimal("0")
        binance.balances["BTC"] = Decimal("2")
        assessment = await resolver.assess("binance", "BTC", "USDT", Decimal("100"))

        assert assessment.capital == Decimal("200")
        assert len(binance.calls_named("get_balance")) == 4

    @pytest.mark.asyncio
    async def test_unknown_exchange(self, registry: AdapterRegistry) -> None:
        resolver = BalanceResolver(registry)

        with pytest.raises(ConfigurationError):
            await resolver.assess("kraken", "BTC", "USDT", Decimal("100"))
