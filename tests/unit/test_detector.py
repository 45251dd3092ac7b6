"""
Unit tests for the opportunity detector.
"""

import asyncio
from decimal import Decimal

import pytest

from crossarb.core.errors import TransientNetworkError
from crossarb.core.types import RiskLevel
from crossarb.exchange.registry import AdapterRegistry
from crossarb.strategy.detector import (
    DetectorConfig,
    DetectorState,
    OpportunityDetector,
    find_opportunities,
)
from crossarb.telemetry.metrics import MetricsCollector
from tests.mocks.exchange import MockExchangeAdapter


def prices(**values: str) -> dict[str, Decimal]:
    return {symbol: Decimal(v) for symbol, v in values.items()}


class TestFindOpportunities:
    """Tests for the pure comparison step."""

    @pytest.fixture
    def config(self) -> DetectorConfig:
        return DetectorConfig()

    def test_single_direction(self, config: DetectorConfig) -> None:
        found = find_opportunities(
            {"binance": prices(BTC="100"), "okx": prices(BTC="101")},
            config,
        )

        assert len(found) == 1
        opp = found[0]
        assert (opp.buy_exchange, opp.sell_exchange) == ("binance", "okx")
        assert opp.spread_pct == Decimal("1")
        assert opp.estimated_net_profit == Decimal("0.08")
        assert opp.risk_level is RiskLevel.LOW

    def test_reverse_direction(self, config: DetectorConfig) -> None:
        found = find_opportunities(
            {"binance": prices(BTC="101"), "okx": prices(BTC="100")},
            config,
        )

        assert [(o.buy_exchange, o.sell_exchange) for o in found] == [("okx", "binance")]

    def test_only_common_symbols(self, config: DetectorConfig) -> None:
        found = find_opportunities(
            {"binance": prices(BTC="100", ETH="50"), "okx": prices(BTC="101", SOL="20")},
            config,
        )

        assert [o.symbol for o in found] == ["BTC"]

    def test_spread_outside_window_dropped(self, config: DetectorConfig) -> None:
        found = find_opportunities(
            {
                "binance": prices(BTC="100", ETH="100"),
                "okx": prices(BTC="100.05", ETH="110"),
            },
            config,
        )

        assert found == []

    def test_min_net_profit_filter(self) -> None:
        config = DetectorConfig(min_net_profit=Decimal("1"))

        found = find_opportunities({"binance": prices(BTC="100"), "okx": prices(BTC="102")}, config)

        assert found == []

    def test_sorted_best_first_and_truncated(self) -> None:
        config = DetectorConfig(max_opportunities=2)

        found = find_opportunities(
            {
                "binance": prices(BTC="100", ETH="100", SOL="100"),
                "okx": prices(BTC="101", ETH="103", SOL="102"),
            },
            config,
        )

        assert [o.symbol for o in found] == ["ETH", "SOL"]
        assert found[0].risk_level is RiskLevel.HIGH

    def test_expiry_set_from_detection_time(self, config: DetectorConfig) -> None:
        found = find_opportunities({"binance": prices(BTC="100"), "okx": prices(BTC="101")}, config)

        assert found[0].expires_at is not None
        assert found[0].expires_at > found[0].detected_at

    def test_expiry_drives_staleness(self, config: DetectorConfig) -> None:
        opportunity = find_opportunities({"binance": prices(BTC="100"), "okx": prices(BTC="101")}, config)[0]

        assert not opportunity.is_expired(opportunity.detected_at)
        assert opportunity.is_expired(opportunity.expiry)
        assert opportunity.to_dict()["expiresAt"] == opportunity.expiry.isoformat()


class TestOpportunityDetector:
    """Tests for the fetch and publish cycle."""

    @pytest.fixture
    def config(self) -> DetectorConfig:
        return DetectorConfig(fetch_timeout=0.05, scan_interval=0.01, tracked_symbols=("BTC", "ETH"))

    @pytest.mark.asyncio
    async def test_refresh_publishes(
        self,
        registry: AdapterRegistry,
        config: DetectorConfig,
        metrics: MetricsCollector,
    ) -> None:
        detector = OpportunityDetector(registry, config, metrics)
        assert detector.state is DetectorState.IDLE

        found = await detector.refresh()

        assert [(o.symbol, o.buy_exchange, o.sell_exchange) for o in found] == [("BTC", "binance", "okx")]
        assert detector.state is DetectorState.PUBLISHED
        assert detector.last_updated is not None
        assert detector.opportunities == found
        assert metrics.trading_stats.scans == 1
        assert metrics.trading_stats.opportunities_found == 1
        assert metrics.trading_stats.best_spread_pct == pytest.approx(2.0)

    @pytest.mark.asyncio
    async def test_opportunities_is_a_copy(self, registry: AdapterRegistry, config: DetectorConfig) -> None:
        detector = OpportunityDetector(registry, config)
        await detector.refresh()

        detector.opportunities.clear()

        assert len(detector.opportunities) == 1

    @pytest.mark.asyncio
    async def test_slow_exchange_contributes_nothing(
        self,
        registry: AdapterRegistry,
        okx: MockExchangeAdapter,
        config: DetectorConfig,
        metrics: MetricsCollector,
    ) -> None:
        okx.price_delay = 1.0

        found = await OpportunityDetector(registry, config, metrics).refresh()

        assert found == []
        assert metrics.trading_stats.scan_failures == 1

    @pytest.mark.asyncio
    async def test_failing_exchange_contributes_nothing(
        self,
        registry: AdapterRegistry,
        binance: MockExchangeAdapter,
        config: DetectorConfig,
        metrics: MetricsCollector,
    ) -> None:
        binance.price_error = TransientNetworkError("binance: 503", status=503)

        found = await OpportunityDetector(registry, config, metrics).refresh()

        assert found == []
        assert metrics.trading_stats.scans == 1

    @pytest.mark.asyncio
    async def test_tracked_symbols_filter(self, registry: AdapterRegistry, okx: MockExchangeAdapter) -> None:
        okx.prices["ETH"] = Decimal("51")
        detector = OpportunityDetector(registry, DetectorConfig(tracked_symbols=("ETH",)))

        found = await detector.refresh()

        assert [o.symbol for o in found] == ["ETH"]

    @pytest.mark.asyncio
    async def test_start_and_stop(self, registry: AdapterRegistry, config: DetectorConfig) -> None:
        detector = OpportunityDetector(registry, config)

        await detector.start()
        await asyncio.sleep(0.05)
        assert detector.running
        assert detector.opportunities

        await detector.stop()
        assert not detector.running
        assert detector.state is DetectorState.IDLE
