"""
Unit tests for unattended execution.
"""

import asyncio
from datetime import UTC, datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from crossarb.config.settings import Settings
from crossarb.core.types import Opportunity, OrderSide, RiskLevel, Strategy, TradingMode
from crossarb.exchange.registry import AdapterRegistry
from crossarb.execution.auto import AutoExecutionConfig, AutoExecutor, in_funding_window
from crossarb.execution.orchestrator import ArbitrageOrchestrator
from crossarb.ledger.store import InMemoryTradeLedger
from crossarb.strategy.detector import OpportunityDetector
from tests.mocks.exchange import MockExchangeAdapter


QUIET_HOUR = datetime(2026, 3, 2, 11, 0, tzinfo=UTC)


def opportunity(
    symbol: str = "BTC",
    buy_exchange: str = "binance",
    sell_exchange: str = "okx",
    buy_price: str = "100",
    sell_price: str = "102",
    detected_at: datetime = QUIET_HOUR,
) -> Opportunity:
    buy, sell = Decimal(buy_price), Decimal(sell_price)
    return Opportunity(
        symbol=symbol,
        buy_exchange=buy_exchange,
        sell_exchange=sell_exchange,
        buy_price=buy,
        sell_price=sell,
        spread_pct=(sell - buy) / buy * 100,
        estimated_net_profit=Decimal("0.18"),
        risk_level=RiskLevel.LOW,
        detected_at=detected_at,
    )


def stub_executor(config: AutoExecutionConfig, opportunities: list[Opportunity]) -> AutoExecutor:
    detector = MagicMock()
    detector.opportunities = opportunities
    orchestrator = MagicMock()
    result = MagicMock(success=True)
    result.record.net_profit = Decimal("0.1")
    orchestrator.submit = AsyncMock(return_value=result)
    return AutoExecutor(detector, orchestrator, config)


class TestFundingWindow:
    """Cycles pause during the first half hour of each funding period."""

    @pytest.mark.parametrize(
        ("moment", "expected"),
        [
            (datetime(2026, 3, 2, 8, 0, tzinfo=UTC), True),
            (datetime(2026, 3, 2, 16, 30, tzinfo=UTC), True),
            (datetime(2026, 3, 2, 0, 31, tzinfo=UTC), False),
            (datetime(2026, 3, 2, 9, 10, tzinfo=UTC), False),
        ],
    )
    def test_window_bounds(self, moment: datetime, expected: bool) -> None:
        assert in_funding_window(moment) is expected

    def test_converts_to_utc(self) -> None:
        # 10:15 at UTC+2 is 08:15 UTC
        assert in_funding_window(datetime(2026, 3, 2, 10, 15, tzinfo=timezone(timedelta(hours=2))))


class TestSelection:
    """Tests for AutoExecutor.select."""

    def test_min_spread(self) -> None:
        executor = stub_executor(AutoExecutionConfig(min_spread_percentage=Decimal("3")), [])

        assert executor.select([opportunity()], QUIET_HOUR) == []

    def test_symbols_filter(self) -> None:
        executor = stub_executor(AutoExecutionConfig(symbols_filter=("ETH",)), [])
        candidates = [opportunity("BTC"), opportunity("ETH", buy_price="50", sell_price="51")]

        assert [o.symbol for o in executor.select(candidates, QUIET_HOUR)] == ["ETH"]

    def test_both_legs_must_be_enabled(self) -> None:
        executor = stub_executor(AutoExecutionConfig(exchanges_enabled=("binance", "okx")), [])
        candidates = [
            opportunity(sell_exchange="kraken"),
            opportunity(buy_exchange="okx", sell_exchange="binance"),
        ]

        selected = executor.select(candidates, QUIET_HOUR)

        assert [(o.buy_exchange, o.sell_exchange) for o in selected] == [("okx", "binance")]

    def test_min_profit_threshold(self) -> None:
        # 10 USDT across 2%: 0.2 gross, 0.02 fees, 0.10 transfer fee
        executor = stub_executor(AutoExecutionConfig(min_profit_threshold=Decimal("0.09")), [])

        assert executor.projected_profit(opportunity()) == Decimal("0.08")
        assert executor.select([opportunity()], QUIET_HOUR) == []

    def test_transfer_fee_can_eat_the_spread(self) -> None:
        executor = stub_executor(AutoExecutionConfig(), [])

        assert executor.select([opportunity(sell_price="100.5")], QUIET_HOUR) == []

    def test_hedged_skips_transfer_fee(self) -> None:
        executor = stub_executor(AutoExecutionConfig(strategy=Strategy.HEDGED), [])

        assert executor.projected_profit(opportunity()) == Decimal("0.18")

    def test_expired_skipped(self) -> None:
        executor = stub_executor(AutoExecutionConfig(), [])
        stale = opportunity(detected_at=QUIET_HOUR - timedelta(hours=1))

        assert executor.select([stale], QUIET_HOUR) == []

    def test_best_first_up_to_limit(self) -> None:
        executor = stub_executor(AutoExecutionConfig(max_concurrent_operations=2), [])
        candidates = [
            opportunity("BTC", sell_price="101.5"),
            opportunity("ETH", sell_price="103"),
            opportunity("SOL", sell_price="102"),
        ]

        assert [o.symbol for o in executor.select(candidates, QUIET_HOUR)] == ["ETH", "SOL"]


class TestRunOnce:
    """Tests for one auto-execution cycle."""

    @pytest.mark.asyncio
    async def test_submits_request_from_opportunity(self) -> None:
        config = AutoExecutionConfig(
            max_investment_amount=Decimal("25"),
            mode=TradingMode.REAL,
            fee_rate=0.001,
            max_slippage=0.5,
        )
        found = opportunity()
        executor = stub_executor(config, [found])

        results = await executor.run_once(QUIET_HOUR)

        request = executor._orchestrator.submit.await_args.args[0]  # type: ignore[attr-defined]
        assert len(results) == 1
        assert request.symbol == "BTC"
        assert request.buy_exchange == "binance"
        assert request.mode is TradingMode.REAL
        assert request.strategy is Strategy.TRANSFER
        assert request.expires_at == found.expiry
        assert request.config.investment_amount == Decimal("25")
        assert request.config.fee_rate == 0.001
        assert request.config.max_slippage == 0.5
        assert executor.executions == 1

    @pytest.mark.asyncio
    async def test_same_detection_submitted_once(self) -> None:
        executor = stub_executor(AutoExecutionConfig(), [opportunity()])

        await executor.run_once(QUIET_HOUR)
        assert await executor.run_once(QUIET_HOUR) == []

        assert executor._orchestrator.submit.await_count == 1  # type: ignore[attr-defined]

    @pytest.mark.asyncio
    async def test_new_detection_submitted_again(self) -> None:
        executor = stub_executor(AutoExecutionConfig(), [opportunity()])
        await executor.run_once(QUIET_HOUR)

        executor._detector.opportunities = [  # type: ignore[misc]
            opportunity(detected_at=QUIET_HOUR + timedelta(seconds=30))
        ]
        await executor.run_once(QUIET_HOUR + timedelta(seconds=30))

        assert executor._orchestrator.submit.await_count == 2  # type: ignore[attr-defined]

    @pytest.mark.asyncio
    async def test_paused_in_funding_window(self) -> None:
        funding = datetime(2026, 3, 2, 8, 10, tzinfo=UTC)
        executor = stub_executor(AutoExecutionConfig(), [opportunity(detected_at=funding)])

        assert await executor.run_once(funding) == []

        executor._orchestrator.submit.assert_not_awaited()  # type: ignore[attr-defined]

    @pytest.mark.asyncio
    async def test_funding_pause_can_be_disabled(self) -> None:
        funding = datetime(2026, 3, 2, 8, 10, tzinfo=UTC)
        executor = stub_executor(
            AutoExecutionConfig(skip_funding_windows=False), [opportunity(detected_at=funding)]
        )

        assert len(await executor.run_once(funding)) == 1

    @pytest.mark.asyncio
    async def test_executes_detected_spread_end_to_end(
        self,
        registry: AdapterRegistry,
        orchestrator: ArbitrageOrchestrator,
        ledger: InMemoryTradeLedger,
        binance: MockExchangeAdapter,
        okx: MockExchangeAdapter,
    ) -> None:
        detector = OpportunityDetector(registry)
        await detector.refresh()
        executor = AutoExecutor(
            detector,
            orchestrator,
            AutoExecutionConfig(mode=TradingMode.REAL, skip_funding_windows=False),
        )

        results = await executor.run_once()

        assert len(results) == 1
        assert results[0].success
        assert len(binance.orders(OrderSide.BUY)) == 1
        assert len(okx.orders(OrderSide.SELL)) == 1
        assert len(ledger) == 1


class TestLoop:
    """Tests for the background loop."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self) -> None:
        executor = stub_executor(
            AutoExecutionConfig(interval=0.01, skip_funding_windows=False),
            [opportunity(detected_at=datetime.now(UTC))],
        )

        await executor.start()
        assert executor.running
        await asyncio.sleep(0.05)
        await executor.stop()

        assert not executor.running
        assert executor._orchestrator.submit.await_count == 1  # type: ignore[attr-defined]

    @pytest.mark.asyncio
    async def test_failed_cycle_keeps_running(self) -> None:
        executor = stub_executor(
            AutoExecutionConfig(interval=0.01, skip_funding_windows=False),
            [opportunity(detected_at=datetime.now(UTC))],
        )
        executor._orchestrator.submit.side_effect = RuntimeError("boom")  # type: ignore[attr-defined]

        await executor.start()
        await asyncio.sleep(0.05)

        assert executor.running
        await executor.stop()


class TestFromSettings:
    def test_maps_settings(self) -> None:
        settings = Settings(
            _env_file=None,
            mode="real",
            auto_execute=True,
            auto_min_spread_pct=0.5,
            auto_max_investment=50.0,
            auto_symbols=[" btc ", "eth"],
            auto_exchanges=["Binance", "OKX"],
            auto_max_concurrent=3,
            auto_strategy="hedged",
            max_slippage=1.0,
        )

        config = AutoExecutionConfig.from_settings(settings)

        assert config.enabled
        assert config.mode is TradingMode.REAL
        assert config.strategy is Strategy.HEDGED
        assert config.min_spread_percentage == Decimal("0.5")
        assert config.max_investment_amount == Decimal("50.0")
        assert config.symbols_filter == ("BTC", "ETH")
        assert config.exchanges_enabled == ("binance", "okx")
        assert config.max_concurrent_operations == 3
        assert config.max_slippage == 1.0
