"""
Integration tests for the execution saga against mock exchanges.

Each test drives ArbitrageOrchestrator end to end: capital lookup,
orders, withdrawal, deposit confirmation and ledger persistence.
"""

import asyncio
import dataclasses
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from crossarb.core.errors import (
    AllowlistBlockedError,
    OrderRejectedError,
    TransientNetworkError,
    WithdrawalUnconfirmedError,
)
from crossarb.core.types import (
    ExecutionRequest,
    OrderSide,
    Strategy,
    TradeRecord,
    TradeStatus,
    TradingMode,
)
from crossarb.exchange.registry import AdapterRegistry
from crossarb.execution.balance import BalanceResolver
from crossarb.execution.locks import CapitalLockRegistry
from crossarb.execution.orchestrator import ArbitrageOrchestrator, OrchestratorConfig
from crossarb.execution.transfer import TransferConfig, TransferCoordinator
from crossarb.ledger.store import InMemoryTradeLedger
from crossarb.telemetry.metrics import MetricsCollector
from tests.mocks.exchange import MockExchangeAdapter


RequestFactory = Callable[..., ExecutionRequest]


class FailingLedger:
    """Ledger whose storage is unavailable."""

    async def insert(self, record: TradeRecord) -> None:
        raise OSError("disk full")

    async def list_records(self, limit: int | None = None) -> list[TradeRecord]:
        return []


def build(
    registry: AdapterRegistry,
    transfer_config: TransferConfig,
    ledger: object | None = None,
    locks: CapitalLockRegistry | None = None,
    metrics: MetricsCollector | None = None,
) -> ArbitrageOrchestrator:
    return ArbitrageOrchestrator(
        registry=registry,
        ledger=ledger or InMemoryTradeLedger(),  # type: ignore[arg-type]
        resolver=BalanceResolver(registry, safety_margin=0.95),
        transfers=TransferCoordinator(registry, transfer_config),
        locks=locks,
        config=OrchestratorConfig(),
        metrics=metrics,
    )


# =============================================================================
# Transfer Strategy
# =============================================================================


class TestTransferStrategy:
    """Buy, withdraw on-chain, sell."""

    @pytest.mark.asyncio
    async def test_full_success(
        self,
        orchestrator: ArbitrageOrchestrator,
        make_request: RequestFactory,
        ledger: InMemoryTradeLedger,
        binance: MockExchangeAdapter,
        okx: MockExchangeAdapter,
    ) -> None:
        result = await orchestrator.execute(make_request())

        record = result.record
        assert result.success
        assert result.saga_trace == ("validating", "buying", "transferring", "selling", "settled_success")
        assert record.status is TradeStatus.COMPLETED
        assert record.invested_amount == Decimal("10")
        assert record.quantity == Decimal("0.1")
        assert record.gross_profit == Decimal("0.2")
        assert record.fees == Decimal("0.04")
        assert record.net_profit == Decimal("0.16")
        assert record.roi_percent == Decimal("1.6")
        assert record.error_message is None

        assert result.transfer is not None
        assert result.transfer.network == "BTC"
        assert binance.balances["USDT"] == Decimal("990")
        assert okx.balances["USDT"] == Decimal("10.2")
        assert okx.balances["BTC"] == 0
        assert await ledger.list_records() == [record]

    @pytest.mark.asyncio
    async def test_withdrawal_fee_counted(
        self,
        orchestrator: ArbitrageOrchestrator,
        make_request: RequestFactory,
        binance: MockExchangeAdapter,
        okx: MockExchangeAdapter,
    ) -> None:
        binance.withdrawal_fee = Decimal("0.0001")

        result = await orchestrator.execute(make_request())

        assert result.success
        assert okx.orders(OrderSide.SELL)[0][3] == Decimal("0.0999")
        assert result.record.gross_profit == Decimal("0.1998")
        assert result.record.fees == Decimal("0.05")
        assert result.record.net_profit == Decimal("0.1498")

    @pytest.mark.asyncio
    async def test_skip_buy_when_asset_held(
        self,
        orchestrator: ArbitrageOrchestrator,
        make_request: RequestFactory,
        binance: MockExchangeAdapter,
    ) -> None:
        binance.balances = {"USDT": Decimal("0"), "BTC": Decimal("1")}

        result = await orchestrator.execute(make_request())

        assert result.success
        assert result.skipped_buy
        assert binance.orders(OrderSide.BUY) == []
        assert result.saga_trace[:3] == ("validating", "skip_buy", "transferring")
        assert binance.balances["BTC"] == Decimal("0.9")
        assert result.record.fees == Decimal("0.02")
        assert result.record.net_profit == Decimal("0.18")

    @pytest.mark.asyncio
    async def test_buys_when_holding_falls_short(
        self,
        orchestrator: ArbitrageOrchestrator,
        make_request: RequestFactory,
        binance: MockExchangeAdapter,
    ) -> None:
        binance.balances["BTC"] = Decimal("0.0999")

        result = await orchestrator.execute(make_request())

        assert result.success
        assert not result.skipped_buy
        assert len(binance.orders(OrderSide.BUY)) == 1

    @pytest.mark.asyncio
    async def test_unconfirmed_withdrawal_not_sold(
        self,
        orchestrator: ArbitrageOrchestrator,
        make_request: RequestFactory,
        binance: MockExchangeAdapter,
        okx: MockExchangeAdapter,
    ) -> None:
        binance.withdraw_error = WithdrawalUnconfirmedError("binance: withdrawal xarbwd1 failed in transit")

        result = await orchestrator.execute(make_request())

        assert not result.success
        assert result.error_kind == "withdrawal_unconfirmed"
        assert "reconcile" in result.record.error_message
        assert okx.orders(OrderSide.SELL) == []
        assert len(binance.calls_named("withdraw")) == 1

    @pytest.mark.asyncio
    async def test_investment_capped_by_capital(
        self,
        orchestrator: ArbitrageOrchestrator,
        make_request: RequestFactory,
        binance: MockExchangeAdapter,
    ) -> None:
        binance.balances["USDT"] = Decimal("8")

        result = await orchestrator.execute(make_request(investment="10"))

        assert result.success
        assert binance.orders(OrderSide.BUY)[0][4] == Decimal("7.6")

    @pytest.mark.asyncio
    async def test_no_capital(
        self,
        orchestrator: ArbitrageOrchestrator,
        make_request: RequestFactory,
        binance: MockExchangeAdapter,
    ) -> None:
        binance.balances = {"USDT": Decimal("0"), "BTC": Decimal("0")}

        result = await orchestrator.execute(make_request())

        assert not result.success
        assert result.error_kind == "insufficient_balance"
        assert binance.calls_named("place_market_order") == []
        assert binance.calls_named("withdraw") == []
        assert result.saga_trace == ("validating", "settled_failed")
        assert result.record.net_profit == 0

    @pytest.mark.asyncio
    async def test_allowlist_block_stops_before_sell(
        self,
        orchestrator: ArbitrageOrchestrator,
        make_request: RequestFactory,
        binance: MockExchangeAdapter,
        okx: MockExchangeAdapter,
    ) -> None:
        binance.withdraw_error = AllowlistBlockedError("binance", "address not in whitelist")

        result = await orchestrator.execute(make_request())

        assert not result.success
        assert result.error_kind == "allowlist_blocked"
        assert "binance withdrawal allow-list" in result.record.error_message
        assert result.saga_trace[-2:] == ("transferring", "settled_failed")
        assert okx.orders(OrderSide.SELL) == []
        # No compensating sell; the asset stays where it was bought
        assert binance.orders(OrderSide.SELL) == []
        assert binance.balances["BTC"] == Decimal("0.1")

    @pytest.mark.asyncio
    async def test_transfer_timeout_not_success(
        self,
        orchestrator: ArbitrageOrchestrator,
        make_request: RequestFactory,
        binance: MockExchangeAdapter,
        okx: MockExchangeAdapter,
    ) -> None:
        binance.deliver_to = None

        result = await orchestrator.execute(make_request())

        assert not result.success
        assert result.error_kind == "transfer_timeout"
        assert "reconcile" in result.record.error_message
        assert okx.orders(OrderSide.SELL) == []

    @pytest.mark.asyncio
    async def test_unmapped_preferred_network(
        self,
        orchestrator: ArbitrageOrchestrator,
        make_request: RequestFactory,
        binance: MockExchangeAdapter,
    ) -> None:
        result = await orchestrator.execute(make_request(preferred_network="POLYGON"))

        assert result.error_kind == "configuration"
        assert binance.calls_named("withdraw") == []

    @pytest.mark.asyncio
    async def test_stale_live_spread(
        self,
        orchestrator: ArbitrageOrchestrator,
        make_request: RequestFactory,
        binance: MockExchangeAdapter,
        okx: MockExchangeAdapter,
    ) -> None:
        okx.prices["BTC"] = Decimal("100.5")

        result = await orchestrator.execute(make_request())

        assert result.error_kind == "stale_opportunity"
        assert binance.calls_named("place_market_order") == []

    @pytest.mark.asyncio
    async def test_live_prices_unavailable_uses_request(
        self,
        orchestrator: ArbitrageOrchestrator,
        make_request: RequestFactory,
        binance: MockExchangeAdapter,
    ) -> None:
        binance.price_error = TransientNetworkError("binance unavailable (HTTP 503)", status=503)

        result = await orchestrator.execute(make_request())

        assert result.success

    @pytest.mark.asyncio
    async def test_missing_credentials(
        self,
        orchestrator: ArbitrageOrchestrator,
        make_request: RequestFactory,
        binance: MockExchangeAdapter,
        okx: MockExchangeAdapter,
    ) -> None:
        okx.credentials = False

        result = await orchestrator.execute(make_request())

        assert result.error_kind == "authentication"
        assert "okx" in result.record.error_message
        assert binance.calls == []

    @pytest.mark.asyncio
    async def test_unknown_exchange(
        self,
        orchestrator: ArbitrageOrchestrator,
        make_request: RequestFactory,
        ledger: InMemoryTradeLedger,
    ) -> None:
        request = dataclasses.replace(make_request(), buy_exchange="kraken")

        result = await orchestrator.execute(request)

        assert result.error_kind == "configuration"
        assert len(ledger) == 1

    @pytest.mark.asyncio
    async def test_unexpected_error_is_recorded(
        self,
        orchestrator: ArbitrageOrchestrator,
        make_request: RequestFactory,
        binance: MockExchangeAdapter,
    ) -> None:
        binance.order_errors[OrderSide.BUY] = RuntimeError("socket exploded")

        result = await orchestrator.execute(make_request())

        assert result.error_kind == "unexpected"
        assert result.record.error_message == "unexpected error: RuntimeError"


# =============================================================================
# Simulation
# =============================================================================


class TestSimulation:
    """Simulated executions use request prices and touch no exchange."""

    @pytest.mark.asyncio
    async def test_transfer_simulation(
        self,
        orchestrator: ArbitrageOrchestrator,
        make_request: RequestFactory,
        binance: MockExchangeAdapter,
        okx: MockExchangeAdapter,
    ) -> None:
        result = await orchestrator.execute(make_request(mode=TradingMode.SIMULATION))

        assert result.success
        assert result.record.mode is TradingMode.SIMULATION
        assert result.record.gross_profit == Decimal("0.2")
        assert result.record.fees == Decimal("0.12")
        assert result.record.net_profit == Decimal("0.08")
        assert binance.calls == []
        assert okx.calls == []

    @pytest.mark.asyncio
    async def test_default_investment(
        self,
        orchestrator: ArbitrageOrchestrator,
        make_request: RequestFactory,
    ) -> None:
        result = await orchestrator.execute(make_request(mode=TradingMode.SIMULATION, investment=None))

        assert result.record.invested_amount == Decimal("10")

    @pytest.mark.asyncio
    async def test_hedged_simulation(
        self,
        orchestrator: ArbitrageOrchestrator,
        make_request: RequestFactory,
    ) -> None:
        result = await orchestrator.submit(make_request(mode=TradingMode.SIMULATION, strategy=Strategy.HEDGED))

        assert result.saga_trace == ("validating", "buying", "hedging", "settled_success")
        assert result.record.net_profit == Decimal("0.18")

    @pytest.mark.asyncio
    async def test_expired_request(
        self,
        orchestrator: ArbitrageOrchestrator,
        make_request: RequestFactory,
    ) -> None:
        expired = datetime.now(UTC) - timedelta(seconds=1)
        request = dataclasses.replace(make_request(mode=TradingMode.SIMULATION), expires_at=expired)

        result = await orchestrator.execute(request)

        assert result.error_kind == "stale_opportunity"

    @pytest.mark.asyncio
    async def test_stop_loss(
        self,
        orchestrator: ArbitrageOrchestrator,
        make_request: RequestFactory,
    ) -> None:
        request = make_request(mode=TradingMode.SIMULATION, sell_price="100.1", stop_loss=0.1)

        result = await orchestrator.execute(request)

        assert result.error_kind == "stale_opportunity"
        assert "stop loss" in result.record.error_message

    @pytest.mark.asyncio
    async def test_no_positive_spread(
        self,
        orchestrator: ArbitrageOrchestrator,
        make_request: RequestFactory,
    ) -> None:
        result = await orchestrator.execute(
            make_request(mode=TradingMode.SIMULATION, buy_price="102", sell_price="100")
        )

        assert result.error_kind == "stale_opportunity"


# =============================================================================
# Hedged Strategy
# =============================================================================


class TestHedgedStrategy:
    """Buy and sell from inventory on both sides."""

    @pytest.fixture(autouse=True)
    def okx_inventory(self, okx: MockExchangeAdapter) -> None:
        okx.balances["BTC"] = Decimal("1")

    @pytest.mark.asyncio
    async def test_sells_on_requested_venue(
        self,
        orchestrator: ArbitrageOrchestrator,
        make_request: RequestFactory,
        binance: MockExchangeAdapter,
    ) -> None:
        result = await orchestrator.execute_hedged(make_request(strategy=Strategy.HEDGED))

        assert result.success
        assert result.venue == "okx"
        assert result.saga_trace == ("validating", "buying", "hedging", "settled_success")
        assert result.record.net_profit == Decimal("0.16")
        assert binance.calls_named("withdraw") == []

    @pytest.mark.asyncio
    async def test_falls_back_to_next_venue(
        self,
        orchestrator: ArbitrageOrchestrator,
        registry: AdapterRegistry,
        make_request: RequestFactory,
        okx: MockExchangeAdapter,
    ) -> None:
        bybit = MockExchangeAdapter("bybit", balances={"BTC": "1"}, prices={"BTC": "101.5"})
        registry.register(bybit)
        okx.order_errors[OrderSide.SELL] = OrderRejectedError("okx: order size invalid", param="quantity")

        result = await orchestrator.submit(
            make_request(strategy=Strategy.HEDGED, fallback_exchanges=("bybit",))
        )

        assert result.success
        assert result.venue == "bybit"
        assert result.record.sell_exchange == "bybit"
        assert result.record.gross_profit == Decimal("0.15")
        assert result.to_response()["executionDetails"]["sellExchange"] == "bybit"

    @pytest.mark.asyncio
    async def test_rolls_back_when_all_venues_fail(
        self,
        orchestrator: ArbitrageOrchestrator,
        make_request: RequestFactory,
        binance: MockExchangeAdapter,
        okx: MockExchangeAdapter,
    ) -> None:
        okx.order_errors[OrderSide.SELL] = OrderRejectedError("okx: order size invalid", param="quantity")

        result = await orchestrator.submit(make_request(strategy=Strategy.HEDGED))

        assert not result.success
        assert result.rolled_back
        assert result.error_kind == "order_rejected"
        assert result.saga_trace[-3:] == ("hedging", "rolling_back", "settled_failed")
        assert "buy leg reversed" in result.record.error_message
        assert len(binance.orders(OrderSide.SELL)) == 1
        assert binance.balances["BTC"] == 0

    @pytest.mark.asyncio
    async def test_failed_rollback_reported(
        self,
        orchestrator: ArbitrageOrchestrator,
        make_request: RequestFactory,
        binance: MockExchangeAdapter,
        okx: MockExchangeAdapter,
    ) -> None:
        okx.order_errors[OrderSide.SELL] = OrderRejectedError("okx: order size invalid", param="quantity")
        binance.order_errors[OrderSide.SELL] = TransientNetworkError("binance: 503", status=503)

        result = await orchestrator.submit(make_request(strategy=Strategy.HEDGED))

        assert not result.rolled_back
        assert "NOT reversed" in result.record.error_message


# =============================================================================
# Ledger & Concurrency
# =============================================================================


class TestLedgerAndConcurrency:
    """One record per attempt; claimed capital is never spent twice."""

    @pytest.mark.asyncio
    async def test_one_record_per_attempt(
        self,
        orchestrator: ArbitrageOrchestrator,
        make_request: RequestFactory,
        ledger: InMemoryTradeLedger,
        okx: MockExchangeAdapter,
    ) -> None:
        await orchestrator.execute(make_request())
        okx.credentials = False
        await orchestrator.execute(make_request())
        await orchestrator.execute(make_request(mode=TradingMode.SIMULATION))

        records = await ledger.list_records()
        assert len(records) == 3
        assert [r.status for r in records] == [
            TradeStatus.COMPLETED,
            TradeStatus.FAILED,
            TradeStatus.COMPLETED,
        ]
        assert len({r.id for r in records}) == 3

    @pytest.mark.asyncio
    async def test_ledger_failure_does_not_undo_trade(
        self,
        registry: AdapterRegistry,
        transfer_config: TransferConfig,
        make_request: RequestFactory,
    ) -> None:
        orchestrator = build(registry, transfer_config, ledger=FailingLedger())

        result = await orchestrator.execute(make_request())

        assert result.success
        assert result.record.net_profit == Decimal("0.16")

    @pytest.mark.asyncio
    async def test_claimed_capital_rejected(
        self,
        registry: AdapterRegistry,
        transfer_config: TransferConfig,
        make_request: RequestFactory,
        binance: MockExchangeAdapter,
    ) -> None:
        locks = CapitalLockRegistry("reject")
        metrics = MetricsCollector()
        orchestrator = build(registry, transfer_config, locks=locks, metrics=metrics)

        async with locks.claim([("binance", "USDT")]):
            result = await orchestrator.execute(make_request())

        assert result.error_kind == "execution_in_progress"
        assert binance.calls == []
        assert metrics.trading_stats.rejected_in_progress == 1

    @pytest.mark.asyncio
    async def test_concurrent_requests_on_same_capital(
        self,
        orchestrator: ArbitrageOrchestrator,
        make_request: RequestFactory,
        ledger: InMemoryTradeLedger,
        binance: MockExchangeAdapter,
    ) -> None:
        # Slow transfer keeps the first execution inside its claim
        binance.deliver_to = None

        first, second = await asyncio.gather(
            orchestrator.execute(make_request()),
            orchestrator.execute(make_request()),
        )

        assert first.error_kind == "transfer_timeout"
        assert second.error_kind == "execution_in_progress"
        assert len(binance.orders(OrderSide.BUY)) == 1
        assert len(ledger) == 2
