"""
Pytest configuration and shared fixtures.

Provides reusable test fixtures for all test modules.
"""

from collections.abc import Callable
from decimal import Decimal

import pytest

from crossarb.config.settings import Settings
from crossarb.core.types import ExecutionConfig, ExecutionRequest, Strategy, TradingMode
from crossarb.exchange.registry import AdapterRegistry
from crossarb.execution.balance import BalanceResolver
from crossarb.execution.locks import CapitalLockRegistry
from crossarb.execution.orchestrator import ArbitrageOrchestrator, OrchestratorConfig
from crossarb.execution.transfer import TransferConfig, TransferCoordinator
from crossarb.ledger.store import InMemoryTradeLedger
from crossarb.telemetry.metrics import MetricsCollector
from tests.mocks.exchange import MockExchangeAdapter


# =============================================================================
# Settings Fixtures
# =============================================================================


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from any local .env file."""
    return Settings(_env_file=None, mode="simulation", tracked_symbols=["BTC", "ETH", "SOL"])


# =============================================================================
# Exchange Fixtures
# =============================================================================


@pytest.fixture
def binance() -> MockExchangeAdapter:
    """Buy side: quote funds, cheaper BTC."""
    return MockExchangeAdapter(
        "binance",
        balances={"USDT": 1000, "BTC": 0},
        prices={"BTC": 100, "ETH": 50},
    )


@pytest.fixture
def okx() -> MockExchangeAdapter:
    """Sell side: dearer BTC, OKX-style symbols."""
    return MockExchangeAdapter(
        "okx",
        balances={"USDT": 0, "BTC": 0},
        prices={"BTC": 102, "ETH": 50},
        symbol_format="{base}-{quote}",
    )


@pytest.fixture
def registry(binance: MockExchangeAdapter, okx: MockExchangeAdapter) -> AdapterRegistry:
    """Registry with both mock exchanges; withdrawals from Binance land on OKX."""
    binance.deliver_to = okx
    okx.deliver_to = binance
    return AdapterRegistry([binance, okx])


# =============================================================================
# Execution Fixtures
# =============================================================================


@pytest.fixture
def transfer_config() -> TransferConfig:
    """Fast polling with a short confirmation timeout."""
    return TransferConfig(poll_interval=0.01, timeouts={}, default_timeout=0.1)


@pytest.fixture
def ledger() -> InMemoryTradeLedger:
    return InMemoryTradeLedger()


@pytest.fixture
def metrics() -> MetricsCollector:
    return MetricsCollector()


@pytest.fixture
def orchestrator(
    registry: AdapterRegistry,
    ledger: InMemoryTradeLedger,
    transfer_config: TransferConfig,
    metrics: MetricsCollector,
) -> ArbitrageOrchestrator:
    """Orchestrator wired to the mock exchanges."""
    return ArbitrageOrchestrator(
        registry=registry,
        ledger=ledger,
        resolver=BalanceResolver(registry, safety_margin=0.95),
        transfers=TransferCoordinator(registry, transfer_config),
        locks=CapitalLockRegistry(policy="reject"),
        config=OrchestratorConfig(),
        metrics=metrics,
    )


@pytest.fixture
def make_request() -> Callable[..., ExecutionRequest]:
    """Factory for BTC requests buying on Binance at 100 and selling on OKX at 102."""

    def _make(
        mode: TradingMode = TradingMode.REAL,
        strategy: Strategy = Strategy.TRANSFER,
        buy_price: str = "100",
        sell_price: str = "102",
        investment: str | None = "10",
        **config: object,
    ) -> ExecutionRequest:
        return ExecutionRequest(
            symbol="BTC",
            buy_exchange="binance",
            sell_exchange="okx",
            buy_price=Decimal(buy_price),
            sell_price=Decimal(sell_price),
            mode=mode,
            strategy=strategy,
            config=ExecutionConfig(
                investment_amount=Decimal(investment) if investment else None,
                **config,  # type: ignore[arg-type]
            ),
        )

    return _make
