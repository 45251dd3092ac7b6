"""
FastAPI server exposing the orchestrator and the opportunity feed.

Expected business failures (insufficient balance, allow-list block,
stale spread...) are returned with HTTP 200 and ``success: false``;
only unexpected internal errors produce a 500.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from crossarb import __version__
from crossarb.config.constants import EXCHANGE_BINANCE, EXCHANGE_OKX
from crossarb.config.settings import Settings, get_settings
from crossarb.core.errors import describe_failure
from crossarb.core.types import (
    ExecutionConfig,
    ExecutionRequest,
    Strategy,
    TradingMode,
)
from crossarb.exchange.registry import AdapterRegistry, ExchangeCredentials
from crossarb.execution.auto import AutoExecutionConfig, AutoExecutor
from crossarb.execution.balance import BalanceResolver
from crossarb.execution.locks import CapitalLockRegistry
from crossarb.execution.orchestrator import ArbitrageOrchestrator, OrchestratorConfig
from crossarb.execution.transfer import TransferConfig, TransferCoordinator
from crossarb.ledger.store import InMemoryTradeLedger, JsonlTradeLedger, TradeLedger
from crossarb.strategy.detector import DetectorConfig, OpportunityDetector
from crossarb.telemetry.metrics import MetricsCollector


logger = logging.getLogger(__name__)


# =============================================================================
# Request Models
# =============================================================================


class CredentialsBody(BaseModel):
    """Per-request exchange credentials. Never stored or logged."""

    api_key: str = Field(alias="apiKey", min_length=1)
    api_secret: str = Field(alias="apiSecret", min_length=1, repr=False)
    passphrase: str | None = Field(default=None, repr=False)

    model_config = {"populate_by_name": True}

    def to_credentials(self) -> ExchangeCredentials:
        return ExchangeCredentials(
            api_key=self.api_key,
            api_secret=self.api_secret,
            passphrase=self.passphrase,
        )


class ExecutionConfigBody(BaseModel):
    """Execution parameters; omitted values fall back to settings."""

    max_slippage: float | None = Field(default=None, alias="maxSlippage", ge=0.0)
    fee_rate: float | None = Field(default=None, alias="feeRate", ge=0.0, le=0.02)
    stop_loss: float | None = Field(default=None, alias="stopLoss", ge=0.0)
    preferred_network: str | None = Field(default=None, alias="preferredNetwork")
    investment_amount: Decimal | None = Field(default=None, alias="investmentAmount", gt=0)
    fallback_exchanges: list[str] = Field(default_factory=list, alias="fallbackExchanges")

    model_config = {"populate_by_name": True}


class ExecuteBody(BaseModel):
    """Body of POST /api/execute."""

    symbol: str = Field(min_length=1)
    buy_exchange: str = Field(alias="buyExchange", min_length=1)
    sell_exchange: str = Field(alias="sellExchange", min_length=1)
    buy_price: Decimal = Field(alias="buyPrice", gt=0)
    sell_price: Decimal = Field(alias="sellPrice", gt=0)
    mode: TradingMode | None = None
    strategy: Strategy = Strategy.TRANSFER
    expires_at: datetime | None = Field(default=None, alias="expiresAt")
    config: ExecutionConfigBody = Field(default_factory=ExecutionConfigBody)
    credentials: dict[str, CredentialsBody] | None = None

    model_config = {"populate_by_name": True}

    def to_request(self, settings: Settings) -> ExecutionRequest:
        network = self.config.preferred_network
        expires_at = self.expires_at
        if expires_at is not None and expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=UTC)
        return ExecutionRequest(
            symbol=self.symbol.upper(),
            buy_exchange=self.buy_exchange.lower(),
            sell_exchange=self.sell_exchange.lower(),
            buy_price=self.buy_price,
            sell_price=self.sell_price,
            mode=self.mode or TradingMode(settings.mode),
            strategy=self.strategy,
            expires_at=expires_at,
            config=ExecutionConfig(
                max_slippage=(
                    self.config.max_slippage if self.config.max_slippage is not None else settings.max_slippage
                ),
                fee_rate=self.config.fee_rate if self.config.fee_rate is not None else settings.fee_rate,
                stop_loss=self.config.stop_loss,
                preferred_network=network.upper() if network else None,
                investment_amount=self.config.investment_amount,
                fallback_exchanges=tuple(e.lower() for e in self.config.fallback_exchanges),
            ),
        )


# =============================================================================
# Service Wiring
# =============================================================================


@dataclass
class ServiceState:
    """Long-lived components shared by all requests."""

    settings: Settings
    registry: AdapterRegistry
    ledger: TradeLedger
    metrics: MetricsCollector
    locks: CapitalLockRegistry
    detector: OpportunityDetector
    orchestrator: ArbitrageOrchestrator
    auto_executor: AutoExecutor

    def orchestrator_for(self, registry: AdapterRegistry) -> ArbitrageOrchestrator:
        """Orchestrator bound to another registry, sharing ledger, locks and metrics."""
        return build_orchestrator(self.settings, registry, self.ledger, self.locks, self.metrics)


def build_orchestrator(
    settings: Settings,
    registry: AdapterRegistry,
    ledger: TradeLedger,
    locks: CapitalLockRegistry,
    metrics: MetricsCollector | None = None,
) -> ArbitrageOrchestrator:
    return ArbitrageOrchestrator(
        registry=registry,
        ledger=ledger,
        resolver=BalanceResolver(registry, settings.capital_safety_margin),
        transfers=TransferCoordinator(registry, TransferConfig.from_settings(settings)),
        locks=locks,
        config=OrchestratorConfig.from_settings(settings),
        metrics=metrics,
    )


def build_service(
    settings: Settings,
    registry: AdapterRegistry | None = None,
    ledger: TradeLedger | None = None,
) -> ServiceState:
    """Wire every component from settings."""
    registry = registry or AdapterRegistry.from_settings(settings)
    if ledger is None:
        ledger = JsonlTradeLedger(settings.ledger_path) if settings.ledger_path else InMemoryTradeLedger()
    metrics = MetricsCollector()
    locks = CapitalLockRegistry(policy=settings.lock_policy)
    detector = OpportunityDetector(registry, DetectorConfig.from_settings(settings), metrics)
    orchestrator = build_orchestrator(settings, registry, ledger, locks, metrics)

    return ServiceState(
        settings=settings,
        registry=registry,
        ledger=ledger,
        metrics=metrics,
        locks=locks,
        detector=detector,
        orchestrator=orchestrator,
        auto_executor=AutoExecutor(detector, orchestrator, AutoExecutionConfig.from_settings(settings)),
    )


# =============================================================================
# Handlers
# =============================================================================


def _service(request: Request) -> ServiceState:
    return request.app.state.service  # type: ignore[no-any-return]


async def execute_arbitrage(body: ExecuteBody, request: Request) -> JSONResponse:
    service = _service(request)
    execution = body.to_request(service.settings)

    try:
        if body.credentials:
            creds = {name.lower(): c.to_credentials() for name, c in body.credentials.items()}
            registry = AdapterRegistry.from_credentials(
                binance=creds.get(EXCHANGE_BINANCE),
                okx=creds.get(EXCHANGE_OKX),
            )
            try:
                result = await service.orchestrator_for(registry).submit(execution)
            finally:
                await registry.close()
        else:
            result = await service.orchestrator.submit(execution)
    except Exception as e:
        logger.error(f"Execute endpoint error: {e!r}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"success": False, "errorMessage": describe_failure(e)},
        )

    return JSONResponse(content=result.to_response())


async def get_opportunities(request: Request) -> list[dict[str, Any]]:
    return [o.to_dict() for o in _service(request).detector.opportunities]


async def refresh_opportunities(request: Request) -> list[dict[str, Any]]:
    opportunities = await _service(request).detector.refresh()
    return [o.to_dict() for o in opportunities]


async def get_trades(
    request: Request,
    limit: int = Query(default=50, ge=1, le=1000),
) -> list[dict[str, Any]]:
    records = await _service(request).ledger.list_records(limit)
    return [r.to_dict() for r in records]


async def get_status(request: Request) -> dict[str, Any]:
    service = _service(request)
    detector = service.detector
    return {
        "version": __version__,
        "mode": service.settings.mode,
        "lockPolicy": service.locks.policy,
        "exchanges": [
            {"name": adapter.name, "hasCredentials": adapter.has_credentials}
            for adapter in service.registry
        ],
        "detector": {
            "state": detector.state.value,
            "running": detector.running,
            "lastUpdated": detector.last_updated.isoformat() if detector.last_updated else None,
            "opportunities": len(detector.opportunities),
        },
        "autoExecution": {
            "enabled": service.auto_executor.config.enabled,
            "running": service.auto_executor.running,
            "executions": service.auto_executor.executions,
        },
        "metrics": service.metrics.to_dict(),
    }


# =============================================================================
# Application
# =============================================================================


def create_app(
    settings: Settings | None = None,
    registry: AdapterRegistry | None = None,
    ledger: TradeLedger | None = None,
    start_detector: bool = True,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Settings; loaded from the environment when omitted.
        registry: Exchange adapters; built from settings when omitted.
        ledger: Trade ledger; JSONL when ``ledger_path`` is set, else in-memory.
        start_detector: Run the detector polling loop, and auto-execution when
            enabled, during the lifespan.
    """
    service = build_service(settings or get_settings(), registry, ledger)

    @asynccontextmanager
    async def lifespan(app: FastAPI):  # type: ignore[no-untyped-def]
        auto = service.auto_executor
        if start_detector:
            await service.detector.start()
            if auto.config.enabled:
                await auto.start()
        yield
        await auto.stop()
        await service.detector.stop()
        await service.registry.close()

    app = FastAPI(title="Cross-Exchange Arbitrage", version=__version__, lifespan=lifespan)
    app.state.service = service
    app.post("/api/execute")(execute_arbitrage)
    app.get("/api/opportunities")(get_opportunities)
    app.post("/api/opportunities/refresh")(refresh_opportunities)
    app.get("/api/trades")(get_trades)
    app.get("/api/status")(get_status)
    return app
