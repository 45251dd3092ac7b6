"""
Unattended execution of detected opportunities.

Each cycle reads the detector's latest published opportunities, keeps
the ones that pass the configured filters, and submits the most
profitable of them to the orchestrator. No cycle runs during the first
half hour of the 00:00, 08:00 and 16:00 UTC funding periods.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal

from crossarb.config.constants import (
    AUTO_FUNDING_HOURS_UTC,
    AUTO_FUNDING_WINDOW_MINUTES,
    DEFAULT_AUTO_INTERVAL,
    DEFAULT_FEE_RATE,
    DEFAULT_INVESTMENT,
    DEFAULT_MAX_SLIPPAGE,
    ESTIMATED_TRANSFER_FEE_USDT,
    MIN_SPREAD_PCT,
)
from crossarb.config.settings import Settings
from crossarb.core.types import (
    ZERO,
    ExecutionConfig,
    ExecutionRequest,
    ExecutionResult,
    Opportunity,
    Strategy,
    TradingMode,
)
from crossarb.execution.orchestrator import ArbitrageOrchestrator
from crossarb.strategy.calculator import estimate_net_profit
from crossarb.strategy.detector import OpportunityDetector


logger = logging.getLogger(__name__)


def in_funding_window(now: datetime) -> bool:
    """Whether ``now`` falls within the first half hour of a funding period."""
    now = now.astimezone(UTC)
    return now.hour in AUTO_FUNDING_HOURS_UTC and now.minute <= AUTO_FUNDING_WINDOW_MINUTES


@dataclass(slots=True)
class AutoExecutionConfig:
    """Filters and limits for unattended execution. Spreads are percentages."""

    enabled: bool = False
    interval: float = DEFAULT_AUTO_INTERVAL
    min_spread_percentage: Decimal = Decimal(str(MIN_SPREAD_PCT))
    max_investment_amount: Decimal = Decimal(str(DEFAULT_INVESTMENT))
    min_profit_threshold: Decimal = ZERO
    symbols_filter: tuple[str, ...] = field(default_factory=tuple)
    exchanges_enabled: tuple[str, ...] = field(default_factory=tuple)
    max_concurrent_operations: int = 1
    skip_funding_windows: bool = True
    mode: TradingMode = TradingMode.SIMULATION
    strategy: Strategy = Strategy.TRANSFER
    fee_rate: float = DEFAULT_FEE_RATE
    max_slippage: float = DEFAULT_MAX_SLIPPAGE
    fallback_exchanges: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_settings(cls, settings: Settings) -> "AutoExecutionConfig":
        return cls(
            enabled=settings.auto_execute,
            interval=settings.auto_interval_seconds,
            min_spread_percentage=Decimal(str(settings.auto_min_spread_pct)),
            max_investment_amount=Decimal(str(settings.auto_max_investment)),
            min_profit_threshold=Decimal(str(settings.auto_min_profit)),
            symbols_filter=tuple(s.upper() for s in settings.auto_symbols),
            exchanges_enabled=tuple(e.lower() for e in settings.auto_exchanges),
            max_concurrent_operations=settings.auto_max_concurrent,
            skip_funding_windows=settings.auto_skip_funding_windows,
            mode=TradingMode(settings.mode),
            strategy=Strategy(settings.auto_strategy),
            fee_rate=settings.fee_rate,
            max_slippage=settings.max_slippage,
            fallback_exchanges=tuple(e.lower() for e in settings.fallback_exchanges),
        )


class AutoExecutor:
    """
    Submits filtered opportunities to the orchestrator on an interval.

    A published opportunity is submitted at most once. Submissions of
    one cycle run concurrently, up to ``max_concurrent_operations``;
    the next cycle starts only after all of them have settled.
    """

    def __init__(
        self,
        detector: OpportunityDetector,
        orchestrator: ArbitrageOrchestrator,
        config: AutoExecutionConfig | None = None,
    ) -> None:
        self._detector = detector
        self._orchestrator = orchestrator
        self._config = config or AutoExecutionConfig()
        self._submitted: dict[tuple[str, str, str], datetime] = {}
        self._task: asyncio.Task[None] | None = None
        self._wake = asyncio.Event()
        self._running = False
        self._executions = 0

    @property
    def config(self) -> AutoExecutionConfig:
        return self._config

    @property
    def running(self) -> bool:
        return self._running

    @property
    def executions(self) -> int:
        """Requests submitted since start-up."""
        return self._executions

    # =========================================================================
    # Selection
    # =========================================================================

    def projected_profit(self, opportunity: Opportunity) -> Decimal:
        """Net profit of deploying the configured investment on this spread."""
        net = estimate_net_profit(
            self._config.max_investment_amount,
            opportunity.buy_price,
            opportunity.sell_price,
            Decimal(str(self._config.fee_rate)),
        )
        if self._config.strategy is Strategy.TRANSFER:
            net -= ESTIMATED_TRANSFER_FEE_USDT
        return net

    def _accepts(self, opportunity: Opportunity, now: datetime) -> bool:
        config = self._config
        if opportunity.is_expired(now):
            return False
        if self._submitted.get(opportunity.key) == opportunity.detected_at:
            return False
        if opportunity.spread_pct < config.min_spread_percentage:
            return False
        if config.symbols_filter and opportunity.symbol not in config.symbols_filter:
            return False
        if config.exchanges_enabled and not (
            opportunity.buy_exchange in config.exchanges_enabled
            and opportunity.sell_exchange in config.exchanges_enabled
        ):
            return False
        profit = self.projected_profit(opportunity)
        return profit > 0 and profit >= config.min_profit_threshold

    def select(self, opportunities: list[Opportunity], now: datetime | None = None) -> list[Opportunity]:
        """
        Opportunities to submit this cycle, most profitable first.

        Args:
            opportunities: Published opportunities.
            now: Evaluation time, for expiry.

        Returns:
            At most ``max_concurrent_operations`` opportunities.
        """
        now = now or datetime.now(UTC)
        accepted = [o for o in opportunities if self._accepts(o, now)]
        accepted.sort(key=self.projected_profit, reverse=True)
        return accepted[: self._config.max_concurrent_operations]

    def _request_for(self, opportunity: Opportunity) -> ExecutionRequest:
        config = self._config
        return ExecutionRequest.from_opportunity(
            opportunity,
            mode=config.mode,
            strategy=config.strategy,
            config=ExecutionConfig(
                max_slippage=config.max_slippage,
                fee_rate=config.fee_rate,
                investment_amount=config.max_investment_amount,
                fallback_exchanges=config.fallback_exchanges,
            ),
        )

    # =========================================================================
    # Cycle
    # =========================================================================

    async def run_once(self, now: datetime | None = None) -> list[ExecutionResult]:
        """
        Run one cycle over the detector's current opportunities.

        Returns:
            Results of the requests submitted this cycle.
        """
        now = now or datetime.now(UTC)
        if self._config.skip_funding_windows and in_funding_window(now):
            logger.info("Funding period in progress, skipping auto-execution cycle")
            return []

        selected = self.select(self._detector.opportunities, now)
        if not selected:
            return []

        for opportunity in selected:
            self._submitted[opportunity.key] = opportunity.detected_at
            logger.info(
                f"Auto-executing {opportunity.symbol} {opportunity.buy_exchange} -> "
                f"{opportunity.sell_exchange} (spread {opportunity.spread_pct:.4f}%)"
            )

        results = await asyncio.gather(
            *(self._orchestrator.submit(self._request_for(o)) for o in selected)
        )
        self._executions += len(results)

        succeeded = [r for r in results if r.success]
        total = sum((r.record.net_profit for r in succeeded), ZERO)
        logger.info(
            f"Auto-execution cycle finished: {len(succeeded)}/{len(results)} succeeded, "
            f"net profit {total}"
        )
        return list(results)

    # =========================================================================
    # Background Loop
    # =========================================================================

    async def start(self) -> None:
        """Start the execution loop."""
        if self._running:
            return
        self._running = True
        self._wake.clear()
        self._task = asyncio.create_task(self._run())
        logger.warning(
            f"Auto-execution started in {self._config.mode.value} mode (every {self._config.interval}s)"
        )

    async def stop(self) -> None:
        """Stop the loop once the cycle in progress has settled."""
        self._running = False
        self._wake.set()
        if self._task:
            await self._task
            self._task = None
        logger.info("Auto-execution stopped")

    async def _run(self) -> None:
        while self._running:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Auto-execution cycle failed: {e}", exc_info=True)
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self._config.interval)
            except TimeoutError:
                pass
