"""
Arbitrage execution orchestrator.

Drives one execution through the saga states in ``execution.saga``:
validate, resolve capital, buy (or skip the buy when the asset is
already held), transfer, sell and settle. Every typed error raised by
an adapter or the transfer coordinator is caught here and turned into
exactly one failed TradeRecord; nothing escapes to the caller.
"""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal

from crossarb.config.constants import DEFAULT_INVESTMENT, DEFAULT_QUOTE_ASSET, ESTIMATED_TRANSFER_FEE_USDT
from crossarb.config.settings import Settings
from crossarb.core.errors import (
    ArbitrageError,
    AuthenticationError,
    ConfigurationError,
    ExecutionInProgressError,
    InsufficientBalanceError,
    StaleOpportunityError,
    TransientNetworkError,
    describe_failure,
)
from crossarb.core.types import (
    ZERO,
    ExecutionRequest,
    ExecutionResult,
    OrderResult,
    OrderSide,
    Strategy,
    TradeRecord,
    TradeStatus,
    TradingMode,
    TransferRequest,
    TransferResult,
)
from crossarb.exchange.registry import AdapterRegistry
from crossarb.execution.balance import BalanceResolver, CapitalAssessment
from crossarb.execution.locks import CapitalLockRegistry, LockKey
from crossarb.execution.saga import SagaEvent, SagaState, SagaTrace, compensation_for
from crossarb.execution.transfer import TransferCoordinator
from crossarb.ledger.store import TradeLedger
from crossarb.market.symbols import split_pair
from crossarb.strategy.calculator import gross_profit, spread_pct
from crossarb.telemetry.metrics import MetricsCollector
from crossarb.utils.math import round_step, safe_divide
from crossarb.utils.time import LatencyTimer


logger = logging.getLogger(__name__)

# Withdrawal amounts are sent with at most 8 decimals
TRANSFER_PRECISION = Decimal("0.00000001")
RECORD_PRECISION = Decimal("0.00000001")


@dataclass(slots=True)
class OrchestratorConfig:
    """Orchestrator-wide defaults; per-request values take precedence."""

    quote_asset: str = DEFAULT_QUOTE_ASSET
    default_investment: Decimal = Decimal(str(DEFAULT_INVESTMENT))
    simulated_transfer_fee: Decimal = ESTIMATED_TRANSFER_FEE_USDT
    fallback_exchanges: tuple[str, ...] = ()

    @classmethod
    def from_settings(cls, settings: Settings) -> "OrchestratorConfig":
        return cls(
            quote_asset=settings.quote_asset,
            default_investment=Decimal(str(settings.default_investment)),
            fallback_exchanges=tuple(settings.fallback_exchanges),
        )


@dataclass
class _Attempt:
    """Mutable state of one execution while the saga runs."""

    request: ExecutionRequest
    base: str
    quote: str
    buy_price: Decimal
    sell_price: Decimal
    trace: SagaTrace = field(default_factory=SagaTrace)
    invested: Decimal = ZERO
    quantity: Decimal = ZERO
    gross: Decimal = ZERO
    fees: Decimal = ZERO
    skipped_buy: bool = False
    transfer: TransferResult | None = None
    venue: str | None = None
    rolled_back: bool = False
    error: BaseException | None = None

    @property
    def fee_rate(self) -> Decimal:
        return Decimal(str(self.request.config.fee_rate))

    def fail(self, error: BaseException) -> None:
        self.error = error
        self.trace.fail()


class ArbitrageOrchestrator:
    """
    Executes arbitrage requests and records their outcome.

    Two strategies share validation, capital resolution and settlement:
    - transfer: buy, withdraw on-chain to the sell exchange, sell
    - hedged: buy, sell held inventory on the sell exchange or a
      fallback venue, reverse the buy if every venue fails
    """

    def __init__(
        self,
        registry: AdapterRegistry,
        ledger: TradeLedger,
        resolver: BalanceResolver,
        transfers: TransferCoordinator,
        locks: CapitalLockRegistry | None = None,
        config: OrchestratorConfig | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            registry: Exchange adapters by name.
            ledger: Trade ledger receiving one record per attempt.
            resolver: Live capital resolution.
            transfers: On-chain transfer coordinator.
            locks: Capital claims shared by concurrent executions.
            config: Orchestrator defaults.
            metrics: Optional metrics collector.
        """
        self._registry = registry
        self._ledger = ledger
        self._resolver = resolver
        self._transfers = transfers
        self._locks = locks or CapitalLockRegistry()
        self._config = config or OrchestratorConfig()
        self._metrics = metrics

    # =========================================================================
    # Entry Points
    # =========================================================================

    async def submit(self, request: ExecutionRequest) -> ExecutionResult:
        """Run a request with the strategy it names."""
        if request.strategy is Strategy.HEDGED:
            return await self.execute_hedged(request)
        return await self.execute(request)

    async def execute(self, request: ExecutionRequest) -> ExecutionResult:
        """
        Execute the transfer strategy: buy, transfer on-chain, sell.

        A failed transfer leaves the bought asset on the buy exchange;
        no compensating sell is placed.

        Args:
            request: Execution request.

        Returns:
            ExecutionResult; its record is already persisted.
        """
        return await self._run(request, Strategy.TRANSFER)

    async def execute_hedged(self, request: ExecutionRequest) -> ExecutionResult:
        """
        Execute the hedged strategy from inventory held on both sides.

        Sell venues are tried in order: the request's sell exchange,
        then the fallback exchanges. When all fail the buy is reversed
        with a market sell on the buy exchange.

        Args:
            request: Execution request.

        Returns:
            ExecutionResult; its record is already persisted.
        """
        return await self._run(request, Strategy.HEDGED)

    # =========================================================================
    # Saga Driver
    # =========================================================================

    async def _run(self, request: ExecutionRequest, strategy: Strategy) -> ExecutionResult:
        base, quote = split_pair(request.symbol, self._config.quote_asset)
        attempt = _Attempt(
            request=request,
            base=base,
            quote=quote,
            buy_price=request.buy_price,
            sell_price=request.sell_price,
        )
        logger.info(
            f"Execution {request.request_id}: {base} {request.buy_exchange} -> "
            f"{request.sell_exchange} ({request.mode.value}, {strategy.value})"
        )

        with LatencyTimer() as timer:
            try:
                self._validate_request(attempt)
                if request.mode is TradingMode.SIMULATION:
                    self._simulate(attempt, strategy)
                else:
                    async with self._locks.claim(self._lock_keys(attempt, strategy)):
                        if strategy is Strategy.HEDGED:
                            await self._hedged_saga(attempt)
                        else:
                            await self._transfer_saga(attempt)
            except ArbitrageError as e:
                if isinstance(e, ExecutionInProgressError) and self._metrics:
                    self._metrics.record_rejection()
                self._log_failure(attempt, e)
                attempt.fail(e)
            except Exception as e:
                logger.error(f"Execution {request.request_id} error: {e!r}", exc_info=True)
                attempt.fail(e)

        record = self._settle(attempt, strategy, timer.elapsed_ms)
        await self._persist(record)

        error_kind = None
        if attempt.error is not None:
            error_kind = attempt.error.kind if isinstance(attempt.error, ArbitrageError) else "unexpected"
        if self._metrics:
            self._metrics.record_execution(record, error_kind)

        logger.info(
            f"Execution {request.request_id} {record.status.value}: net={record.net_profit} "
            f"roi={record.roi_percent}% in {record.execution_time_ms}ms"
        )
        return ExecutionResult(
            record=record,
            saga_trace=attempt.trace.as_tuple(),
            skipped_buy=attempt.skipped_buy,
            transfer=attempt.transfer,
            error_kind=error_kind,
            rolled_back=attempt.rolled_back,
            venue=attempt.venue,
        )

    def _log_failure(self, attempt: _Attempt, error: ArbitrageError) -> None:
        state = attempt.trace.state
        message = f"Execution {attempt.request.request_id} failed in {state.value}: {error}"
        if state is SagaState.TRANSFERRING and attempt.quantity > 0:
            message += (
                f" ({attempt.quantity} {attempt.base} remains on "
                f"{attempt.request.buy_exchange})"
            )
        compensation = compensation_for(state)
        if compensation:
            message += f"; compensation: {compensation}"
        logger.warning(message)

    @staticmethod
    def _lock_keys(attempt: _Attempt, strategy: Strategy) -> list[LockKey]:
        request = attempt.request
        keys = [
            (request.buy_exchange, attempt.base),
            (request.buy_exchange, attempt.quote),
            (request.sell_exchange, attempt.base),
        ]
        if strategy is Strategy.HEDGED:
            keys.extend((venue, attempt.base) for venue in request.config.fallback_exchanges)
        return keys

    # =========================================================================
    # Validation
    # =========================================================================

    def _validate_request(self, attempt: _Attempt) -> None:
        """Checks that need no network access."""
        request = attempt.request
        buy_adapter = self._registry.get(request.buy_exchange)
        sell_adapter = self._registry.get(request.sell_exchange)

        if buy_adapter is sell_adapter:
            raise ConfigurationError("buy and sell exchange must differ")
        if request.buy_price <= 0 or request.sell_price <= 0:
            raise StaleOpportunityError("request prices must be positive")
        if request.spread_pct <= 0:
            raise StaleOpportunityError(
                f"no positive spread: buy {request.buy_price} >= sell {request.sell_price}"
            )

        if request.mode is TradingMode.REAL:
            missing = [a.name for a in (buy_adapter, sell_adapter) if not a.has_credentials]
            if missing:
                raise AuthenticationError(
                    f"real mode requires API credentials for {', '.join(missing)}"
                )
        elif request.expires_at and datetime.now(UTC) >= request.expires_at:
            raise StaleOpportunityError(f"opportunity expired at {request.expires_at.isoformat()}")

        self._check_stop_loss(attempt, request.spread_pct)

    def _check_stop_loss(self, attempt: _Attempt, spread: Decimal) -> None:
        stop_loss = attempt.request.config.stop_loss
        if stop_loss is None:
            return
        # Two trading legs
        projected_roi = spread - attempt.fee_rate * 2 * 100
        if projected_roi < -Decimal(str(stop_loss)):
            raise StaleOpportunityError(
                f"projected ROI {projected_roi:.4f}% breaches the {stop_loss}% stop loss"
            )

    async def _revalidate_prices(self, attempt: _Attempt) -> None:
        """
        Re-check the spread against live prices.

        An expired request must be re-validated; a fresh one falls back
        to the request prices when live prices are unavailable.

        Raises:
            StaleOpportunityError: If the spread is gone or eroded by more
                than the slippage tolerance.
        """
        request = attempt.request
        buy_adapter = self._registry.get(request.buy_exchange)
        sell_adapter = self._registry.get(request.sell_exchange)
        expired = request.expires_at is not None and datetime.now(UTC) >= request.expires_at

        try:
            live_buy = await buy_adapter.get_price(attempt.base, attempt.quote)
            live_sell = await sell_adapter.get_price(attempt.base, attempt.quote)
        except TransientNetworkError as e:
            if expired:
                raise StaleOpportunityError(
                    f"opportunity expired and live prices are unavailable: {e}"
                ) from e
            logger.warning(f"Live price check skipped, using request prices: {e}")
            return

        live_spread = spread_pct(live_buy, live_sell)
        erosion = request.spread_pct - live_spread
        max_slippage = Decimal(str(request.config.max_slippage))
        if live_spread <= 0 or erosion > max_slippage:
            raise StaleOpportunityError(
                f"spread moved from {request.spread_pct:.4f}% to {live_spread:.4f}% "
                f"(tolerance {max_slippage}%)"
            )

        attempt.buy_price = live_buy
        attempt.sell_price = live_sell
        self._check_stop_loss(attempt, live_spread)

    # =========================================================================
    # Capital
    # =========================================================================

    async def _resolve_investment(self, attempt: _Attempt) -> tuple[Decimal, CapitalAssessment]:
        """
        Live capital on the buy exchange.

        Returns:
            Tuple of (amount to deploy, balance snapshot it was derived from).

        Raises:
            InsufficientBalanceError: If nothing can be deployed.
        """
        request = attempt.request
        assessment = await self._resolver.assess(
            request.buy_exchange, attempt.base, attempt.quote, attempt.buy_price
        )
        capital = assessment.capital
        if capital <= 0:
            raise InsufficientBalanceError(
                f"no {attempt.quote} or {attempt.base} available on {request.buy_exchange}"
            )
        cap = request.config.investment_amount
        invested = min(capital, cap) if cap is not None and cap > 0 else capital
        return invested, assessment

    # =========================================================================
    # Simulation
    # =========================================================================

    def _simulate(self, attempt: _Attempt, strategy: Strategy) -> None:
        """Outcome from request prices only; no exchange is contacted."""
        request = attempt.request
        cap = request.config.investment_amount
        invested = cap if cap is not None and cap > 0 else self._config.default_investment

        attempt.trace.advance(SagaEvent.VALIDATED)
        attempt.invested = invested
        attempt.quantity = invested / attempt.buy_price
        attempt.gross = gross_profit(invested, attempt.buy_price, attempt.sell_price)
        attempt.fees = invested * attempt.fee_rate

        if strategy is Strategy.HEDGED:
            attempt.trace.advance(SagaEvent.HEDGE_REQUIRED)
            attempt.venue = request.sell_exchange
        else:
            attempt.trace.advance(SagaEvent.ACQUIRED)
            attempt.fees += self._config.simulated_transfer_fee
            attempt.trace.advance(SagaEvent.TRANSFERRED)
        attempt.trace.advance(SagaEvent.SOLD)

    # =========================================================================
    # Transfer Strategy
    # =========================================================================

    async def _transfer_saga(self, attempt: _Attempt) -> None:
        request = attempt.request
        buy_adapter = self._registry.get(request.buy_exchange)
        sell_adapter = self._registry.get(request.sell_exchange)

        await self._revalidate_prices(attempt)
        invested, assessment = await self._resolve_investment(attempt)
        required = round_step(invested / attempt.buy_price, TRANSFER_PRECISION)

        if assessment.holds(required):
            attempt.trace.advance(SagaEvent.ASSET_HELD)
            attempt.skipped_buy = True
            attempt.quantity = required
            attempt.invested = required * attempt.buy_price
            logger.info(
                f"{buy_adapter.name}: {assessment.asset_available} {attempt.base} already held, skipping buy"
            )
        else:
            attempt.trace.advance(SagaEvent.VALIDATED)
            order = await buy_adapter.place_market_order(
                attempt.base,
                attempt.quote,
                OrderSide.BUY,
                quote_amount=invested,
                reference_price=attempt.buy_price,
            )
            self._apply_buy(attempt, order)

        attempt.trace.advance(SagaEvent.ACQUIRED)

        transfer_amount = round_step(attempt.quantity, TRANSFER_PRECISION)
        attempt.transfer = await self._transfers.transfer(
            TransferRequest(
                asset=attempt.base,
                amount=transfer_amount,
                from_exchange=request.buy_exchange,
                to_exchange=request.sell_exchange,
                preferred_network=request.config.preferred_network,
            )
        )
        attempt.fees += attempt.transfer.fee * attempt.buy_price
        attempt.trace.advance(SagaEvent.TRANSFERRED)

        order = await sell_adapter.place_market_order(
            attempt.base,
            attempt.quote,
            OrderSide.SELL,
            quantity=attempt.transfer.received_amount,
            reference_price=attempt.sell_price,
        )
        self._apply_sell(attempt, order)
        attempt.venue = sell_adapter.name
        attempt.trace.advance(SagaEvent.SOLD)

    # =========================================================================
    # Hedged Strategy
    # =========================================================================

    def _sell_venues(self, request: ExecutionRequest) -> list[str]:
        fallbacks = request.config.fallback_exchanges or self._config.fallback_exchanges
        venues: list[str] = []
        for name in (request.sell_exchange, *fallbacks):
            key = name.lower()
            if key != request.buy_exchange.lower() and key not in venues:
                venues.append(key)
        return venues

    async def _hedged_saga(self, attempt: _Attempt) -> None:
        request = attempt.request
        buy_adapter = self._registry.get(request.buy_exchange)

        await self._revalidate_prices(attempt)
        invested, _ = await self._resolve_investment(attempt)

        attempt.trace.advance(SagaEvent.VALIDATED)
        order = await buy_adapter.place_market_order(
            attempt.base,
            attempt.quote,
            OrderSide.BUY,
            quote_amount=invested,
            reference_price=attempt.buy_price,
        )
        self._apply_buy(attempt, order)
        attempt.trace.advance(SagaEvent.HEDGE_REQUIRED)

        last_error: BaseException | None = None
        for venue in self._sell_venues(request):
            try:
                adapter = self._registry.get(venue)
                order = await adapter.place_market_order(
                    attempt.base,
                    attempt.quote,
                    OrderSide.SELL,
                    quantity=attempt.quantity,
                    reference_price=attempt.sell_price,
                )
            except ArbitrageError as e:
                logger.warning(f"Sell on {venue} failed: {e}")
                last_error = e
                continue
            self._apply_sell(attempt, order)
            attempt.venue = adapter.name
            attempt.trace.advance(SagaEvent.SOLD)
            return

        attempt.trace.advance(SagaEvent.HEDGES_FAILED)
        attempt.rolled_back = await self._rollback_buy(attempt)
        attempt.trace.advance(SagaEvent.ROLLED_BACK)

        suffix = "buy leg reversed" if attempt.rolled_back else "buy leg NOT reversed, reconcile manually"
        detail = describe_failure(last_error) if last_error else "no sell venue configured"
        failure = ArbitrageError(f"all sell venues failed ({suffix}): {detail}")
        if isinstance(last_error, ArbitrageError):
            failure.kind = last_error.kind
        attempt.error = failure

    async def _rollback_buy(self, attempt: _Attempt) -> bool:
        """Sell the bought quantity back on the buy exchange. Never raises."""
        request = attempt.request
        try:
            adapter = self._registry.get(request.buy_exchange)
            order = await adapter.place_market_order(
                attempt.base,
                attempt.quote,
                OrderSide.SELL,
                quantity=attempt.quantity,
                reference_price=attempt.buy_price,
            )
        except Exception as e:
            logger.error(
                f"Rollback of {attempt.quantity} {attempt.base} on {request.buy_exchange} failed: {e}"
            )
            return False
        logger.info(f"Rolled back buy leg: sold {order.executed_qty} {attempt.base} @ {order.executed_price}")
        return True

    # =========================================================================
    # Fills & Settlement
    # =========================================================================

    def _apply_buy(self, attempt: _Attempt, order: OrderResult) -> None:
        attempt.quantity = order.base_received(attempt.base)
        attempt.invested = order.quote_qty
        if order.executed_price > 0:
            attempt.buy_price = order.executed_price
        attempt.fees += attempt.invested * attempt.fee_rate

    def _apply_sell(self, attempt: _Attempt, order: OrderResult) -> None:
        if order.executed_price > 0:
            attempt.sell_price = order.executed_price
        attempt.gross = order.executed_qty * (attempt.sell_price - attempt.buy_price)
        attempt.fees += attempt.invested * attempt.fee_rate

    def _settle(self, attempt: _Attempt, strategy: Strategy, elapsed_ms: int) -> TradeRecord:
        request = attempt.request
        success = attempt.error is None and attempt.trace.state is SagaState.SETTLED_SUCCESS

        if success:
            gross = attempt.gross
            fees = attempt.fees
            net = gross - fees
            roi = safe_divide(net, attempt.invested) * 100
        else:
            gross = fees = net = roi = ZERO

        return TradeRecord(
            symbol=attempt.base,
            buy_exchange=request.buy_exchange,
            sell_exchange=attempt.venue or request.sell_exchange,
            buy_price=attempt.buy_price,
            sell_price=attempt.sell_price,
            invested_amount=attempt.invested.quantize(RECORD_PRECISION),
            gross_profit=gross.quantize(RECORD_PRECISION),
            fees=fees.quantize(RECORD_PRECISION),
            net_profit=net.quantize(RECORD_PRECISION),
            roi_percent=roi.quantize(RECORD_PRECISION),
            execution_time_ms=elapsed_ms,
            status=TradeStatus.COMPLETED if success else TradeStatus.FAILED,
            mode=request.mode,
            error_message=None if success else self._failure_message(attempt),
            quantity=attempt.quantity,
            strategy=strategy,
        )

    @staticmethod
    def _failure_message(attempt: _Attempt) -> str:
        if attempt.error is None:
            return f"execution stopped in state {attempt.trace.state.value}"
        return describe_failure(attempt.error)

    async def _persist(self, record: TradeRecord) -> None:
        """A ledger failure must not undo a settled trade; it is logged only."""
        try:
            await self._ledger.insert(record)
        except Exception as e:
            logger.error(f"Ledger write failed for trade {record.id}: {e!r}")
