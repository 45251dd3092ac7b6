"""
Cross-exchange opportunity detector.

Each cycle fetches every exchange's ticker prices concurrently, keys
them by base asset and compares every exchange pair in both
directions. A cycle runs Idle -> Fetching -> Computing -> Published,
either on a fixed interval or on demand.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from itertools import permutations

from crossarb.config.constants import (
    DEFAULT_FEE_RATE,
    DEFAULT_FETCH_TIMEOUT,
    DEFAULT_QUOTE_ASSET,
    DEFAULT_SCAN_INTERVAL,
    MAX_OPPORTUNITIES,
    MAX_SPREAD_PCT,
    MIN_NET_PROFIT,
    MIN_SPREAD_PCT,
    STANDARD_NOTIONAL,
)
from crossarb.config.settings import Settings
from crossarb.core.types import Opportunity
from crossarb.exchange.base import ExchangeAdapter
from crossarb.exchange.registry import AdapterRegistry
from crossarb.market.symbols import normalize_prices
from crossarb.strategy.calculator import classify_risk, estimate_net_profit, spread_pct
from crossarb.telemetry.metrics import MetricsCollector


logger = logging.getLogger(__name__)


class DetectorState(str, Enum):
    """Detection cycle state."""

    IDLE = "idle"
    FETCHING = "fetching"
    COMPUTING = "computing"
    PUBLISHED = "published"


@dataclass(slots=True)
class DetectorConfig:
    """Detector parameters. Spreads are percentages, profits are quote units."""

    scan_interval: float = DEFAULT_SCAN_INTERVAL
    fetch_timeout: float = DEFAULT_FETCH_TIMEOUT
    notional: Decimal = Decimal(str(STANDARD_NOTIONAL))
    fee_rate: Decimal = Decimal(str(DEFAULT_FEE_RATE))
    min_spread_pct: Decimal = Decimal(str(MIN_SPREAD_PCT))
    max_spread_pct: Decimal = Decimal(str(MAX_SPREAD_PCT))
    min_net_profit: Decimal = Decimal(str(MIN_NET_PROFIT))
    max_opportunities: int = MAX_OPPORTUNITIES
    quote_asset: str = DEFAULT_QUOTE_ASSET
    tracked_symbols: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_settings(cls, settings: Settings) -> "DetectorConfig":
        return cls(
            scan_interval=settings.scan_interval_seconds,
            fetch_timeout=settings.fetch_timeout_seconds,
            notional=Decimal(str(settings.standard_notional)),
            fee_rate=Decimal(str(settings.fee_rate)),
            min_spread_pct=Decimal(str(settings.min_spread_pct)),
            max_spread_pct=Decimal(str(settings.max_spread_pct)),
            min_net_profit=Decimal(str(settings.min_net_profit)),
            max_opportunities=settings.max_opportunities,
            quote_asset=settings.quote_asset,
            tracked_symbols=tuple(s.upper() for s in settings.tracked_symbols),
        )


def find_opportunities(
    prices_by_exchange: dict[str, dict[str, Decimal]],
    config: DetectorConfig,
    now: datetime | None = None,
) -> list[Opportunity]:
    """
    Compare normalized prices across every ordered exchange pair.

    Args:
        prices_by_exchange: Exchange name -> base asset -> price.
        config: Spread and profit filters.
        now: Detection timestamp.

    Returns:
        Opportunities sorted by estimated net profit, best first,
        truncated to ``config.max_opportunities``.
    """
    detected_at = now or datetime.now(UTC)
    found: list[Opportunity] = []

    for buy_exchange, sell_exchange in permutations(sorted(prices_by_exchange), 2):
        buy_prices = prices_by_exchange[buy_exchange]
        sell_prices = prices_by_exchange[sell_exchange]

        for symbol in sorted(buy_prices.keys() & sell_prices.keys()):
            buy_price = buy_prices[symbol]
            sell_price = sell_prices[symbol]
            spread = spread_pct(buy_price, sell_price)
            if not config.min_spread_pct <= spread <= config.max_spread_pct:
                continue

            net = estimate_net_profit(config.notional, buy_price, sell_price, config.fee_rate)
            if net < config.min_net_profit:
                continue

            found.append(
                Opportunity(
                    symbol=symbol,
                    buy_exchange=buy_exchange,
                    sell_exchange=sell_exchange,
                    buy_price=buy_price,
                    sell_price=sell_price,
                    spread_pct=spread,
                    estimated_net_profit=net,
                    risk_level=classify_risk(spread),
                    detected_at=detected_at,
                )
            )

    found.sort(key=lambda o: o.estimated_net_profit, reverse=True)
    return found[: config.max_opportunities]


class OpportunityDetector:
    """
    Polls exchange tickers and publishes ranked opportunities.

    A slow or failing exchange contributes an empty price set for the
    cycle instead of blocking it.
    """

    def __init__(
        self,
        registry: AdapterRegistry,
        config: DetectorConfig | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._registry = registry
        self._config = config or DetectorConfig()
        self._metrics = metrics
        self._state = DetectorState.IDLE
        self._opportunities: list[Opportunity] = []
        self._last_updated: datetime | None = None
        self._refresh_lock = asyncio.Lock()
        self._task: asyncio.Task[None] | None = None
        self._running = False

    @property
    def state(self) -> DetectorState:
        return self._state

    @property
    def opportunities(self) -> list[Opportunity]:
        """Latest published opportunities."""
        return list(self._opportunities)

    @property
    def last_updated(self) -> datetime | None:
        return self._last_updated

    @property
    def running(self) -> bool:
        return self._running

    @property
    def config(self) -> DetectorConfig:
        return self._config

    # =========================================================================
    # Detection Cycle
    # =========================================================================

    async def _fetch_prices(self, adapter: ExchangeAdapter) -> dict[str, Decimal]:
        """Fetch one exchange's prices; errors and timeouts yield an empty set."""
        try:
            return await asyncio.wait_for(adapter.get_all_prices(), timeout=self._config.fetch_timeout)
        except TimeoutError:
            logger.warning(f"{adapter.name}: price fetch timed out after {self._config.fetch_timeout}s")
        except Exception as e:
            logger.warning(f"{adapter.name}: price fetch failed: {e}")
        return {}

    async def refresh(self) -> list[Opportunity]:
        """
        Run one detection cycle.

        Concurrent callers share the lock, so an on-demand refresh
        never interleaves with the background loop.

        Returns:
            The newly published opportunities.
        """
        async with self._refresh_lock:
            self._state = DetectorState.FETCHING
            adapters = list(self._registry)
            results = await asyncio.gather(*(self._fetch_prices(a) for a in adapters))

            self._state = DetectorState.COMPUTING
            tracked = self._config.tracked_symbols or None
            prices_by_exchange = {
                adapter.name: normalize_prices(raw, self._config.quote_asset, tracked)
                for adapter, raw in zip(adapters, results, strict=True)
            }
            failed = sum(1 for raw in results if not raw)

            opportunities = find_opportunities(prices_by_exchange, self._config)

            self._opportunities = opportunities
            self._last_updated = datetime.now(UTC)
            self._state = DetectorState.PUBLISHED

            if self._metrics:
                best = float(max((o.spread_pct for o in opportunities), default=0))
                self._metrics.record_scan(len(opportunities), best, failed)

            logger.info(
                f"Detection cycle published {len(opportunities)} opportunities "
                f"({failed}/{len(adapters)} exchanges without prices)"
            )
            return opportunities

    # =========================================================================
    # Background Loop
    # =========================================================================

    async def start(self) -> None:
        """Start the polling loop."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run())
        logger.info(f"Opportunity detector started (every {self._config.scan_interval}s)")

    async def stop(self) -> None:
        """Stop the polling loop."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self._state = DetectorState.IDLE
        logger.info("Opportunity detector stopped")

    async def _run(self) -> None:
        while self._running:
            try:
                await self.refresh()
            except Exception as e:
                logger.error(f"Detection cycle failed: {e}")
                self._state = DetectorState.IDLE
            await asyncio.sleep(self._config.scan_interval)
