"""
In-process counters for detection and execution activity.

Exposed through the status endpoint; nothing is exported externally.
"""

import time
from collections import deque
from dataclasses import dataclass, field
from decimal import Decimal

from crossarb.core.types import ZERO, TradeRecord, TradeStatus


@dataclass
class DurationStats:
    """Aggregated durations in milliseconds."""

    min_ms: int = 0
    max_ms: int = 0
    avg_ms: float = 0.0
    p50_ms: int = 0
    p95_ms: int = 0
    count: int = 0


@dataclass
class TradingStats:
    """Execution outcome totals."""

    scans: int = 0
    scan_failures: int = 0
    opportunities_found: int = 0
    best_spread_pct: float = 0.0
    executions_successful: int = 0
    executions_failed: int = 0
    rejected_in_progress: int = 0
    total_net_profit: Decimal = ZERO
    total_fees: Decimal = ZERO
    failures_by_kind: dict[str, int] = field(default_factory=dict)

    @property
    def execution_success_rate(self) -> float:
        total = self.executions_successful + self.executions_failed
        return self.executions_successful / total if total > 0 else 0.0


class MetricsCollector:
    """
    Collects counters and rolling durations.

    Single event loop only; no locking.
    """

    def __init__(self, window_size: int = 500) -> None:
        """
        Initialize metrics collector.

        Args:
            window_size: Number of duration samples kept per metric.
        """
        self._window_size = window_size
        self._durations: dict[str, deque[int]] = {}
        self._stats = TradingStats()
        self._start_time = time.time()

    def record_duration(self, name: str, duration_ms: int) -> None:
        if name not in self._durations:
            self._durations[name] = deque(maxlen=self._window_size)
        self._durations[name].append(duration_ms)

    def record_scan(self, opportunities: int, best_spread_pct: float, failed_exchanges: int = 0) -> None:
        """
        Record one detection cycle.

        Args:
            opportunities: Number of opportunities published.
            best_spread_pct: Widest spread among them.
            failed_exchanges: Exchanges whose prices could not be fetched.
        """
        self._stats.scans += 1
        self._stats.scan_failures += failed_exchanges
        self._stats.opportunities_found += opportunities
        if best_spread_pct > self._stats.best_spread_pct:
            self._stats.best_spread_pct = best_spread_pct

    def record_execution(self, record: TradeRecord, error_kind: str | None = None) -> None:
        """
        Record the outcome of one orchestration attempt.

        Args:
            record: Ledger entry of the attempt.
            error_kind: Failure classification, for failed attempts.
        """
        if record.status == TradeStatus.COMPLETED:
            self._stats.executions_successful += 1
            self._stats.total_net_profit += record.net_profit
            self._stats.total_fees += record.fees
        else:
            self._stats.executions_failed += 1
            kind = error_kind or "unknown"
            self._stats.failures_by_kind[kind] = self._stats.failures_by_kind.get(kind, 0) + 1
        self.record_duration("execution", record.execution_time_ms)

    def record_rejection(self) -> None:
        """Count a request refused because its capital was already claimed."""
        self._stats.rejected_in_progress += 1

    def get_duration_stats(self, name: str) -> DurationStats:
        samples = self._durations.get(name)
        if not samples:
            return DurationStats()

        ordered = sorted(samples)
        n = len(ordered)
        return DurationStats(
            min_ms=ordered[0],
            max_ms=ordered[-1],
            avg_ms=sum(ordered) / n,
            p50_ms=ordered[n // 2],
            p95_ms=ordered[int(n * 0.95)] if n > 1 else ordered[-1],
            count=n,
        )

    @property
    def trading_stats(self) -> TradingStats:
        return self._stats

    @property
    def uptime_seconds(self) -> float:
        return time.time() - self._start_time

    def to_dict(self) -> dict[str, object]:
        """Export all metrics as a JSON-friendly dict."""
        stats = self._stats
        return {
            "uptimeSeconds": round(self.uptime_seconds, 1),
            "scans": stats.scans,
            "scanFailures": stats.scan_failures,
            "opportunitiesFound": stats.opportunities_found,
            "bestSpreadPercentage": stats.best_spread_pct,
            "executionsSuccessful": stats.executions_successful,
            "executionsFailed": stats.executions_failed,
            "rejectedInProgress": stats.rejected_in_progress,
            "successRate": stats.execution_success_rate,
            "totalNetProfit": float(stats.total_net_profit),
            "totalFees": float(stats.total_fees),
            "failuresByKind": dict(stats.failures_by_kind),
            "durations": {
                name: {
                    "min": s.min_ms,
                    "max": s.max_ms,
                    "avg": s.avg_ms,
                    "p50": s.p50_ms,
                    "p95": s.p95_ms,
                    "count": s.count,
                }
                for name, s in ((n, self.get_duration_stats(n)) for n in self._durations)
            },
        }

    def reset(self) -> None:
        self._durations.clear()
        self._stats = TradingStats()
        self._start_time = time.time()
