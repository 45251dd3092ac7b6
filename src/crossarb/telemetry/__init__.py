"""Telemetry module for logging and metrics."""

from crossarb.telemetry.logger import QueueLogging, setup_logging
from crossarb.telemetry.metrics import MetricsCollector, TradingStats


__all__ = [
    "MetricsCollector",
    "QueueLogging",
    "TradingStats",
    "setup_logging",
]
