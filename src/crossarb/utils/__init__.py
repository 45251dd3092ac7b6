"""Utility functions for the arbitrage system."""

from crossarb.utils.math import format_decimal, round_step, safe_divide, to_decimal
from crossarb.utils.retry import backoff_delays, retry_async
from crossarb.utils.time import (
    LatencyTimer,
    get_iso_timestamp,
    get_timestamp_ms,
    get_timestamp_us,
)


__all__ = [
    "LatencyTimer",
    "backoff_delays",
    "format_decimal",
    "get_iso_timestamp",
    "get_timestamp_ms",
    "get_timestamp_us",
    "retry_async",
    "round_step",
    "safe_divide",
    "to_decimal",
]
