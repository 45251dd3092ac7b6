"""
Time utilities.

Millisecond timestamps for Binance signing, ISO-8601 timestamps for OKX
signing and a latency timer for execution timing.
"""

import time
from datetime import UTC, datetime


def get_timestamp_us() -> int:
    """
    Get current timestamp in microseconds.

    Returns:
        Current Unix timestamp in microseconds.
    """
    return time.time_ns() // 1000


def get_timestamp_ms() -> int:
    """
    Get current timestamp in milliseconds.

    Used for Binance API which expects millisecond timestamps.

    Returns:
        Current Unix timestamp in milliseconds.
    """
    return time.time_ns() // 1_000_000


def get_iso_timestamp() -> str:
    """
    Get current UTC time in the format OKX signs.

    Example:
        '2024-01-01T12:00:00.123Z'
    """
    now = datetime.now(UTC)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


class LatencyTimer:
    """
    Context manager for measuring operation latency.

    Example:
        >>> with LatencyTimer() as timer:
        ...     do_something()
        >>> print(f"Took {timer.elapsed_ms}ms")
    """

    __slots__ = ("start_us", "end_us")

    def __init__(self) -> None:
        self.start_us: int = 0
        self.end_us: int = 0

    def __enter__(self) -> "LatencyTimer":
        self.start_us = get_timestamp_us()
        return self

    def __exit__(self, *args: object) -> None:
        self.end_us = get_timestamp_us()

    @property
    def latency_us(self) -> int:
        end = self.end_us or get_timestamp_us()
        return end - self.start_us

    @property
    def elapsed_ms(self) -> int:
        return self.latency_us // 1000
