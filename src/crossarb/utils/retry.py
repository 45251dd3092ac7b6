"""
Retry with bounded exponential backoff.

Every exchange adapter call goes through ``retry_async``. The operation
is a zero-argument coroutine factory, so each attempt builds a fresh
request (and therefore a fresh signed timestamp).
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from crossarb.config.constants import (
    RETRY_ATTEMPTS,
    RETRY_BASE_DELAY,
    RETRY_MAX_DELAY,
    RETRY_MULTIPLIER,
)
from crossarb.core.errors import is_retryable as default_classifier


logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delays(
    attempts: int = RETRY_ATTEMPTS,
    base_delay: float = RETRY_BASE_DELAY,
    multiplier: float = RETRY_MULTIPLIER,
    max_delay: float = RETRY_MAX_DELAY,
) -> list[float]:
    """
    Delays slept between attempts.

    Example:
        >>> backoff_delays(3, 0.5, 2.0, 8.0)
        [0.5, 1.0]
    """
    delays = []
    delay = base_delay
    for _ in range(max(attempts - 1, 0)):
        delays.append(min(delay, max_delay))
        delay *= multiplier
    return delays


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int = RETRY_ATTEMPTS,
    base_delay: float = RETRY_BASE_DELAY,
    multiplier: float = RETRY_MULTIPLIER,
    max_delay: float = RETRY_MAX_DELAY,
    is_retryable: Callable[[BaseException], bool] = default_classifier,
    description: str = "request",
) -> T:
    """
    Run an async operation, retrying retryable failures.

    Args:
        operation: Coroutine factory invoked once per attempt.
        attempts: Total attempts including the first.
        base_delay: Delay before the second attempt, in seconds.
        multiplier: Delay growth factor.
        max_delay: Upper bound for a single delay.
        is_retryable: Classifier deciding whether an error is transient.
        description: Label used in log messages.

    Returns:
        The operation's result.

    Raises:
        The last error once attempts are exhausted, or the first
        non-retryable error immediately.
    """
    delays = backoff_delays(attempts, base_delay, multiplier, max_delay)

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except Exception as e:
            if not is_retryable(e) or attempt >= attempts:
                raise
            delay = delays[attempt - 1]
            logger.warning(
                f"{description} failed (attempt {attempt}/{attempts}): {e}; "
                f"retrying in {delay:.2f}s"
            )
            await asyncio.sleep(delay)

    raise RuntimeError("unreachable")  # pragma: no cover
