"""
Capital claims per (exchange, asset).

An execution claims every balance it may spend before touching an
exchange. A second request for any of the same balances is rejected
or queued, depending on the policy.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager

from crossarb.core.errors import ExecutionInProgressError


logger = logging.getLogger(__name__)

LockKey = tuple[str, str]


class CapitalLockRegistry:
    """Registry of asyncio locks keyed by (exchange, asset)."""

    def __init__(self, policy: str = "reject") -> None:
        """
        Initialize the registry.

        Args:
            policy: "reject" refuses a claim on a held balance,
                "queue" waits for it.
        """
        if policy not in ("reject", "queue"):
            raise ValueError(f"Unknown lock policy: {policy}")
        self._policy = policy
        self._locks: dict[LockKey, asyncio.Lock] = {}

    @property
    def policy(self) -> str:
        return self._policy

    def _ensure(self, key: LockKey) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @staticmethod
    def _normalize(keys: Iterable[LockKey]) -> list[LockKey]:
        # Sorted acquisition order keeps queued claims deadlock-free
        return sorted({(exchange.lower(), asset.upper()) for exchange, asset in keys})

    def is_claimed(self, exchange: str, asset: str) -> bool:
        lock = self._locks.get((exchange.lower(), asset.upper()))
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def claim(self, keys: Iterable[LockKey]) -> AsyncIterator[None]:
        """
        Hold every key for the duration of the block.

        Raises:
            ExecutionInProgressError: Under the reject policy, when any
                key is already claimed.
        """
        ordered = self._normalize(keys)
        locks = [self._ensure(key) for key in ordered]

        if self._policy == "reject":
            busy = [key for key, lock in zip(ordered, locks, strict=True) if lock.locked()]
            if busy:
                held = ", ".join(f"{exchange}/{asset}" for exchange, asset in busy)
                raise ExecutionInProgressError(f"capital already claimed by a running execution: {held}")

        acquired: list[asyncio.Lock] = []
        try:
            for lock in locks:
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
