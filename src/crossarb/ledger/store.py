"""
Append-only trade ledger.

The orchestrator inserts exactly one record per execution attempt.
Records are never updated or deleted.
"""

import asyncio
import logging
from pathlib import Path
from typing import Protocol, runtime_checkable

import orjson

from crossarb.core.types import TradeRecord


logger = logging.getLogger(__name__)


@runtime_checkable
class TradeLedger(Protocol):
    """Persistence contract for trade records."""

    async def insert(self, record: TradeRecord) -> None: ...

    async def list_records(self, limit: int | None = None) -> list[TradeRecord]: ...


class InMemoryTradeLedger:
    """Process-local ledger, newest records last."""

    def __init__(self) -> None:
        self._records: list[TradeRecord] = []

    async def insert(self, record: TradeRecord) -> None:
        self._records.append(record)

    async def list_records(self, limit: int | None = None) -> list[TradeRecord]:
        """Most recent records first."""
        records = list(reversed(self._records))
        return records[:limit] if limit is not None else records

    def __len__(self) -> int:
        return len(self._records)


class JsonlTradeLedger:
    """
    Ledger persisted as one JSON object per line.

    File I/O runs in a worker thread so the event loop never blocks on
    disk; an asyncio lock serializes appends.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _append(self, line: bytes) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("ab") as f:
            f.write(line + b"\n")

    def _read(self) -> list[TradeRecord]:
        if not self._path.exists():
            return []
        records = []
        with self._path.open("rb") as f:
            for number, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    records.append(TradeRecord.from_dict(orjson.loads(line)))
                except (orjson.JSONDecodeError, KeyError, ValueError) as e:
                    logger.warning(f"Skipping unreadable ledger line {number} in {self._path}: {e}")
        return records

    async def insert(self, record: TradeRecord) -> None:
        line = orjson.dumps(record.to_dict(exact=True))
        async with self._lock:
            await asyncio.to_thread(self._append, line)

    async def list_records(self, limit: int | None = None) -> list[TradeRecord]:
        """Most recent records first."""
        async with self._lock:
            records = await asyncio.to_thread(self._read)
        records.reverse()
        return records[:limit] if limit is not None else records
