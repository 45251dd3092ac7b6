"""
Queue-based logging setup.

Log records are handed to a background listener thread so slow console
or file I/O never stalls the event loop while orders are in flight.
Signatures, API keys and passphrases are masked before any handler
sees a record.
"""

import logging
import re
import sys
from datetime import datetime
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from pathlib import Path
from queue import Queue

from crossarb.config.constants import LOG_DATE_FORMAT, LOG_FORMAT, MAX_LOG_QUEUE_SIZE


_SECRET_PATTERN = re.compile(
    r"(?i)(signature|api[_-]?key|api[_-]?secret|passphrase|x-mbx-apikey|ok-access-[a-z]+)"
    r"([\"']?\s*[:=]\s*[\"']?)([^\s&\"',}]+)"
)


class MicrosecondFormatter(logging.Formatter):
    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        ct = datetime.fromtimestamp(record.created)
        return f"{ct.strftime(datefmt or LOG_DATE_FORMAT)}.{ct.microsecond:06d}"


class RedactingFilter(logging.Filter):
    """Replaces credential values in the rendered message with ``***``."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = _SECRET_PATTERN.sub(r"\1\2***", message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


class QueueLogging:
    """
    Owns the queue listener attached to the root logger.

    Use as a context manager or call start()/stop() explicitly.
    """

    def __init__(
        self,
        level: int = logging.INFO,
        log_file: Path | None = None,
        max_bytes: int = 10 * 1024 * 1024,
        backup_count: int = 5,
    ) -> None:
        self._level = level
        self._log_file = log_file
        self._max_bytes = max_bytes
        self._backup_count = backup_count
        self._queue: Queue[logging.LogRecord] = Queue(maxsize=MAX_LOG_QUEUE_SIZE)
        self._listener: QueueListener | None = None
        self._queue_handler: QueueHandler | None = None

    def _build_handlers(self) -> list[logging.Handler]:
        formatter = MicrosecondFormatter(LOG_FORMAT, LOG_DATE_FORMAT)

        console = logging.StreamHandler(sys.stdout)
        console.setLevel(self._level)
        handlers: list[logging.Handler] = [console]

        if self._log_file:
            self._log_file.parent.mkdir(parents=True, exist_ok=True)
            rotating = RotatingFileHandler(
                self._log_file, maxBytes=self._max_bytes, backupCount=self._backup_count
            )
            rotating.setLevel(logging.DEBUG)
            handlers.append(rotating)

        for handler in handlers:
            handler.setFormatter(formatter)
        return handlers

    def start(self) -> None:
        if self._listener is not None:
            return

        self._queue_handler = QueueHandler(self._queue)
        self._queue_handler.addFilter(RedactingFilter())
        logging.getLogger().addHandler(self._queue_handler)

        self._listener = QueueListener(self._queue, *self._build_handlers(), respect_handler_level=True)
        self._listener.start()

    def stop(self) -> None:
        """Flush pending records and detach from the root logger."""
        if self._listener:
            self._listener.stop()
            for handler in self._listener.handlers:
                handler.close()
            self._listener = None
        if self._queue_handler:
            logging.getLogger().removeHandler(self._queue_handler)
            self._queue_handler = None

    @property
    def running(self) -> bool:
        return self._listener is not None

    def __enter__(self) -> "QueueLogging":
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        self.stop()


def setup_logging(level: str = "INFO", log_file: Path | None = None) -> QueueLogging:
    """
    Route all application and uvicorn logging through one queue.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR).
        log_file: Optional rotating log file.

    Returns:
        Started QueueLogging instance; call stop() on shutdown.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(numeric_level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    for name in ("uvicorn", "uvicorn.error"):
        logging.getLogger(name).handlers.clear()
        logging.getLogger(name).propagate = True

    for name in ("aiohttp", "asyncio", "uvicorn.access"):
        logging.getLogger(name).setLevel(logging.WARNING)

    queue_logging = QueueLogging(level=numeric_level, log_file=log_file)
    queue_logging.start()
    return queue_logging
