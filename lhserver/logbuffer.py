"""Bounded circular buffer of recent diagnostic log events.

The ring keeps the most recent ``capacity`` events in chronological order and
is shared by arbitrary producers. Records reach it through the standard
``logging`` machinery: :class:`RingBufferHandler` sits on the root logger next
to the syslog handler, so a single ``logging`` call lands in both sinks.
Events raised through :func:`log_event` keep their own severity string in the
ring; only the syslog sink sees the mapped level.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, Final

import msgspec

from .const import (
    DEFAULT_LOG_BUFFER_CAPACITY,
    DEFAULT_LOG_MESSAGE_MAX_LENGTH,
    ISO8601_FORMAT,
    LOG_SEVERITY_MAX_LENGTH,
)

NOTICE: Final[int] = 25
logging.addLevelName(NOTICE, "NOTICE")

SEVERITY_DEBUG: Final[str] = "debug"
SEVERITY_INFO: Final[str] = "info"
SEVERITY_NOTICE: Final[str] = "notice"
SEVERITY_WARNING: Final[str] = "warning"
SEVERITY_ERROR: Final[str] = "error"
SEVERITY_CRITICAL: Final[str] = "critical"

_SEVERITY_LEVELS: Final[dict[str, int]] = {
    SEVERITY_CRITICAL: logging.CRITICAL,
    SEVERITY_WARNING: logging.WARNING,
    SEVERITY_INFO: logging.INFO,
    SEVERITY_DEBUG: logging.DEBUG,
}

_event_logger = logging.getLogger("lhserver.events")


class LogEntry(msgspec.Struct, frozen=True):
    """One buffered event."""

    timestamp: float
    severity: str
    message: str

    @property
    def iso_timestamp(self) -> str:
        return format_timestamp(self.timestamp)

    def as_dict(self) -> dict[str, str]:
        return {
            "timestamp": self.iso_timestamp,
            "severity": self.severity,
            "message": self.message,
        }


def format_timestamp(value: float) -> str:
    """Render a UNIX timestamp as ``YYYY-MM-DDThh:mm:ssZ``."""
    return datetime.fromtimestamp(value, tz=timezone.utc).strftime(ISO8601_FORMAT)


def severity_to_level(severity: str) -> int:
    """Map a severity string onto a logging level; unknown maps to NOTICE."""
    return _SEVERITY_LEVELS.get(severity, NOTICE)


def level_to_severity(levelno: int) -> str:
    if levelno >= logging.CRITICAL:
        return SEVERITY_CRITICAL
    if levelno >= logging.ERROR:
        return SEVERITY_ERROR
    if levelno >= logging.WARNING:
        return SEVERITY_WARNING
    if levelno >= NOTICE:
        return SEVERITY_NOTICE
    if levelno >= logging.INFO:
        return SEVERITY_INFO
    return SEVERITY_DEBUG


def record_severity(record: logging.LogRecord) -> str:
    """Severity carried by *record*: the ``log_event`` one, else from its level."""
    severity = getattr(record, "severity", None)
    if isinstance(severity, str):
        return severity
    return level_to_severity(record.levelno)


class LogRing:
    """Fixed-capacity ring of :class:`LogEntry` records guarded by one lock."""

    __slots__ = ("_capacity", "_max_message", "_entries", "_head", "_count", "_lock", "_clock")

    def __init__(
        self,
        capacity: int = DEFAULT_LOG_BUFFER_CAPACITY,
        *,
        max_message_length: int = DEFAULT_LOG_MESSAGE_MAX_LENGTH,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be a positive integer")
        if max_message_length <= 0:
            raise ValueError("max_message_length must be a positive integer")
        self._capacity = capacity
        self._max_message = max_message_length
        self._entries: list[LogEntry | None] = [None] * capacity
        self._head = 0
        self._count = 0
        self._lock = threading.Lock()
        self._clock = clock

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        with self._lock:
            return self._count

    def append(self, severity: str, message: str) -> None:
        severity = severity[:LOG_SEVERITY_MAX_LENGTH]
        message = message[: self._max_message]
        with self._lock:
            self._entries[self._head] = LogEntry(self._clock(), severity, message)
            self._head = (self._head + 1) % self._capacity
            if self._count < self._capacity:
                self._count += 1

    def snapshot(self, max_entries: int | None = None) -> list[LogEntry]:
        """Return up to *max_entries* of the newest entries, oldest first."""
        with self._lock:
            to_export = self._count if max_entries is None else min(max(max_entries, 0), self._count)
            start = (self._head + self._capacity - to_export) % self._capacity
            exported: list[LogEntry] = []
            for offset in range(to_export):
                entry = self._entries[(start + offset) % self._capacity]
                if entry is not None:
                    exported.append(entry)
            return exported

    def clear(self) -> None:
        with self._lock:
            self._entries = [None] * self._capacity
            self._head = 0
            self._count = 0


class RingBufferHandler(logging.Handler):
    """Logging handler that copies formatted messages into a :class:`LogRing`.

    A ``severity`` attribute on the record wins over the one derived from its
    level.
    """

    def __init__(self, ring: LogRing, level: int = logging.NOTSET) -> None:
        super().__init__(level)
        self.ring = ring

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            self.handleError(record)
            return
        self.ring.append(record_severity(record), message)


def log_event(severity: str, fmt: str, *args: Any) -> None:
    """Record an event under *severity*, which the ring stores verbatim."""
    _event_logger.log(severity_to_level(severity), fmt, *args, extra={"severity": severity})


__all__ = [
    "LogEntry",
    "LogRing",
    "NOTICE",
    "RingBufferHandler",
    "SEVERITY_CRITICAL",
    "SEVERITY_DEBUG",
    "SEVERITY_ERROR",
    "SEVERITY_INFO",
    "SEVERITY_NOTICE",
    "SEVERITY_WARNING",
    "format_timestamp",
    "level_to_severity",
    "log_event",
    "record_severity",
    "severity_to_level",
]
