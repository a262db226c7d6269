"""Logging helpers for LH Server daemon."""

from __future__ import annotations

import logging
import os
from logging import Handler
from logging.config import dictConfig
from logging.handlers import SysLogHandler
from pathlib import Path
from typing import Any

import msgspec

from ..const import LOG_STREAM_ENV
from ..logbuffer import NOTICE, LogRing, RingBufferHandler, format_timestamp, record_severity
from .settings import RuntimeConfig

SYSLOG_SOCKET = Path("/dev/log")
SYSLOG_SOCKET_FALLBACK = Path("/var/run/log")
SYSLOG_IDENT = "lhserver "

_RESERVED_LOG_KEYS = {
    "args",
    "asctime",
    "created",
    "exc_info",
    "exc_text",
    "filename",
    "funcName",
    "levelname",
    "levelno",
    "lineno",
    "module",
    "msecs",
    "message",
    "msg",
    "name",
    "pathname",
    "process",
    "processName",
    "relativeCreated",
    "stack_info",
    "taskName",
    "thread",
    "threadName",
}


def _extra_value(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (bytes, bytearray)):
        # Bus payloads render as hex: [DE AD BE EF]
        return "[" + " ".join(f"{byte:02X}" for byte in value) + "]"
    return str(value)


class StructuredLogFormatter(logging.Formatter):
    """One JSON object per line, stamped like the entries served by ``/logs``.

    ``severity`` is the event severity from :func:`~lhserver.logbuffer.log_event`
    when present, otherwise the one derived from the record level.
    """

    PREFIX = "lhserver."

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": format_timestamp(record.created),
            "level": record.levelname,
            "severity": record_severity(record),
            "logger": record.name.removeprefix(self.PREFIX),
            "message": record.getMessage(),
        }

        extras = {
            key: _extra_value(value)
            for key, value in record.__dict__.items()
            if key not in _RESERVED_LOG_KEYS and key != "severity" and not key.startswith("_")
        }
        if extras:
            payload["extra"] = extras

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return msgspec.json.encode(payload).decode("utf-8")


class _SysLogHandler(SysLogHandler):
    """SysLogHandler that knows the NOTICE level."""

    priority_map = {**SysLogHandler.priority_map, "NOTICE": "notice"}


def _build_handler() -> Handler:
    if os.environ.get(LOG_STREAM_ENV):
        return logging.StreamHandler()

    socket_path: Path | None = None
    for candidate in (SYSLOG_SOCKET, SYSLOG_SOCKET_FALLBACK):
        if candidate.exists():
            socket_path = candidate
            break

    if socket_path is not None:
        syslog_handler = _SysLogHandler(
            address=str(socket_path),
            facility=SysLogHandler.LOG_DAEMON,
        )
        syslog_handler.ident = SYSLOG_IDENT
        return syslog_handler
    return logging.StreamHandler()


def configure_logging(config: RuntimeConfig, ring: LogRing | None = None) -> None:
    """Configure root logging based on runtime settings.

    When *ring* is given every record that passes the root level is copied
    into it as well, plus every :func:`~lhserver.logbuffer.log_event` call
    regardless of severity.
    """

    level_name = "DEBUG" if config.debug_logging else "INFO"

    handlers: dict[str, Any] = {
        "lhserver": {
            "()": _build_handler,
            "level": level_name,
            "formatter": "structured",
        }
    }
    if ring is not None:
        handlers["ring"] = {
            "()": RingBufferHandler,
            "ring": ring,
        }

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structured": {
                    "()": "lhserver.config.logging.StructuredLogFormatter",
                }
            },
            "handlers": handlers,
            "loggers": {
                # log_event at any severity reaches the ring; the process log
                # handler still filters at level_name.
                "lhserver.events": {"level": "DEBUG"},
            },
            "root": {
                "level": level_name,
                "handlers": list(handlers),
            },
        }
    )

    logging.getLogger("lhserver").info("Logging configured at level %s", level_name)


__all__ = ["NOTICE", "StructuredLogFormatter", "configure_logging"]
