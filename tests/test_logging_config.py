"""Tests for the logging configuration."""

import json
import logging
from unittest.mock import patch

from lhserver.config import logging as log_mod
from lhserver.config.settings import RuntimeConfig
from lhserver.logbuffer import NOTICE, LogRing, RingBufferHandler, log_event


def _record(name: str = "lhserver.test", level: int = logging.INFO) -> logging.LogRecord:
    return logging.LogRecord(
        name=name,
        level=level,
        pathname=__file__,
        lineno=1,
        msg="hello %s",
        args=("world",),
        exc_info=None,
    )


def test_formatter_renders_bytes_as_hex_and_objects_as_text() -> None:
    record = _record()
    record.custom_bytes = b"caf\xc3\xa9"  # type: ignore
    record.custom_obj = object()  # type: ignore

    formatter = log_mod.StructuredLogFormatter()
    payload = json.loads(formatter.format(record))

    assert payload["logger"] == "test"
    assert payload["level"] == "INFO"
    assert payload["message"] == "hello world"
    assert payload["ts"].endswith("Z")
    assert payload["extra"]["custom_bytes"] == "[63 61 66 C3 A9]"
    assert str(record.custom_obj) in payload["extra"]["custom_obj"]


def test_formatter_keeps_foreign_logger_names() -> None:
    payload = json.loads(log_mod.StructuredLogFormatter().format(_record(name="httpx")))

    assert payload["logger"] == "httpx"
    assert "extra" not in payload


def test_formatter_reports_event_severity_outside_extras() -> None:
    record = _record(level=log_mod.NOTICE)
    record.severity = "bus"  # type: ignore

    payload = json.loads(log_mod.StructuredLogFormatter().format(record))

    assert payload["level"] == "NOTICE"
    assert payload["severity"] == "bus"
    assert "extra" not in payload
    assert json.loads(log_mod.StructuredLogFormatter().format(_record(level=logging.ERROR)))["severity"] == "error"


def test_configure_logging_syslog(tmp_path) -> None:
    fake_socket = tmp_path / "log"
    fake_socket.touch()

    with patch("lhserver.config.logging.SYSLOG_SOCKET", fake_socket):
        with patch("lhserver.config.logging.dictConfig") as mock_dict_config:
            log_mod.configure_logging(RuntimeConfig(debug_logging=True))
            mock_dict_config.assert_called_once()
            config_arg = mock_dict_config.call_args[0][0]
            assert list(config_arg["handlers"]) == ["lhserver"]
            assert config_arg["root"]["level"] == "DEBUG"


def test_configure_logging_wires_ring_handler() -> None:
    ring = LogRing(capacity=4, max_message_length=64)

    with patch("lhserver.config.logging.dictConfig") as mock_dict_config:
        log_mod.configure_logging(RuntimeConfig(), ring)

    config_arg = mock_dict_config.call_args[0][0]
    assert config_arg["handlers"]["ring"]["ring"] is ring
    assert config_arg["handlers"]["ring"]["()"] is RingBufferHandler
    assert config_arg["root"]["handlers"] == ["lhserver", "ring"]
    assert config_arg["root"]["level"] == "INFO"


def test_configure_logging_copies_records_into_ring(monkeypatch) -> None:
    monkeypatch.setenv("LHSERVER_LOG_STREAM", "1")
    ring = LogRing(capacity=4, max_message_length=64)

    log_mod.configure_logging(RuntimeConfig(), ring)
    logging.getLogger("lhserver.test").warning("disk low")

    messages = [(entry.severity, entry.message) for entry in ring.snapshot()]
    assert ("info", "Logging configured at level INFO") in messages
    assert ("warning", "disk low") in messages


def test_stream_override_builds_stream_handler(monkeypatch) -> None:
    monkeypatch.setenv("LHSERVER_LOG_STREAM", "1")

    handler = log_mod._build_handler()

    assert type(handler) is logging.StreamHandler


def test_missing_syslog_socket_falls_back_to_stream(monkeypatch, tmp_path) -> None:
    monkeypatch.delenv("LHSERVER_LOG_STREAM", raising=False)
    monkeypatch.setattr(log_mod, "SYSLOG_SOCKET", tmp_path / "none")
    monkeypatch.setattr(log_mod, "SYSLOG_SOCKET_FALLBACK", tmp_path / "none-either")

    assert type(log_mod._build_handler()) is logging.StreamHandler


def test_syslog_handler_maps_notice() -> None:
    handler = log_mod._SysLogHandler.__new__(log_mod._SysLogHandler)

    assert handler.mapPriority("NOTICE") == "notice"
    assert handler.mapPriority("WARNING") == "warning"
    assert logging.getLevelName(NOTICE) == "NOTICE"


def test_configured_ring_keeps_debug_events_and_raw_severities(monkeypatch) -> None:
    monkeypatch.setenv("LHSERVER_LOG_STREAM", "1")
    ring = LogRing(capacity=8, max_message_length=64)

    log_mod.configure_logging(RuntimeConfig(), ring)
    log_event("debug", "bus probe %d", 1)
    log_event("error", "custom severity")
    logging.getLogger("lhserver.test").debug("filtered by root level")
    logging.getLogger("lhserver.test").error("read failed")

    entries = [(entry.severity, entry.message) for entry in ring.snapshot()]
    assert ("debug", "bus probe 1") in entries
    assert ("error", "custom severity") in entries
    assert ("error", "read failed") in entries
    assert all(message != "filtered by root level" for _, message in entries)


def test_event_logger_opened_to_debug_while_sink_keeps_level() -> None:
    with patch("lhserver.config.logging.dictConfig") as mock_dict_config:
        log_mod.configure_logging(RuntimeConfig(), LogRing(capacity=4, max_message_length=64))

    config_arg = mock_dict_config.call_args[0][0]
    assert config_arg["loggers"]["lhserver.events"]["level"] == "DEBUG"
    assert config_arg["handlers"]["lhserver"]["level"] == "INFO"
    assert "level" not in config_arg["handlers"]["ring"]
