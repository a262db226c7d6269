"""Settings loader for the LH Server daemon.

Configuration is read from a JSON document (``/etc/lhserver/config.json`` by
default, overridable through ``LHSERVER_CONFIG``) and merged over defaults
derived from :class:`RuntimeConfig` itself, so the struct stays the single
source of truth for default values.
"""

from __future__ import annotations

import logging
import os
from typing import Annotated, Any, Literal

import msgspec
import msgspec.structs

from ..const import (
    CONFIG_PATH_ENV,
    DEFAULT_CONFIG_PATH,
    DEFAULT_CPU_CRITICAL_PERCENT,
    DEFAULT_CPU_WARNING_PERCENT,
    DEFAULT_DEVICE_INFO_CACHE_TTL,
    DEFAULT_DISK_CRITICAL_MB,
    DEFAULT_DISK_PATH,
    DEFAULT_DISK_WARNING_MB,
    DEFAULT_HTTP_HOST,
    DEFAULT_HTTP_PORT,
    DEFAULT_HTTP_READ_TIMEOUT,
    DEFAULT_I2C_BUS_DEVICE,
    DEFAULT_LOG_BUFFER_CAPACITY,
    DEFAULT_LOG_MESSAGE_MAX_LENGTH,
    DEFAULT_MAX_REQUEST_BYTES,
    DEFAULT_MEMORY_CRITICAL_MB,
    DEFAULT_MEMORY_WARNING_MB,
    DEFAULT_TEMPERATURE_CACHE_TTL,
    DEFAULT_TEMPERATURE_CRITICAL_C,
    DEFAULT_TEMPERATURE_SENSOR_ID,
    DEFAULT_TEMPERATURE_WARNING_C,
    DEFAULT_THERMAL_ZONE_PATH,
    DEFAULT_VAPIX_AUTH,
    DEFAULT_VAPIX_BASE_URL,
    DEFAULT_VAPIX_TIMEOUT,
    SERVICE_NAME,
)

logger = logging.getLogger(__name__)

PositiveFloat = Annotated[float, msgspec.Meta(gt=0)]
PositiveInt = Annotated[int, msgspec.Meta(gt=0)]
NonNegativeFloat = Annotated[float, msgspec.Meta(ge=0)]

_config_source = "defaults"


class RuntimeConfig(msgspec.Struct, kw_only=True):
    """Strongly typed configuration for the daemon."""

    service_name: Annotated[str, msgspec.Meta(min_length=1)] = SERVICE_NAME
    debug_logging: bool = False

    http_host: str = DEFAULT_HTTP_HOST
    http_port: Annotated[int, msgspec.Meta(ge=0, le=65535)] = DEFAULT_HTTP_PORT
    http_read_timeout: PositiveFloat = DEFAULT_HTTP_READ_TIMEOUT
    max_request_bytes: Annotated[int, msgspec.Meta(ge=64)] = DEFAULT_MAX_REQUEST_BYTES

    log_buffer_capacity: PositiveInt = DEFAULT_LOG_BUFFER_CAPACITY
    log_message_max_length: PositiveInt = DEFAULT_LOG_MESSAGE_MAX_LENGTH

    vapix_base_url: str = DEFAULT_VAPIX_BASE_URL
    vapix_user: str | None = None
    vapix_pass: str | None = None
    vapix_auth: Literal["digest", "basic"] = DEFAULT_VAPIX_AUTH
    vapix_timeout: PositiveFloat = DEFAULT_VAPIX_TIMEOUT
    temperature_sensor_id: Annotated[int, msgspec.Meta(ge=0)] = DEFAULT_TEMPERATURE_SENSOR_ID
    temperature_cache_ttl: PositiveFloat = DEFAULT_TEMPERATURE_CACHE_TTL
    device_info_cache_ttl: PositiveFloat = DEFAULT_DEVICE_INFO_CACHE_TTL

    disk_path: str = DEFAULT_DISK_PATH
    thermal_zone_path: str = DEFAULT_THERMAL_ZONE_PATH
    i2c_bus_device: str = DEFAULT_I2C_BUS_DEVICE

    memory_warning_mb: NonNegativeFloat = DEFAULT_MEMORY_WARNING_MB
    memory_critical_mb: NonNegativeFloat = DEFAULT_MEMORY_CRITICAL_MB
    disk_warning_mb: NonNegativeFloat = DEFAULT_DISK_WARNING_MB
    disk_critical_mb: NonNegativeFloat = DEFAULT_DISK_CRITICAL_MB
    temperature_warning_c: float = DEFAULT_TEMPERATURE_WARNING_C
    temperature_critical_c: float = DEFAULT_TEMPERATURE_CRITICAL_C
    cpu_warning_percent: NonNegativeFloat = DEFAULT_CPU_WARNING_PERCENT
    cpu_critical_percent: NonNegativeFloat = DEFAULT_CPU_CRITICAL_PERCENT

    def __post_init__(self) -> None:
        self._validate_thresholds()
        self.vapix_base_url = self._normalize_base_url(self.vapix_base_url)
        for field_name in ("disk_path", "thermal_zone_path", "i2c_bus_device"):
            value = getattr(self, field_name)
            if not os.path.isabs(value):
                raise ValueError(f"{field_name} must be an absolute path")
        if not self.vapix_user or self.vapix_pass is None:
            logger.warning("VAPIX credentials missing; temperature and device info will be unavailable.")

    def _validate_thresholds(self) -> None:
        # Memory and disk are lower-is-bad; temperature and CPU higher-is-bad.
        lower_is_bad = (
            ("memory", self.memory_warning_mb, self.memory_critical_mb),
            ("disk", self.disk_warning_mb, self.disk_critical_mb),
        )
        for name, warning, critical in lower_is_bad:
            if critical > warning:
                raise ValueError(f"{name} critical threshold must not exceed its warning threshold")
        higher_is_bad = (
            ("temperature", self.temperature_warning_c, self.temperature_critical_c),
            ("cpu", self.cpu_warning_percent, self.cpu_critical_percent),
        )
        for name, warning, critical in higher_is_bad:
            if critical < warning:
                raise ValueError(f"{name} critical threshold must not be below its warning threshold")

    @staticmethod
    def _normalize_base_url(value: str) -> str:
        candidate = (value or "").strip().rstrip("/")
        if not candidate.startswith(("http://", "https://")):
            raise ValueError("vapix_base_url must be an http:// or https:// URL")
        return candidate


def get_default_config() -> dict[str, Any]:
    """Default values taken from the ``RuntimeConfig`` field defaults."""
    defaults: dict[str, Any] = {}
    for fi in msgspec.structs.fields(RuntimeConfig):
        defaults[fi.name] = fi.default
    return defaults


def get_config_path() -> str:
    return os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH


def get_config_source() -> str:
    """``"file"`` when the last load used a config file, else ``"defaults"``."""
    return _config_source


def _load_raw_config(path: str) -> tuple[dict[str, Any], str]:
    try:
        with open(path, "rb") as handle:
            document = msgspec.json.decode(handle.read())
    except FileNotFoundError:
        logger.info("Config file %s not found; using defaults.", path)
        return {}, "defaults"
    except (OSError, msgspec.DecodeError) as exc:
        logger.error("Failed to load config file %s: %s. Using defaults.", path, exc)
        return {}, "defaults"

    if not isinstance(document, dict):
        logger.error("Config file %s must contain a JSON object. Using defaults.", path)
        return {}, "defaults"
    return document, "file"


def load_runtime_config(path: str | None = None) -> RuntimeConfig:
    """Load configuration from the JSON file, falling back to defaults.

    Raises:
        ValueError: a value in the file is out of range or inconsistent.
    """
    global _config_source

    config_path = path or get_config_path()
    overrides, source = _load_raw_config(config_path)

    raw = get_default_config()
    known = set(raw)
    for key, value in overrides.items():
        if key not in known:
            logger.warning("Ignoring unknown config key %r", key)
            continue
        raw[key] = value

    try:
        config = msgspec.convert(raw, RuntimeConfig, strict=False)
    except msgspec.ValidationError as exc:
        raise ValueError(f"Invalid configuration in {config_path}: {exc}") from exc

    _config_source = source
    logger.debug("Configuration loaded from %s", source)
    return config


__all__ = [
    "RuntimeConfig",
    "get_config_path",
    "get_config_source",
    "get_default_config",
    "load_runtime_config",
]
