"""Shared constants for the LH Server daemon."""

from __future__ import annotations

from typing import Final

SERVICE_NAME: Final[str] = "lh-server"
METRIC_PREFIX: Final[str] = "ptz"

DEFAULT_CONFIG_PATH: Final[str] = "/etc/lhserver/config.json"
CONFIG_PATH_ENV: Final[str] = "LHSERVER_CONFIG"
LOG_STREAM_ENV: Final[str] = "LHSERVER_LOG_STREAM"

# Transport
DEFAULT_HTTP_HOST: Final[str] = "0.0.0.0"
DEFAULT_HTTP_PORT: Final[int] = 8080
DEFAULT_HTTP_READ_TIMEOUT: Final[float] = 5.0
DEFAULT_MAX_REQUEST_BYTES: Final[int] = 4096
HTTP_LISTEN_BACKLOG: Final[int] = 10

# Log ring
DEFAULT_LOG_BUFFER_CAPACITY: Final[int] = 100
DEFAULT_LOG_MESSAGE_MAX_LENGTH: Final[int] = 255
LOG_SEVERITY_MAX_LENGTH: Final[int] = 15

# External device API
DEFAULT_VAPIX_BASE_URL: Final[str] = "http://127.0.0.1"
DEFAULT_VAPIX_TIMEOUT: Final[float] = 5.0
DEFAULT_VAPIX_AUTH: Final[str] = "digest"
DEFAULT_TEMPERATURE_SENSOR_ID: Final[int] = 2
DEFAULT_TEMPERATURE_CACHE_TTL: Final[float] = 60.0
DEFAULT_DEVICE_INFO_CACHE_TTL: Final[float] = 300.0
TEMPERATURE_SANE_MIN: Final[float] = -50.0
TEMPERATURE_SANE_MAX: Final[float] = 100.0

# Health thresholds
DEFAULT_MEMORY_WARNING_MB: Final[float] = 50.0
DEFAULT_MEMORY_CRITICAL_MB: Final[float] = 20.0
DEFAULT_DISK_WARNING_MB: Final[float] = 100.0
DEFAULT_DISK_CRITICAL_MB: Final[float] = 50.0
DEFAULT_TEMPERATURE_WARNING_C: Final[float] = 70.0
DEFAULT_TEMPERATURE_CRITICAL_C: Final[float] = 80.0
DEFAULT_CPU_WARNING_PERCENT: Final[float] = 80.0
DEFAULT_CPU_CRITICAL_PERCENT: Final[float] = 95.0

# Collaborators
DEFAULT_DISK_PATH: Final[str] = "/"
DEFAULT_THERMAL_ZONE_PATH: Final[str] = "/sys/class/thermal/thermal_zone0/temp"
DEFAULT_I2C_BUS_DEVICE: Final[str] = "/dev/i2c-0"
DEFAULT_I2C_DEPENDENCY_NAME: Final[str] = "i2c-bus-0"

# Supervision
SUPERVISOR_DEFAULT_MIN_BACKOFF: Final[float] = 1.0
SUPERVISOR_DEFAULT_MAX_BACKOFF: Final[float] = 30.0

ISO8601_FORMAT: Final[str] = "%Y-%m-%dT%H:%M:%SZ"
