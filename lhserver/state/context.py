"""Service context shared by the HTTP handlers and background tasks."""

from __future__ import annotations

import threading
import time
from typing import Any

import msgspec

from ..cache import CachedValue
from ..config.settings import RuntimeConfig, get_config_source
from ..logbuffer import LogRing
from ..stats import CpuUsageSampler, SystemStats
from ..vapix import DeviceInfo, VapixClient


class ServiceCounters:
    """Monotonic service counters safe to bump from any thread."""

    __slots__ = ("_lock", "_http_requests", "_i2c_errors")

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._http_requests = 0
        self._i2c_errors = 0

    @property
    def http_requests(self) -> int:
        with self._lock:
            return self._http_requests

    @property
    def i2c_errors(self) -> int:
        with self._lock:
            return self._i2c_errors

    def record_http_request(self, *_: Any) -> None:
        with self._lock:
            self._http_requests += 1

    def record_i2c_error(self) -> None:
        with self._lock:
            self._i2c_errors += 1


class SupervisorStats(msgspec.Struct):
    """Task supervisor statistics."""

    restarts: int = 0
    last_failure_unix: float = 0.0
    last_exception: str | None = None
    backoff_seconds: float = 0.0
    fatal: bool = False


def _counters_factory() -> ServiceCounters:
    return ServiceCounters()


def _supervisor_stats_factory() -> dict[str, SupervisorStats]:
    return {}


class ServiceContext(msgspec.Struct, kw_only=True):
    """Owner of every long-lived object the endpoints read from."""

    config: RuntimeConfig
    log_ring: LogRing
    stats: SystemStats
    vapix: VapixClient
    temperature_cache: CachedValue[float]
    device_info_cache: CachedValue[DeviceInfo]
    health_cpu: CpuUsageSampler
    metrics_cpu: CpuUsageSampler
    counters: ServiceCounters = msgspec.field(default_factory=_counters_factory)
    supervisor_stats: dict[str, SupervisorStats] = msgspec.field(default_factory=_supervisor_stats_factory)
    config_source: str = "defaults"

    async def get_temperature(self) -> float:
        """Camera temperature via the TTL cache; raises ``VapixError`` if none."""
        return await self.temperature_cache.get(self.vapix.fetch_temperature)

    async def get_device_info(self) -> DeviceInfo:
        return await self.device_info_cache.get(self.vapix.fetch_device_info)

    def probe_i2c_bus(self) -> bool:
        available = self.stats.i2c_bus_available()
        if not available:
            self.counters.record_i2c_error()
        return available

    def _supervisor_entry(self, name: str, exc: BaseException) -> SupervisorStats:
        stats = self.supervisor_stats.get(name)
        if stats is None:
            stats = SupervisorStats()
            self.supervisor_stats[name] = stats
        stats.last_failure_unix = time.time()
        stats.last_exception = f"{exc.__class__.__name__}: {exc}"
        return stats

    def record_supervisor_restart(self, name: str, *, backoff: float, exc: BaseException) -> None:
        """Book a failure that the supervisor is about to retry."""
        stats = self._supervisor_entry(name, exc)
        stats.restarts += 1
        stats.backoff_seconds = backoff

    def record_supervisor_failure(self, name: str, *, exc: BaseException, fatal: bool = False) -> None:
        """Book a failure that ends supervision; restarts are left unchanged."""
        stats = self._supervisor_entry(name, exc)
        stats.backoff_seconds = 0.0
        stats.fatal = fatal

    def mark_supervisor_healthy(self, name: str) -> None:
        stats = self.supervisor_stats.get(name)
        if stats is None:
            return
        stats.backoff_seconds = 0.0
        stats.fatal = False

    @property
    def supervisor_restarts(self) -> int:
        return sum(stats.restarts for stats in self.supervisor_stats.values())


def create_service_context(
    config: RuntimeConfig,
    *,
    log_ring: LogRing | None = None,
    stats: SystemStats | None = None,
    vapix: VapixClient | None = None,
) -> ServiceContext:
    if log_ring is None:
        log_ring = LogRing(
            config.log_buffer_capacity,
            max_message_length=config.log_message_max_length,
        )
    if stats is None:
        stats = SystemStats(
            disk_path=config.disk_path,
            thermal_zone_path=config.thermal_zone_path,
            i2c_bus_device=config.i2c_bus_device,
        )
    if vapix is None:
        vapix = VapixClient(
            base_url=config.vapix_base_url,
            user=config.vapix_user,
            password=config.vapix_pass,
            auth=config.vapix_auth,
            timeout=config.vapix_timeout,
            sensor_id=config.temperature_sensor_id,
            context_name=config.service_name,
        )
    return ServiceContext(
        config=config,
        log_ring=log_ring,
        stats=stats,
        vapix=vapix,
        temperature_cache=CachedValue("temperature", config.temperature_cache_ttl),
        device_info_cache=CachedValue("device info", config.device_info_cache_ttl),
        health_cpu=CpuUsageSampler(),
        metrics_cpu=CpuUsageSampler(),
        config_source=get_config_source(),
    )


__all__ = [
    "ServiceContext",
    "ServiceCounters",
    "SupervisorStats",
    "create_service_context",
]
