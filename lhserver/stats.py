"""Operating-system statistics used by health checks and metrics.

Every reader returns ``None`` when its source is unavailable and logs a
warning; callers decide whether to skip the metric or substitute a sentinel.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from typing import NamedTuple

import psutil

from .const import DEFAULT_DISK_PATH, DEFAULT_I2C_BUS_DEVICE, DEFAULT_THERMAL_ZONE_PATH

logger = logging.getLogger("lhserver.stats")

_BUSY_FIELDS = ("user", "nice", "system", "irq", "softirq", "steal")


class MemoryStats(NamedTuple):
    total_bytes: int
    available_bytes: int


class DiskStats(NamedTuple):
    total_bytes: int
    free_bytes: int


class NetworkStats(NamedTuple):
    interface: str
    rx_bytes: int
    tx_bytes: int


class CpuTimes(NamedTuple):
    total: float
    idle: float


def read_cpu_times() -> CpuTimes | None:
    try:
        times = psutil.cpu_times()
    except (OSError, AttributeError) as exc:
        logger.warning("Failed to read CPU times: %s", exc)
        return None
    # guest time is already included in user/nice; iowait counts as idle.
    busy = sum(getattr(times, name, 0.0) for name in _BUSY_FIELDS)
    idle = times.idle + getattr(times, "iowait", 0.0)
    return CpuTimes(total=busy + idle, idle=idle)


def cpu_usage_between(previous: CpuTimes, current: CpuTimes) -> float:
    """Busy share of the interval between two samples, in percent."""
    total_diff = current.total - previous.total
    idle_diff = current.idle - previous.idle
    if total_diff <= 0:
        return 0.0
    return 100.0 * (total_diff - idle_diff) / total_diff


class CpuUsageSampler:
    """Delta-based CPU usage since the previous call to :meth:`sample`."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._previous = read_cpu_times()

    def sample(self) -> float | None:
        current = read_cpu_times()
        if current is None:
            return None
        with self._lock:
            previous, self._previous = self._previous, current
        if previous is None:
            return 0.0
        return cpu_usage_between(previous, current)


class SystemStats:
    """psutil-backed readers for the host this daemon runs on."""

    def __init__(
        self,
        *,
        disk_path: str = DEFAULT_DISK_PATH,
        thermal_zone_path: str = DEFAULT_THERMAL_ZONE_PATH,
        i2c_bus_device: str = DEFAULT_I2C_BUS_DEVICE,
    ) -> None:
        self.disk_path = disk_path
        self.thermal_zone_path = thermal_zone_path
        self.i2c_bus_device = i2c_bus_device

    def uptime_seconds(self) -> float | None:
        try:
            return max(0.0, time.time() - psutil.boot_time())
        except (OSError, AttributeError) as exc:
            logger.warning("Failed to read uptime: %s", exc)
            return None

    def memory(self) -> MemoryStats | None:
        try:
            mem = psutil.virtual_memory()
        except (OSError, AttributeError) as exc:
            logger.warning("Failed to read memory info: %s", exc)
            return None
        return MemoryStats(total_bytes=mem.total, available_bytes=mem.available)

    def load_average_1m(self) -> float | None:
        try:
            return psutil.getloadavg()[0]
        except (OSError, AttributeError) as exc:
            logger.warning("Failed to read load average: %s", exc)
            return None

    def disk(self) -> DiskStats | None:
        try:
            usage = psutil.disk_usage(self.disk_path)
        except OSError as exc:
            logger.warning("Failed to read disk usage for %s: %s", self.disk_path, exc)
            return None
        return DiskStats(total_bytes=usage.total, free_bytes=usage.free)

    def network(self) -> NetworkStats | None:
        """Counters of the first non-loopback interface."""
        try:
            counters = psutil.net_io_counters(pernic=True)
        except (OSError, AttributeError) as exc:
            logger.warning("Failed to read network counters: %s", exc)
            return None
        for name, nic in counters.items():
            if name == "lo":
                continue
            return NetworkStats(interface=name, rx_bytes=nic.bytes_recv, tx_bytes=nic.bytes_sent)
        logger.warning("No non-loopback network interface found")
        return None

    def process_count(self) -> int | None:
        try:
            return len(psutil.pids())
        except OSError as exc:
            logger.warning("Failed to count processes: %s", exc)
            return None

    def thermal_zone_celsius(self) -> float | None:
        try:
            with open(self.thermal_zone_path, encoding="ascii") as handle:
                raw = handle.read().strip()
            return int(raw) / 1000.0
        except (OSError, ValueError) as exc:
            logger.warning("Failed to read thermal zone %s: %s", self.thermal_zone_path, exc)
            return None

    def i2c_bus_available(self) -> bool:
        """Probe the bus by opening its device node."""
        try:
            fd = os.open(self.i2c_bus_device, os.O_RDWR)
        except OSError as exc:
            logger.warning("I2C bus %s unavailable: %s", self.i2c_bus_device, exc)
            return False
        os.close(fd)
        return True


__all__ = [
    "CpuTimes",
    "CpuUsageSampler",
    "DiskStats",
    "MemoryStats",
    "NetworkStats",
    "SystemStats",
    "cpu_usage_between",
    "read_cpu_times",
]
