"""Prometheus exporter for LH Server.

Metric families are built with :mod:`prometheus_client` and rendered with a
small text writer that keeps the device's historical formatting: gauges with
two decimals, counters as plain integers.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from typing import Any

from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily, Metric
from prometheus_client.registry import Collector

from .const import METRIC_PREFIX
from .errors import FetchError
from .state.context import ServiceContext
from .vapix import DeviceInfo

logger = logging.getLogger("lhserver.metrics")

CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"


def _name(suffix: str) -> str:
    return f"{METRIC_PREFIX}_{suffix}"


def _gauge(suffix: str, documentation: str, value: float) -> GaugeMetricFamily:
    return GaugeMetricFamily(_name(suffix), documentation, value=value)


def _counter(suffix: str, documentation: str, value: int) -> CounterMetricFamily:
    return CounterMetricFamily(_name(suffix), documentation, value=value)


def collect_system_metrics(context: ServiceContext) -> Iterator[Metric]:
    stats = context.stats
    uptime = stats.uptime_seconds()
    if uptime is not None:
        yield _gauge("uptime_seconds", "PTZ camera system uptime", uptime)
    else:
        logger.warning("Failed to collect uptime metric")

    memory = stats.memory()
    if memory is not None:
        yield _gauge("memory_total_bytes", "Total memory in bytes", memory.total_bytes)
        yield _gauge("memory_available_bytes", "Available memory in bytes", memory.available_bytes)
    else:
        logger.warning("Failed to collect memory metrics")

    load = stats.load_average_1m()
    if load is not None:
        yield _gauge("load_average_1m", "1-minute load average", load)
    else:
        logger.warning("Failed to collect load average metric")

    cpu = context.metrics_cpu.sample()
    if cpu is not None:
        yield _gauge("cpu_usage_percent", "CPU utilization percentage", cpu)
    else:
        logger.warning("Failed to collect CPU stats")


def collect_network_metrics(context: ServiceContext) -> Iterator[Metric]:
    network = context.stats.network()
    if network is None:
        logger.warning("Failed to collect network metrics")
        return
    for suffix, documentation, value in (
        ("network_rx_bytes", "Total bytes received", network.rx_bytes),
        ("network_tx_bytes", "Total bytes transmitted", network.tx_bytes),
    ):
        family = CounterMetricFamily(_name(suffix), documentation, labels=["interface"])
        family.add_metric([network.interface], value)
        yield family


def collect_disk_metrics(context: ServiceContext) -> Iterator[Metric]:
    disk = context.stats.disk()
    if disk is None:
        logger.warning("Failed to collect disk metrics")
        return
    yield _gauge("disk_total_bytes", "Total disk space in bytes", disk.total_bytes)
    yield _gauge("disk_free_bytes", "Free disk space in bytes", disk.free_bytes)


def collect_service_metrics(context: ServiceContext) -> Iterator[Metric]:
    counters = context.counters
    yield _counter("http_requests", "Total HTTP requests handled", counters.http_requests)
    yield _counter("i2c_errors", "Total I2C communication errors", counters.i2c_errors)
    yield _counter(
        "supervisor_restarts",
        "Total supervised task restarts",
        context.supervisor_restarts,
    )

    processes = context.stats.process_count()
    if processes is not None:
        yield _gauge("process_count", "Number of running processes", processes)
    else:
        logger.warning("Failed to collect process count")


def collect_device_metrics(
    temperature: float | None,
    device_info: DeviceInfo | None,
) -> Iterator[Metric]:
    if temperature is not None:
        yield _gauge("temperature_celsius", "Camera temperature in Celsius", temperature)
    if device_info is not None:
        family = GaugeMetricFamily(
            _name("device_info"),
            "Camera identification",
            labels=["serial", "firmware", "model", "architecture", "soc"],
        )
        family.add_metric(
            [
                device_info.serial,
                device_info.firmware,
                device_info.model,
                device_info.architecture,
                device_info.soc,
            ],
            1,
        )
        yield family


class ServiceContextCollector(Collector):
    """Collector projecting a :class:`ServiceContext` onto metric families.

    Device values are fetched asynchronously beforehand and passed in, since
    ``collect`` itself is synchronous.
    """

    def __init__(
        self,
        context: ServiceContext,
        *,
        temperature: float | None = None,
        device_info: DeviceInfo | None = None,
    ) -> None:
        self._context = context
        self._temperature = temperature
        self._device_info = device_info

    def collect(self) -> Iterator[Metric]:
        for section in (
            collect_system_metrics,
            collect_network_metrics,
            collect_disk_metrics,
            collect_service_metrics,
        ):
            try:
                yield from section(self._context)
            except (OSError, ValueError, AttributeError) as exc:
                logger.warning("Skipping %s: %s", section.__name__, exc)
        yield from collect_device_metrics(self._temperature, self._device_info)


def _escape_label(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _format_labels(labels: dict[str, str]) -> str:
    if not labels:
        return ""
    inner = ",".join(f'{key}="{_escape_label(value)}"' for key, value in labels.items())
    return "{" + inner + "}"


def _format_value(metric_type: str, value: float) -> str:
    if metric_type == "counter":
        return str(int(value))
    return f"{value:.2f}"


def render_exposition(families: Iterable[Metric]) -> bytes:
    """Render families as Prometheus text, always ending with a newline."""
    lines: list[str] = []
    for family in families:
        exposed = f"{family.name}_total" if family.type == "counter" else family.name
        lines.append(f"# HELP {exposed} {family.documentation}")
        lines.append(f"# TYPE {exposed} {family.type}")
        for sample in family.samples:
            if sample.name.endswith("_created"):
                continue
            lines.append(f"{sample.name}{_format_labels(sample.labels)} {_format_value(family.type, sample.value)}")
    return ("\n".join(lines) + "\n").encode("utf-8")


async def _cached_or_none(name: str, getter: Any) -> Any:
    try:
        return await getter()
    except FetchError as exc:
        logger.debug("Skipping %s metric: %s", name, exc)
        return None


async def render_metrics(context: ServiceContext) -> bytes:
    temperature = await _cached_or_none("temperature", context.get_temperature)
    device_info = await _cached_or_none("device info", context.get_device_info)
    collector = ServiceContextCollector(context, temperature=temperature, device_info=device_info)
    return render_exposition(collector.collect())


__all__ = [
    "CONTENT_TYPE",
    "ServiceContextCollector",
    "collect_device_metrics",
    "collect_disk_metrics",
    "collect_network_metrics",
    "collect_service_metrics",
    "collect_system_metrics",
    "render_exposition",
    "render_metrics",
]
