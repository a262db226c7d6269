"""HTTP endpoint handlers and their registration."""

from __future__ import annotations

import logging

from ..const import DEFAULT_I2C_DEPENDENCY_NAME
from ..errors import FetchError
from ..health import DependencyCheck, HealthReport, HealthStatus, Measurement, ThresholdDirection
from ..metrics import CONTENT_TYPE as METRICS_CONTENT_TYPE
from ..metrics import render_metrics
from ..state.context import ServiceContext
from ..transport.http import HandlerRegistry, Request, Response

logger = logging.getLogger("lhserver.routes")

_MB = 1024 * 1024


def _measure(
    name: str,
    value: float | None,
    warning: float,
    critical: float,
    direction: ThresholdDirection,
) -> Measurement:
    if value is None:
        return Measurement.unavailable(name, warning, critical, direction)
    return Measurement(name, float(value), warning, critical, direction)


def build_health_report(context: ServiceContext) -> HealthReport:
    """Sample the host and judge every reading against the configured thresholds."""
    config = context.config
    stats = context.stats

    memory = stats.memory()
    disk = stats.disk()
    checks = (
        _measure(
            "memory_available_mb",
            memory.available_bytes / _MB if memory is not None else None,
            config.memory_warning_mb,
            config.memory_critical_mb,
            ThresholdDirection.LOWER_IS_BAD,
        ),
        _measure(
            "disk_free_mb",
            disk.free_bytes / _MB if disk is not None else None,
            config.disk_warning_mb,
            config.disk_critical_mb,
            ThresholdDirection.LOWER_IS_BAD,
        ),
        _measure(
            "temperature_celsius",
            stats.thermal_zone_celsius(),
            config.temperature_warning_c,
            config.temperature_critical_c,
            ThresholdDirection.HIGHER_IS_BAD,
        ),
        _measure(
            "cpu_usage_percent",
            context.health_cpu.sample(),
            config.cpu_warning_percent,
            config.cpu_critical_percent,
            ThresholdDirection.HIGHER_IS_BAD,
        ),
    )
    dependencies = (DependencyCheck(DEFAULT_I2C_DEPENDENCY_NAME, context.probe_i2c_bus()),)
    return HealthReport.build(config.service_name, checks, dependencies)


async def health_handler(request: Request, context: ServiceContext) -> Response:
    if request.method != "GET":
        return Response.method_not_allowed()
    report = build_health_report(context)
    if report.status is not HealthStatus.HEALTHY:
        logger.info("Health status %s", report.status.label)
    return Response(status=200, body=report.to_json())


async def metrics_handler(request: Request, context: ServiceContext) -> Response:
    if request.method != "GET":
        return Response.method_not_allowed()
    body = await render_metrics(context)
    return Response(status=200, body=body, content_type=METRICS_CONTENT_TYPE)


async def logs_handler(request: Request, context: ServiceContext) -> Response:
    if request.method != "GET":
        return Response.method_not_allowed()

    limit: int | None = None
    raw_limit = request.query.get("limit")
    if raw_limit is not None:
        try:
            limit = int(raw_limit)
        except ValueError:
            return Response.error(400, "Invalid limit")
        if limit < 0:
            return Response.error(400, "Invalid limit")

    entries = context.log_ring.snapshot(limit)
    return Response.json(
        {"count": len(entries), "logs": [entry.as_dict() for entry in entries]},
        indent=2,
    )


async def device_handler(request: Request, context: ServiceContext) -> Response:
    if request.method != "GET":
        return Response.method_not_allowed()
    try:
        info = await context.get_device_info()
    except FetchError as exc:
        logger.warning("Device info unavailable: %s", exc)
        return Response.error(500, "Device info unavailable")
    return Response.json(info.as_dict(), indent=2)


def register_routes(registry: HandlerRegistry, context: ServiceContext) -> HandlerRegistry:
    registry.register("/health", health_handler, context)
    registry.register("/metrics", metrics_handler, context)
    registry.register("/logs", logs_handler, context)
    registry.register("/device", device_handler, context)
    return registry


__all__ = [
    "build_health_report",
    "device_handler",
    "health_handler",
    "logs_handler",
    "metrics_handler",
    "register_routes",
]
