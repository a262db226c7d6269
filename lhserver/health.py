"""Health evaluation engine.

Raw measurements are judged against a warning/critical threshold pair and
reduced, together with dependency reachability, to one overall status by
taking the worst severity. Everything here is pure: records are immutable and
built fresh for every report.
"""

from __future__ import annotations

import enum
import math
import time
from collections.abc import Iterable
from itertools import chain
from typing import Any

import msgspec

from .logbuffer import format_timestamp


class HealthStatus(enum.IntEnum):
    """Ordered status scale: HEALTHY < DEGRADED < UNHEALTHY."""

    HEALTHY = 0
    DEGRADED = 1
    UNHEALTHY = 2

    @property
    def label(self) -> str:
        return self.name.lower()

    @property
    def severity(self) -> str:
        return _SEVERITIES[self]


_SEVERITIES = {
    HealthStatus.HEALTHY: "info",
    HealthStatus.DEGRADED: "warning",
    HealthStatus.UNHEALTHY: "critical",
}


class ThresholdDirection(enum.Enum):
    LOWER_IS_BAD = "lower_is_bad"
    HIGHER_IS_BAD = "higher_is_bad"


def unavailable_value(direction: ThresholdDirection) -> float:
    """Sentinel standing in for a value the collector could not produce.

    Chosen so it always lands on the unhealthy side of any sane threshold:
    below a non-negative critical floor, or above every critical ceiling.
    """
    if direction is ThresholdDirection.LOWER_IS_BAD:
        return -1.0
    return math.inf


class Measurement(msgspec.Struct, frozen=True):
    name: str
    value: float
    warning: float
    critical: float
    direction: ThresholdDirection

    @classmethod
    def unavailable(
        cls,
        name: str,
        warning: float,
        critical: float,
        direction: ThresholdDirection,
    ) -> Measurement:
        return cls(name, unavailable_value(direction), warning, critical, direction)

    @property
    def status(self) -> HealthStatus:
        return evaluate(self)


class DependencyCheck(msgspec.Struct, frozen=True):
    service: str
    reachable: bool

    @property
    def status(self) -> HealthStatus:
        return evaluate_dependency(self.reachable)


class HealthReport(msgspec.Struct, frozen=True):
    service: str
    status: HealthStatus
    timestamp: str
    checks: tuple[Measurement, ...] = ()
    dependencies: tuple[DependencyCheck, ...] = ()

    @classmethod
    def build(
        cls,
        service: str,
        checks: Iterable[Measurement],
        dependencies: Iterable[DependencyCheck],
        *,
        now: float | None = None,
    ) -> HealthReport:
        check_list = tuple(checks)
        dependency_list = tuple(dependencies)
        return cls(
            service=service,
            status=aggregate(check_list, dependency_list),
            timestamp=format_timestamp(time.time() if now is None else now),
            checks=check_list,
            dependencies=dependency_list,
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "service": self.service,
            "status": self.status.label,
            "severity": self.status.severity,
            "timestamp": self.timestamp,
            "checks": [
                {
                    "name": check.name,
                    "value": check.value,
                    "warning": check.warning,
                    "critical": check.critical,
                    "status": check.status.label,
                }
                for check in self.checks
            ],
            "dependencies": [
                {
                    "service": dep.service,
                    "reachable": dep.reachable,
                    "status": dep.status.label,
                }
                for dep in self.dependencies
            ],
        }

    def to_json(self) -> bytes:
        # Infinite sentinels encode as null.
        return msgspec.json.format(msgspec.json.encode(self.as_dict()), indent=2)


def evaluate(measurement: Measurement) -> HealthStatus:
    """Judge one measurement; values equal to a threshold are on the safe side."""
    value = measurement.value
    if math.isnan(value):
        return HealthStatus.UNHEALTHY
    if measurement.direction is ThresholdDirection.LOWER_IS_BAD:
        if value < measurement.critical:
            return HealthStatus.UNHEALTHY
        if value < measurement.warning:
            return HealthStatus.DEGRADED
        return HealthStatus.HEALTHY
    if value > measurement.critical:
        return HealthStatus.UNHEALTHY
    if value > measurement.warning:
        return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY


def evaluate_dependency(reachable: bool) -> HealthStatus:
    # An unreachable dependency degrades the service but never makes it unhealthy.
    return HealthStatus.HEALTHY if reachable else HealthStatus.DEGRADED


def aggregate(
    measurements: Iterable[Measurement],
    dependencies: Iterable[DependencyCheck],
) -> HealthStatus:
    """Worst status across every measurement and dependency; HEALTHY if none."""
    statuses = chain(
        (evaluate(m) for m in measurements),
        (evaluate_dependency(d.reachable) for d in dependencies),
    )
    return max(statuses, default=HealthStatus.HEALTHY)


__all__ = [
    "DependencyCheck",
    "HealthReport",
    "HealthStatus",
    "Measurement",
    "ThresholdDirection",
    "aggregate",
    "evaluate",
    "evaluate_dependency",
    "unavailable_value",
]
