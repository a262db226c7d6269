"""Tests for the Prometheus exposition."""

from __future__ import annotations

import httpx
import pytest
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily

from lhserver.metrics import (
    CONTENT_TYPE,
    ServiceContextCollector,
    collect_device_metrics,
    render_exposition,
    render_metrics,
)
from lhserver.state.context import ServiceContext
from lhserver.vapix import DeviceInfo, VapixClient


def test_counter_zero_renders_plain_integer() -> None:
    text = render_exposition([CounterMetricFamily("ptz_http_requests", "Total HTTP requests handled", value=0)])

    assert text == (
        b"# HELP ptz_http_requests_total Total HTTP requests handled\n"
        b"# TYPE ptz_http_requests_total counter\n"
        b"ptz_http_requests_total 0\n"
    )


def test_gauge_renders_two_decimals_with_labels() -> None:
    family = GaugeMetricFamily("ptz_device_info", "Camera identification", labels=["model"])
    family.add_metric(['Q6"X'], 1)

    text = render_exposition([family]).decode()

    assert "# TYPE ptz_device_info gauge\n" in text
    assert 'ptz_device_info{model="Q6\\"X"} 1.00\n' in text


def test_empty_exposition_is_single_newline() -> None:
    assert render_exposition([]) == b"\n"


def test_collector_renders_all_sections_in_order(service_context: ServiceContext) -> None:
    service_context.counters.record_http_request()
    text = render_exposition(ServiceContextCollector(service_context, temperature=41.25).collect()).decode()

    names = [line.split()[2] for line in text.splitlines() if line.startswith("# TYPE")]
    assert names == [
        "ptz_uptime_seconds",
        "ptz_memory_total_bytes",
        "ptz_memory_available_bytes",
        "ptz_load_average_1m",
        "ptz_cpu_usage_percent",
        "ptz_network_rx_bytes_total",
        "ptz_network_tx_bytes_total",
        "ptz_disk_total_bytes",
        "ptz_disk_free_bytes",
        "ptz_http_requests_total",
        "ptz_i2c_errors_total",
        "ptz_supervisor_restarts_total",
        "ptz_process_count",
        "ptz_temperature_celsius",
    ]
    assert "ptz_uptime_seconds 3600.00\n" in text
    assert 'ptz_network_rx_bytes_total{interface="eth0"} 1000\n' in text
    assert "ptz_http_requests_total 1\n" in text
    assert "ptz_i2c_errors_total 0\n" in text
    assert "ptz_cpu_usage_percent 12.50\n" in text
    assert "ptz_temperature_celsius 41.25\n" in text
    assert text.endswith("\n")


def test_unavailable_collectors_are_skipped(service_context: ServiceContext, fake_stats) -> None:
    fake_stats.mem = None
    fake_stats.net = None
    fake_stats.processes = None

    text = render_exposition(ServiceContextCollector(service_context).collect()).decode()

    assert "ptz_memory_total_bytes" not in text
    assert "ptz_network_rx_bytes_total" not in text
    assert "ptz_process_count" not in text
    assert "ptz_temperature_celsius" not in text
    assert "ptz_uptime_seconds 3600.00" in text
    assert "ptz_disk_free_bytes" in text


def test_device_info_metric_labels() -> None:
    info = DeviceInfo(serial="ACCC8E000001", firmware="11.8.64", model="Q6135-LE", architecture="aarch64", soc="Artpec-8")
    (family,) = list(collect_device_metrics(None, info))

    text = render_exposition([family]).decode()
    assert (
        'ptz_device_info{serial="ACCC8E000001",firmware="11.8.64",model="Q6135-LE",'
        'architecture="aarch64",soc="Artpec-8"} 1.00\n'
    ) in text


@pytest.mark.asyncio
async def test_render_metrics_uses_device_caches(service_context: ServiceContext) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("temperaturecontrol.cgi"):
            return httpx.Response(200, text="38.5\n")
        return httpx.Response(
            200,
            json={"data": {"propertyList": {"SerialNumber": "SN1", "ProdNbr": "Q6135-LE"}}},
        )

    service_context.vapix = VapixClient(
        user="root",
        password="secret",
        auth="basic",
        transport=httpx.MockTransport(handler),
    )

    text = (await render_metrics(service_context)).decode()

    assert "ptz_temperature_celsius 38.50\n" in text
    assert 'serial="SN1"' in text
    assert 'model="Q6135-LE"' in text
    assert CONTENT_TYPE.startswith("text/plain; version=0.0.4")


@pytest.mark.asyncio
async def test_render_metrics_without_device_api(service_context: ServiceContext) -> None:
    service_context.vapix = VapixClient()

    text = (await render_metrics(service_context)).decode()

    assert "ptz_temperature_celsius" not in text
    assert "ptz_device_info" not in text
    assert "ptz_http_requests_total" in text
