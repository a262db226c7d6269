"""Pytest configuration for LH Server tests."""

from __future__ import annotations

import asyncio
import importlib.util
import inspect
import logging
import sys
from pathlib import Path

import pytest

PACKAGE_ROOT = Path(__file__).resolve().parents[1]
if str(PACKAGE_ROOT) not in sys.path:
    sys.path.insert(0, str(PACKAGE_ROOT))

from lhserver.config import settings
from lhserver.config.settings import RuntimeConfig
from lhserver.state.context import ServiceContext, create_service_context

from mocks import FakeCpuSampler, FakeStats

_HAS_PYTEST_ASYNCIO = importlib.util.find_spec("pytest_asyncio") is not None


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "asyncio: mark test to run on asyncio loop")


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Fallback asyncio runner when pytest-asyncio is unavailable."""
    if _HAS_PYTEST_ASYNCIO:
        return None
    if "asyncio" not in pyfuncitem.keywords:
        return None
    test_function = pyfuncitem.obj
    if not inspect.iscoroutinefunction(test_function):
        return None

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        kwargs = {name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames}
        loop.run_until_complete(test_function(**kwargs))
    finally:
        try:
            loop.run_until_complete(loop.shutdown_asyncgens())
        except (RuntimeError, ValueError):
            pass
        loop.close()
        asyncio.set_event_loop(None)
    return True


@pytest.fixture(autouse=True)
def reset_logging_handlers():
    """Close and remove all logging handlers after each test to prevent ResourceWarnings."""
    yield
    root = logging.getLogger()
    for handler in root.handlers[:]:
        try:
            handler.close()
        except (OSError, RuntimeError):
            pass
        root.removeHandler(handler)


@pytest.fixture(autouse=True)
def _isolated_config_path(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    """Never read the host's real config file."""
    monkeypatch.setenv("LHSERVER_CONFIG", str(tmp_path / "missing-config.json"))
    monkeypatch.setattr(settings, "_config_source", "defaults")


@pytest.fixture()
def runtime_config() -> RuntimeConfig:
    return RuntimeConfig(
        http_host="127.0.0.1",
        http_port=0,
        http_read_timeout=1.0,
        log_buffer_capacity=8,
        log_message_max_length=64,
        vapix_user="root",
        vapix_pass="secret",
    )


@pytest.fixture()
def fake_stats() -> FakeStats:
    return FakeStats()


@pytest.fixture()
def service_context(runtime_config: RuntimeConfig, fake_stats: FakeStats) -> ServiceContext:
    context = create_service_context(runtime_config, stats=fake_stats)  # type: ignore[arg-type]
    context.health_cpu = FakeCpuSampler(10.0)  # type: ignore[assignment]
    context.metrics_cpu = FakeCpuSampler(12.5)  # type: ignore[assignment]
    return context
