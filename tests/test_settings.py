"""Tests for configuration loading and validation."""

from __future__ import annotations

import json

import pytest

from lhserver.config import settings
from lhserver.config.settings import RuntimeConfig, get_config_source, get_default_config, load_runtime_config
from lhserver.const import DEFAULT_HTTP_PORT, DEFAULT_TEMPERATURE_CACHE_TTL


def test_defaults_come_from_struct_fields() -> None:
    defaults = get_default_config()

    assert defaults["http_port"] == DEFAULT_HTTP_PORT
    assert defaults["temperature_cache_ttl"] == DEFAULT_TEMPERATURE_CACHE_TTL
    assert defaults["memory_warning_mb"] == 50.0
    assert defaults["vapix_user"] is None


def test_missing_file_uses_defaults(tmp_path) -> None:
    config = load_runtime_config(str(tmp_path / "absent.json"))

    assert config == RuntimeConfig()
    assert get_config_source() == "defaults"


def test_file_values_override_defaults(tmp_path) -> None:
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "http_port": "9090",
                "vapix_user": "root",
                "vapix_pass": "pw",
                "vapix_base_url": "http://192.168.0.90/",
                "cpu_warning_percent": 70,
                "unknown_key": True,
            }
        )
    )

    config = load_runtime_config(str(path))

    assert config.http_port == 9090
    assert config.vapix_user == "root"
    assert config.vapix_base_url == "http://192.168.0.90"
    assert config.cpu_warning_percent == 70.0
    assert get_config_source() == "file"


def test_env_var_selects_config_path(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "from-env.json"
    path.write_text(json.dumps({"service_name": "ptz-left"}))
    monkeypatch.setenv("LHSERVER_CONFIG", str(path))

    assert load_runtime_config().service_name == "ptz-left"


@pytest.mark.parametrize("content", ["{not json", "[1, 2]"])
def test_unreadable_file_falls_back_to_defaults(tmp_path, content: str) -> None:
    path = tmp_path / "config.json"
    path.write_text(content)

    assert load_runtime_config(str(path)) == RuntimeConfig()
    assert get_config_source() == "defaults"


@pytest.mark.parametrize(
    "overrides",
    [
        {"http_port": 70000},
        {"temperature_cache_ttl": 0},
        {"vapix_auth": "ntlm"},
        {"memory_warning_mb": 10.0, "memory_critical_mb": 20.0},
        {"cpu_warning_percent": 99.0, "cpu_critical_percent": 90.0},
        {"vapix_base_url": "ftp://camera"},
        {"disk_path": "relative/path"},
    ],
)
def test_invalid_values_raise_value_error(tmp_path, overrides: dict) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps(overrides))

    with pytest.raises(ValueError):
        load_runtime_config(str(path))


def test_cross_field_validation_on_direct_construction() -> None:
    with pytest.raises(ValueError):
        RuntimeConfig(disk_warning_mb=10.0, disk_critical_mb=50.0)


def test_config_path_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("LHSERVER_CONFIG", raising=False)

    assert settings.get_config_path() == "/etc/lhserver/config.json"
