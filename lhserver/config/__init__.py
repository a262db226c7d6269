"""Configuration helpers for the LH Server daemon."""

from . import logging, settings  # noqa: F401  # pyright: ignore[reportUnusedImport]
from .settings import RuntimeConfig, get_config_source, load_runtime_config

__all__ = ["RuntimeConfig", "get_config_source", "load_runtime_config"]
