"""Service layer for LH Server endpoints."""

from .routes import build_health_report, register_routes

__all__ = ["build_health_report", "register_routes"]
