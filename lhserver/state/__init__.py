"""Shared daemon state."""

from .context import ServiceContext, ServiceCounters, SupervisorStats, create_service_context

__all__ = ["ServiceContext", "ServiceCounters", "SupervisorStats", "create_service_context"]
