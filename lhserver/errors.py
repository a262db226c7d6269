"""Exception hierarchy for LH Server."""

from __future__ import annotations


class LhServerError(Exception):
    """Base class for daemon errors."""


class ServerBindError(LhServerError):
    """The listening endpoint could not be bound; fatal at startup."""


class RequestParseError(LhServerError):
    """The request head did not carry a method and a path."""


class FetchError(LhServerError):
    """An unreliable external fetch produced no value."""


class VapixError(FetchError):
    """The device API call failed or returned something unusable."""


__all__ = [
    "FetchError",
    "LhServerError",
    "RequestParseError",
    "ServerBindError",
    "VapixError",
]
