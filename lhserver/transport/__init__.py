"""HTTP transport for the LH Server daemon."""

from .http import (
    Handler,
    HandlerRegistry,
    HttpServer,
    Request,
    Response,
    parse_request,
)

__all__ = [
    "Handler",
    "HandlerRegistry",
    "HttpServer",
    "Request",
    "Response",
    "parse_request",
]
