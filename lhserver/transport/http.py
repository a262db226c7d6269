"""Minimal HTTP/1.1 request dispatcher.

One request per connection: a single bounded read supplies the whole request,
the path is matched exactly against a :class:`HandlerRegistry` and the framed
response is written before the connection is closed. Requests are handled one
at a time under a dispatch lock.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, cast
from urllib.parse import parse_qsl

import msgspec
from transitions import Machine

from ..const import (
    DEFAULT_HTTP_HOST,
    DEFAULT_HTTP_PORT,
    DEFAULT_HTTP_READ_TIMEOUT,
    DEFAULT_MAX_REQUEST_BYTES,
    HTTP_LISTEN_BACKLOG,
)
from ..errors import RequestParseError, ServerBindError

logger = logging.getLogger("lhserver.http")

JSON_CONTENT_TYPE = "application/json"

_STATUS_PHRASES = {
    200: "OK",
    400: "Bad Request",
    404: "Not Found",
    405: "Method Not Allowed",
    500: "Internal Server Error",
}


class Request(msgspec.Struct, frozen=True):
    method: str
    path: str
    query: dict[str, str] = {}
    headers: dict[str, str] = {}
    body: bytes = b""


class Response(msgspec.Struct, frozen=True):
    status: int
    body: bytes = b""
    content_type: str = JSON_CONTENT_TYPE

    @classmethod
    def json(cls, payload: Any, status: int = 200, *, indent: int | None = None) -> Response:
        body = msgspec.json.encode(payload)
        if indent is not None:
            body = msgspec.json.format(body, indent=indent)
        return cls(status=status, body=body)

    @classmethod
    def error(cls, status: int, message: str) -> Response:
        return cls.json({"error": message}, status)

    @classmethod
    def method_not_allowed(cls) -> Response:
        return cls.error(405, "Method not allowed")

    def encode(self) -> bytes:
        phrase = _STATUS_PHRASES.get(self.status, "Error")
        head = (
            f"HTTP/1.1 {self.status} {phrase}\r\n"
            f"Content-Type: {self.content_type}\r\n"
            f"Content-Length: {len(self.body)}\r\n"
            "Connection: close\r\n\r\n"
        )
        return head.encode("ascii") + self.body


Handler = Callable[[Request, Any], Awaitable[Response]]


def _content_length(value: str | None) -> int:
    # Non-numeric or negative values count as no body.
    if value is None:
        return 0
    try:
        length = int(value.strip())
    except ValueError:
        return 0
    return max(length, 0)


def parse_request(data: bytes) -> Request:
    """Parse the bytes of one request read.

    Raises:
        RequestParseError: the request line lacks a method or a target.
    """
    head_bytes, separator, rest = data.partition(b"\r\n\r\n")
    if not separator:
        rest = b""
    lines = head_bytes.decode("latin-1").split("\r\n")

    parts = lines[0].split()
    if len(parts) < 2:
        raise RequestParseError("malformed request line")
    method, target = parts[0], parts[1]

    headers: dict[str, str] = {}
    for line in lines[1:]:
        name, colon, value = line.partition(":")
        if colon and name.strip():
            headers[name.strip().lower()] = value.strip()

    body = rest[: _content_length(headers.get("content-length"))]
    path, _, query_string = target.partition("?")
    query = dict(parse_qsl(query_string, keep_blank_values=True))
    return Request(method=method, path=path, query=query, headers=headers, body=body)


@dataclass(slots=True, frozen=True)
class Route:
    path: str
    handler: Handler
    context: Any = None


class HandlerRegistry:
    """Ordered exact-path bindings; the first registration for a path wins."""

    def __init__(self) -> None:
        self._routes: list[Route] = []
        self._frozen = False

    def register(self, path: str, handler: Handler, context: Any = None) -> None:
        if self._frozen:
            raise RuntimeError("handler registry is read-only while serving")
        self._routes.append(Route(path, handler, context))

    def freeze(self) -> None:
        self._frozen = True

    def resolve(self, path: str) -> Route | None:
        for route in self._routes:
            if route.path == path:
                return route
        return None

    def __iter__(self) -> Iterator[Route]:
        return iter(self._routes)

    def __len__(self) -> int:
        return len(self._routes)


class HttpServer:
    """Serve a :class:`HandlerRegistry` over plain HTTP.

    The lifecycle is ``init -> running -> stopped``. :meth:`stop` only flips
    the state; :meth:`run` notices and closes the listening socket, so an
    in-flight request always completes.
    """

    if TYPE_CHECKING:
        fsm_state: str
        begin_serving: Callable[[], bool]
        halt: Callable[[], bool]

    STATE_INIT = "init"
    STATE_RUNNING = "running"
    STATE_STOPPED = "stopped"

    def __init__(
        self,
        registry: HandlerRegistry,
        *,
        host: str = DEFAULT_HTTP_HOST,
        port: int = DEFAULT_HTTP_PORT,
        read_timeout: float = DEFAULT_HTTP_READ_TIMEOUT,
        max_request_bytes: int = DEFAULT_MAX_REQUEST_BYTES,
        on_request: Callable[[Request], None] | None = None,
    ) -> None:
        self._registry = registry
        self._host = host
        self._port = port
        self._read_timeout = read_timeout
        self._max_request_bytes = max_request_bytes
        self._on_request = on_request
        self._server: asyncio.AbstractServer | None = None
        self._resolved_port: int | None = None
        self._dispatch_lock = asyncio.Lock()
        self._stopped = asyncio.Event()

        self.state_machine = Machine(
            model=self,
            states=[self.STATE_INIT, self.STATE_RUNNING, self.STATE_STOPPED],
            initial=self.STATE_INIT,
            ignore_invalid_triggers=True,
            model_attribute="fsm_state",
        )
        self.state_machine.add_transition(trigger="begin_serving", source=self.STATE_INIT, dest=self.STATE_RUNNING)
        self.state_machine.add_transition(
            trigger="halt",
            source=[self.STATE_INIT, self.STATE_RUNNING],
            dest=self.STATE_STOPPED,
        )

    @property
    def port(self) -> int:
        return self._resolved_port or self._port

    @property
    def running(self) -> bool:
        return self.fsm_state == self.STATE_RUNNING

    async def start(self) -> None:
        """Bind and listen.

        Raises:
            ServerBindError: the address could not be bound.
        """
        if self.fsm_state != self.STATE_INIT:
            return
        self._registry.freeze()
        try:
            self._server = await asyncio.start_server(
                self._handle_client,
                host=self._host,
                port=self._port,
                backlog=HTTP_LISTEN_BACKLOG,
                reuse_address=True,
            )
        except OSError as exc:
            logger.critical("Failed to bind %s:%d: %s", self._host, self._port, exc)
            raise ServerBindError(f"cannot bind {self._host}:{self._port}: {exc}") from exc

        sockets = self._server.sockets or []
        if sockets:
            sockname = sockets[0].getsockname()
            if isinstance(sockname, tuple):
                typed_sockname = cast(tuple[object, ...], sockname)
                if len(typed_sockname) >= 2 and isinstance(typed_sockname[1], int):
                    self._resolved_port = typed_sockname[1]
        self.begin_serving()
        logger.info("HTTP server listening", extra={"host": self._host, "port": self.port})

    def stop(self) -> None:
        """Request shutdown; safe to call any number of times."""
        if self.halt():
            logger.info("HTTP server stop requested")
        self._stopped.set()

    async def run(self) -> None:
        await self.start()
        try:
            await self._stopped.wait()
        finally:
            await self._close()

    async def _close(self) -> None:
        self.halt()
        if self._server is None:
            return
        server, self._server = self._server, None
        server.close()
        await server.wait_closed()
        logger.info("HTTP server stopped")

    async def _handle_client(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        try:
            async with self._dispatch_lock:
                await self._serve(reader, writer)
        except asyncio.CancelledError:
            raise
        except (asyncio.TimeoutError, ConnectionError) as exc:
            logger.debug("Client connection dropped: %s", exc)
        finally:
            try:
                writer.close()
                await writer.wait_closed()
            except (OSError, RuntimeError):
                logger.debug("Error closing client connection", exc_info=True)

    async def _serve(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        data = await asyncio.wait_for(reader.read(self._max_request_bytes), self._read_timeout)
        if not data:
            return
        try:
            request = parse_request(data)
        except RequestParseError as exc:
            logger.warning("Rejecting request: %s", exc)
            await self._write_response(writer, Response.error(400, "Bad request"))
            return

        if self._on_request is not None:
            self._on_request(request)
        response = await self.dispatch(request)
        logger.debug("%s %s -> %d", request.method, request.path, response.status)
        await self._write_response(writer, response)

    async def dispatch(self, request: Request) -> Response:
        route = self._registry.resolve(request.path)
        if route is None:
            return Response.error(404, "Not found")
        try:
            return await route.handler(request, route.context)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("Handler for %s failed", request.path)
            return Response.error(500, str(exc) or exc.__class__.__name__)

    async def _write_response(self, writer: asyncio.StreamWriter, response: Response) -> None:
        try:
            writer.write(response.encode())
            await writer.drain()
        except OSError as exc:
            logger.warning("Failed to write response: %s", exc)


__all__ = [
    "Handler",
    "HandlerRegistry",
    "HttpServer",
    "JSON_CONTENT_TYPE",
    "Request",
    "Response",
    "Route",
    "parse_request",
]
