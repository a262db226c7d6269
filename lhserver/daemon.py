#!/usr/bin/env python3
"""Async orchestrator for the LH Server monitoring daemon.

Architecture:
    main() -> ServerDaemon -> TaskGroup
        └── http-server (HttpServer, supervised; bind failure is fatal)

SIGTERM and SIGINT request a graceful stop: the server finishes the request
in flight, closes its listening socket and the supervisor exits cleanly.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from typing import NoReturn

import uvloop

from .config.logging import configure_logging
from .config.settings import RuntimeConfig, load_runtime_config
from .errors import ServerBindError
from .logbuffer import SEVERITY_INFO, log_event
from .services.routes import register_routes
from .state.context import ServiceContext, create_service_context
from .supervisor import SupervisedTaskSpec, supervise_task
from .transport.http import HandlerRegistry, HttpServer

logger = logging.getLogger("lhserver")

_STOP_SIGNALS = (signal.SIGTERM, signal.SIGINT)


class ServerDaemon:
    """Owns the service context and runs the supervised HTTP server."""

    def __init__(self, config: RuntimeConfig, *, context: ServiceContext | None = None) -> None:
        self.config = config
        self.context = context or create_service_context(config)
        self.server: HttpServer | None = None
        self._stopping = False

    def build_server(self) -> HttpServer:
        registry = register_routes(HandlerRegistry(), self.context)
        return HttpServer(
            registry,
            host=self.config.http_host,
            port=self.config.http_port,
            read_timeout=self.config.http_read_timeout,
            max_request_bytes=self.config.max_request_bytes,
            on_request=self.context.counters.record_http_request,
        )

    async def _run_http_server(self) -> None:
        if self._stopping:
            return
        # A fresh server per attempt; a crashed one cannot be restarted.
        self.server = self.build_server()
        await self.server.run()

    def stop(self) -> None:
        self._stopping = True
        if self.server is not None:
            self.server.stop()

    def _setup_supervision(self) -> list[SupervisedTaskSpec]:
        return [
            SupervisedTaskSpec(
                name="http-server",
                factory=self._run_http_server,
                fatal_exceptions=(ServerBindError,),
            ),
        ]

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in _STOP_SIGNALS:
            try:
                loop.add_signal_handler(sig, self.stop)
            except (NotImplementedError, RuntimeError):
                logger.debug("Signal handler for %s not installed", sig.name)

    def _remove_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in _STOP_SIGNALS:
            try:
                loop.remove_signal_handler(sig)
            except (NotImplementedError, RuntimeError):
                pass

    async def run(self) -> None:
        """Main async entry point."""
        loop = asyncio.get_running_loop()
        self._install_signal_handlers(loop)
        log_event(
            SEVERITY_INFO,
            "%s starting on %s:%d",
            self.config.service_name,
            self.config.http_host,
            self.config.http_port,
        )
        try:
            async with asyncio.TaskGroup() as task_group:
                for spec in self._setup_supervision():
                    task_group.create_task(supervise_task(spec, context=self.context))
        except* asyncio.CancelledError:
            logger.info("Main task cancelled; shutting down.")
        except* Exception as exc_group:
            for group_exc in exc_group.exceptions:
                logger.critical(
                    "Unhandled exception in main task group: %s",
                    group_exc,
                    exc_info=group_exc,
                )
            raise
        finally:
            self._remove_signal_handlers(loop)
            logger.info("LH Server daemon stopped.")


def main() -> NoReturn:  # pragma: no cover (Entry point wrapper)
    try:
        config = load_runtime_config()
    except ValueError as exc:
        configure_logging(RuntimeConfig())
        logger.critical("Invalid configuration: %s", exc)
        sys.exit(1)

    daemon = ServerDaemon(config)
    configure_logging(config, daemon.context.log_ring)
    logger.info(
        "Starting LH Server daemon (config from %s). HTTP: %s:%d",
        daemon.context.config_source,
        config.http_host,
        config.http_port,
    )

    try:
        asyncio.run(daemon.run(), loop_factory=uvloop.new_event_loop)
        sys.exit(0)
    except KeyboardInterrupt:
        logger.info("Daemon interrupted by user.")
        sys.exit(0)
    except ExceptionGroup as exc_group:
        bind_failures = exc_group.subgroup(ServerBindError)
        if bind_failures is not None:
            logger.critical("Cannot start HTTP server: %s", bind_failures.exceptions[0])
        else:
            for group_exc in exc_group.exceptions:
                logger.critical("Fatal error in task group: %s", group_exc, exc_info=group_exc)
        sys.exit(1)
    except OSError as exc:
        logger.critical("System/OS error during daemon execution: %s", exc, exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
