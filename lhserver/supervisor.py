"""Asyncio task supervision helpers for LH Server."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

import msgspec
import tenacity

from .const import SUPERVISOR_DEFAULT_MAX_BACKOFF, SUPERVISOR_DEFAULT_MIN_BACKOFF
from .state.context import ServiceContext


class SupervisedTaskSpec(msgspec.Struct):
    """Specification for a supervised async task."""

    name: str
    factory: Callable[[], Awaitable[None]]
    fatal_exceptions: tuple[type[BaseException], ...] = ()
    max_restarts: int | None = None
    min_backoff: float = SUPERVISOR_DEFAULT_MIN_BACKOFF
    max_backoff: float = SUPERVISOR_DEFAULT_MAX_BACKOFF


class _RestartCallbacks:
    """tenacity hook that books a restart each time one is scheduled."""

    def __init__(self, name: str, log: logging.Logger, context: ServiceContext | None) -> None:
        self.name = name
        self.log = log
        self.context = context

    def before_sleep(self, retry_state: tenacity.RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        self.log.error("%s failed (%s); restarting in %.1fs", self.name, exc, delay)
        if self.context is not None and exc is not None:
            self.context.record_supervisor_restart(self.name, backoff=delay, exc=exc)


async def supervise_task(
    spec: SupervisedTaskSpec,
    *,
    context: ServiceContext | None = None,
    logger: logging.Logger | None = None,
) -> None:
    """Run ``spec.factory`` restarting it on failures using tenacity.

    Exceptions listed in ``spec.fatal_exceptions`` are never retried and
    propagate to the caller, as does the last failure once ``max_restarts``
    restarts have been spent.
    """
    log = logger or logging.getLogger("lhserver.supervisor")
    name = spec.name
    callbacks = _RestartCallbacks(name, log, context)

    retryer = tenacity.AsyncRetrying(
        wait=tenacity.wait_exponential(multiplier=spec.min_backoff, max=spec.max_backoff),
        retry=tenacity.retry_if_not_exception_type(
            (asyncio.CancelledError, SystemExit, KeyboardInterrupt, GeneratorExit) + spec.fatal_exceptions
        ),
        stop=(
            tenacity.stop_after_attempt(spec.max_restarts + 1)
            if spec.max_restarts is not None
            else tenacity.stop_never
        ),
        before_sleep=callbacks.before_sleep,
        reraise=True,
    )

    try:
        async for attempt in retryer:
            with attempt:
                await spec.factory()
        log.info("%s task exited cleanly; supervisor exiting", name)
        if context is not None:
            context.mark_supervisor_healthy(name)
    except asyncio.CancelledError:
        log.debug("%s supervisor cancelled", name)
        raise
    except spec.fatal_exceptions as exc:
        log.critical("%s failed with fatal exception: %s", name, exc)
        if context is not None:
            context.record_supervisor_failure(name, exc=exc, fatal=True)
        raise
    except Exception as exc:
        log.error("%s exceeded max restarts (%s); giving up", name, spec.max_restarts)
        if context is not None:
            context.record_supervisor_failure(name, exc=exc)
        raise


__all__ = ["SupervisedTaskSpec", "supervise_task"]
