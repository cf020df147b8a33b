# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Grade event dispatcher with per-handler failure containment.

The dispatcher runs every handler for an event concurrently. Each handler
is wrapped so that an exception or a timeout only marks that handler as
failed: it is logged with the event's student, activity and class ids
and never reaches the other handlers or the caller.

The dispatcher holds no business logic and guarantees no ordering
between handlers. Handlers must be idempotent (recompute from durable
state) because an event may be handled again by a reconciliation sweep.

Example:
    dispatcher = EventDispatcher(handler_timeout_seconds=10)
    dispatcher.register(MasteryRefreshHandler(aggregator, cache))
    dispatcher.register(LeaderboardRefreshHandler(engine, directory, cache))

    results = await dispatcher.dispatch(event)
    failed = [r.handler_name for r in results if not r.succeeded]
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from src.domains.grading.models import GradeEvent

logger = logging.getLogger(__name__)


class GradeEventHandler(Protocol):
    """A consumer of grade events."""

    name: str

    async def handle(self, event: GradeEvent) -> None:
        """Apply the event. Raising marks the handler as failed."""
        ...


@dataclass(frozen=True)
class FunctionHandler:
    """Adapts a coroutine function to the handler protocol.

    Attributes:
        name: Handler name used in results, stats and logs.
        func: Coroutine function receiving the event.
    """

    name: str
    func: Callable[[GradeEvent], Awaitable[None]]

    async def handle(self, event: GradeEvent) -> None:
        await self.func(event)


@dataclass(frozen=True)
class HandlerResult:
    """Outcome of one handler for one event.

    Attributes:
        handler_name: Name of the handler.
        succeeded: Whether the handler completed without error.
        error: Error description when it failed.
        duration_ms: Wall time spent in the handler.
    """

    handler_name: str
    succeeded: bool
    error: str | None = None
    duration_ms: float = 0.0


class EventDispatcher:
    """Concurrent, failure-isolated handler runner.

    Attributes:
        handler_timeout_seconds: Bound on each handler invocation; a
            timeout counts as a failure.
    """

    def __init__(self, handler_timeout_seconds: float = 10.0) -> None:
        """Initialize the dispatcher.

        Args:
            handler_timeout_seconds: Per-handler timeout.
        """
        self.handler_timeout_seconds = handler_timeout_seconds
        self._handlers: dict[str, GradeEventHandler] = {}
        self._event_count = 0
        self._succeeded: dict[str, int] = {}
        self._failed: dict[str, int] = {}
        self._timed_out: dict[str, int] = {}
        logger.debug("EventDispatcher initialized")

    def register(self, handler: GradeEventHandler) -> None:
        """Register a handler, replacing any handler with the same name.

        Args:
            handler: Handler to run for every dispatched event.
        """
        if handler.name in self._handlers:
            logger.warning("Replacing registered handler: %s", handler.name)
        self._handlers[handler.name] = handler
        logger.debug("Registered handler: %s", handler.name)

    def unregister(self, name: str) -> bool:
        """Remove a handler by name.

        Returns:
            True if the handler was registered, False otherwise.
        """
        return self._handlers.pop(name, None) is not None

    @property
    def handlers(self) -> list[GradeEventHandler]:
        """Registered handlers in registration order."""
        return list(self._handlers.values())

    async def dispatch(
        self,
        event: GradeEvent,
        handlers: Sequence[GradeEventHandler] | None = None,
    ) -> list[HandlerResult]:
        """Run handlers for an event.

        Args:
            event: The grade event.
            handlers: Handlers to run, defaults to the registered ones.

        Returns:
            One result per handler, in the order the handlers were given.
        """
        selected = list(handlers) if handlers is not None else self.handlers
        self._event_count += 1

        if not selected:
            logger.debug("No handlers for event %s", event.event_id)
            return []

        logger.debug(
            "Dispatching event %s to %d handlers (student: %s, activity: %s, class: %s)",
            event.event_id,
            len(selected),
            event.student_id,
            event.activity_id,
            event.class_id,
        )

        results = await asyncio.gather(*[self._safe_call(h, event) for h in selected])
        return list(results)

    async def _safe_call(self, handler: GradeEventHandler, event: GradeEvent) -> HandlerResult:
        """Call a handler with timeout and error containment."""
        started = time.perf_counter()
        try:
            await asyncio.wait_for(handler.handle(event), timeout=self.handler_timeout_seconds)
        except asyncio.TimeoutError:
            duration_ms = (time.perf_counter() - started) * 1000
            self._count(self._timed_out, handler.name)
            self._count(self._failed, handler.name)
            logger.error(
                "Handler %s timed out after %.0fms (student: %s, activity: %s, class: %s)",
                handler.name,
                duration_ms,
                event.student_id,
                event.activity_id,
                event.class_id,
            )
            return HandlerResult(
                handler_name=handler.name,
                succeeded=False,
                error=f"timed out after {self.handler_timeout_seconds}s",
                duration_ms=duration_ms,
            )
        except Exception as e:
            duration_ms = (time.perf_counter() - started) * 1000
            self._count(self._failed, handler.name)
            logger.error(
                "Handler %s failed (student: %s, activity: %s, class: %s): %s",
                handler.name,
                event.student_id,
                event.activity_id,
                event.class_id,
                str(e),
                exc_info=True,
            )
            return HandlerResult(
                handler_name=handler.name,
                succeeded=False,
                error=f"{type(e).__name__}: {e}",
                duration_ms=duration_ms,
            )

        self._count(self._succeeded, handler.name)
        return HandlerResult(
            handler_name=handler.name,
            succeeded=True,
            duration_ms=(time.perf_counter() - started) * 1000,
        )

    @staticmethod
    def _count(counter: dict[str, int], name: str) -> None:
        counter[name] = counter.get(name, 0) + 1

    def clear(self) -> None:
        """Remove all handlers."""
        self._handlers.clear()
        logger.debug("EventDispatcher cleared all handlers")

    def get_stats(self) -> dict[str, Any]:
        """Get dispatcher statistics.

        Returns:
            Dictionary with handler names and per-handler outcome counts.
        """
        return {
            "handlers": list(self._handlers.keys()),
            "events_dispatched": self._event_count,
            "succeeded": dict(self._succeeded),
            "failed": dict(self._failed),
            "timed_out": dict(self._timed_out),
        }
