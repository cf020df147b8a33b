# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Grade event publisher backed by a bounded worker queue.

publish() is called after the grade write committed. It validates the
event, puts it on a bounded asyncio.Queue and returns immediately; a fixed
pool of worker tasks drains the queue through the EventDispatcher. The
grading caller therefore never waits for, nor fails because of, any
handler.

publish() never raises. An invalid event is rejected before any handler
sees it. When the queue is full the event is dropped and logged; the
scheduled reconciliation sweep recomputes whatever it would have
refreshed.

If the publisher was not started (scripts, tests) events are dispatched on
detached tasks instead, which drain() also waits for.

Example:
    publisher = GradeEventPublisher(dispatcher, queue_size=1000, workers=4)
    await publisher.start()

    await publisher.publish(event)  # returns without waiting for handlers

    await publisher.stop()  # drains the queue, then stops workers
"""

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from src.domains.grading.models import GradeEvent
from src.infrastructure.events.dispatcher import EventDispatcher
from src.utils.logging import bind_context, clear_context

logger = logging.getLogger(__name__)


class GradeEventPublisher:
    """Fire-and-forget entry point of the grade pipeline.

    Attributes:
        queue_size: Capacity of the event queue.
        workers: Number of worker tasks.
    """

    def __init__(
        self,
        dispatcher: EventDispatcher,
        queue_size: int = 1000,
        workers: int = 4,
    ) -> None:
        """Initialize the publisher.

        Args:
            dispatcher: Dispatcher running the handlers.
            queue_size: Capacity of the event queue.
            workers: Number of worker tasks.
        """
        self._dispatcher = dispatcher
        self.queue_size = queue_size
        self.workers = workers
        self._queue: asyncio.Queue[GradeEvent] | None = None
        self._workers: list[asyncio.Task[None]] = []
        self._detached: set[asyncio.Task[None]] = set()
        self._published = 0
        self._rejected = 0
        self._dropped = 0
        self._handler_failures = 0

    @property
    def is_running(self) -> bool:
        """Whether worker tasks are draining the queue."""
        return bool(self._workers)

    async def start(self) -> None:
        """Create the queue and start the worker tasks."""
        if self.is_running:
            return
        self._queue = asyncio.Queue(maxsize=self.queue_size)
        self._workers = [
            asyncio.create_task(self._worker(index), name=f"grade-event-worker-{index}")
            for index in range(self.workers)
        ]
        logger.info(
            "Grade event publisher started (%d workers, queue size %d)",
            self.workers,
            self.queue_size,
        )

    async def stop(self, drain: bool = True) -> None:
        """Stop the worker tasks.

        Args:
            drain: Wait for queued events to be handled first.
        """
        if drain:
            await self.drain()
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        self._queue = None
        logger.info("Grade event publisher stopped")

    async def drain(self) -> None:
        """Wait until every published event has been handled."""
        if self._queue is not None and self.is_running:
            await self._queue.join()
        if self._detached:
            await asyncio.gather(*list(self._detached), return_exceptions=True)

    async def publish(self, event: GradeEvent | Mapping[str, Any]) -> None:
        """Hand a committed grade to the pipeline.

        Never raises: failures are logged and counted.

        Args:
            event: The event, or its field mapping.
        """
        try:
            if not isinstance(event, GradeEvent):
                event = GradeEvent.model_validate(event)
        except ValidationError as e:
            self._rejected += 1
            logger.error("Rejected invalid grade event: %s", e)
            return

        try:
            if self._queue is not None and self.is_running:
                self._queue.put_nowait(event)
            else:
                task = asyncio.create_task(self._dispatch(event))
                self._detached.add(task)
                task.add_done_callback(self._detached.discard)
            self._published += 1
        except asyncio.QueueFull:
            self._dropped += 1
            logger.error(
                "Grade event queue full, dropping event %s (student: %s, activity: %s, class: %s)",
                event.event_id,
                event.student_id,
                event.activity_id,
                event.class_id,
            )
        except Exception as e:
            self._dropped += 1
            logger.error("Failed to publish grade event %s: %s", event.event_id, e, exc_info=True)

    async def _worker(self, index: int) -> None:
        assert self._queue is not None
        queue = self._queue
        while True:
            event = await queue.get()
            try:
                await self._dispatch(event)
            finally:
                queue.task_done()

    async def _dispatch(self, event: GradeEvent) -> None:
        bind_context(**event.log_context())
        try:
            results = await self._dispatcher.dispatch(event)
            failures = [r.handler_name for r in results if not r.succeeded]
            if failures:
                self._handler_failures += len(failures)
                logger.warning(
                    "Grade event %s handled with failures: %s",
                    event.event_id,
                    ", ".join(failures),
                )
        except Exception as e:
            self._handler_failures += 1
            logger.error("Dispatch of grade event %s failed: %s", event.event_id, e, exc_info=True)
        finally:
            clear_context()

    def get_stats(self) -> dict[str, Any]:
        """Get publisher statistics.

        Returns:
            Dictionary with queue depth and event counters.
        """
        return {
            "running": self.is_running,
            "queued": self._queue.qsize() if self._queue is not None else 0,
            "published": self._published,
            "rejected": self._rejected,
            "dropped": self._dropped,
            "handler_failures": self._handler_failures,
        }
