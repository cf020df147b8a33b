# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for GradeEventPublisher."""

import asyncio
from datetime import datetime, timezone

import pytest

from src.domains.grading.models import GradeEvent
from src.infrastructure.events.dispatcher import EventDispatcher, FunctionHandler
from src.infrastructure.events.publisher import GradeEventPublisher

GRADED_AT = datetime(2026, 10, 5, 9, 0, tzinfo=timezone.utc)


def make_event(student_id: str = "s-1", **overrides) -> GradeEvent:
    fields = {
        "student_id": student_id,
        "activity_id": "a-1",
        "class_id": "c-1",
        "subject_id": "math",
        "score": 8,
        "max_score": 10,
        "graded_by": "teacher-1",
        "graded_at": GRADED_AT,
    }
    fields.update(overrides)
    return GradeEvent(**fields)


class Recorder:
    """Handler recording the events it sees."""

    name = "recorder"

    def __init__(self, gate: asyncio.Event | None = None) -> None:
        self.seen: list[GradeEvent] = []
        self.gate = gate

    async def handle(self, event: GradeEvent) -> None:
        if self.gate is not None:
            await self.gate.wait()
        self.seen.append(event)


@pytest.fixture
def recorder() -> Recorder:
    """Provide a recording handler."""
    return Recorder()


@pytest.fixture
def dispatcher(recorder: Recorder) -> EventDispatcher:
    """Provide a dispatcher with the recorder registered."""
    dispatcher = EventDispatcher(handler_timeout_seconds=5)
    dispatcher.register(recorder)
    return dispatcher


class TestPublish:
    """Tests for GradeEventPublisher.publish."""

    @pytest.mark.asyncio
    async def test_publish_through_workers(self, dispatcher, recorder) -> None:
        """Test published events reach the handlers once drained."""
        publisher = GradeEventPublisher(dispatcher, queue_size=10, workers=2)
        await publisher.start()

        await publisher.publish(make_event("s-1"))
        await publisher.publish(make_event("s-2"))
        await publisher.drain()

        assert sorted(e.student_id for e in recorder.seen) == ["s-1", "s-2"]
        assert publisher.get_stats()["published"] == 2
        await publisher.stop()

    @pytest.mark.asyncio
    async def test_publish_does_not_wait_for_handlers(self, dispatcher) -> None:
        """Test publish returns while the handler is still blocked."""
        gate = asyncio.Event()
        blocked = Recorder(gate)
        dispatcher.register(FunctionHandler("blocked", blocked.handle))
        publisher = GradeEventPublisher(dispatcher, queue_size=10, workers=1)
        await publisher.start()

        await asyncio.wait_for(publisher.publish(make_event()), timeout=1)

        assert blocked.seen == []
        gate.set()
        await publisher.stop()
        assert len(blocked.seen) == 1

    @pytest.mark.asyncio
    async def test_mapping_is_validated(self, dispatcher, recorder) -> None:
        """Test a field mapping is validated into an event."""
        publisher = GradeEventPublisher(dispatcher)

        await publisher.publish(make_event().model_dump())
        await publisher.drain()

        assert len(recorder.seen) == 1

    @pytest.mark.asyncio
    async def test_invalid_event_rejected_without_raising(self, dispatcher, recorder) -> None:
        """Test invalid input never reaches a handler and is counted."""
        publisher = GradeEventPublisher(dispatcher)
        invalid = make_event().model_dump()
        invalid["score"] = 50

        await publisher.publish(invalid)
        await publisher.publish({"student_id": "s-1"})
        await publisher.drain()

        assert recorder.seen == []
        assert publisher.get_stats()["rejected"] == 2
        assert publisher.get_stats()["published"] == 0

    @pytest.mark.asyncio
    async def test_full_queue_drops_event(self) -> None:
        """Test a full queue drops the event instead of blocking."""
        gate = asyncio.Event()
        dispatcher = EventDispatcher()
        dispatcher.register(Recorder(gate))
        publisher = GradeEventPublisher(dispatcher, queue_size=1, workers=1)
        await publisher.start()

        await publisher.publish(make_event("s-1"))
        await asyncio.sleep(0)  # worker takes s-1 and blocks on the gate
        await publisher.publish(make_event("s-2"))
        await publisher.publish(make_event("s-3"))

        stats = publisher.get_stats()
        assert stats["published"] == 2
        assert stats["dropped"] == 1
        gate.set()
        await publisher.stop()

    @pytest.mark.asyncio
    async def test_handler_failures_counted(self, dispatcher) -> None:
        """Test failed handlers are counted but never raised."""

        async def broken(_: GradeEvent) -> None:
            raise RuntimeError("injected")

        dispatcher.register(FunctionHandler("broken", broken))
        publisher = GradeEventPublisher(dispatcher)

        await publisher.publish(make_event())
        await publisher.drain()

        assert publisher.get_stats()["handler_failures"] == 1


class TestLifecycle:
    """Tests for start and stop."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self, dispatcher) -> None:
        """Test the running flag follows the lifecycle."""
        publisher = GradeEventPublisher(dispatcher, workers=3)
        assert publisher.is_running is False

        await publisher.start()
        await publisher.start()
        assert publisher.is_running is True
        assert publisher.get_stats()["running"] is True

        await publisher.stop()
        assert publisher.is_running is False

    @pytest.mark.asyncio
    async def test_stop_drains_queue(self, dispatcher, recorder) -> None:
        """Test queued events are handled before the workers stop."""
        publisher = GradeEventPublisher(dispatcher, queue_size=100, workers=1)
        await publisher.start()

        for index in range(5):
            await publisher.publish(make_event(f"s-{index}"))
        await publisher.stop()

        assert len(recorder.seen) == 5
