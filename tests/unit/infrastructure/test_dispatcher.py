# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for EventDispatcher."""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from src.domains.grading.models import GradeEvent
from src.infrastructure.events.dispatcher import EventDispatcher, FunctionHandler


@pytest.fixture
def event() -> GradeEvent:
    """Provide a valid grade event."""
    return GradeEvent(
        student_id="s-1",
        activity_id="a-1",
        class_id="c-1",
        subject_id="math",
        score=8,
        max_score=10,
        graded_by="teacher-1",
        graded_at=datetime(2026, 10, 5, 9, 0, tzinfo=timezone.utc),
    )


def handler(name: str, side_effect=None) -> FunctionHandler:
    return FunctionHandler(name=name, func=AsyncMock(side_effect=side_effect))


class TestRegistration:
    """Tests for handler registration."""

    def test_register_and_unregister(self) -> None:
        """Test handlers are kept by name in registration order."""
        dispatcher = EventDispatcher()
        dispatcher.register(handler("a"))
        dispatcher.register(handler("b"))

        assert [h.name for h in dispatcher.handlers] == ["a", "b"]
        assert dispatcher.unregister("a") is True
        assert dispatcher.unregister("a") is False
        assert [h.name for h in dispatcher.handlers] == ["b"]

    def test_register_replaces_same_name(self) -> None:
        """Test a second handler with the same name replaces the first."""
        dispatcher = EventDispatcher()
        first, second = handler("a"), handler("a")

        dispatcher.register(first)
        dispatcher.register(second)

        assert dispatcher.handlers == [second]


class TestDispatch:
    """Tests for EventDispatcher.dispatch."""

    @pytest.mark.asyncio
    async def test_all_handlers_receive_event(self, event: GradeEvent) -> None:
        """Test every registered handler is called with the event."""
        dispatcher = EventDispatcher()
        a, b = handler("a"), handler("b")
        dispatcher.register(a)
        dispatcher.register(b)

        results = await dispatcher.dispatch(event)

        a.func.assert_awaited_once_with(event)
        b.func.assert_awaited_once_with(event)
        assert all(r.succeeded for r in results)

    @pytest.mark.asyncio
    async def test_failing_handler_is_isolated(self, event: GradeEvent) -> None:
        """Test one handler raising does not affect the others or the caller."""
        dispatcher = EventDispatcher()
        failing = handler("failing", side_effect=RuntimeError("injected"))
        healthy = handler("healthy")
        dispatcher.register(failing)
        dispatcher.register(healthy)

        results = await dispatcher.dispatch(event)

        by_name = {r.handler_name: r for r in results}
        assert by_name["failing"].succeeded is False
        assert "RuntimeError: injected" in by_name["failing"].error
        assert by_name["healthy"].succeeded is True
        healthy.func.assert_awaited_once_with(event)

    @pytest.mark.asyncio
    async def test_timeout_counts_as_failure(self, event: GradeEvent) -> None:
        """Test a handler exceeding the timeout fails without blocking others."""
        dispatcher = EventDispatcher(handler_timeout_seconds=0.05)

        async def hang(_: GradeEvent) -> None:
            await asyncio.sleep(5)

        dispatcher.register(FunctionHandler("slow", hang))
        dispatcher.register(handler("fast"))

        results = await dispatcher.dispatch(event)

        by_name = {r.handler_name: r for r in results}
        assert by_name["slow"].succeeded is False
        assert "timed out" in by_name["slow"].error
        assert by_name["fast"].succeeded is True
        assert dispatcher.get_stats()["timed_out"] == {"slow": 1}

    @pytest.mark.asyncio
    async def test_explicit_handler_subset(self, event: GradeEvent) -> None:
        """Test only the given handlers run when a subset is passed."""
        dispatcher = EventDispatcher()
        a, b = handler("a"), handler("b")
        dispatcher.register(a)
        dispatcher.register(b)

        results = await dispatcher.dispatch(event, handlers=[b])

        assert [r.handler_name for r in results] == ["b"]
        a.func.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_handlers(self, event: GradeEvent) -> None:
        """Test dispatching with nothing registered is a no-op."""
        assert await EventDispatcher().dispatch(event) == []

    @pytest.mark.asyncio
    async def test_stats(self, event: GradeEvent) -> None:
        """Test per-handler outcome counters."""
        dispatcher = EventDispatcher()
        dispatcher.register(handler("ok"))
        dispatcher.register(handler("bad", side_effect=ValueError("boom")))

        await dispatcher.dispatch(event)
        await dispatcher.dispatch(event)

        stats = dispatcher.get_stats()
        assert stats["events_dispatched"] == 2
        assert stats["succeeded"] == {"ok": 2}
        assert stats["failed"] == {"bad": 2}
