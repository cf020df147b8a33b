# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Event infrastructure module for GradePulse.

This module carries committed grades to their consumers without coupling
the grade write to them.

Components:
- GradeEventPublisher: bounded queue plus worker tasks, never raises
- EventDispatcher: concurrent handlers with per-handler containment
- HandlerNames: centralized handler name constants

Architecture:
    grade write -> GradeEventPublisher.publish() -> queue -> worker
        -> EventDispatcher.dispatch() -> handlers (mastery, leaderboard, ...)

Quick Start:
    from src.infrastructure.events import EventDispatcher, GradeEventPublisher

    dispatcher = EventDispatcher(handler_timeout_seconds=10)
    dispatcher.register(handler)

    publisher = GradeEventPublisher(dispatcher)
    await publisher.start()
    await publisher.publish(event)
"""

from src.infrastructure.events.dispatcher import (
    EventDispatcher,
    FunctionHandler,
    GradeEventHandler,
    HandlerResult,
)
from src.infrastructure.events.publisher import GradeEventPublisher
from src.infrastructure.events.types import HandlerNames

__all__ = [
    "EventDispatcher",
    "FunctionHandler",
    "GradeEventHandler",
    "HandlerResult",
    "GradeEventPublisher",
    "HandlerNames",
]
