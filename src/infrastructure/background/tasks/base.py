# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Base utilities for Dramatiq tasks.

Thread-Local Event Loop Management:
    Dramatiq workers use multiple threads (--threads N) to process tasks
    concurrently. SQLAlchemy async engines and asyncpg connections are
    bound to specific event loops and cannot be used across different loops.

    This module keeps one persistent event loop per worker thread, and
    one GradePipeline (with its own engine and cache client) per loop,
    so connections always stay bound to the loop that created them.
"""

import asyncio
import logging
import threading
from typing import Any, Coroutine, TypeVar

from src.core.config import get_settings
from src.domains.grade_pipeline.service import GradePipeline
from src.infrastructure.bootstrap import build_pipeline
from src.infrastructure.database.connection import create_engine, create_sessionmaker

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Thread-local storage for event loops and pipelines
_thread_local = threading.local()


def _get_thread_event_loop() -> asyncio.AbstractEventLoop:
    """Get or create a persistent event loop for the current thread.

    When a new loop is created the thread's cached pipeline is dropped,
    since its connections belong to the previous loop.

    Returns:
        Event loop for current thread.
    """
    loop = getattr(_thread_local, "event_loop", None)

    if loop is None or loop.is_closed():
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        _thread_local.event_loop = loop
        _thread_local.pipeline = None

        logger.debug(
            "Created new event loop for thread %s",
            threading.current_thread().name,
        )

    return loop


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run async coroutine in sync Dramatiq worker context.

    Args:
        coro: Coroutine to run.

    Returns:
        Result of coroutine.

    Example:
        @dramatiq.actor
        def my_task():
            async def _process():
                pipeline = await get_worker_pipeline()
                return await pipeline.reconcile()
            return run_async(_process())
    """
    loop = _get_thread_event_loop()
    return loop.run_until_complete(coro)


async def get_worker_pipeline() -> GradePipeline:
    """Get the pipeline bound to the current worker thread's event loop.

    Must be awaited from inside run_async(). Worker pipelines are never
    started: maintenance jobs call the pipeline directly and never
    publish events.

    Returns:
        GradePipeline for this thread.
    """
    pipeline = getattr(_thread_local, "pipeline", None)
    if pipeline is None:
        settings = get_settings()
        pipeline = await build_pipeline(settings, create_sessionmaker(create_engine(settings)))
        _thread_local.pipeline = pipeline
        logger.debug("Created worker pipeline for thread %s", threading.current_thread().name)
    return pipeline

