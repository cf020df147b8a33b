# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Leaderboard maintenance actors.

These actors are enqueued by the scheduler and run the pipeline's
maintenance operations on a worker:

- capture_leaderboard_snapshots: capture every scope at every granularity
- archive_expired_snapshots: archive snapshots past retention
- reconcile_leaderboards: recompute every leaderboard, repairing those
  left stale by dropped events or failed handlers
- sweep_cache: drop expired entries of the shared cache

Workers build their own pipeline and cache. Only the Redis cache backend
is shared with the API, so with the in-process backend the cache
invalidations of reconcile_leaderboards stay in the worker and sweep_cache
has nothing to do. The API then sees recomputed leaderboards once its
cached copies expire, and its own lifespan sweeps its in-process cache.

Transient store errors are re-raised so Dramatiq retries the message;
anything else is logged and reported in the result.
"""

import logging
from typing import Any

import dramatiq

from src.core.exceptions import TransientStoreError
from src.infrastructure.background.broker import Priority, Queues, setup_dramatiq
from src.infrastructure.background.tasks.base import get_worker_pipeline, run_async
from src.utils.datetime import parse_iso

setup_dramatiq()

logger = logging.getLogger(__name__)


@dramatiq.actor(
    queue_name=Queues.SNAPSHOTS,
    max_retries=3,
    time_limit=1800000,  # 30 minutes
    priority=Priority.NORMAL,
)
def capture_leaderboard_snapshots(now: str | None = None) -> dict[str, Any]:
    """Capture the active period of every leaderboard.

    Args:
        now: ISO reference time, defaults to the current time.

    Returns:
        Number of snapshots captured or already present.
    """

    async def _capture() -> dict[str, Any]:
        pipeline = await get_worker_pipeline()
        captured = await pipeline.capture_snapshots(parse_iso(now))
        return {"captured": captured}

    try:
        return run_async(_capture())
    except TransientStoreError:
        logger.warning("Snapshot capture hit a transient store error, retrying")
        raise
    except Exception as e:
        logger.error("Snapshot capture failed: %s", e, exc_info=True)
        return {"captured": 0, "error": str(e)}


@dramatiq.actor(
    queue_name=Queues.MAINTENANCE,
    max_retries=3,
    time_limit=600000,  # 10 minutes
    priority=Priority.LOW,
)
def archive_expired_snapshots(now: str | None = None) -> dict[str, Any]:
    """Archive snapshots older than their granularity's retention.

    Args:
        now: ISO reference time, defaults to the current time.

    Returns:
        Number of archived snapshots.
    """

    async def _archive() -> dict[str, Any]:
        pipeline = await get_worker_pipeline()
        archived = await pipeline.archive_snapshots(parse_iso(now))
        return {"archived": archived}

    try:
        return run_async(_archive())
    except TransientStoreError:
        logger.warning("Snapshot archiving hit a transient store error, retrying")
        raise
    except Exception as e:
        logger.error("Snapshot archiving failed: %s", e, exc_info=True)
        return {"archived": 0, "error": str(e)}


@dramatiq.actor(
    queue_name=Queues.MAINTENANCE,
    max_retries=1,
    time_limit=1800000,  # 30 minutes
    priority=Priority.NORMAL,
)
def reconcile_leaderboards(now: str | None = None) -> dict[str, Any]:
    """Recompute every leaderboard.

    Stored leaderboards are always rewritten. Cached reads held by the API
    are invalidated only with the Redis cache backend.

    Args:
        now: ISO reference time, defaults to the current time.

    Returns:
        Number of leaderboards that failed to refresh.
    """

    async def _reconcile() -> dict[str, Any]:
        pipeline = await get_worker_pipeline()
        failures = await pipeline.reconcile(parse_iso(now))
        return {"failures": failures}

    try:
        return run_async(_reconcile())
    except TransientStoreError:
        logger.warning("Reconciliation hit a transient store error, retrying")
        raise
    except Exception as e:
        logger.error("Reconciliation failed: %s", e, exc_info=True)
        return {"failures": -1, "error": str(e)}


@dramatiq.actor(
    queue_name=Queues.DEFAULT,
    max_retries=0,
    time_limit=60000,  # 1 minute
    priority=Priority.LOW,
)
def sweep_cache() -> dict[str, Any]:
    """Drop expired entries of the shared cache.

    Skipped with the in-process backend, which only the API process reads.

    Returns:
        Number of removed entries.
    """

    async def _sweep() -> dict[str, Any]:
        pipeline = await get_worker_pipeline()
        if pipeline.settings.cache.backend == "memory":
            logger.debug("In-process cache is not shared with the API, skipping sweep")
            return {"removed": 0, "skipped": True}
        return {"removed": await pipeline.sweep_cache()}

    return run_async(_sweep())


def get_leaderboard_actors() -> list:
    """Get all leaderboard maintenance actors."""
    return [
        capture_leaderboard_snapshots,
        archive_expired_snapshots,
        reconcile_leaderboards,
        sweep_cache,
    ]
