# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background task actors for GradePulse.

Actors:
- capture_leaderboard_snapshots: periodic snapshot capture
- archive_expired_snapshots: retention archiving
- reconcile_leaderboards: periodic full recompute
- sweep_cache: expired cache entry removal

Running Workers:
    dramatiq src.infrastructure.background.tasks --processes 2 --threads 4
"""

from src.infrastructure.background.tasks.base import get_worker_pipeline, run_async
from src.infrastructure.background.tasks.leaderboard import (
    archive_expired_snapshots,
    capture_leaderboard_snapshots,
    get_leaderboard_actors,
    reconcile_leaderboards,
    sweep_cache,
)

__all__ = [
    "capture_leaderboard_snapshots",
    "archive_expired_snapshots",
    "reconcile_leaderboards",
    "sweep_cache",
    "get_worker_pipeline",
    "run_async",
    "get_all_actors",
]


def get_all_actors() -> list:
    """Get list of all defined actors."""
    return get_leaderboard_actors()
