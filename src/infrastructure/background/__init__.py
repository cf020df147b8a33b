# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background task infrastructure module for GradePulse.

Runs the pipeline's maintenance jobs with Dramatiq:
- Redis broker for message persistence and durability
- Log context middleware per processed message
- APScheduler integration enqueuing the periodic jobs

Quick Start:
    from src.infrastructure.background import setup_dramatiq
    setup_dramatiq()

    from src.infrastructure.background.tasks import reconcile_leaderboards
    reconcile_leaderboards.send()

Running Workers:
    dramatiq src.infrastructure.background.tasks --processes 2 --threads 4

Scheduler:
    from src.infrastructure.background import start_scheduler, stop_scheduler

    await start_scheduler(settings)
    await stop_scheduler()
"""

from src.infrastructure.background.broker import (
    Priority,
    Queues,
    setup_dramatiq,
    shutdown_dramatiq,
)
from src.infrastructure.background.scheduler import (
    MaintenanceJob,
    MaintenanceScheduler,
    register_maintenance_jobs,
    start_scheduler,
    stop_scheduler,
)

# Tasks are imported lazily to avoid circular imports
# Use: from src.infrastructure.background.tasks import reconcile_leaderboards

__all__ = [
    # Broker
    "Priority",
    "Queues",
    "setup_dramatiq",
    "shutdown_dramatiq",
    # Scheduler
    "MaintenanceJob",
    "MaintenanceScheduler",
    "register_maintenance_jobs",
    "start_scheduler",
    "stop_scheduler",
]
