# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Scheduler enqueuing the pipeline's maintenance jobs.

APScheduler fires cron or interval triggers inside the API process and
each firing sends a Dramatiq message; the work itself runs on workers.
Jobs may be added before the scheduler starts, they are scheduled when
it does.

Example:
    scheduler = await start_scheduler(settings)
    ...
    await stop_scheduler()
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable
from uuid import uuid4

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from src.core.config.settings import Settings

logger = logging.getLogger(__name__)


@dataclass
class MaintenanceJob:
    """A periodic actor message.

    Attributes:
        name: Human-readable job name.
        actor_name: Dramatiq actor receiving the message.
        trigger: APScheduler trigger deciding when the job fires.
        kwargs: Keyword arguments of the message.
        id: Unique job identifier.
        enabled: Whether firings send a message.
        last_run: When a message was last sent.
        run_count: Number of messages sent.
        error_count: Number of firings that failed to send.
    """

    name: str
    actor_name: str
    trigger: BaseTrigger
    kwargs: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid4()))
    enabled: bool = True
    last_run: datetime | None = None
    run_count: int = 0
    error_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "actor_name": self.actor_name,
            "trigger": str(self.trigger),
            "enabled": self.enabled,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "run_count": self.run_count,
            "error_count": self.error_count,
        }


def _task_actor(actor_name: str) -> Any:
    from src.infrastructure.background import tasks

    return getattr(tasks, actor_name, None)


class MaintenanceScheduler:
    """Sends maintenance actor messages on APScheduler triggers."""

    def __init__(self, actor_lookup: Callable[[str], Any] | None = None) -> None:
        """Initialize the scheduler.

        Args:
            actor_lookup: Resolves an actor name to an actor, defaults to
                the actors of the tasks package.
        """
        self._scheduler: AsyncIOScheduler | None = None
        self._jobs: dict[str, MaintenanceJob] = {}
        self._actor_lookup = actor_lookup or _task_actor

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None

    def add_cron_job(
        self,
        name: str,
        actor_name: str,
        cron_expression: str,
        kwargs: dict[str, Any] | None = None,
    ) -> MaintenanceJob:
        """Add a job firing on a crontab expression, evaluated in UTC.

        Raises:
            ValueError: If the expression is not a valid five-field crontab.
        """
        trigger = CronTrigger.from_crontab(cron_expression, timezone=timezone.utc)
        return self._add(MaintenanceJob(name, actor_name, trigger, kwargs or {}))

    def add_interval_job(
        self,
        name: str,
        actor_name: str,
        *,
        hours: int = 0,
        minutes: int = 0,
        kwargs: dict[str, Any] | None = None,
    ) -> MaintenanceJob:
        """Add a job firing at a fixed interval.

        Raises:
            ValueError: If the interval is not positive.
        """
        if hours <= 0 and minutes <= 0:
            raise ValueError(f"Interval of job {name} must be positive")
        trigger = IntervalTrigger(hours=hours, minutes=minutes, timezone=timezone.utc)
        return self._add(MaintenanceJob(name, actor_name, trigger, kwargs or {}))

    def _add(self, job: MaintenanceJob) -> MaintenanceJob:
        self._jobs[job.id] = job
        if self._scheduler is not None:
            self._schedule(job)
        logger.info("Added maintenance job: %s (%s)", job.name, job.trigger)
        return job

    def _schedule(self, job: MaintenanceJob) -> None:
        self._scheduler.add_job(
            self.run_job,
            trigger=job.trigger,
            args=[job.id],
            id=job.id,
            name=job.name,
            coalesce=True,
            max_instances=1,
        )

    async def run_job(self, job_id: str) -> None:
        """Send one message for a job. Failures are counted, never raised."""
        job = self._jobs.get(job_id)
        if job is None or not job.enabled:
            return

        try:
            actor = self._actor_lookup(job.actor_name)
            if actor is None:
                raise LookupError(f"Actor not found: {job.actor_name}")
            actor.send(**job.kwargs)
        except Exception as e:
            job.error_count += 1
            logger.error("Maintenance job %s failed to enqueue: %s", job.name, e)
            return

        job.last_run = datetime.now(timezone.utc)
        job.run_count += 1
        logger.debug("Maintenance job %s enqueued", job.name)

    def set_enabled(self, job_id: str, enabled: bool) -> bool:
        """Enable or disable a job.

        Returns:
            False if the job is unknown.
        """
        job = self._jobs.get(job_id)
        if job is None:
            return False
        job.enabled = enabled
        return True

    def list_jobs(self) -> list[MaintenanceJob]:
        return list(self._jobs.values())

    async def start(self) -> None:
        """Start firing triggers, scheduling jobs added so far."""
        if self._scheduler is not None:
            return

        self._scheduler = AsyncIOScheduler(timezone=timezone.utc)
        for job in self._jobs.values():
            self._schedule(job)
        self._scheduler.start()
        logger.info("Maintenance scheduler started with %d jobs", len(self._jobs))

    async def stop(self) -> None:
        """Stop firing triggers. Jobs are kept for a later start()."""
        if self._scheduler is None:
            return

        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Maintenance scheduler stopped")

    def get_stats(self) -> dict[str, Any]:
        jobs = self._jobs.values()
        return {
            "is_running": self.is_running,
            "job_count": len(self._jobs),
            "enabled_count": sum(1 for j in jobs if j.enabled),
            "total_runs": sum(j.run_count for j in jobs),
            "total_errors": sum(j.error_count for j in jobs),
            "jobs": [j.to_dict() for j in jobs],
        }


def register_maintenance_jobs(scheduler: MaintenanceScheduler, settings: Settings) -> None:
    """Register snapshot capture, retention archiving and reconciliation.

    Args:
        scheduler: Scheduler to register on.
        settings: Application settings with the job intervals.
    """
    scheduler.add_interval_job(
        "Leaderboard Snapshot Capture",
        "capture_leaderboard_snapshots",
        hours=settings.snapshot.capture_interval_hours,
    )
    scheduler.add_cron_job(
        "Snapshot Retention Archiving",
        "archive_expired_snapshots",
        settings.worker.archive_cron,
    )
    scheduler.add_interval_job(
        "Leaderboard Reconciliation",
        "reconcile_leaderboards",
        minutes=settings.worker.reconcile_interval_minutes,
    )


# Singleton instance
_scheduler: MaintenanceScheduler | None = None


async def start_scheduler(settings: Settings) -> MaintenanceScheduler | None:
    """Start the process-wide scheduler with the maintenance jobs.

    Returns:
        The started scheduler, or None when scheduling is disabled.
    """
    global _scheduler
    if not settings.worker.scheduler_enabled:
        logger.info("Maintenance scheduler disabled")
        return None
    if _scheduler is None:
        _scheduler = MaintenanceScheduler()
        register_maintenance_jobs(_scheduler, settings)
    await _scheduler.start()
    return _scheduler


async def stop_scheduler() -> None:
    """Stop and forget the process-wide scheduler."""
    global _scheduler
    if _scheduler is not None:
        await _scheduler.stop()
        _scheduler = None
