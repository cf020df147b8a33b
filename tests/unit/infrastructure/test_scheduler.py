# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the maintenance scheduler."""

from unittest.mock import MagicMock

import pytest

from src.core.config.settings import Settings, WorkerSettings
from src.infrastructure.background.scheduler import (
    MaintenanceScheduler,
    register_maintenance_jobs,
    start_scheduler,
    stop_scheduler,
)


@pytest.fixture
def actor() -> MagicMock:
    """Provide a mock actor."""
    return MagicMock()


@pytest.fixture
def scheduler(actor: MagicMock) -> MaintenanceScheduler:
    """Provide a scheduler resolving the reconciliation actor to the mock."""
    known = {"reconcile_leaderboards": actor}
    return MaintenanceScheduler(actor_lookup=known.get)


class TestAddJobs:
    """Tests for job registration."""

    def test_add_interval_job(self, scheduler: MaintenanceScheduler) -> None:
        """Test interval jobs are kept before the scheduler starts."""
        job = scheduler.add_interval_job("Reconcile", "reconcile_leaderboards", minutes=30)

        assert scheduler.list_jobs() == [job]
        assert scheduler.get_stats()["job_count"] == 1

    def test_non_positive_interval_rejected(self, scheduler: MaintenanceScheduler) -> None:
        """Test an interval job needs a positive interval."""
        with pytest.raises(ValueError):
            scheduler.add_interval_job("Reconcile", "reconcile_leaderboards")

    def test_invalid_cron_rejected(self, scheduler: MaintenanceScheduler) -> None:
        """Test cron expressions need five fields."""
        with pytest.raises(ValueError):
            scheduler.add_cron_job("Archive", "archive_expired_snapshots", "0 3 * *")

    def test_register_maintenance_jobs(self, scheduler: MaintenanceScheduler, settings) -> None:
        """Test capture, archiving and reconciliation are registered."""
        register_maintenance_jobs(scheduler, settings)

        assert sorted(j.actor_name for j in scheduler.list_jobs()) == [
            "archive_expired_snapshots",
            "capture_leaderboard_snapshots",
            "reconcile_leaderboards",
        ]


class TestRunJob:
    """Tests for MaintenanceScheduler.run_job."""

    @pytest.mark.asyncio
    async def test_sends_actor_message(self, scheduler, actor) -> None:
        """Test a firing enqueues the actor with the job arguments."""
        job = scheduler.add_interval_job(
            "Reconcile",
            "reconcile_leaderboards",
            minutes=5,
            kwargs={"now": "2026-10-17T12:00:00+00:00"},
        )

        await scheduler.run_job(job.id)

        actor.send.assert_called_once_with(now="2026-10-17T12:00:00+00:00")
        assert job.run_count == 1
        assert job.last_run is not None

    @pytest.mark.asyncio
    async def test_missing_actor_counts_error(self, scheduler) -> None:
        """Test an unknown actor is counted as an error, not raised."""
        job = scheduler.add_interval_job("Ghost", "no_such_actor", minutes=5)

        await scheduler.run_job(job.id)

        assert job.error_count == 1
        assert job.run_count == 0

    @pytest.mark.asyncio
    async def test_send_failure_counts_error(self, scheduler, actor) -> None:
        """Test a broker failure is counted as an error."""
        actor.send.side_effect = ConnectionError("broker down")
        job = scheduler.add_interval_job("Reconcile", "reconcile_leaderboards", minutes=5)

        await scheduler.run_job(job.id)

        assert scheduler.get_stats()["total_errors"] == 1

    @pytest.mark.asyncio
    async def test_disabled_job_skipped(self, scheduler, actor) -> None:
        """Test disabled jobs send nothing."""
        job = scheduler.add_interval_job("Reconcile", "reconcile_leaderboards", minutes=5)
        assert scheduler.set_enabled(job.id, False) is True

        await scheduler.run_job(job.id)

        actor.send.assert_not_called()
        assert scheduler.get_stats()["enabled_count"] == 0

    def test_set_enabled_unknown_job(self, scheduler) -> None:
        """Test toggling an unknown job reports False."""
        assert scheduler.set_enabled("missing", True) is False


class TestLifecycle:
    """Tests for start and stop."""

    @pytest.mark.asyncio
    async def test_jobs_added_before_start_are_scheduled(self, scheduler, settings) -> None:
        """Test start schedules pending jobs and stop is idempotent."""
        register_maintenance_jobs(scheduler, settings)

        await scheduler.start()
        try:
            assert scheduler.is_running is True
            assert len(scheduler._scheduler.get_jobs()) == 3
            scheduler.add_interval_job("Extra", "reconcile_leaderboards", minutes=1)
            assert len(scheduler._scheduler.get_jobs()) == 4
        finally:
            await scheduler.stop()

        assert scheduler.is_running is False
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_disabled_by_settings(self) -> None:
        """Test no scheduler runs when scheduling is disabled."""
        settings = Settings(worker=WorkerSettings(scheduler_enabled=False))

        assert await start_scheduler(settings) is None
        await stop_scheduler()
