# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the maintenance actors and the log context middleware.

Actors run synchronously over the StubBroker with the worker pipeline
replaced by a mock.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import structlog

from src.core.exceptions import TransientStoreError
from src.infrastructure.background.middleware import LogContextMiddleware
from src.infrastructure.background.tasks import (
    archive_expired_snapshots,
    capture_leaderboard_snapshots,
    get_all_actors,
    reconcile_leaderboards,
    sweep_cache,
)

PIPELINE_PATH = "src.infrastructure.background.tasks.leaderboard.get_worker_pipeline"


def run_in_worker(actor, *args):
    """Run an actor on its own thread, the way a Dramatiq worker thread does."""
    with ThreadPoolExecutor(max_workers=1) as executor:
        return executor.submit(actor, *args).result()


@pytest.fixture
def worker_pipeline():
    """Patch the worker pipeline with a mock."""
    pipeline = MagicMock()
    pipeline.settings.cache.backend = "redis"
    pipeline.capture_snapshots = AsyncMock(return_value=24)
    pipeline.archive_snapshots = AsyncMock(return_value=6)
    pipeline.reconcile = AsyncMock(return_value=0)
    pipeline.sweep_cache = AsyncMock(return_value=2)
    with patch(PIPELINE_PATH, AsyncMock(return_value=pipeline)):
        yield pipeline


class TestActors:
    """Tests for the maintenance actors."""

    def test_all_actors_listed(self):
        """Test every maintenance actor is exported."""
        names = sorted(actor.actor_name for actor in get_all_actors())

        assert names == [
            "archive_expired_snapshots",
            "capture_leaderboard_snapshots",
            "reconcile_leaderboards",
            "sweep_cache",
        ]

    def test_capture_parses_reference_time(self, worker_pipeline):
        """Test the ISO reference time reaches the pipeline as UTC."""
        result = run_in_worker(capture_leaderboard_snapshots, "2026-10-17T12:00:00Z")

        assert result == {"captured": 24}
        worker_pipeline.capture_snapshots.assert_awaited_once_with(
            datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)
        )

    def test_capture_defaults_to_now(self, worker_pipeline):
        """Test no reference time leaves the choice to the pipeline clock."""
        run_in_worker(capture_leaderboard_snapshots)

        worker_pipeline.capture_snapshots.assert_awaited_once_with(None)

    def test_transient_error_reraised_for_retry(self, worker_pipeline):
        """Test transient failures propagate so Dramatiq retries."""
        worker_pipeline.archive_snapshots.side_effect = TransientStoreError("db down")

        with pytest.raises(TransientStoreError):
            run_in_worker(archive_expired_snapshots)

    def test_other_errors_reported(self, worker_pipeline):
        """Test unexpected failures are logged and returned, not retried."""
        worker_pipeline.reconcile.side_effect = RuntimeError("bug")

        result = run_in_worker(reconcile_leaderboards)

        assert result == {"failures": -1, "error": "bug"}

    def test_archive_and_sweep(self, worker_pipeline):
        """Test the summaries of archiving and cache sweeps."""
        assert run_in_worker(archive_expired_snapshots) == {"archived": 6}
        assert run_in_worker(sweep_cache) == {"removed": 2}

    def test_sweep_skipped_for_in_process_cache(self, worker_pipeline):
        """Test workers do not sweep a cache the API never reads."""
        worker_pipeline.settings.cache.backend = "memory"

        assert run_in_worker(sweep_cache) == {"removed": 0, "skipped": True}
        worker_pipeline.sweep_cache.assert_not_called()


class TestLogContextMiddleware:
    """Tests for LogContextMiddleware."""

    def test_binds_and_clears_message_context(self):
        """Test message ids are bound while processing and cleared after."""
        structlog.contextvars.clear_contextvars()
        middleware = LogContextMiddleware()
        message = MagicMock(
            actor_name="reconcile_leaderboards",
            message_id="msg-1",
            queue_name="maintenance",
        )

        middleware.before_process_message(MagicMock(), message)
        bound = structlog.contextvars.get_contextvars()
        middleware.after_process_message(MagicMock(), message, result={"failures": 0})

        assert bound == {
            "actor": "reconcile_leaderboards",
            "message_id": "msg-1",
            "queue": "maintenance",
        }
        assert structlog.contextvars.get_contextvars() == {}
