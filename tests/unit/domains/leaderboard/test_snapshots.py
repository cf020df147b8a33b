# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for SnapshotStore and SnapshotHistory."""

from datetime import datetime, timedelta, timezone

import pytest

from src.core.config.settings import ScoringWeights, SnapshotSettings
from src.domains.leaderboard.engine import LeaderboardAggregationEngine
from src.domains.leaderboard.models import (
    EntityScope,
    LeaderboardSnapshot,
    Period,
    SnapshotStatus,
    TimeGranularity,
)
from src.domains.leaderboard.snapshots import SnapshotStore, partition_key
from tests.fakes import NOW, make_grade


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def stored_snapshot(
    start: datetime,
    end: datetime,
    *,
    granularity: TimeGranularity = TimeGranularity.MONTHLY,
    captured_at: datetime | None = None,
) -> LeaderboardSnapshot:
    return LeaderboardSnapshot(
        snapshot_id=f"snap-{start:%Y%m%d}-{granularity.value}",
        entity_scope=EntityScope.CLASS,
        entity_id="c-1",
        time_granularity=granularity,
        period=Period.between(start, end),
        captured_at=captured_at or end,
        partition_key=partition_key(EntityScope.CLASS, captured_at or end),
    )


@pytest.fixture
def store(score_store, directory, snapshot_repository, clock) -> SnapshotStore:
    """Provide a snapshot store paging two snapshots at a time."""
    engine = LeaderboardAggregationEngine(
        score_store, directory, snapshot_repository, ScoringWeights(), clock=clock
    )
    return SnapshotStore(engine, snapshot_repository, SnapshotSettings(page_size=2), clock=clock)


@pytest.fixture
def monthly_history(snapshot_repository) -> list[LeaderboardSnapshot]:
    """Five monthly snapshots from May to September 2026, stored out of order."""
    snapshots = [stored_snapshot(utc(2026, m, 1), utc(2026, m + 1, 1)) for m in range(5, 10)]
    snapshot_repository.snapshots += [snapshots[3], snapshots[0], snapshots[4]]
    snapshot_repository.snapshots += [snapshots[2], snapshots[1]]
    return snapshots


class TestCapture:
    """Tests for SnapshotStore.capture."""

    @pytest.mark.asyncio
    async def test_capture_stores_current_leaderboard(
        self, store, score_store, snapshot_repository
    ) -> None:
        """Test a capture holds the ranked entries of the active period."""
        score_store.grades.append(make_grade("s-2", 85, utc(2026, 10, 3)))

        snapshot = await store.capture(EntityScope.CLASS, "c-1", TimeGranularity.MONTHLY)

        assert snapshot.period.label == "2026-10-01/2026-10-17"
        assert snapshot.captured_at == NOW
        assert snapshot.partition_key == "class_2026-10"
        assert snapshot.status is SnapshotStatus.ACTIVE
        assert [e.student_id for e in snapshot.entries] == ["s-2", "s-1", "s-3"]
        assert snapshot_repository.snapshots == [snapshot]

    @pytest.mark.asyncio
    async def test_second_capture_in_period_is_noop(
        self, store, score_store, snapshot_repository
    ) -> None:
        """Test capturing twice in one period keeps the first snapshot."""
        first = await store.capture(EntityScope.CLASS, "c-1", TimeGranularity.MONTHLY)
        score_store.grades.append(make_grade("s-3", 100, utc(2026, 10, 4)))

        second = await store.capture(
            "class", "c-1", "monthly", now=NOW + timedelta(hours=6)
        )

        assert second.snapshot_id == first.snapshot_id
        assert second.entries == first.entries
        assert len(snapshot_repository.snapshots) == 1

    @pytest.mark.asyncio
    async def test_capture_per_granularity(self, store, snapshot_repository) -> None:
        """Test each granularity gets its own snapshot."""
        for granularity in TimeGranularity:
            await store.capture(EntityScope.CLASS, "c-1", granularity)

        assert len(snapshot_repository.snapshots) == len(TimeGranularity)

    @pytest.mark.asyncio
    async def test_capture_of_unknown_entity_is_empty(self, store) -> None:
        """Test an unresolvable entity captures an empty snapshot."""
        snapshot = await store.capture(EntityScope.GROUP, "missing", TimeGranularity.WEEKLY)

        assert snapshot.entries == ()


class TestHistory:
    """Tests for SnapshotStore.history."""

    @pytest.mark.asyncio
    async def test_history_in_ascending_period_order(self, store, monthly_history) -> None:
        """Test history is ordered by period regardless of insertion order."""
        history = await store.history(
            EntityScope.CLASS, "c-1", TimeGranularity.MONTHLY
        ).to_list()

        assert [s.snapshot_id for s in history] == [s.snapshot_id for s in monthly_history]

    @pytest.mark.asyncio
    async def test_history_pages_through_repository(
        self, store, monthly_history, snapshot_repository
    ) -> None:
        """Test history is fetched lazily one page at a time."""
        history = store.history(EntityScope.CLASS, "c-1", TimeGranularity.MONTHLY)
        assert snapshot_repository.page_calls == 0

        seen = [s async for s in history]

        assert len(seen) == 5
        assert snapshot_repository.page_calls == 3

    @pytest.mark.asyncio
    async def test_history_is_restartable(
        self, store, monthly_history, snapshot_repository
    ) -> None:
        """Test iterating twice re-runs the query and sees new captures."""
        history = store.history(EntityScope.CLASS, "c-1", TimeGranularity.MONTHLY)

        first = await history.to_list()
        snapshot_repository.snapshots.append(
            stored_snapshot(utc(2026, 10, 1), utc(2026, 10, 17))
        )
        second = await history.to_list()

        assert len(first) == 5
        assert len(second) == 6
        assert second[:5] == first

    @pytest.mark.asyncio
    async def test_history_bounds_on_period_start(self, store, monthly_history) -> None:
        """Test start is inclusive and end is exclusive."""
        history = await store.history(
            EntityScope.CLASS,
            "c-1",
            TimeGranularity.MONTHLY,
            start=utc(2026, 6, 1),
            end=utc(2026, 8, 1),
        ).to_list()

        assert [s.period.label for s in history] == [
            "2026-06-01/2026-07-01",
            "2026-07-01/2026-08-01",
        ]

    @pytest.mark.asyncio
    async def test_history_of_other_granularity_is_empty(self, store, monthly_history) -> None:
        """Test history is kept per granularity."""
        history = await store.history(
            EntityScope.CLASS, "c-1", TimeGranularity.WEEKLY
        ).to_list()

        assert history == []


class TestArchiveExpired:
    """Tests for SnapshotStore.archive_expired."""

    @pytest.mark.asyncio
    async def test_archives_by_granularity_retention(self, store, snapshot_repository) -> None:
        """Test only snapshots past their own retention are archived."""
        old = NOW - timedelta(days=100)
        snapshot_repository.snapshots += [
            stored_snapshot(
                utc(2026, 6, 29), utc(2026, 7, 6),
                granularity=TimeGranularity.WEEKLY, captured_at=old,
            ),
            stored_snapshot(
                utc(2026, 6, 1), utc(2026, 7, 1),
                granularity=TimeGranularity.MONTHLY, captured_at=old,
            ),
            stored_snapshot(
                utc(2026, 10, 2), utc(2026, 10, 9),
                granularity=TimeGranularity.WEEKLY, captured_at=NOW,
            ),
        ]

        archived = await store.archive_expired()

        assert archived == {
            TimeGranularity.WEEKLY: 1,
            TimeGranularity.MONTHLY: 0,
            TimeGranularity.TERM: 0,
            TimeGranularity.ALL_TIME: 0,
        }
        statuses = [s.status for s in snapshot_repository.snapshots]
        assert statuses == [SnapshotStatus.ARCHIVED, SnapshotStatus.ACTIVE, SnapshotStatus.ACTIVE]

    @pytest.mark.asyncio
    async def test_archived_snapshots_leave_history(self, store, snapshot_repository) -> None:
        """Test archived snapshots are no longer listed."""
        snapshot_repository.snapshots.append(
            stored_snapshot(
                utc(2026, 6, 29), utc(2026, 7, 6),
                granularity=TimeGranularity.WEEKLY, captured_at=NOW - timedelta(days=91),
            )
        )

        await store.archive_expired(now=NOW)
        history = await store.history(
            EntityScope.CLASS, "c-1", TimeGranularity.WEEKLY
        ).to_list()

        assert history == []
