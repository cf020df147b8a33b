# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for LeaderboardService reads."""

from datetime import datetime, timezone

import pytest

from src.core.config.settings import CacheSettings, LeaderboardSettings, ScoringWeights
from src.core.exceptions import TransientStoreError
from src.domains.leaderboard.engine import LeaderboardAggregationEngine
from src.domains.leaderboard.models import (
    EntityScope,
    LeaderboardEntry,
    LeaderboardSnapshot,
    Period,
    RankedLeaderboard,
    TimeGranularity,
)
from src.domains.leaderboard.service import LeaderboardService
from src.domains.leaderboard.snapshots import SnapshotStore
from src.infrastructure.cache.layer import CacheKeys
from tests.fakes import NOW, make_grade

OCT_5 = datetime(2026, 10, 5, 10, 0, tzinfo=timezone.utc)


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def entry(student_id: str, rank: int, score: float, *, delta: int = 0) -> LeaderboardEntry:
    return LeaderboardEntry(
        entity_scope=EntityScope.CLASS,
        entity_id="c-1",
        time_granularity=TimeGranularity.MONTHLY,
        student_id=student_id,
        rank=rank,
        academic_score=score,
        composite_score=score / 2,
        rank_delta=delta,
    )


def month_snapshot(month: int, entries: list[LeaderboardEntry]) -> LeaderboardSnapshot:
    start, end = utc(2026, month, 1), utc(2026, month + 1, 1)
    return LeaderboardSnapshot(
        snapshot_id=f"snap-{month}",
        entity_scope=EntityScope.CLASS,
        entity_id="c-1",
        time_granularity=TimeGranularity.MONTHLY,
        period=Period.between(start, end),
        captured_at=end,
        entries=tuple(entries),
        partition_key=f"class_2026-{month + 1:02d}",
    )


@pytest.fixture
def service(
    score_store, directory, snapshot_repository, leaderboard_repository, cache, clock
) -> LeaderboardService:
    """Provide a service with small page sizes."""
    engine = LeaderboardAggregationEngine(
        score_store,
        directory,
        snapshot_repository,
        ScoringWeights(),
        repository=leaderboard_repository,
        clock=clock,
    )
    return LeaderboardService(
        engine,
        SnapshotStore(engine, snapshot_repository, clock=clock),
        cache,
        leaderboard_repository,
        LeaderboardSettings(default_page_size=2, max_page_size=5, top_performers=2),
        CacheSettings(),
        clock=clock,
    )


@pytest.fixture
def graded(score_store):
    """s-1 and s-2 at 90, s-3 at 50, all in c-1 on Oct 5."""
    score_store.grades += [
        make_grade("s-1", 90, OCT_5),
        make_grade("s-2", 90, OCT_5),
        make_grade("s-3", 50, OCT_5),
    ]
    return score_store


class TestGetLeaderboard:
    """Tests for get_leaderboard."""

    @pytest.mark.asyncio
    async def test_default_page(self, service, graded) -> None:
        """Test the default page size applies and total counts every student."""
        page = await service.get_leaderboard(EntityScope.CLASS, "c-1", TimeGranularity.MONTHLY)

        assert [e.student_id for e in page.entries] == ["s-1", "s-2"]
        assert page.total_count == 3
        assert page.limit == 2
        assert page.period.label == "2026-10-01/2026-10-17"

    @pytest.mark.asyncio
    async def test_offset_slices_engine_order(self, service, graded) -> None:
        """Test later pages continue the same order."""
        page = await service.get_leaderboard("class", "c-1", "monthly", limit=2, offset=2)

        assert [(e.student_id, e.rank) for e in page.entries] == [("s-3", 3)]

    @pytest.mark.asyncio
    async def test_offset_past_end_is_empty(self, service, graded) -> None:
        """Test an offset beyond the board returns no entries."""
        page = await service.get_leaderboard("class", "c-1", "monthly", offset=10)

        assert page.entries == []
        assert page.total_count == 3

    @pytest.mark.asyncio
    async def test_limit_capped(self, service, graded) -> None:
        """Test the limit never exceeds the configured maximum."""
        page = await service.get_leaderboard("class", "c-1", "monthly", limit=100)

        assert page.limit == 5

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("limit", "offset"), [(0, 0), (-1, 0), (5, -1)])
    async def test_invalid_paging_rejected(self, service, limit, offset) -> None:
        """Test non-positive limits and negative offsets raise ValueError."""
        with pytest.raises(ValueError):
            await service.get_leaderboard("class", "c-1", "monthly", limit=limit, offset=offset)

    @pytest.mark.asyncio
    async def test_reads_are_cached(self, service, graded) -> None:
        """Test a second read does not touch the score store."""
        await service.get_leaderboard("class", "c-1", "monthly")
        calls = graded.calls

        await service.get_leaderboard("class", "c-1", "monthly", offset=1)

        assert graded.calls == calls

    @pytest.mark.asyncio
    async def test_stored_board_of_active_period_used(
        self, service, score_store, leaderboard_repository
    ) -> None:
        """Test a stored board of the active period is served without recompute."""
        period = Period.between(utc(2026, 10, 1), NOW)
        stored = RankedLeaderboard(
            entity_scope=EntityScope.CLASS,
            entity_id="c-1",
            time_granularity=TimeGranularity.MONTHLY,
            period=period,
            computed_at=NOW,
            entries=[entry("s-9", 1, 100)],
        )
        leaderboard_repository.boards[
            (EntityScope.CLASS, "c-1", TimeGranularity.MONTHLY)
        ] = stored

        page = await service.get_leaderboard("class", "c-1", "monthly")

        assert [e.student_id for e in page.entries] == ["s-9"]
        assert score_store.calls == 0

    @pytest.mark.asyncio
    async def test_stored_board_of_past_period_recomputed(
        self, service, graded, leaderboard_repository
    ) -> None:
        """Test a board left over from an earlier period is recomputed."""
        leaderboard_repository.boards[
            (EntityScope.CLASS, "c-1", TimeGranularity.MONTHLY)
        ] = RankedLeaderboard(
            entity_scope=EntityScope.CLASS,
            entity_id="c-1",
            time_granularity=TimeGranularity.MONTHLY,
            period=Period.between(utc(2026, 9, 1), utc(2026, 10, 1)),
            computed_at=utc(2026, 9, 30),
            entries=[entry("s-9", 1, 100)],
        )

        page = await service.get_leaderboard("class", "c-1", "monthly")

        assert [e.student_id for e in page.entries] == ["s-1", "s-2"]
        stored = leaderboard_repository.boards[
            (EntityScope.CLASS, "c-1", TimeGranularity.MONTHLY)
        ]
        assert stored.period.label == "2026-10-01/2026-10-17"

    @pytest.mark.asyncio
    async def test_stale_copy_served_during_outage(
        self, service, graded, cache, leaderboard_repository
    ) -> None:
        """Test the last computed board is served when the stores are down."""
        first = await service.get_leaderboard("class", "c-1", "monthly")
        await cache.invalidate(CacheKeys.scope_prefix(EntityScope.CLASS, "c-1"))
        graded.fail = True
        leaderboard_repository.fail = True

        second = await service.get_leaderboard("class", "c-1", "monthly")

        assert second.entries == first.entries
        assert cache.stats()["stale_hits"] == 1

    @pytest.mark.asyncio
    async def test_outage_without_cached_copy_raises(self, service, score_store) -> None:
        """Test a failure with nothing cached reaches the caller."""
        score_store.fail = True

        with pytest.raises(TransientStoreError):
            await service.get_leaderboard("class", "c-1", "monthly")


class TestGetStudentPosition:
    """Tests for get_student_position."""

    @pytest.mark.asyncio
    async def test_position_matches_board(self, service, graded) -> None:
        """Test the position is the student's entry in the ranked board."""
        position = await service.get_student_position("class", "c-1", "s-3", "monthly")

        assert position is not None
        assert position.rank == 3
        assert position.academic_score == 50.0

    @pytest.mark.asyncio
    async def test_student_not_in_scope(self, service, graded) -> None:
        """Test a student outside the scope has no position."""
        assert await service.get_student_position("class", "c-1", "s-4", "monthly") is None


class TestTrends:
    """Tests for get_trends and get_student_trend."""

    @pytest.fixture
    def history(self, snapshot_repository) -> None:
        """Three monthly snapshots, s-3 missing from the oldest."""
        snapshot_repository.snapshots += [
            month_snapshot(7, [entry("s-1", 1, 80), entry("s-2", 2, 60)]),
            month_snapshot(8, [entry("s-2", 1, 90), entry("s-1", 2, 70), entry("s-3", 3, 40)]),
            month_snapshot(
                9,
                [
                    entry("s-3", 1, 95, delta=2),
                    entry("s-2", 2, 85, delta=-1),
                    entry("s-1", 3, 65, delta=-1),
                ],
            ),
        ]

    @pytest.mark.asyncio
    async def test_most_recent_periods_oldest_first(self, service, history) -> None:
        """Test the last N snapshots are reported in ascending order."""
        points = await service.get_trends("class", "c-1", "monthly", periods=2)

        assert [p.period.label for p in points] == [
            "2026-08-01/2026-09-01",
            "2026-09-01/2026-10-01",
        ]

    @pytest.mark.asyncio
    async def test_trend_point_aggregates(self, service, history) -> None:
        """Test each point summarises its snapshot."""
        (point,) = await service.get_trends("class", "c-1", "monthly", periods=1)

        assert point.total_students == 3
        assert point.average_rank == 2.0
        assert point.average_academic_score == 81.67
        assert point.average_score == 40.83
        assert [p.student_id for p in point.top_performers] == ["s-3", "s-2"]

    @pytest.mark.asyncio
    async def test_student_trend_skips_missing_periods(self, service, history) -> None:
        """Test periods without the student are left out."""
        points = await service.get_student_trend("class", "c-1", "s-3", "monthly", periods=6)

        assert [(p.rank, p.rank_delta) for p in points] == [(3, 0), (1, 2)]
        assert all(p.total_students == 3 for p in points)

    @pytest.mark.asyncio
    async def test_no_history(self, service) -> None:
        """Test an entity without snapshots has no trend."""
        assert await service.get_trends("class", "c-1", "weekly") == []

    @pytest.mark.asyncio
    async def test_periods_must_be_positive(self, service) -> None:
        """Test a non-positive period count raises ValueError."""
        with pytest.raises(ValueError):
            await service.get_trends("class", "c-1", "monthly", periods=0)


class TestClassMetrics:
    """Tests for get_class_metrics."""

    @pytest.mark.asyncio
    async def test_aggregates_and_passing_rate(self, service, graded) -> None:
        """Test averages and the share of students at or above the threshold."""
        metrics = await service.get_class_metrics("c-1")

        assert metrics.time_granularity is TimeGranularity.MONTHLY
        assert metrics.total_students == 3
        assert metrics.average_academic_score == 76.67
        assert metrics.passing_rate == 66.67
        assert [p.student_id for p in metrics.top_performers] == ["s-1", "s-2"]

    @pytest.mark.asyncio
    async def test_empty_class(self, service) -> None:
        """Test an unknown class reports zeroes."""
        metrics = await service.get_class_metrics("c-404", "weekly")

        assert metrics.total_students == 0
        assert metrics.passing_rate == 0.0

    @pytest.mark.asyncio
    async def test_metrics_are_cached(self, service, graded) -> None:
        """Test metrics are served from the cache until invalidated."""
        first = await service.get_class_metrics("c-1")
        graded.grades.append(make_grade("s-3", 100, OCT_5))

        cached = await service.get_class_metrics("c-1")

        assert cached == first
