# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Leaderboard read service.

All leaderboard reads go through the CacheLayer. On a miss the current
leaderboard is taken from the leaderboard repository when its stored
period is still the active one, and recomputed by the engine otherwise.
Pagination and position lookups slice the engine's order, never re-sort.

Trend reads are derived from snapshot history.

Usage:
    service = LeaderboardService(engine, snapshot_store, cache, repository)
    page = await service.get_leaderboard(EntityScope.CLASS, "c-1", "weekly", limit=10)
    trends = await service.get_trends(EntityScope.CLASS, "c-1", "monthly", periods=6)
"""

import logging
import math
from collections import deque
from datetime import datetime
from typing import Callable

from src.core.config.settings import CacheSettings, LeaderboardSettings
from src.domains.leaderboard.engine import LeaderboardAggregationEngine
from src.domains.leaderboard.models import (
    ClassMetrics,
    EntityScope,
    LeaderboardEntry,
    LeaderboardPage,
    LeaderboardSnapshot,
    RankedLeaderboard,
    StudentTrendPoint,
    TimeGranularity,
    TopPerformer,
    TrendPoint,
)
from src.domains.leaderboard.periods import active_period
from src.domains.leaderboard.repositories import LeaderboardRepository
from src.domains.leaderboard.snapshots import SnapshotStore
from src.infrastructure.cache.layer import CacheKeys, CacheLayer
from src.utils.datetime import ensure_utc, utc_now

logger = logging.getLogger(__name__)


def _average(values: list[float]) -> float:
    if not values:
        return 0.0
    return round(math.fsum(values) / len(values), 2)


def _top_performers(
    entries: list[LeaderboardEntry] | tuple[LeaderboardEntry, ...],
    count: int,
) -> list[TopPerformer]:
    return [
        TopPerformer(student_id=e.student_id, rank=e.rank, composite_score=e.composite_score)
        for e in entries[:count]
    ]


class LeaderboardService:
    """Cached leaderboard, position, trend and class metric reads."""

    def __init__(
        self,
        engine: LeaderboardAggregationEngine,
        snapshots: SnapshotStore,
        cache: CacheLayer,
        repository: LeaderboardRepository | None = None,
        settings: LeaderboardSettings | None = None,
        cache_settings: CacheSettings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the service.

        Args:
            engine: Leaderboard engine.
            snapshots: Snapshot store for trend reads.
            cache: Read-through cache.
            repository: Stored current leaderboards, optional.
            settings: Paging and threshold settings.
            cache_settings: Cache TTL settings.
            clock: Callable returning the current time.
        """
        self._engine = engine
        self._snapshots = snapshots
        self._cache = cache
        self._repository = repository
        self._settings = settings or LeaderboardSettings()
        self._cache_settings = cache_settings or CacheSettings()
        self._clock = clock

    async def ranked(
        self,
        scope: EntityScope | str,
        entity_id: str,
        granularity: TimeGranularity | str,
    ) -> RankedLeaderboard:
        """Full ordered leaderboard of a triple, through the cache.

        Raises:
            ConfigurationError: If the scope or granularity is unknown.
            TransientStoreError: If the stores are down and nothing is cached.
        """
        scope = EntityScope.parse(scope)
        granularity = TimeGranularity.parse(granularity)
        return await self._cache.get_or_compute(
            CacheKeys.leaderboard(scope, entity_id, granularity),
            self._cache_settings.leaderboard_ttl_seconds,
            lambda: self._current(scope, entity_id, granularity),
            model=RankedLeaderboard,
        )

    async def _current(
        self,
        scope: EntityScope,
        entity_id: str,
        granularity: TimeGranularity,
    ) -> RankedLeaderboard:
        now = self._clock()
        if self._repository is not None:
            stored = await self._repository.load(scope, entity_id, granularity)
            period = active_period(granularity, now, self._engine.history_months)
            if stored is not None and stored.period.label == period.label:
                return stored
        return await self._engine.refresh_leaderboard(scope, entity_id, granularity, now=now)

    async def get_leaderboard(
        self,
        scope: EntityScope | str,
        entity_id: str,
        granularity: TimeGranularity | str,
        limit: int | None = None,
        offset: int = 0,
    ) -> LeaderboardPage:
        """A page of a leaderboard.

        Args:
            scope: Entity scope.
            entity_id: Scope entity id.
            granularity: Time granularity.
            limit: Page size, defaults to the configured page size and is
                capped by the configured maximum.
            offset: Number of ranked entries to skip.

        Returns:
            The page with the total number of ranked students.

        Raises:
            ValueError: If limit or offset is out of range.
        """
        if limit is None:
            limit = self._settings.default_page_size
        if limit < 1:
            raise ValueError("limit must be positive")
        if offset < 0:
            raise ValueError("offset cannot be negative")
        limit = min(limit, self._settings.max_page_size)

        board = await self.ranked(scope, entity_id, granularity)
        return LeaderboardPage(
            entity_scope=board.entity_scope,
            entity_id=board.entity_id,
            time_granularity=board.time_granularity,
            period=board.period,
            entries=board.entries[offset : offset + limit],
            total_count=len(board.entries),
            limit=limit,
            offset=offset,
        )

    async def get_student_position(
        self,
        scope: EntityScope | str,
        entity_id: str,
        student_id: str,
        granularity: TimeGranularity | str,
    ) -> LeaderboardEntry | None:
        """A student's entry in a leaderboard, None when not ranked there."""
        board = await self.ranked(scope, entity_id, granularity)
        return next((e for e in board.entries if e.student_id == student_id), None)

    async def _recent_snapshots(
        self,
        scope: EntityScope | str,
        entity_id: str,
        granularity: TimeGranularity | str,
        periods: int,
    ) -> list[LeaderboardSnapshot]:
        if periods < 1:
            raise ValueError("periods must be positive")
        recent: deque[LeaderboardSnapshot] = deque(maxlen=periods)
        async for snapshot in self._snapshots.history(scope, entity_id, granularity):
            recent.append(snapshot)
        return list(recent)

    async def get_trends(
        self,
        scope: EntityScope | str,
        entity_id: str,
        granularity: TimeGranularity | str,
        periods: int = 6,
    ) -> list[TrendPoint]:
        """Aggregates of the most recent snapshots, oldest first.

        Args:
            scope: Entity scope.
            entity_id: Scope entity id.
            granularity: Time granularity.
            periods: Number of most recent snapshots to report.

        Returns:
            One TrendPoint per snapshot in ascending period order.
        """
        points = []
        for snapshot in await self._recent_snapshots(scope, entity_id, granularity, periods):
            entries = list(snapshot.entries)
            points.append(
                TrendPoint(
                    period=snapshot.period,
                    captured_at=snapshot.captured_at,
                    total_students=len(entries),
                    average_rank=_average([float(e.rank) for e in entries]),
                    average_score=_average([e.composite_score for e in entries]),
                    average_academic_score=_average([e.academic_score for e in entries]),
                    top_performers=_top_performers(entries, self._settings.top_performers),
                )
            )
        return points

    async def get_student_trend(
        self,
        scope: EntityScope | str,
        entity_id: str,
        student_id: str,
        granularity: TimeGranularity | str,
        periods: int = 6,
    ) -> list[StudentTrendPoint]:
        """A student's rank and score across the most recent snapshots.

        Snapshots the student does not appear in are skipped.
        """
        points = []
        for snapshot in await self._recent_snapshots(scope, entity_id, granularity, periods):
            entry = next((e for e in snapshot.entries if e.student_id == student_id), None)
            if entry is None:
                continue
            points.append(
                StudentTrendPoint(
                    period=snapshot.period,
                    captured_at=snapshot.captured_at,
                    rank=entry.rank,
                    composite_score=entry.composite_score,
                    rank_delta=entry.rank_delta,
                    total_students=len(snapshot.entries),
                )
            )
        return points

    async def get_historical_leaderboard(
        self,
        scope: EntityScope | str,
        entity_id: str,
        granularity: TimeGranularity | str,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 10,
    ) -> list[LeaderboardSnapshot]:
        """Stored snapshots of a leaderboard within a date range, newest first.

        Args:
            scope: Entity scope.
            entity_id: Scope entity id.
            granularity: Time granularity.
            start: Earliest period start included, None for unbounded.
            end: Period starts before this are included, None for unbounded.
            limit: Maximum number of snapshots returned.

        Returns:
            The latest ``limit`` active snapshots whose period starts in
            ``[start, end)``, most recent period first.

        Raises:
            ValueError: If limit is not positive or the range is inverted.
        """
        start, end = ensure_utc(start), ensure_utc(end)
        if limit < 1:
            raise ValueError("limit must be positive")
        if start is not None and end is not None and start > end:
            raise ValueError("start must not be after end")

        latest: deque[LeaderboardSnapshot] = deque(maxlen=limit)
        async for snapshot in self._snapshots.history(scope, entity_id, granularity, start, end):
            latest.append(snapshot)
        logger.debug(
            "Retrieved %d historical snapshots for %s %s (%s)",
            len(latest),
            scope,
            entity_id,
            granularity,
        )
        return list(reversed(latest))

    async def get_class_metrics(
        self,
        class_id: str,
        granularity: TimeGranularity | str = TimeGranularity.MONTHLY,
    ) -> ClassMetrics:
        """Aggregated metrics of a class, through the cache.

        The passing rate is the share of ranked students whose academic
        score reaches the configured passing threshold.
        """
        granularity = TimeGranularity.parse(granularity)

        async def compute() -> ClassMetrics:
            board = await self.ranked(EntityScope.CLASS, class_id, granularity)
            entries = board.entries
            passing = [
                e for e in entries if e.academic_score >= self._settings.passing_threshold
            ]
            return ClassMetrics(
                class_id=class_id,
                time_granularity=granularity,
                period=board.period,
                total_students=len(entries),
                average_academic_score=_average([e.academic_score for e in entries]),
                average_attendance_rate=_average([e.attendance_rate for e in entries]),
                average_participation_rate=_average([e.participation_rate for e in entries]),
                average_composite_score=_average([e.composite_score for e in entries]),
                passing_rate=round(len(passing) / len(entries) * 100, 2) if entries else 0.0,
                top_performers=_top_performers(entries, self._settings.top_performers),
            )

        return await self._cache.get_or_compute(
            CacheKeys.class_metrics(class_id, granularity),
            self._cache_settings.metrics_ttl_seconds,
            compute,
            model=ClassMetrics,
        )
