# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Leaderboard snapshots for trend reads.

Snapshots are captured periodically by a background job, never per grade.
Each snapshot is write-once per (scope, entity, granularity, period): a
second capture in the same period returns the stored snapshot untouched.

History reads return a SnapshotHistory, a lazy async iterable paging
through the repository in ascending period order. Iterating it twice runs
the query twice, so it can be restarted and reflects captures made in
between.

Retention archives snapshots older than the configured number of days
per granularity; archived snapshots are excluded from history.

Usage:
    store = SnapshotStore(engine, snapshot_repository, settings.snapshot)
    snapshot = await store.capture(EntityScope.CLASS, "c-1", TimeGranularity.WEEKLY)

    async for snapshot in store.history(EntityScope.CLASS, "c-1", TimeGranularity.WEEKLY):
        print(snapshot.period.label, len(snapshot.entries))
"""

import logging
from collections.abc import AsyncIterator
from datetime import datetime, timedelta
from typing import Callable
from uuid import uuid4

from src.core.config.settings import SnapshotSettings
from src.domains.leaderboard.engine import LeaderboardAggregationEngine
from src.domains.leaderboard.models import (
    EntityScope,
    LeaderboardSnapshot,
    TimeGranularity,
)
from src.domains.leaderboard.periods import active_period
from src.domains.leaderboard.repositories import SnapshotRepository
from src.utils.datetime import ensure_utc, month_key, utc_now

logger = logging.getLogger(__name__)


def partition_key(scope: EntityScope, captured_at: datetime) -> str:
    """Partition of a snapshot: scope and capture month, e.g. ``class_2026-10``."""
    return f"{scope.value}_{month_key(captured_at)}"


class SnapshotHistory:
    """Restartable async iterable over stored snapshots.

    Attributes:
        scope: Entity scope.
        entity_id: Scope entity id.
        granularity: Time granularity.
        start: Inclusive lower bound on period start, None for unbounded.
        end: Exclusive upper bound on period start, None for unbounded.
        page_size: Snapshots fetched per repository call.
    """

    def __init__(
        self,
        repository: SnapshotRepository,
        scope: EntityScope,
        entity_id: str,
        granularity: TimeGranularity,
        start: datetime | None,
        end: datetime | None,
        page_size: int,
    ) -> None:
        self._repository = repository
        self.scope = scope
        self.entity_id = entity_id
        self.granularity = granularity
        self.start = start
        self.end = end
        self.page_size = page_size

    def __aiter__(self) -> AsyncIterator[LeaderboardSnapshot]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[LeaderboardSnapshot]:
        offset = 0
        while True:
            page = await self._repository.page(
                self.scope,
                self.entity_id,
                self.granularity,
                start=self.start,
                end=self.end,
                offset=offset,
                limit=self.page_size,
            )
            for snapshot in page:
                yield snapshot
            if len(page) < self.page_size:
                return
            offset += len(page)

    async def to_list(self) -> list[LeaderboardSnapshot]:
        """Materialize the whole sequence."""
        return [snapshot async for snapshot in self]


class SnapshotStore:
    """Captures and reads leaderboard snapshots."""

    def __init__(
        self,
        engine: LeaderboardAggregationEngine,
        repository: SnapshotRepository,
        settings: SnapshotSettings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the store.

        Args:
            engine: Engine computing the captured leaderboards.
            repository: Snapshot storage.
            settings: Paging and retention settings.
            clock: Callable returning the current time.
        """
        self._engine = engine
        self._repository = repository
        self._settings = settings or SnapshotSettings()
        self._clock = clock

    async def capture(
        self,
        scope: EntityScope | str,
        entity_id: str,
        granularity: TimeGranularity | str,
        *,
        now: datetime | None = None,
    ) -> LeaderboardSnapshot:
        """Capture the current leaderboard of a triple.

        Args:
            scope: Entity scope.
            entity_id: Scope entity id.
            granularity: Time granularity.
            now: Reference time, defaults to the clock.

        Returns:
            The new snapshot, or the existing one when the period was
            already captured.

        Raises:
            ConfigurationError: If the scope or granularity is unknown.
            TransientStoreError: If a store is unavailable.
        """
        scope = EntityScope.parse(scope)
        granularity = TimeGranularity.parse(granularity)
        now = ensure_utc(now) if now is not None else self._clock()

        period = active_period(granularity, now, self._engine.history_months)
        existing = await self._repository.find(scope, entity_id, granularity, period.label)
        if existing is not None:
            logger.debug(
                "Snapshot for %s:%s %s already captured", scope.value, entity_id, period.label
            )
            return existing

        board = await self._engine.compute_ranked(scope, entity_id, granularity, now=now)
        snapshot = LeaderboardSnapshot(
            snapshot_id=str(uuid4()),
            entity_scope=scope,
            entity_id=entity_id,
            time_granularity=granularity,
            period=board.period,
            captured_at=now,
            entries=tuple(board.entries),
            partition_key=partition_key(scope, now),
        )
        stored = await self._repository.add(snapshot)
        logger.info(
            "Captured %s snapshot for %s:%s (%s, %d entries)",
            granularity.value,
            scope.value,
            entity_id,
            board.period.label,
            len(stored.entries),
        )
        return stored

    def history(
        self,
        scope: EntityScope | str,
        entity_id: str,
        granularity: TimeGranularity | str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> SnapshotHistory:
        """Snapshots of a triple whose period starts in ``[start, end)``.

        Args:
            scope: Entity scope.
            entity_id: Scope entity id.
            granularity: Time granularity.
            start: Inclusive lower bound, None for unbounded.
            end: Exclusive upper bound, None for unbounded.

        Returns:
            Lazy, restartable sequence in ascending period order.
        """
        return SnapshotHistory(
            self._repository,
            EntityScope.parse(scope),
            entity_id,
            TimeGranularity.parse(granularity),
            ensure_utc(start),
            ensure_utc(end),
            self._settings.page_size,
        )

    async def archive_expired(self, now: datetime | None = None) -> dict[TimeGranularity, int]:
        """Archive snapshots past their granularity's retention period.

        Args:
            now: Reference time, defaults to the clock.

        Returns:
            Number of snapshots archived per granularity.
        """
        now = ensure_utc(now) if now is not None else self._clock()
        archived: dict[TimeGranularity, int] = {}
        for granularity in TimeGranularity:
            cutoff = now - timedelta(days=self._settings.retention_days(granularity.value))
            archived[granularity] = await self._repository.archive_before(granularity, cutoff)

        total = sum(archived.values())
        if total:
            logger.info("Archived %d expired snapshots", total)
        return archived
