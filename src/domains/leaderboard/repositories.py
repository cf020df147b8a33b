# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Storage contracts for leaderboard state and snapshots.

Implementations raise TransientStoreError when storage is unavailable.
"""

from datetime import datetime
from typing import Protocol

from src.domains.leaderboard.models import (
    EntityScope,
    LeaderboardSnapshot,
    RankedLeaderboard,
    TimeGranularity,
)


class LeaderboardRepository(Protocol):
    """Current ranked entries per (scope, entity, granularity).

    Rows of a triple are only ever rewritten as a whole by the engine.
    """

    async def load(
        self,
        scope: EntityScope,
        entity_id: str,
        granularity: TimeGranularity,
    ) -> RankedLeaderboard | None:
        """Return the stored leaderboard of a triple, if any."""
        ...

    async def replace(self, board: RankedLeaderboard) -> None:
        """Atomically replace every stored entry of the board's triple."""
        ...


class SnapshotRepository(Protocol):
    """Append-only snapshot storage."""

    async def find(
        self,
        scope: EntityScope,
        entity_id: str,
        granularity: TimeGranularity,
        period_label: str,
    ) -> LeaderboardSnapshot | None:
        """Return the snapshot of a period, archived or not."""
        ...

    async def add(self, snapshot: LeaderboardSnapshot) -> LeaderboardSnapshot:
        """Append a snapshot.

        When a snapshot for the same period already exists the stored one
        is returned unchanged.
        """
        ...

    async def latest(
        self,
        scope: EntityScope,
        entity_id: str,
        granularity: TimeGranularity,
        *,
        exclude_label: str | None = None,
    ) -> LeaderboardSnapshot | None:
        """Most recently captured active snapshot, skipping one period label."""
        ...

    async def page(
        self,
        scope: EntityScope,
        entity_id: str,
        granularity: TimeGranularity,
        *,
        start: datetime | None,
        end: datetime | None,
        offset: int,
        limit: int,
    ) -> list[LeaderboardSnapshot]:
        """Active snapshots whose period starts in ``[start, end)``.

        Ordered by period start, then period end, then label.
        """
        ...

    async def archive_before(self, granularity: TimeGranularity, cutoff: datetime) -> int:
        """Mark active snapshots captured before ``cutoff`` as archived."""
        ...
