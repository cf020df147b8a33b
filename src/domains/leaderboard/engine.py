# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Leaderboard aggregation engine.

The engine is the only place leaderboards are ranked. For a
(scope, entity, granularity) triple it:

1. resolves the students in scope through the ScopeDirectory,
2. resolves the active time window (see periods.py),
3. loads raw facts for the window and computes per-student metrics,
4. computes each student's composite score from the configured weights,
5. orders students by composite, attendance, participation (all
   descending) and finally student id ascending,
6. assigns dense ranks 1..N and the rank delta against the most recent
   snapshot of an earlier period (0 when there is none).

Callers may slice the result but must never re-sort it.

Usage:
    engine = LeaderboardAggregationEngine(
        score_store, directory, snapshot_repository, settings.scoring,
        repository=leaderboard_repository,
    )
    entries = await engine.compute_leaderboard(
        EntityScope.CLASS, "c-1", TimeGranularity.WEEKLY
    )
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable

from src.core.config.settings import ScoringWeights
from src.core.exceptions import DataIntegrityError
from src.domains.grading.store import ScoreStore
from src.domains.leaderboard.models import (
    EntityScope,
    LeaderboardEntry,
    Period,
    RankedLeaderboard,
    ScopeMembership,
    TimeGranularity,
)
from src.domains.leaderboard.periods import DEFAULT_HISTORY_MONTHS, active_period
from src.domains.leaderboard.repositories import LeaderboardRepository, SnapshotRepository
from src.domains.leaderboard.scope import ScopeDirectory
from src.domains.leaderboard.scoring import ScopeFacts, collect_metrics, order_students
from src.utils.datetime import ensure_utc, utc_now

logger = logging.getLogger(__name__)


class LeaderboardAggregationEngine:
    """Computes ranked leaderboards from raw facts.

    Attributes:
        weights: Composite score weights.
        history_months: Default months of history for time bucketing.
    """

    def __init__(
        self,
        score_store: ScoreStore,
        directory: ScopeDirectory,
        snapshots: SnapshotRepository,
        weights: ScoringWeights,
        *,
        repository: LeaderboardRepository | None = None,
        history_months: int = DEFAULT_HISTORY_MONTHS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the engine.

        Args:
            score_store: Source of raw facts.
            directory: Scope membership resolver.
            snapshots: Snapshot storage, read for rank deltas.
            weights: Composite score weights.
            repository: Storage for current entries, used by refresh.
            history_months: Default months of history for bucketing.
            clock: Callable returning the current time.
        """
        self._score_store = score_store
        self._directory = directory
        self._snapshots = snapshots
        self._repository = repository
        self._clock = clock
        self.weights = weights
        self.history_months = history_months

    async def compute_leaderboard(
        self,
        scope: EntityScope | str,
        entity_id: str,
        granularity: TimeGranularity | str,
        *,
        now: datetime | None = None,
        history_months: int | None = None,
    ) -> list[LeaderboardEntry]:
        """Compute the ordered entries of a leaderboard.

        Args:
            scope: Entity scope.
            entity_id: Scope entity id.
            granularity: Time granularity.
            now: Reference time, defaults to the clock.
            history_months: Months of history, defaults to the engine's.

        Returns:
            Entries ordered by rank; empty when the scope has no students
            or cannot be resolved.

        Raises:
            ConfigurationError: If the scope or granularity is unknown.
            TransientStoreError: If a store is unavailable.
        """
        board = await self.compute_ranked(
            scope, entity_id, granularity, now=now, history_months=history_months
        )
        return board.entries

    async def compute_ranked(
        self,
        scope: EntityScope | str,
        entity_id: str,
        granularity: TimeGranularity | str,
        *,
        now: datetime | None = None,
        history_months: int | None = None,
    ) -> RankedLeaderboard:
        """Compute a leaderboard together with its period metadata.

        Same contract as compute_leaderboard().
        """
        scope = EntityScope.parse(scope)
        granularity = TimeGranularity.parse(granularity)
        now = ensure_utc(now) if now is not None else self._clock()
        period = active_period(granularity, now, history_months or self.history_months)

        board = RankedLeaderboard(
            entity_scope=scope,
            entity_id=entity_id,
            time_granularity=granularity,
            period=period,
            computed_at=now,
        )

        try:
            membership = await self._directory.resolve(scope, entity_id)
        except DataIntegrityError as e:
            logger.warning(
                "Cannot resolve %s:%s, returning empty leaderboard: %s",
                scope.value,
                entity_id,
                e,
            )
            return board

        student_ids = sorted(set(membership.student_ids))
        if not student_ids:
            logger.debug("No students in %s:%s", scope.value, entity_id)
            return board

        facts = await self._load_facts(membership, student_ids, period)
        metrics = collect_metrics(student_ids, facts, period)
        ordered = order_students(metrics.values(), self.weights)
        previous_ranks = await self._previous_ranks(scope, entity_id, granularity, period)

        entries = []
        for position, student in enumerate(ordered, start=1):
            previous_rank = previous_ranks.get(student.student_id)
            entries.append(
                LeaderboardEntry(
                    entity_scope=scope,
                    entity_id=entity_id,
                    time_granularity=granularity,
                    student_id=student.student_id,
                    rank=position,
                    academic_score=student.academic_score,
                    reward_points=student.reward_points,
                    attendance_rate=student.attendance_rate,
                    participation_rate=student.participation_rate,
                    improvement_score=student.improvement_score,
                    composite_score=student.composite_score,
                    rank_delta=previous_rank - position if previous_rank is not None else 0,
                    previous_rank=previous_rank,
                )
            )

        logger.debug(
            "Ranked %d students for %s:%s (%s, %s)",
            len(entries),
            scope.value,
            entity_id,
            granularity.value,
            period.label,
        )
        return board.model_copy(update={"entries": entries})

    async def refresh_leaderboard(
        self,
        scope: EntityScope | str,
        entity_id: str,
        granularity: TimeGranularity | str,
        *,
        now: datetime | None = None,
    ) -> RankedLeaderboard:
        """Recompute a leaderboard and replace its stored entries.

        Args:
            scope: Entity scope.
            entity_id: Scope entity id.
            granularity: Time granularity.
            now: Reference time, defaults to the clock.

        Returns:
            The freshly computed leaderboard.

        Raises:
            TransientStoreError: If a store is unavailable.
        """
        board = await self.compute_ranked(scope, entity_id, granularity, now=now)
        if self._repository is not None:
            await self._repository.replace(board)
        return board

    async def _load_facts(
        self,
        membership: ScopeMembership,
        student_ids: list[str],
        period: Period,
    ) -> ScopeFacts:
        window = {"start": period.start, "end": period.end}
        class_ids = list(membership.class_ids) if membership.class_ids is not None else None

        grades, attendance, submissions, activities, rewards = await asyncio.gather(
            self._score_store.list_grades(
                student_ids=student_ids,
                class_ids=class_ids,
                subject_id=membership.subject_id,
                **window,
            ),
            self._score_store.list_attendance(
                student_ids=student_ids, class_ids=class_ids, **window
            ),
            self._score_store.list_submissions(
                student_ids=student_ids, class_ids=class_ids, **window
            ),
            self._score_store.list_activities(
                class_ids=class_ids, subject_id=membership.subject_id, **window
            ),
            self._score_store.list_rewards(student_ids=student_ids, **window),
        )
        return ScopeFacts(
            grades=grades,
            attendance=attendance,
            submissions=submissions,
            activities=activities,
            rewards=rewards,
        )

    async def _previous_ranks(
        self,
        scope: EntityScope,
        entity_id: str,
        granularity: TimeGranularity,
        period: Period,
    ) -> dict[str, int]:
        snapshot = await self._snapshots.latest(
            scope, entity_id, granularity, exclude_label=period.label
        )
        if snapshot is None:
            return {}
        return {entry.student_id: entry.rank for entry in snapshot.entries}
