# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Grade pipeline facade.

GradePipeline wires the publisher, dispatcher, aggregators, snapshot store
and cache together and exposes the operations the surrounding platform
calls:

Write side (never raises to the caller):
- on_grade_committed(event): invalidate affected cached reads, publish
- on_enrollment_changed(class_id, student_id): recompute the affected
  leaderboards and invalidate their reads

Read side (typed errors propagate):
- get_leaderboard, get_student_position, get_trends, get_student_trend,
  get_historical_leaderboard, get_class_metrics, get_topic_mastery

Maintenance (run by background jobs):
- capture_snapshots, archive_snapshots, reconcile, sweep_cache

Usage:
    pipeline = GradePipeline(
        settings,
        score_store=store,
        directory=directory,
        mastery_repository=mastery_repo,
        leaderboard_repository=leaderboard_repo,
        snapshot_repository=snapshot_repo,
        cache=cache,
    )
    await pipeline.start()
    await pipeline.on_grade_committed(event)
"""

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Callable

from pydantic import ValidationError

from src.core.config.settings import Settings
from src.core.exceptions import TransientStoreError
from src.domains.grade_pipeline.handlers import (
    GradeActivityObserver,
    LeaderboardRefreshHandler,
    MasteryRefreshHandler,
    refresh_scopes,
)
from src.domains.grading.models import GradeEvent
from src.domains.grading.store import ScoreStore
from src.domains.leaderboard.engine import LeaderboardAggregationEngine
from src.domains.leaderboard.models import (
    ClassMetrics,
    EntityScope,
    LeaderboardEntry,
    LeaderboardPage,
    LeaderboardSnapshot,
    ScopeRef,
    StudentTrendPoint,
    TimeGranularity,
    TrendPoint,
)
from src.domains.leaderboard.repositories import LeaderboardRepository, SnapshotRepository
from src.domains.leaderboard.scope import ScopeDirectory
from src.domains.leaderboard.service import LeaderboardService
from src.domains.leaderboard.snapshots import SnapshotStore
from src.domains.mastery.aggregator import TopicMasteryAggregator
from src.domains.mastery.models import MasteryRepository, TopicMastery
from src.infrastructure.cache.layer import CacheKeys, CacheLayer
from src.infrastructure.events.dispatcher import EventDispatcher
from src.infrastructure.events.publisher import GradeEventPublisher
from src.utils.datetime import ensure_utc, utc_now

logger = logging.getLogger(__name__)


class GradePipeline:
    """Entry point of the post-grade pipeline.

    Attributes:
        settings: Application settings.
        cache: Read-through cache.
        dispatcher: Event dispatcher with the pipeline's handlers.
        publisher: Queue-backed event publisher.
        mastery: Topic mastery aggregator.
        engine: Leaderboard engine.
        snapshots: Snapshot store.
        leaderboards: Cached leaderboard reads.
        activity: In-process grade activity observer.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        score_store: ScoreStore,
        directory: ScopeDirectory,
        mastery_repository: MasteryRepository,
        leaderboard_repository: LeaderboardRepository,
        snapshot_repository: SnapshotRepository,
        cache: CacheLayer,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Wire the pipeline components.

        Args:
            settings: Application settings.
            score_store: Source of raw facts.
            directory: Scope membership resolver.
            mastery_repository: Storage for mastery rows.
            leaderboard_repository: Storage for current leaderboards.
            snapshot_repository: Storage for snapshots.
            cache: Read-through cache.
            clock: Callable returning the current time.
        """
        self.settings = settings
        self.cache = cache
        self._directory = directory
        self._clock = clock

        self.mastery = TopicMasteryAggregator(
            score_store,
            mastery_repository,
            recency_policy=settings.mastery.recency_policy,
            decay=settings.mastery.decay,
        )
        self.engine = LeaderboardAggregationEngine(
            score_store,
            directory,
            snapshot_repository,
            settings.scoring,
            repository=leaderboard_repository,
            history_months=settings.leaderboard.history_months,
            clock=clock,
        )
        self.snapshots = SnapshotStore(
            self.engine, snapshot_repository, settings.snapshot, clock=clock
        )
        self.leaderboards = LeaderboardService(
            self.engine,
            self.snapshots,
            cache,
            repository=leaderboard_repository,
            settings=settings.leaderboard,
            cache_settings=settings.cache,
            clock=clock,
        )

        self.granularities = tuple(
            TimeGranularity.parse(g) for g in settings.leaderboard.refresh_granularities
        )
        self.activity = GradeActivityObserver(score_store, settings.alerts, clock=clock)
        self.dispatcher = EventDispatcher(settings.dispatch.handler_timeout_seconds)
        self.dispatcher.register(MasteryRefreshHandler(self.mastery, cache))
        self.dispatcher.register(
            LeaderboardRefreshHandler(self.engine, directory, cache, self.granularities)
        )
        self.dispatcher.register(self.activity)
        self.publisher = GradeEventPublisher(
            self.dispatcher,
            queue_size=settings.dispatch.queue_size,
            workers=settings.dispatch.workers,
        )

    async def start(self) -> None:
        """Start the publisher's worker tasks."""
        await self.publisher.start()

    async def stop(self) -> None:
        """Drain pending events and stop the worker tasks."""
        await self.publisher.stop(drain=True)

    # ========== Write side ==========

    async def on_grade_committed(self, event: GradeEvent | Mapping[str, Any]) -> None:
        """Propagate a committed grade. Called once per successful grade write.

        Cached reads fed by the grade are invalidated before this returns;
        derived state is recomputed asynchronously. Never raises.

        Args:
            event: The grade event, or its field mapping.
        """
        if not isinstance(event, GradeEvent):
            try:
                event = GradeEvent.model_validate(event)
            except ValidationError:
                # The publisher logs and counts the rejection
                await self.publisher.publish(event)
                return

        await self._invalidate_for_grade(event)
        await self.publisher.publish(event)

    async def _invalidate_for_grade(self, event: GradeEvent) -> None:
        prefixes = [
            CacheKeys.scope_prefix(EntityScope.CLASS, event.class_id),
            CacheKeys.student_prefix(event.student_id),
        ]
        try:
            scopes = await self._directory.scopes_for(
                event.student_id, event.class_id, event.subject_id
            )
            prefixes.extend(CacheKeys.scope_prefix(ref.scope, ref.entity_id) for ref in scopes)
        except Exception as e:
            logger.error(
                "Scope lookup failed for event %s, invalidating class and student only: %s",
                event.event_id,
                e,
            )
        await self._invalidate(prefixes)

    async def _invalidate(self, prefixes: list[str]) -> None:
        for prefix in dict.fromkeys(prefixes):
            try:
                await self.cache.invalidate(prefix)
            except Exception as e:
                logger.error("Cache invalidation failed for %s: %s", prefix, e)

    async def on_enrollment_changed(self, class_id: str, student_id: str | None = None) -> None:
        """Recompute the leaderboards whose roster changed. Never raises.

        The class, every subject of its course, its course and its campus
        are recomputed at every granularity before this returns, so the
        next read ranks the new roster. The student's groups and cached
        student reads are refreshed too when the student is known.

        Args:
            class_id: Class whose enrollment changed.
            student_id: Student enrolled or withdrawn, if known.
        """
        prefixes = [CacheKeys.scope_prefix(EntityScope.CLASS, class_id)]
        if student_id is not None:
            prefixes.append(CacheKeys.student_prefix(student_id))

        scopes: list[ScopeRef] = []
        try:
            scopes = await self._directory.scopes_for_class(class_id)
            if student_id is not None:
                refs = await self._directory.scopes_for(student_id, class_id)
                scopes.extend(ref for ref in refs if ref.scope is EntityScope.GROUP)
        except Exception as e:
            logger.error("Scope lookup failed for enrollment change in %s: %s", class_id, e)
        prefixes.extend(CacheKeys.scope_prefix(ref.scope, ref.entity_id) for ref in scopes)

        if scopes:
            try:
                failures = await refresh_scopes(
                    self.engine, self.cache, scopes, tuple(TimeGranularity)
                )
                if failures:
                    logger.warning(
                        "Enrollment change in %s left %d leaderboards stale: %s",
                        class_id,
                        len(failures),
                        ", ".join(failures),
                    )
            except Exception as e:
                logger.error(
                    "Leaderboard refresh failed for enrollment change in %s: %s", class_id, e
                )
        await self._invalidate(prefixes)

    # ========== Read side ==========

    async def get_leaderboard(
        self,
        scope: EntityScope | str,
        entity_id: str,
        granularity: TimeGranularity | str,
        limit: int | None = None,
        offset: int = 0,
    ) -> LeaderboardPage:
        """A page of a leaderboard with the total number of ranked students."""
        return await self.leaderboards.get_leaderboard(scope, entity_id, granularity, limit, offset)

    async def get_student_position(
        self,
        scope: EntityScope | str,
        entity_id: str,
        student_id: str,
        granularity: TimeGranularity | str,
    ) -> LeaderboardEntry | None:
        """A student's entry in a leaderboard, None when not ranked there."""
        return await self.leaderboards.get_student_position(
            scope, entity_id, student_id, granularity
        )

    async def get_trends(
        self,
        scope: EntityScope | str,
        entity_id: str,
        granularity: TimeGranularity | str,
        periods: int = 6,
    ) -> list[TrendPoint]:
        """Aggregates of the most recent snapshots, oldest first."""
        return await self.leaderboards.get_trends(scope, entity_id, granularity, periods)

    async def get_student_trend(
        self,
        scope: EntityScope | str,
        entity_id: str,
        student_id: str,
        granularity: TimeGranularity | str,
        periods: int = 6,
    ) -> list[StudentTrendPoint]:
        """A student's standing across the most recent snapshots."""
        return await self.leaderboards.get_student_trend(
            scope, entity_id, student_id, granularity, periods
        )

    async def get_historical_leaderboard(
        self,
        scope: EntityScope | str,
        entity_id: str,
        granularity: TimeGranularity | str,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 10,
    ) -> list[LeaderboardSnapshot]:
        """Snapshots whose period starts in ``[start, end)``, newest first."""
        return await self.leaderboards.get_historical_leaderboard(
            scope, entity_id, granularity, start, end, limit
        )

    async def get_class_metrics(
        self,
        class_id: str,
        granularity: TimeGranularity | str = TimeGranularity.MONTHLY,
    ) -> ClassMetrics:
        """Aggregated class metrics for the active period."""
        return await self.leaderboards.get_class_metrics(class_id, granularity)

    async def get_topic_mastery(
        self, student_id: str, class_id: str, topic_id: str
    ) -> TopicMastery:
        """A student's mastery of a topic, through the cache.

        The row is computed on first read when no handler produced it yet.

        Raises:
            TransientStoreError: If the stores are down and nothing is cached.
        """

        async def compute() -> TopicMastery:
            stored = await self.mastery.get(student_id, class_id, topic_id)
            if stored is not None:
                return stored
            return await self.mastery.refresh(student_id, class_id, topic_id)

        return await self.cache.get_or_compute(
            CacheKeys.mastery(student_id, class_id, topic_id),
            self.settings.cache.mastery_ttl_seconds,
            compute,
            model=TopicMastery,
        )

    # ========== Maintenance ==========

    async def capture_snapshots(self, now: datetime | None = None) -> int:
        """Capture every known scope at every configured granularity.

        Failures are logged per leaderboard and do not stop the sweep.

        Args:
            now: Reference time, defaults to the clock.

        Returns:
            Number of snapshots captured or already present.
        """
        now = ensure_utc(now) if now is not None else self._clock()
        scopes = await self._directory.list_scopes()
        captured = 0
        for ref in scopes:
            for granularity in self.granularities:
                try:
                    await self.snapshots.capture(ref.scope, ref.entity_id, granularity, now=now)
                    captured += 1
                except TransientStoreError as e:
                    logger.error(
                        "Snapshot capture failed for %s (%s): %s", ref, granularity.value, e
                    )
        logger.info(
            "Snapshot sweep finished: %d of %d",
            captured,
            len(scopes) * len(self.granularities),
        )
        return captured

    async def archive_snapshots(self, now: datetime | None = None) -> int:
        """Archive snapshots past retention.

        Returns:
            Total number of snapshots archived.
        """
        archived = await self.snapshots.archive_expired(now)
        return sum(archived.values())

    async def reconcile(self, now: datetime | None = None) -> int:
        """Recompute every known leaderboard.

        Repairs leaderboards left stale by dropped events or failed
        handlers.

        Returns:
            Number of leaderboards that failed to refresh.
        """
        scopes = await self._directory.list_scopes()
        failures = await refresh_scopes(self.engine, self.cache, scopes, self.granularities, now)
        logger.info(
            "Reconciliation finished: %d scopes, %d failures", len(scopes), len(failures)
        )
        return len(failures)

    async def sweep_cache(self) -> int:
        """Drop expired cache entries.

        Returns:
            Number of entries removed.
        """
        return await self.cache.sweep()

    def get_stats(self) -> dict[str, Any]:
        """Get pipeline statistics.

        Returns:
            Publisher, dispatcher, cache and grade activity statistics.
        """
        return {
            "publisher": self.publisher.get_stats(),
            "dispatcher": self.dispatcher.get_stats(),
            "cache": self.cache.stats(),
            "activity": self.activity.get_stats(),
        }
