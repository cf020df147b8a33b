# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Grade event handlers.

Each handler owns its derived state: it recomputes from durable data,
writes its result, then invalidates the cache keys fed by that result.
Handlers raise on failure; the dispatcher contains and logs the error.
"""

import asyncio
import logging
import math
from collections import Counter, deque
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable

from src.core.config.settings import AlertSettings
from src.core.exceptions import PipelineError
from src.domains.grading.models import GradeEvent
from src.domains.grading.store import ScoreStore
from src.domains.leaderboard.engine import LeaderboardAggregationEngine
from src.domains.leaderboard.models import ScopeRef, TimeGranularity
from src.domains.leaderboard.scope import ScopeDirectory
from src.domains.mastery.aggregator import TopicMasteryAggregator
from src.infrastructure.cache.layer import CacheKeys, CacheLayer
from src.infrastructure.events.types import HandlerNames
from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)


class MasteryRefreshHandler:
    """Recomputes the graded topic's mastery for the student."""

    name = HandlerNames.TOPIC_MASTERY

    def __init__(self, aggregator: TopicMasteryAggregator, cache: CacheLayer) -> None:
        self._aggregator = aggregator
        self._cache = cache

    async def handle(self, event: GradeEvent) -> None:
        if event.topic_id is None:
            logger.debug("Event %s has no topic, skipping mastery refresh", event.event_id)
            return

        await self._aggregator.refresh(event.student_id, event.class_id, event.topic_id)
        await self._cache.invalidate(
            CacheKeys.mastery(event.student_id, event.class_id, event.topic_id)
        )


class LeaderboardRefreshHandler:
    """Recomputes every leaderboard the grade feeds.

    The affected scopes come from the directory (the class, its course and
    campus, the subject and the student's groups), crossed with the
    configured granularities. Scopes are refreshed concurrently; each
    failure is logged and the handler fails once all of them finished.
    """

    name = HandlerNames.LEADERBOARD

    def __init__(
        self,
        engine: LeaderboardAggregationEngine,
        directory: ScopeDirectory,
        cache: CacheLayer,
        granularities: Sequence[TimeGranularity] = tuple(TimeGranularity),
    ) -> None:
        self._engine = engine
        self._directory = directory
        self._cache = cache
        self.granularities = tuple(granularities)

    async def handle(self, event: GradeEvent) -> None:
        scopes = await self._directory.scopes_for(
            event.student_id, event.class_id, event.subject_id
        )
        failures = await refresh_scopes(self._engine, self._cache, scopes, self.granularities)
        if failures:
            raise PipelineError(
                f"Leaderboard refresh failed for {len(failures)} of "
                f"{len(scopes) * len(self.granularities)} leaderboards",
                details={"failed": failures},
            )


async def refresh_scopes(
    engine: LeaderboardAggregationEngine,
    cache: CacheLayer,
    scopes: Sequence[ScopeRef],
    granularities: Sequence[TimeGranularity],
    now: datetime | None = None,
) -> list[str]:
    """Refresh leaderboards and invalidate their cached reads.

    Args:
        engine: Leaderboard engine.
        cache: Cache to invalidate.
        scopes: Scope entities to refresh.
        granularities: Granularities to refresh per scope.
        now: Reference time, defaults to the engine's clock.

    Returns:
        Descriptions of the leaderboards that failed, empty on success.
    """

    async def refresh(ref: ScopeRef, granularity: TimeGranularity) -> None:
        await engine.refresh_leaderboard(ref.scope, ref.entity_id, granularity, now=now)

    targets = [(ref, granularity) for ref in scopes for granularity in granularities]
    results = await asyncio.gather(
        *[refresh(ref, granularity) for ref, granularity in targets],
        return_exceptions=True,
    )

    failures = []
    for (ref, granularity), result in zip(targets, results):
        if isinstance(result, BaseException):
            failures.append(f"{ref}:{granularity.value}")
            logger.error(
                "Leaderboard refresh failed for %s (%s): %s",
                ref,
                granularity.value,
                result,
            )

    for ref in scopes:
        await cache.invalidate(CacheKeys.scope_prefix(ref.scope, ref.entity_id))
    return failures


class AlertType(str, Enum):
    """Kinds of performance alert raised after a grade."""

    STRUGGLING_STUDENT = "struggling_student"
    EXCEPTIONAL_PERFORMANCE = "exceptional_performance"
    SIGNIFICANT_IMPROVEMENT = "significant_improvement"


@dataclass(frozen=True)
class PerformanceAlert:
    """An alert about a student's latest grades in a subject.

    Attributes:
        alert_type: What the grades show.
        student_id: Student the alert is about.
        class_id: Class of the grade that raised the alert.
        subject_id: Subject whose grades were checked.
        value: Average percentage, or the gain in points for improvement.
        recent_scores: Checked percentages, newest first.
        raised_at: When the alert was raised.
        message: Human-readable summary.
    """

    alert_type: AlertType
    student_id: str
    class_id: str
    subject_id: str
    value: float
    recent_scores: tuple[float, ...]
    raised_at: datetime
    message: str


def _mean(values: Sequence[float]) -> float:
    return math.fsum(values) / len(values)


def evaluate_alerts(
    percentages: Sequence[float], settings: AlertSettings
) -> list[tuple[AlertType, float]]:
    """Alerts raised by a student's latest grade percentages.

    The average of the sample is compared with the struggling and
    exceptional thresholds. Improvement compares the newer half of the
    sample with the older half; with an odd sample the middle grade
    belongs to neither.

    Args:
        percentages: Latest grade percentages, newest first.
        settings: Alert thresholds.

    Returns:
        (alert type, value) pairs, empty when the sample is too small.
    """
    if len(percentages) < settings.min_grades:
        return []

    alerts: list[tuple[AlertType, float]] = []
    average = round(_mean(percentages), 2)
    if average < settings.struggling_below:
        alerts.append((AlertType.STRUGGLING_STUDENT, average))
    if average > settings.exceptional_above:
        alerts.append((AlertType.EXCEPTIONAL_PERFORMANCE, average))

    half = len(percentages) // 2
    newer = percentages[:half]
    older = percentages[len(percentages) - half :]
    if newer and older:
        gain = round(_mean(newer) - _mean(older), 2)
        if gain > settings.improvement_above:
            alerts.append((AlertType.SIGNIFICANT_IMPROVEMENT, gain))
    return alerts


def _alert_message(alert_type: AlertType, value: float, count: int) -> str:
    if alert_type is AlertType.STRUGGLING_STUDENT:
        return f"Student is struggling with an average of {value:.1f}% over the last {count} grades"
    if alert_type is AlertType.EXCEPTIONAL_PERFORMANCE:
        return (
            f"Student is performing exceptionally well with an average of {value:.1f}% "
            f"over the last {count} grades"
        )
    return f"Student has improved by {value:.1f} percentage points"


class GradeActivityObserver:
    """Counts grade events per class and raises performance alerts.

    After each grade the student's latest grades in the subject, within
    the configured window, are checked against the alert thresholds.
    Alerts are logged, counted and kept in a bounded in-memory history.
    """

    name = HandlerNames.ACTIVITY

    def __init__(
        self,
        score_store: ScoreStore,
        settings: AlertSettings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._score_store = score_store
        self._settings = settings or AlertSettings()
        self._clock = clock
        self._events_by_class: Counter[str] = Counter()
        self._last_graded_at: dict[str, datetime] = {}
        self._alerts: deque[PerformanceAlert] = deque(maxlen=self._settings.history_size)
        self._alert_counts: Counter[AlertType] = Counter()

    async def handle(self, event: GradeEvent) -> None:
        self._events_by_class[event.class_id] += 1
        previous = self._last_graded_at.get(event.class_id)
        if previous is None or event.graded_at > previous:
            self._last_graded_at[event.class_id] = event.graded_at

        await self._check_performance(event)

    async def _check_performance(self, event: GradeEvent) -> None:
        now = self._clock()
        grades = await self._score_store.list_grades(
            student_ids=[event.student_id],
            subject_id=event.subject_id,
            start=now - timedelta(days=self._settings.window_days),
        )
        latest = sorted(grades, key=lambda g: g.graded_at, reverse=True)
        percentages = tuple(g.percentage for g in latest[: self._settings.sample_size])

        for alert_type, value in evaluate_alerts(percentages, self._settings):
            alert = PerformanceAlert(
                alert_type=alert_type,
                student_id=event.student_id,
                class_id=event.class_id,
                subject_id=event.subject_id,
                value=value,
                recent_scores=percentages,
                raised_at=now,
                message=_alert_message(alert_type, value, len(percentages)),
            )
            self._alerts.append(alert)
            self._alert_counts[alert_type] += 1
            level = logging.WARNING if alert_type is AlertType.STRUGGLING_STUDENT else logging.INFO
            logger.log(
                level,
                "Performance alert %s for student %s in %s: %s",
                alert_type.value,
                event.student_id,
                event.subject_id,
                alert.message,
            )

    def recent_alerts(self, class_id: str | None = None) -> list[PerformanceAlert]:
        """Alerts kept in memory, newest first, optionally for one class."""
        return [
            alert
            for alert in reversed(self._alerts)
            if class_id is None or alert.class_id == class_id
        ]

    def recent_activity(self, class_id: str) -> dict[str, object]:
        """Event count, latest grade time and alert count observed for a class."""
        return {
            "class_id": class_id,
            "grade_events": self._events_by_class.get(class_id, 0),
            "last_graded_at": self._last_graded_at.get(class_id),
            "alerts": sum(1 for alert in self._alerts if alert.class_id == class_id),
        }

    def get_stats(self) -> dict[str, object]:
        return {
            "grade_events": sum(self._events_by_class.values()),
            "alerts": {alert_type.value: n for alert_type, n in self._alert_counts.items()},
        }

    def reset(self) -> None:
        """Forget all observed activity and alerts."""
        self._events_by_class.clear()
        self._last_graded_at.clear()
        self._alerts.clear()
        self._alert_counts.clear()
