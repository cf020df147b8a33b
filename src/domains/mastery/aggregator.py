# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Topic mastery aggregation.

TopicMasteryAggregator recomputes a student's mastery vector for one topic
from the full grade history, never by patching the previous value. Two
refreshes racing on the same (student, topic) therefore converge on the
same row, and re-running a refresh with no new grades is a no-op.

Each grade contributes attempts per cognitive level:

- when the grade carries a per-level breakdown (``blooms_level_scores``)
  every listed level gets one attempt at that percentage;
- otherwise the grade counts once, at the activity's level, with
  ``score / max_score``;
- grades with neither are ignored.

Per level, attempts are ordered oldest first by (graded_at, activity_id)
and combined with recency weights:

- simple: every attempt weighs 1 (plain mean)
- linear: the i-th oldest attempt weighs i
- exponential: the newest weighs 1, each older one ``decay`` times less

Usage:
    aggregator = TopicMasteryAggregator(score_store, mastery_repository)
    mastery = await aggregator.refresh("s-1", "c-1", "t-1")
    mastery.per_level_score[CognitiveLevel.APPLY]
"""

import logging
import math
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Literal

from src.domains.grading.models import CognitiveLevel, GradeRecord
from src.domains.grading.store import ScoreStore
from src.domains.mastery.models import MasteryRepository, TopicMastery

logger = logging.getLogger(__name__)

RecencyPolicy = Literal["simple", "linear", "exponential"]


@dataclass(frozen=True)
class LevelAttempt:
    """One graded attempt at a cognitive level, as a 0..1 ratio."""

    level: CognitiveLevel
    ratio: float
    graded_at: datetime
    activity_id: str


def extract_attempts(grade: GradeRecord) -> list[LevelAttempt]:
    """Split a grade into per-level attempts.

    Args:
        grade: Stored grade.

    Returns:
        Attempts contributed by the grade, possibly empty.
    """
    if grade.blooms_level_scores:
        return [
            LevelAttempt(
                level=level,
                ratio=score / 100,
                graded_at=grade.graded_at,
                activity_id=grade.activity_id,
            )
            for level, score in grade.blooms_level_scores.items()
        ]
    if grade.cognitive_level is None or grade.max_score <= 0:
        return []
    return [
        LevelAttempt(
            level=grade.cognitive_level,
            ratio=grade.score / grade.max_score,
            graded_at=grade.graded_at,
            activity_id=grade.activity_id,
        )
    ]


def recency_weights(count: int, policy: RecencyPolicy, decay: float = 0.8) -> list[float]:
    """Weights for ``count`` attempts ordered oldest first.

    Args:
        count: Number of attempts.
        policy: Recency weighting policy.
        decay: Per-step decay for the exponential policy.

    Returns:
        Non-decreasing list of weights.
    """
    if policy == "linear":
        return [float(i + 1) for i in range(count)]
    if policy == "exponential":
        return [decay ** (count - 1 - i) for i in range(count)]
    return [1.0] * count


def weighted_level_score(
    attempts: list[LevelAttempt],
    policy: RecencyPolicy,
    decay: float = 0.8,
) -> float:
    """Recency-weighted mean of attempt ratios, as a 0..100 score.

    Args:
        attempts: Attempts at a single level.
        policy: Recency weighting policy.
        decay: Per-step decay for the exponential policy.

    Returns:
        Score rounded to 2 decimals.
    """
    ordered = sorted(attempts, key=lambda a: (a.graded_at, a.activity_id))
    weights = recency_weights(len(ordered), policy, decay)
    total_weight = math.fsum(weights)
    weighted = math.fsum(w * a.ratio for w, a in zip(weights, ordered))
    return round(weighted / total_weight * 100, 2)


class TopicMasteryAggregator:
    """Recomputes TopicMastery rows from grade history.

    Attributes:
        recency_policy: Weighting applied to attempts by age.
        decay: Decay factor for the exponential policy.
    """

    def __init__(
        self,
        score_store: ScoreStore,
        repository: MasteryRepository,
        recency_policy: RecencyPolicy = "simple",
        decay: float = 0.8,
    ) -> None:
        """Initialize the aggregator.

        Args:
            score_store: Source of grade history.
            repository: Storage for mastery rows.
            recency_policy: Weighting applied to attempts by age.
            decay: Decay factor for the exponential policy.
        """
        self._score_store = score_store
        self._repository = repository
        self.recency_policy = recency_policy
        self.decay = decay

    def compute(
        self,
        student_id: str,
        class_id: str,
        topic_id: str,
        grades: list[GradeRecord],
    ) -> TopicMastery:
        """Build a TopicMastery from a list of grades.

        Args:
            student_id: Student the grades belong to.
            class_id: Class the grades were recorded in.
            topic_id: Topic the grades cover.
            grades: Every grade of the student for the topic.

        Returns:
            The computed mastery. Pure: no I/O.
        """
        by_level: dict[CognitiveLevel, list[LevelAttempt]] = defaultdict(list)
        attempt_count = 0
        for grade in grades:
            for attempt in extract_attempts(grade):
                by_level[attempt.level].append(attempt)
                attempt_count += 1

        # Iterate in taxonomy order so the mapping is stable
        per_level = {
            level: weighted_level_score(by_level[level], self.recency_policy, self.decay)
            for level in CognitiveLevel
            if by_level.get(level)
        }
        overall = round(math.fsum(per_level.values()) / len(per_level), 2) if per_level else 0.0
        updated_at = max((g.graded_at for g in grades), default=None)

        return TopicMastery(
            student_id=student_id,
            class_id=class_id,
            topic_id=topic_id,
            per_level_score=per_level,
            overall_score=overall,
            attempt_count=attempt_count,
            updated_at=updated_at,
        )

    async def refresh(self, student_id: str, class_id: str, topic_id: str) -> TopicMastery:
        """Recompute and store a student's mastery of a topic.

        Args:
            student_id: Student to refresh.
            class_id: Class the grades were recorded in.
            topic_id: Topic to refresh.

        Returns:
            The stored TopicMastery.

        Raises:
            TransientStoreError: If the score store or repository is down.
        """
        grades = await self._score_store.list_grades(
            student_ids=[student_id],
            class_ids=[class_id],
            topic_id=topic_id,
        )
        mastery = self.compute(student_id, class_id, topic_id, grades)
        await self._repository.upsert(mastery)

        logger.debug(
            "Refreshed mastery for student %s topic %s: %d levels, overall %.2f",
            student_id,
            topic_id,
            len(mastery.per_level_score),
            mastery.overall_score,
        )
        return mastery

    async def get(self, student_id: str, class_id: str, topic_id: str) -> TopicMastery | None:
        """Read a stored mastery row.

        Args:
            student_id: Student id.
            class_id: Class id.
            topic_id: Topic id.

        Returns:
            The stored row, or None if never computed.
        """
        return await self._repository.get(student_id, class_id, topic_id)
