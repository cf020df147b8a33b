# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Per-student metrics, composite scoring and ordering.

Pure functions over raw facts already restricted to a scope and window.
The engine feeds them and turns their output into LeaderboardEntry rows.

Metric definitions (all on a 0..100 scale unless noted):

- academic_score: mean graded percentage
- reward_points: sum of reward points (raw); normalised against the
  scope maximum before weighting
- attendance_rate: PRESENT records / all records
- participation_rate: distinct activities submitted / activities in scope
- improvement_score: mean percentage in the second half of the window
  minus the first half, 0 when either half has no grades

A missing metric is 0; students are never excluded for lack of data.
"""

import math
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from src.core.config.settings import ScoringWeights
from src.domains.grading.models import (
    ActivityRecord,
    AttendanceRecord,
    AttendanceStatus,
    GradeRecord,
    RewardRecord,
    SubmissionRecord,
)
from src.domains.leaderboard.models import Period
from src.domains.leaderboard.periods import split_halves

METRIC_PRECISION = 2
COMPOSITE_PRECISION = 4


@dataclass
class StudentMetrics:
    """Raw ranking inputs of one student."""

    student_id: str
    academic_score: float = 0.0
    reward_points: int = 0
    attendance_rate: float = 0.0
    participation_rate: float = 0.0
    improvement_score: float = 0.0
    composite_score: float = 0.0


@dataclass
class ScopeFacts:
    """Raw facts of a scope for one window."""

    grades: list[GradeRecord] = field(default_factory=list)
    attendance: list[AttendanceRecord] = field(default_factory=list)
    submissions: list[SubmissionRecord] = field(default_factory=list)
    activities: list[ActivityRecord] = field(default_factory=list)
    rewards: list[RewardRecord] = field(default_factory=list)


def _mean(values: Sequence[float]) -> float | None:
    if not values:
        return None
    return math.fsum(values) / len(values)


def _percent(part: int, whole: int) -> float:
    if whole <= 0:
        return 0.0
    return part / whole * 100


def improvement(grades: Iterable[GradeRecord], period: Period) -> float:
    """Second-half mean percentage minus first-half mean percentage.

    Args:
        grades: Grades of one student inside the period.
        period: Window the grades were selected for.

    Returns:
        The difference, or 0 when either half has no grades.
    """
    first, second = split_halves(period)
    early = [g.percentage for g in grades if first.contains(g.graded_at)]
    late = [g.percentage for g in grades if second.contains(g.graded_at)]
    early_mean, late_mean = _mean(early), _mean(late)
    if early_mean is None or late_mean is None:
        return 0.0
    return late_mean - early_mean


def collect_metrics(
    student_ids: Sequence[str],
    facts: ScopeFacts,
    period: Period,
) -> dict[str, StudentMetrics]:
    """Compute the per-student metrics of a scope.

    Args:
        student_ids: Students in scope. Records of other students are ignored.
        facts: Raw facts of the scope inside the period.
        period: Window the facts were selected for.

    Returns:
        Metrics for every student in scope, keyed by student id.
    """
    in_scope = set(student_ids)

    grades: dict[str, list[GradeRecord]] = defaultdict(list)
    for grade in facts.grades:
        if grade.student_id in in_scope:
            grades[grade.student_id].append(grade)

    present: dict[str, int] = defaultdict(int)
    marked: dict[str, int] = defaultdict(int)
    for record in facts.attendance:
        if record.student_id in in_scope:
            marked[record.student_id] += 1
            if record.status is AttendanceStatus.PRESENT:
                present[record.student_id] += 1

    activity_ids = {activity.activity_id for activity in facts.activities}
    submitted: dict[str, set[str]] = defaultdict(set)
    for submission in facts.submissions:
        if submission.student_id in in_scope and submission.activity_id in activity_ids:
            submitted[submission.student_id].add(submission.activity_id)

    points: dict[str, int] = defaultdict(int)
    for reward in facts.rewards:
        if reward.student_id in in_scope:
            points[reward.student_id] += reward.points

    metrics: dict[str, StudentMetrics] = {}
    for student_id in student_ids:
        student_grades = grades.get(student_id, [])
        academic = _mean([g.percentage for g in student_grades]) or 0.0
        metrics[student_id] = StudentMetrics(
            student_id=student_id,
            academic_score=round(academic, METRIC_PRECISION),
            reward_points=points.get(student_id, 0),
            attendance_rate=round(
                _percent(present.get(student_id, 0), marked.get(student_id, 0)),
                METRIC_PRECISION,
            ),
            participation_rate=round(
                _percent(len(submitted.get(student_id, ())), len(activity_ids)),
                METRIC_PRECISION,
            ),
            improvement_score=round(improvement(student_grades, period), METRIC_PRECISION),
        )
    return metrics


def normalized_rewards(points: int, max_points: int) -> float:
    """Scale reward points to 0..100 against the scope maximum.

    Args:
        points: Student's points.
        max_points: Highest points in the scope.

    Returns:
        Normalised points, 0 when nobody has positive points.
    """
    if max_points <= 0:
        return 0.0
    return max(points, 0) / max_points * 100


def composite_score(metrics: StudentMetrics, weights: ScoringWeights, max_points: int) -> float:
    """Weighted combination of a student's metrics.

    Args:
        metrics: Student metrics.
        weights: Configured weights.
        max_points: Highest reward points in the scope.

    Returns:
        Composite score rounded to 4 decimals.
    """
    value = math.fsum(
        [
            weights.academic * metrics.academic_score,
            weights.rewards * normalized_rewards(metrics.reward_points, max_points),
            weights.attendance * metrics.attendance_rate,
            weights.participation * metrics.participation_rate,
            weights.improvement * metrics.improvement_score,
        ]
    )
    return round(value, COMPOSITE_PRECISION)


def ranking_key(metrics: StudentMetrics) -> tuple[float, float, float, str]:
    """Sort key: composite, attendance, participation descending, then id."""
    return (
        -metrics.composite_score,
        -metrics.attendance_rate,
        -metrics.participation_rate,
        metrics.student_id,
    )


def order_students(
    metrics: Iterable[StudentMetrics],
    weights: ScoringWeights,
) -> list[StudentMetrics]:
    """Score and order students. Position i + 1 is the student's rank.

    Args:
        metrics: Per-student metrics.
        weights: Configured weights.

    Returns:
        Metrics with composite scores filled in, best first.
    """
    students = list(metrics)
    max_points = max((m.reward_points for m in students), default=0)
    for student in students:
        student.composite_score = composite_score(student, weights, max_points)
    return sorted(students, key=ranking_key)
