# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Grading domain models.

This module defines the immutable GradeEvent passed through the event
pipeline, plus the raw fact records the aggregators read from the score
store (grades, attendance, submissions, activities, reward points).

GradeEvent is a frozen pydantic model: it is validated once when built
from a committed grade and can never be mutated afterwards, so handlers
either see every field of a valid event or are not invoked at all.

Example:
    >>> event = GradeEvent(
    ...     student_id="s-1",
    ...     activity_id="a-1",
    ...     class_id="c-1",
    ...     subject_id="math",
    ...     topic_id="t-1",
    ...     cognitive_level=CognitiveLevel.APPLY,
    ...     score=8,
    ...     max_score=10,
    ...     graded_by="teacher-1",
    ...     graded_at=utc_now(),
    ... )
    >>> event.percentage
    80.0
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Self
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from src.utils.datetime import ensure_utc


class CognitiveLevel(str, Enum):
    """Bloom's taxonomy cognitive levels, lowest to highest."""

    REMEMBER = "remember"
    UNDERSTAND = "understand"
    APPLY = "apply"
    ANALYZE = "analyze"
    EVALUATE = "evaluate"
    CREATE = "create"


class GradingType(str, Enum):
    """How a grade was produced."""

    AUTO = "auto"
    MANUAL = "manual"
    AI = "ai"
    HYBRID = "hybrid"


class AttendanceStatus(str, Enum):
    """Attendance record status. Only PRESENT counts as attended."""

    PRESENT = "present"
    ABSENT = "absent"
    LATE = "late"
    EXCUSED = "excused"


class GradeEvent(BaseModel):
    """A committed grade, as seen by the event pipeline.

    Attributes:
        event_id: Correlation id for logs.
        student_id: Graded student.
        activity_id: Graded activity.
        class_id: Class the activity belongs to.
        subject_id: Subject of the activity.
        topic_id: Topic of the activity, if any.
        cognitive_level: Cognitive level of the activity, if any.
        submission_id: Graded submission, if any.
        score: Points awarded.
        max_score: Points available, strictly positive.
        graded_by: Grader identifier (user id or "system").
        graded_at: When the grade was committed, UTC.
        grading_type: How the grade was produced.
        blooms_level_scores: Optional per-level breakdown in percent.
    """

    model_config = ConfigDict(frozen=True)

    event_id: str = Field(default_factory=lambda: str(uuid4()))
    student_id: str = Field(min_length=1)
    activity_id: str = Field(min_length=1)
    class_id: str = Field(min_length=1)
    subject_id: str = Field(min_length=1)
    topic_id: str | None = None
    cognitive_level: CognitiveLevel | None = None
    submission_id: str | None = None
    score: float = Field(ge=0)
    max_score: float = Field(gt=0)
    graded_by: str
    graded_at: datetime
    grading_type: GradingType = GradingType.MANUAL
    blooms_level_scores: dict[CognitiveLevel, float] | None = None

    @field_validator("graded_at")
    @classmethod
    def normalize_graded_at(cls, value: datetime) -> datetime:
        """Store graded_at as timezone-aware UTC."""
        return ensure_utc(value)

    @field_validator("blooms_level_scores")
    @classmethod
    def validate_level_scores(
        cls, value: dict[CognitiveLevel, float] | None
    ) -> dict[CognitiveLevel, float] | None:
        """Reject level scores outside 0..100."""
        if value is None:
            return None
        for level, score in value.items():
            if not 0 <= score <= 100:
                raise ValueError(f"Score for level {level.value} must be within 0..100")
        return value

    @model_validator(mode="after")
    def validate_score(self) -> Self:
        """Reject scores above the maximum."""
        if self.score > self.max_score:
            raise ValueError("score cannot exceed max_score")
        return self

    @property
    def percentage(self) -> float:
        """Score as a percentage of max_score."""
        return self.score / self.max_score * 100

    def log_context(self) -> dict[str, Any]:
        """Identifiers attached to every log line about this event."""
        return {
            "event_id": self.event_id,
            "student_id": self.student_id,
            "activity_id": self.activity_id,
            "class_id": self.class_id,
        }

    def to_record(self) -> "GradeRecord":
        """Convert to the raw grade record the score store holds."""
        return GradeRecord(
            student_id=self.student_id,
            activity_id=self.activity_id,
            class_id=self.class_id,
            subject_id=self.subject_id,
            topic_id=self.topic_id,
            cognitive_level=self.cognitive_level,
            score=self.score,
            max_score=self.max_score,
            graded_at=self.graded_at,
            blooms_level_scores=dict(self.blooms_level_scores or {}),
        )


@dataclass(frozen=True)
class GradeRecord:
    """A stored grade."""

    student_id: str
    activity_id: str
    class_id: str
    subject_id: str
    topic_id: str | None
    cognitive_level: CognitiveLevel | None
    score: float
    max_score: float
    graded_at: datetime
    blooms_level_scores: dict[CognitiveLevel, float] = field(default_factory=dict)

    @property
    def percentage(self) -> float:
        """Score as a percentage of max_score, 0 when max_score is 0."""
        if self.max_score <= 0:
            return 0.0
        return self.score / self.max_score * 100


@dataclass(frozen=True)
class AttendanceRecord:
    """One attendance mark for a student in a class on a day."""

    student_id: str
    class_id: str
    recorded_at: datetime
    status: AttendanceStatus


@dataclass(frozen=True)
class SubmissionRecord:
    """A student's submission for an activity."""

    student_id: str
    activity_id: str
    class_id: str
    submitted_at: datetime


@dataclass(frozen=True)
class ActivityRecord:
    """An activity students can submit."""

    activity_id: str
    class_id: str
    subject_id: str
    created_at: datetime
    topic_id: str | None = None
    cognitive_level: CognitiveLevel | None = None


@dataclass(frozen=True)
class RewardRecord:
    """A reward point transaction."""

    student_id: str
    points: int
    awarded_at: datetime
    class_id: str | None = None
