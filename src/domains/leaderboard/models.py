# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Leaderboard domain models.

Enumerations for entity scopes and time granularities, the Period value
object produced by time bucketing, ranked entries, snapshots and the read
models returned by the leaderboard service.
"""

from datetime import datetime
from enum import Enum
from typing import Self

from pydantic import BaseModel, ConfigDict, Field

from src.core.exceptions import ConfigurationError


class EntityScope(str, Enum):
    """Kind of group a leaderboard is computed over."""

    CLASS = "class"
    SUBJECT = "subject"
    COURSE = "course"
    CAMPUS = "campus"
    GROUP = "group"

    @classmethod
    def parse(cls, value: "str | EntityScope") -> "EntityScope":
        """Parse a scope name, case-insensitively.

        Raises:
            ConfigurationError: If the name is unknown.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as e:
            raise ConfigurationError(
                f"Unknown entity scope: {value}",
                details={"allowed": [s.value for s in cls]},
            ) from e


class TimeGranularity(str, Enum):
    """Period resolution of a leaderboard or snapshot."""

    WEEKLY = "weekly"
    MONTHLY = "monthly"
    TERM = "term"
    ALL_TIME = "all_time"

    @classmethod
    def parse(cls, value: "str | TimeGranularity") -> "TimeGranularity":
        """Parse a granularity name, accepting ``all-time`` as well.

        Raises:
            ConfigurationError: If the name is unknown.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower().replace("-", "_"))
        except ValueError as e:
            raise ConfigurationError(
                f"Unknown time granularity: {value}",
                details={"allowed": [g.value for g in cls]},
            ) from e


class SnapshotStatus(str, Enum):
    """Lifecycle of a stored snapshot."""

    ACTIVE = "active"
    ARCHIVED = "archived"


class Period(BaseModel):
    """A half-open time bucket ``[start, end)``.

    Attributes:
        label: Stable identifier of the bucket, ``YYYY-MM-DD/YYYY-MM-DD``.
        start: Inclusive start.
        end: Exclusive end.
    """

    model_config = ConfigDict(frozen=True)

    label: str
    start: datetime
    end: datetime

    @classmethod
    def between(cls, start: datetime, end: datetime) -> Self:
        """Build a period labelled by its start and end dates."""
        return cls(label=f"{start:%Y-%m-%d}/{end:%Y-%m-%d}", start=start, end=end)

    def contains(self, moment: datetime) -> bool:
        """Check whether a moment falls inside the period."""
        return self.start <= moment < self.end

    @property
    def midpoint(self) -> datetime:
        """Instant splitting the period into two equal halves."""
        return self.start + (self.end - self.start) / 2


class ScopeRef(BaseModel):
    """Identifies one scope entity, e.g. class ``c-1``."""

    model_config = ConfigDict(frozen=True)

    scope: EntityScope
    entity_id: str

    def __str__(self) -> str:
        return f"{self.scope.value}:{self.entity_id}"


class ScopeMembership(BaseModel):
    """Resolved membership of a scope entity.

    Attributes:
        scope: Scope kind.
        entity_id: Scope entity id.
        student_ids: Students ranked in the scope.
        class_ids: Classes whose records feed the metrics, None for all.
        subject_id: Subject restricting grades and activities, if any.
    """

    model_config = ConfigDict(frozen=True)

    scope: EntityScope
    entity_id: str
    student_ids: tuple[str, ...] = ()
    class_ids: tuple[str, ...] | None = None
    subject_id: str | None = None


class LeaderboardEntry(BaseModel):
    """One ranked student in a leaderboard.

    All rates and scores are on a 0..100 scale except reward_points (raw
    sum) and improvement_score (difference of two percentages, may be
    negative).
    """

    model_config = ConfigDict(frozen=True)

    entity_scope: EntityScope
    entity_id: str
    time_granularity: TimeGranularity
    student_id: str
    rank: int = Field(ge=1)
    academic_score: float = 0.0
    reward_points: int = 0
    attendance_rate: float = 0.0
    participation_rate: float = 0.0
    improvement_score: float = 0.0
    composite_score: float = 0.0
    rank_delta: int = 0
    previous_rank: int | None = None


class RankedLeaderboard(BaseModel):
    """The ordered entries of a leaderboard for one period.

    Attributes:
        entity_scope: Scope kind.
        entity_id: Scope entity id.
        time_granularity: Granularity.
        period: Window the metrics were computed over.
        computed_at: When the entries were computed.
        entries: Entries ordered by rank.
    """

    entity_scope: EntityScope
    entity_id: str
    time_granularity: TimeGranularity
    period: Period
    computed_at: datetime
    entries: list[LeaderboardEntry] = Field(default_factory=list)


class LeaderboardSnapshot(BaseModel):
    """A write-once capture of a leaderboard for one period."""

    model_config = ConfigDict(frozen=True)

    snapshot_id: str
    entity_scope: EntityScope
    entity_id: str
    time_granularity: TimeGranularity
    period: Period
    captured_at: datetime
    entries: tuple[LeaderboardEntry, ...] = ()
    partition_key: str
    status: SnapshotStatus = SnapshotStatus.ACTIVE


class LeaderboardPage(BaseModel):
    """A slice of a ranked leaderboard."""

    entity_scope: EntityScope
    entity_id: str
    time_granularity: TimeGranularity
    period: Period
    entries: list[LeaderboardEntry]
    total_count: int
    limit: int
    offset: int


class TopPerformer(BaseModel):
    """Condensed entry listed in trend points."""

    student_id: str
    rank: int
    composite_score: float


class TrendPoint(BaseModel):
    """Aggregate view of one snapshot."""

    period: Period
    captured_at: datetime
    total_students: int
    average_rank: float
    average_score: float
    average_academic_score: float
    top_performers: list[TopPerformer] = Field(default_factory=list)


class StudentTrendPoint(BaseModel):
    """One student's standing in one snapshot."""

    period: Period
    captured_at: datetime
    rank: int
    composite_score: float
    rank_delta: int
    total_students: int


class ClassMetrics(BaseModel):
    """Aggregated metrics of a class for one period."""

    class_id: str
    time_granularity: TimeGranularity
    period: Period
    total_students: int
    average_academic_score: float
    average_attendance_rate: float
    average_participation_rate: float
    average_composite_score: float
    passing_rate: float
    top_performers: list[TopPerformer] = Field(default_factory=list)
