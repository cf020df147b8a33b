# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SQLAlchemy table mappings for the score store.

Two groups of tables live here:

- Platform facts the pipeline only reads: the enrollment directory
  (campuses, courses, subjects, classes, enrollments, student groups),
  activities, grades, submissions, attendance and reward points.
- Tables the pipeline owns: topic_mastery, leaderboard_entries and
  leaderboard_snapshots.

Identifiers are opaque strings issued by the platform.
"""

from datetime import datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    JSON,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _new_id() -> str:
    return str(uuid4())


class Base(DeclarativeBase):
    """Declarative base of every score store table."""

    pass


# ========== Directory ==========


class CampusRow(Base):
    __tablename__ = "campuses"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")


class CourseRow(Base):
    __tablename__ = "courses"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    campus_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("campuses.id", ondelete="SET NULL"), nullable=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")


class SubjectRow(Base):
    __tablename__ = "subjects"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    course_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("courses.id", ondelete="SET NULL"), nullable=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")


class ClassRow(Base):
    __tablename__ = "classes"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    course_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("courses.id", ondelete="SET NULL"), nullable=True, index=True
    )
    campus_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("campuses.id", ondelete="SET NULL"), nullable=True, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")


class EnrollmentRow(Base):
    __tablename__ = "enrollments"
    __table_args__ = (
        UniqueConstraint("class_id", "student_id", name="uq_enrollments_class_student"),
        Index("idx_enrollments_student", "student_id"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    class_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("classes.id", ondelete="CASCADE"), nullable=False
    )
    student_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="active")
    enrolled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class StudentGroupRow(Base):
    __tablename__ = "student_groups"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")


class StudentGroupMemberRow(Base):
    __tablename__ = "student_group_members"

    group_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("student_groups.id", ondelete="CASCADE"), primary_key=True
    )
    student_id: Mapped[str] = mapped_column(String(64), primary_key=True, index=True)


# ========== Facts ==========


class ActivityRow(Base):
    __tablename__ = "activities"
    __table_args__ = (Index("idx_activities_class_created", "class_id", "created_at"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    class_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("classes.id", ondelete="CASCADE"), nullable=False
    )
    subject_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    topic_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    cognitive_level: Mapped[str | None] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class GradeRow(Base):
    __tablename__ = "grades"
    __table_args__ = (
        Index("idx_grades_student_graded", "student_id", "graded_at"),
        Index("idx_grades_class_graded", "class_id", "graded_at"),
        Index("idx_grades_topic", "student_id", "class_id", "topic_id"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    student_id: Mapped[str] = mapped_column(String(64), nullable=False)
    activity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    class_id: Mapped[str] = mapped_column(String(64), nullable=False)
    subject_id: Mapped[str] = mapped_column(String(64), nullable=False)
    topic_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    cognitive_level: Mapped[str | None] = mapped_column(String(32), nullable=True)
    submission_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    score: Mapped[float] = mapped_column(Float, nullable=False)
    max_score: Mapped[float] = mapped_column(Float, nullable=False)
    graded_by: Mapped[str] = mapped_column(String(64), nullable=False, default="system")
    grading_type: Mapped[str] = mapped_column(String(16), nullable=False, default="manual")
    graded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    blooms_level_scores: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)


class SubmissionRow(Base):
    __tablename__ = "submissions"
    __table_args__ = (Index("idx_submissions_student_submitted", "student_id", "submitted_at"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    student_id: Mapped[str] = mapped_column(String(64), nullable=False)
    activity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    class_id: Mapped[str] = mapped_column(String(64), nullable=False)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class AttendanceRow(Base):
    __tablename__ = "attendance_records"
    __table_args__ = (Index("idx_attendance_student_recorded", "student_id", "recorded_at"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    student_id: Mapped[str] = mapped_column(String(64), nullable=False)
    class_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class RewardPointRow(Base):
    __tablename__ = "reward_point_transactions"
    __table_args__ = (Index("idx_rewards_student_awarded", "student_id", "awarded_at"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    student_id: Mapped[str] = mapped_column(String(64), nullable=False)
    class_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    awarded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ========== Derived state ==========


class TopicMasteryRow(Base):
    __tablename__ = "topic_mastery"

    student_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    class_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    topic_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    per_level_score: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    overall_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class LeaderboardEntryRow(Base):
    __tablename__ = "leaderboard_entries"
    __table_args__ = (
        Index(
            "idx_leaderboard_entries_rank",
            "entity_scope",
            "entity_id",
            "time_granularity",
            "rank",
        ),
    )

    entity_scope: Mapped[str] = mapped_column(String(16), primary_key=True)
    entity_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    time_granularity: Mapped[str] = mapped_column(String(16), primary_key=True)
    student_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    academic_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    reward_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    attendance_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    participation_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    improvement_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    composite_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    rank_delta: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    previous_rank: Mapped[int | None] = mapped_column(Integer, nullable=True)
    period_label: Mapped[str] = mapped_column(String(32), nullable=False)
    period_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    period_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    computed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class LeaderboardBoardRow(Base):
    """Header row of a stored leaderboard, present even when it has no entries."""

    __tablename__ = "leaderboards"

    entity_scope: Mapped[str] = mapped_column(String(16), primary_key=True)
    entity_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    time_granularity: Mapped[str] = mapped_column(String(16), primary_key=True)
    period_label: Mapped[str] = mapped_column(String(32), nullable=False)
    period_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    period_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    computed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class LeaderboardSnapshotRow(Base):
    __tablename__ = "leaderboard_snapshots"
    __table_args__ = (
        UniqueConstraint(
            "entity_scope",
            "entity_id",
            "time_granularity",
            "period_label",
            name="uq_leaderboard_snapshots_period",
        ),
        Index(
            "idx_leaderboard_snapshots_history",
            "entity_scope",
            "entity_id",
            "time_granularity",
            "period_start",
        ),
        Index("idx_leaderboard_snapshots_partition", "partition_key"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    entity_scope: Mapped[str] = mapped_column(String(16), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    time_granularity: Mapped[str] = mapped_column(String(16), nullable=False)
    period_label: Mapped[str] = mapped_column(String(32), nullable=False)
    period_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    period_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    captured_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    entries: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    partition_key: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")
