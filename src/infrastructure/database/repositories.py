# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SQLAlchemy implementations of the pipeline's storage contracts.

Each repository takes an async sessionmaker and opens one short session
per call through session_scope(), so database failures surface as
DatabaseError (a TransientStoreError) and never as raw SQLAlchemy errors.

Example:
    sessionmaker = get_sessionmaker()
    store = SqlScoreStore(sessionmaker)
    grades = await store.list_grades(class_ids=["c-1"], start=period.start)
"""

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from pydantic_core import to_jsonable_python
from sqlalchemy import Select, delete, distinct, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.exceptions import DataIntegrityError
from src.domains.grading.models import (
    ActivityRecord,
    AttendanceRecord,
    AttendanceStatus,
    CognitiveLevel,
    GradeRecord,
    RewardRecord,
    SubmissionRecord,
)
from src.domains.leaderboard.models import (
    EntityScope,
    LeaderboardEntry,
    LeaderboardSnapshot,
    Period,
    RankedLeaderboard,
    ScopeMembership,
    ScopeRef,
    SnapshotStatus,
    TimeGranularity,
)
from src.domains.mastery.models import TopicMastery
from src.infrastructure.database.connection import session_scope
from src.infrastructure.database.models import (
    ActivityRow,
    AttendanceRow,
    CampusRow,
    ClassRow,
    CourseRow,
    EnrollmentRow,
    GradeRow,
    LeaderboardBoardRow,
    LeaderboardEntryRow,
    LeaderboardSnapshotRow,
    RewardPointRow,
    StudentGroupMemberRow,
    StudentGroupRow,
    SubjectRow,
    SubmissionRow,
    TopicMasteryRow,
)
from src.utils.datetime import ensure_utc

logger = logging.getLogger(__name__)

ACTIVE_ENROLLMENT = "active"


def _filter_in(stmt: Select[Any], column: Any, values: Sequence[str] | None) -> Select[Any]:
    if values is None:
        return stmt
    return stmt.where(column.in_(list(values)))


def _filter_window(
    stmt: Select[Any],
    column: Any,
    start: datetime | None,
    end: datetime | None,
) -> Select[Any]:
    if start is not None:
        stmt = stmt.where(column >= start)
    if end is not None:
        stmt = stmt.where(column < end)
    return stmt


def _level(value: str | None) -> CognitiveLevel | None:
    return CognitiveLevel(value) if value else None


class SqlScoreStore:
    """Reads raw facts from the platform tables."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    async def list_grades(
        self,
        *,
        student_ids: Sequence[str] | None = None,
        class_ids: Sequence[str] | None = None,
        subject_id: str | None = None,
        topic_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[GradeRecord]:
        stmt = select(GradeRow)
        stmt = _filter_in(stmt, GradeRow.student_id, student_ids)
        stmt = _filter_in(stmt, GradeRow.class_id, class_ids)
        if subject_id is not None:
            stmt = stmt.where(GradeRow.subject_id == subject_id)
        if topic_id is not None:
            stmt = stmt.where(GradeRow.topic_id == topic_id)
        stmt = _filter_window(stmt, GradeRow.graded_at, start, end)

        async with session_scope(self._sessionmaker) as session:
            rows = (await session.execute(stmt)).scalars().all()

        return [
            GradeRecord(
                student_id=row.student_id,
                activity_id=row.activity_id,
                class_id=row.class_id,
                subject_id=row.subject_id,
                topic_id=row.topic_id,
                cognitive_level=_level(row.cognitive_level),
                score=row.score,
                max_score=row.max_score,
                graded_at=ensure_utc(row.graded_at),
                blooms_level_scores={
                    CognitiveLevel(level): float(score)
                    for level, score in (row.blooms_level_scores or {}).items()
                },
            )
            for row in rows
        ]

    async def list_attendance(
        self,
        *,
        student_ids: Sequence[str] | None = None,
        class_ids: Sequence[str] | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[AttendanceRecord]:
        stmt = select(AttendanceRow)
        stmt = _filter_in(stmt, AttendanceRow.student_id, student_ids)
        stmt = _filter_in(stmt, AttendanceRow.class_id, class_ids)
        stmt = _filter_window(stmt, AttendanceRow.recorded_at, start, end)

        async with session_scope(self._sessionmaker) as session:
            rows = (await session.execute(stmt)).scalars().all()

        return [
            AttendanceRecord(
                student_id=row.student_id,
                class_id=row.class_id,
                recorded_at=ensure_utc(row.recorded_at),
                status=AttendanceStatus(row.status),
            )
            for row in rows
        ]

    async def list_submissions(
        self,
        *,
        student_ids: Sequence[str] | None = None,
        class_ids: Sequence[str] | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[SubmissionRecord]:
        stmt = select(SubmissionRow)
        stmt = _filter_in(stmt, SubmissionRow.student_id, student_ids)
        stmt = _filter_in(stmt, SubmissionRow.class_id, class_ids)
        stmt = _filter_window(stmt, SubmissionRow.submitted_at, start, end)

        async with session_scope(self._sessionmaker) as session:
            rows = (await session.execute(stmt)).scalars().all()

        return [
            SubmissionRecord(
                student_id=row.student_id,
                activity_id=row.activity_id,
                class_id=row.class_id,
                submitted_at=ensure_utc(row.submitted_at),
            )
            for row in rows
        ]

    async def list_activities(
        self,
        *,
        class_ids: Sequence[str] | None = None,
        subject_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[ActivityRecord]:
        stmt = select(ActivityRow)
        stmt = _filter_in(stmt, ActivityRow.class_id, class_ids)
        if subject_id is not None:
            stmt = stmt.where(ActivityRow.subject_id == subject_id)
        stmt = _filter_window(stmt, ActivityRow.created_at, start, end)

        async with session_scope(self._sessionmaker) as session:
            rows = (await session.execute(stmt)).scalars().all()

        return [
            ActivityRecord(
                activity_id=row.id,
                class_id=row.class_id,
                subject_id=row.subject_id,
                created_at=ensure_utc(row.created_at),
                topic_id=row.topic_id,
                cognitive_level=_level(row.cognitive_level),
            )
            for row in rows
        ]

    async def list_rewards(
        self,
        *,
        student_ids: Sequence[str] | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[RewardRecord]:
        stmt = select(RewardPointRow)
        stmt = _filter_in(stmt, RewardPointRow.student_id, student_ids)
        stmt = _filter_window(stmt, RewardPointRow.awarded_at, start, end)

        async with session_scope(self._sessionmaker) as session:
            rows = (await session.execute(stmt)).scalars().all()

        return [
            RewardRecord(
                student_id=row.student_id,
                points=row.points,
                awarded_at=ensure_utc(row.awarded_at),
                class_id=row.class_id,
            )
            for row in rows
        ]


class SqlScopeDirectory:
    """Resolves scope membership from the enrollment tables."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    async def resolve(self, scope: EntityScope, entity_id: str) -> ScopeMembership:
        """Resolve the students and classes of a scope entity.

        Raises:
            DataIntegrityError: If the entity or its parent does not exist.
        """
        async with session_scope(self._sessionmaker) as session:
            if scope is EntityScope.GROUP:
                if await session.get(StudentGroupRow, entity_id) is None:
                    raise DataIntegrityError(f"Student group not found: {entity_id}")
                members = await session.execute(
                    select(StudentGroupMemberRow.student_id).where(
                        StudentGroupMemberRow.group_id == entity_id
                    )
                )
                return ScopeMembership(
                    scope=scope,
                    entity_id=entity_id,
                    student_ids=tuple(sorted(set(members.scalars().all()))),
                    class_ids=None,
                )

            subject_id = None
            if scope is EntityScope.CLASS:
                if await session.get(ClassRow, entity_id) is None:
                    raise DataIntegrityError(f"Class not found: {entity_id}")
                class_ids = [entity_id]
            elif scope is EntityScope.SUBJECT:
                subject = await session.get(SubjectRow, entity_id)
                if subject is None:
                    raise DataIntegrityError(f"Subject not found: {entity_id}")
                if subject.course_id is None:
                    raise DataIntegrityError(
                        f"Subject {entity_id} has no course",
                        details={"subject_id": entity_id},
                    )
                class_ids = await self._class_ids(session, ClassRow.course_id, subject.course_id)
                subject_id = entity_id
            elif scope is EntityScope.COURSE:
                if await session.get(CourseRow, entity_id) is None:
                    raise DataIntegrityError(f"Course not found: {entity_id}")
                class_ids = await self._class_ids(session, ClassRow.course_id, entity_id)
            else:
                if await session.get(CampusRow, entity_id) is None:
                    raise DataIntegrityError(f"Campus not found: {entity_id}")
                class_ids = await self._class_ids(session, ClassRow.campus_id, entity_id)

            students = await session.execute(
                select(distinct(EnrollmentRow.student_id)).where(
                    EnrollmentRow.class_id.in_(class_ids),
                    EnrollmentRow.status == ACTIVE_ENROLLMENT,
                )
            )
            return ScopeMembership(
                scope=scope,
                entity_id=entity_id,
                student_ids=tuple(sorted(students.scalars().all())),
                class_ids=tuple(class_ids),
                subject_id=subject_id,
            )

    @staticmethod
    async def _class_ids(session: AsyncSession, column: Any, value: str) -> list[str]:
        result = await session.execute(select(ClassRow.id).where(column == value))
        return sorted(result.scalars().all())

    async def scopes_for(
        self,
        student_id: str,
        class_id: str,
        subject_id: str | None = None,
    ) -> list[ScopeRef]:
        """Every scope a grade of the student in the class feeds.

        Raises:
            DataIntegrityError: If the class does not exist.
        """
        async with session_scope(self._sessionmaker) as session:
            class_row = await session.get(ClassRow, class_id)
            if class_row is None:
                raise DataIntegrityError(f"Class not found: {class_id}")

            refs = [ScopeRef(scope=EntityScope.CLASS, entity_id=class_id)]
            if subject_id is not None:
                refs.append(ScopeRef(scope=EntityScope.SUBJECT, entity_id=subject_id))
            if class_row.course_id is not None:
                refs.append(ScopeRef(scope=EntityScope.COURSE, entity_id=class_row.course_id))
            if class_row.campus_id is not None:
                refs.append(ScopeRef(scope=EntityScope.CAMPUS, entity_id=class_row.campus_id))

            groups = await session.execute(
                select(StudentGroupMemberRow.group_id)
                .where(StudentGroupMemberRow.student_id == student_id)
                .order_by(StudentGroupMemberRow.group_id)
            )
            refs.extend(
                ScopeRef(scope=EntityScope.GROUP, entity_id=group_id)
                for group_id in groups.scalars().all()
            )
            return refs

    async def scopes_for_class(self, class_id: str) -> list[ScopeRef]:
        """Every scope whose roster includes the class's students.

        Raises:
            DataIntegrityError: If the class does not exist.
        """
        async with session_scope(self._sessionmaker) as session:
            class_row = await session.get(ClassRow, class_id)
            if class_row is None:
                raise DataIntegrityError(f"Class not found: {class_id}")

            refs = [ScopeRef(scope=EntityScope.CLASS, entity_id=class_id)]
            if class_row.course_id is not None:
                subjects = await session.execute(
                    select(SubjectRow.id)
                    .where(SubjectRow.course_id == class_row.course_id)
                    .order_by(SubjectRow.id)
                )
                refs.extend(
                    ScopeRef(scope=EntityScope.SUBJECT, entity_id=subject_id)
                    for subject_id in subjects.scalars().all()
                )
                refs.append(ScopeRef(scope=EntityScope.COURSE, entity_id=class_row.course_id))
            if class_row.campus_id is not None:
                refs.append(ScopeRef(scope=EntityScope.CAMPUS, entity_id=class_row.campus_id))
            return refs

    async def list_scopes(self) -> list[ScopeRef]:
        """Every scope entity known to the directory."""
        sources = [
            (EntityScope.CLASS, ClassRow.id),
            (EntityScope.SUBJECT, SubjectRow.id),
            (EntityScope.COURSE, CourseRow.id),
            (EntityScope.CAMPUS, CampusRow.id),
            (EntityScope.GROUP, StudentGroupRow.id),
        ]
        refs: list[ScopeRef] = []
        async with session_scope(self._sessionmaker) as session:
            for scope, column in sources:
                result = await session.execute(select(column).order_by(column))
                refs.extend(
                    ScopeRef(scope=scope, entity_id=entity_id)
                    for entity_id in result.scalars().all()
                )
        return refs


class SqlMasteryRepository:
    """Stores topic mastery rows."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    async def get(self, student_id: str, class_id: str, topic_id: str) -> TopicMastery | None:
        async with session_scope(self._sessionmaker) as session:
            row = await session.get(TopicMasteryRow, (student_id, class_id, topic_id))
            if row is None:
                return None
            return TopicMastery(
                student_id=row.student_id,
                class_id=row.class_id,
                topic_id=row.topic_id,
                per_level_score={
                    CognitiveLevel(level): score for level, score in row.per_level_score.items()
                },
                overall_score=row.overall_score,
                attempt_count=row.attempt_count,
                updated_at=ensure_utc(row.updated_at) if row.updated_at else None,
            )

    async def upsert(self, mastery: TopicMastery) -> None:
        async with session_scope(self._sessionmaker) as session:
            await session.merge(
                TopicMasteryRow(
                    student_id=mastery.student_id,
                    class_id=mastery.class_id,
                    topic_id=mastery.topic_id,
                    per_level_score={
                        level.value: score for level, score in mastery.per_level_score.items()
                    },
                    overall_score=mastery.overall_score,
                    attempt_count=mastery.attempt_count,
                    updated_at=mastery.updated_at,
                )
            )


class SqlLeaderboardRepository:
    """Stores the current ranked entries per (scope, entity, granularity)."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    async def load(
        self,
        scope: EntityScope,
        entity_id: str,
        granularity: TimeGranularity,
    ) -> RankedLeaderboard | None:
        key = (scope.value, entity_id, granularity.value)
        async with session_scope(self._sessionmaker) as session:
            header = await session.get(LeaderboardBoardRow, key)
            if header is None:
                return None
            rows = await session.execute(
                select(LeaderboardEntryRow)
                .where(
                    LeaderboardEntryRow.entity_scope == scope.value,
                    LeaderboardEntryRow.entity_id == entity_id,
                    LeaderboardEntryRow.time_granularity == granularity.value,
                )
                .order_by(LeaderboardEntryRow.rank, LeaderboardEntryRow.student_id)
            )
            entries = [
                LeaderboardEntry(
                    entity_scope=scope,
                    entity_id=entity_id,
                    time_granularity=granularity,
                    student_id=row.student_id,
                    rank=row.rank,
                    academic_score=row.academic_score,
                    reward_points=row.reward_points,
                    attendance_rate=row.attendance_rate,
                    participation_rate=row.participation_rate,
                    improvement_score=row.improvement_score,
                    composite_score=row.composite_score,
                    rank_delta=row.rank_delta,
                    previous_rank=row.previous_rank,
                )
                for row in rows.scalars().all()
            ]
            return RankedLeaderboard(
                entity_scope=scope,
                entity_id=entity_id,
                time_granularity=granularity,
                period=Period(
                    label=header.period_label,
                    start=ensure_utc(header.period_start),
                    end=ensure_utc(header.period_end),
                ),
                computed_at=ensure_utc(header.computed_at),
                entries=entries,
            )

    async def replace(self, board: RankedLeaderboard) -> None:
        scope = board.entity_scope.value
        granularity = board.time_granularity.value
        async with session_scope(self._sessionmaker) as session:
            await session.execute(
                delete(LeaderboardEntryRow).where(
                    LeaderboardEntryRow.entity_scope == scope,
                    LeaderboardEntryRow.entity_id == board.entity_id,
                    LeaderboardEntryRow.time_granularity == granularity,
                )
            )
            await session.merge(
                LeaderboardBoardRow(
                    entity_scope=scope,
                    entity_id=board.entity_id,
                    time_granularity=granularity,
                    period_label=board.period.label,
                    period_start=board.period.start,
                    period_end=board.period.end,
                    computed_at=board.computed_at,
                )
            )
            session.add_all(
                LeaderboardEntryRow(
                    entity_scope=scope,
                    entity_id=board.entity_id,
                    time_granularity=granularity,
                    student_id=entry.student_id,
                    rank=entry.rank,
                    academic_score=entry.academic_score,
                    reward_points=entry.reward_points,
                    attendance_rate=entry.attendance_rate,
                    participation_rate=entry.participation_rate,
                    improvement_score=entry.improvement_score,
                    composite_score=entry.composite_score,
                    rank_delta=entry.rank_delta,
                    previous_rank=entry.previous_rank,
                    period_label=board.period.label,
                    period_start=board.period.start,
                    period_end=board.period.end,
                    computed_at=board.computed_at,
                )
                for entry in board.entries
            )


class SqlSnapshotRepository:
    """Append-only snapshot storage with a unique period constraint."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    @staticmethod
    def _to_model(row: LeaderboardSnapshotRow) -> LeaderboardSnapshot:
        return LeaderboardSnapshot(
            snapshot_id=row.id,
            entity_scope=EntityScope(row.entity_scope),
            entity_id=row.entity_id,
            time_granularity=TimeGranularity(row.time_granularity),
            period=Period(
                label=row.period_label,
                start=ensure_utc(row.period_start),
                end=ensure_utc(row.period_end),
            ),
            captured_at=ensure_utc(row.captured_at),
            entries=tuple(LeaderboardEntry.model_validate(entry) for entry in row.entries),
            partition_key=row.partition_key,
            status=SnapshotStatus(row.status),
        )

    @staticmethod
    def _triple(
        scope: EntityScope, entity_id: str, granularity: TimeGranularity
    ) -> Select[tuple[LeaderboardSnapshotRow]]:
        return select(LeaderboardSnapshotRow).where(
            LeaderboardSnapshotRow.entity_scope == scope.value,
            LeaderboardSnapshotRow.entity_id == entity_id,
            LeaderboardSnapshotRow.time_granularity == granularity.value,
        )

    async def find(
        self,
        scope: EntityScope,
        entity_id: str,
        granularity: TimeGranularity,
        period_label: str,
    ) -> LeaderboardSnapshot | None:
        stmt = self._triple(scope, entity_id, granularity).where(
            LeaderboardSnapshotRow.period_label == period_label
        )
        async with session_scope(self._sessionmaker) as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            return self._to_model(row) if row is not None else None

    async def add(self, snapshot: LeaderboardSnapshot) -> LeaderboardSnapshot:
        row = LeaderboardSnapshotRow(
            id=snapshot.snapshot_id,
            entity_scope=snapshot.entity_scope.value,
            entity_id=snapshot.entity_id,
            time_granularity=snapshot.time_granularity.value,
            period_label=snapshot.period.label,
            period_start=snapshot.period.start,
            period_end=snapshot.period.end,
            captured_at=snapshot.captured_at,
            entries=[to_jsonable_python(entry) for entry in snapshot.entries],
            partition_key=snapshot.partition_key,
            status=snapshot.status.value,
        )
        async with session_scope(self._sessionmaker) as session:
            session.add(row)
            try:
                await session.flush()
                return snapshot
            except IntegrityError:
                await session.rollback()
                logger.info(
                    "Snapshot for %s:%s (%s) %s already stored",
                    snapshot.entity_scope.value,
                    snapshot.entity_id,
                    snapshot.time_granularity.value,
                    snapshot.period.label,
                )

        existing = await self.find(
            snapshot.entity_scope,
            snapshot.entity_id,
            snapshot.time_granularity,
            snapshot.period.label,
        )
        if existing is None:
            raise DataIntegrityError(
                "Snapshot insert conflicted but no stored snapshot was found",
                details={"period_label": snapshot.period.label},
            )
        return existing

    async def latest(
        self,
        scope: EntityScope,
        entity_id: str,
        granularity: TimeGranularity,
        *,
        exclude_label: str | None = None,
    ) -> LeaderboardSnapshot | None:
        stmt = self._triple(scope, entity_id, granularity).where(
            LeaderboardSnapshotRow.status == SnapshotStatus.ACTIVE.value
        )
        if exclude_label is not None:
            stmt = stmt.where(LeaderboardSnapshotRow.period_label != exclude_label)
        stmt = stmt.order_by(LeaderboardSnapshotRow.captured_at.desc()).limit(1)

        async with session_scope(self._sessionmaker) as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            return self._to_model(row) if row is not None else None

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
        stmt = self._triple(scope, entity_id, granularity).where(
            LeaderboardSnapshotRow.status == SnapshotStatus.ACTIVE.value
        )
        stmt = _filter_window(stmt, LeaderboardSnapshotRow.period_start, start, end)
        stmt = (
            stmt.order_by(
                LeaderboardSnapshotRow.period_start,
                LeaderboardSnapshotRow.period_end,
                LeaderboardSnapshotRow.period_label,
            )
            .offset(offset)
            .limit(limit)
        )

        async with session_scope(self._sessionmaker) as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [self._to_model(row) for row in rows]

    async def archive_before(self, granularity: TimeGranularity, cutoff: datetime) -> int:
        stmt = (
            update(LeaderboardSnapshotRow)
            .where(
                LeaderboardSnapshotRow.time_granularity == granularity.value,
                LeaderboardSnapshotRow.status == SnapshotStatus.ACTIVE.value,
                LeaderboardSnapshotRow.captured_at < cutoff,
            )
            .values(status=SnapshotStatus.ARCHIVED.value)
        )
        async with session_scope(self._sessionmaker) as session:
            result = await session.execute(stmt)
            return result.rowcount or 0
