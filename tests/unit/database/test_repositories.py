# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the SQL repositories with mocked sessions.

Queries are not executed; these tests cover row conversion, session
handling and error translation. Schema behavior against PostgreSQL is
covered by the integration suite.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from src.core.exceptions import DataIntegrityError, TransientStoreError
from src.domains.grading.models import CognitiveLevel
from src.domains.leaderboard.models import (
    EntityScope,
    LeaderboardSnapshot,
    Period,
    SnapshotStatus,
    TimeGranularity,
)
from src.domains.mastery.models import TopicMastery
from src.infrastructure.database.connection import (
    DatabaseError,
    get_engine,
    get_session,
    session_scope,
)
from src.infrastructure.database.models import (
    ClassRow,
    GradeRow,
    LeaderboardSnapshotRow,
    TopicMasteryRow,
)
from src.infrastructure.database.repositories import (
    SqlMasteryRepository,
    SqlScopeDirectory,
    SqlScoreStore,
    SqlSnapshotRepository,
)

CAPTURED_AT = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def session() -> MagicMock:
    """Create a mock async session."""
    session = MagicMock()
    session.get = AsyncMock(return_value=None)
    session.execute = AsyncMock()
    session.merge = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    return session


@pytest.fixture
def sessionmaker(session: MagicMock) -> MagicMock:
    """Create a sessionmaker whose sessions are the mock session."""
    maker = MagicMock()
    maker.return_value.__aenter__ = AsyncMock(return_value=session)
    maker.return_value.__aexit__ = AsyncMock(return_value=False)
    return maker


def rows_result(rows: list) -> MagicMock:
    """Build an execute() result yielding the given rows."""
    result = MagicMock()
    result.scalars.return_value.all.return_value = rows
    result.scalar_one_or_none.return_value = rows[0] if rows else None
    return result


def snapshot_row(**overrides) -> LeaderboardSnapshotRow:
    fields = {
        "id": "snap-1",
        "entity_scope": "class",
        "entity_id": "c-1",
        "time_granularity": "monthly",
        "period_label": "2026-10-01/2026-10-17",
        "period_start": datetime(2026, 10, 1),
        "period_end": datetime(2026, 10, 17),
        "captured_at": datetime(2026, 10, 17, 12, 0),
        "entries": [
            {
                "entity_scope": "class",
                "entity_id": "c-1",
                "time_granularity": "monthly",
                "student_id": "s-1",
                "rank": 1,
                "composite_score": 61.5,
            }
        ],
        "partition_key": "class_2026-10",
        "status": "active",
    }
    fields.update(overrides)
    return LeaderboardSnapshotRow(**fields)


class TestSessionScope:
    """Tests for session_scope and the module-level connection."""

    @pytest.mark.asyncio
    async def test_commits_on_success(self, sessionmaker, session) -> None:
        """Test the session is committed when the block succeeds."""
        async with session_scope(sessionmaker):
            pass

        session.commit.assert_awaited_once()
        session.rollback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_sqlalchemy_error_becomes_database_error(self, sessionmaker, session) -> None:
        """Test driver failures surface as transient store errors."""
        error = OperationalError("SELECT 1", {}, Exception("connection refused"))

        with pytest.raises(DatabaseError) as exc_info:
            async with session_scope(sessionmaker):
                raise error

        assert isinstance(exc_info.value, TransientStoreError)
        assert exc_info.value.original_error is error
        session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_other_errors_propagate_unchanged(self, sessionmaker, session) -> None:
        """Test domain errors are rolled back and re-raised as is."""
        with pytest.raises(DataIntegrityError):
            async with session_scope(sessionmaker):
                raise DataIntegrityError("missing class")

        session.rollback.assert_awaited_once()
        session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_not_initialized(self) -> None:
        """Test using the module-level connection before init fails."""
        with pytest.raises(DatabaseError):
            get_engine()

        with pytest.raises(DatabaseError):
            async with get_session():
                pass


class TestSqlScoreStore:
    """Tests for SqlScoreStore row conversion."""

    @pytest.mark.asyncio
    async def test_grades_converted_to_records(self, sessionmaker, session) -> None:
        """Test naive timestamps are read as UTC and Bloom's keys parsed."""
        session.execute.return_value = rows_result(
            [
                GradeRow(
                    student_id="s-1",
                    activity_id="a-1",
                    class_id="c-1",
                    subject_id="math",
                    topic_id="t-1",
                    cognitive_level="apply",
                    score=8.0,
                    max_score=10.0,
                    graded_at=datetime(2026, 10, 5, 9, 0),
                    blooms_level_scores={"remember": 100},
                )
            ]
        )

        grades = await SqlScoreStore(sessionmaker).list_grades(class_ids=["c-1"])

        assert len(grades) == 1
        assert grades[0].cognitive_level is CognitiveLevel.APPLY
        assert grades[0].graded_at.tzinfo is not None
        assert grades[0].blooms_level_scores == {CognitiveLevel.REMEMBER: 100.0}


class TestSqlScopeDirectory:
    """Tests for SqlScopeDirectory."""

    @pytest.mark.asyncio
    async def test_unknown_class_is_integrity_error(self, sessionmaker) -> None:
        """Test a missing class fails as a data integrity error."""
        directory = SqlScopeDirectory(sessionmaker)

        with pytest.raises(DataIntegrityError):
            await directory.resolve(EntityScope.CLASS, "c-404")
        with pytest.raises(DataIntegrityError):
            await directory.scopes_for("s-1", "c-404")

    @pytest.mark.asyncio
    async def test_scopes_for_grade(self, sessionmaker, session) -> None:
        """Test a grade feeds its class, subject, course, campus and groups."""
        session.get.return_value = ClassRow(id="c-1", course_id="k-1", campus_id="p-1")
        session.execute.return_value = rows_result(["g-1"])

        refs = await SqlScopeDirectory(sessionmaker).scopes_for("s-1", "c-1", "math")

        assert [(r.scope, r.entity_id) for r in refs] == [
            (EntityScope.CLASS, "c-1"),
            (EntityScope.SUBJECT, "math"),
            (EntityScope.COURSE, "k-1"),
            (EntityScope.CAMPUS, "p-1"),
            (EntityScope.GROUP, "g-1"),
        ]

    @pytest.mark.asyncio
    async def test_scopes_for_class(self, sessionmaker, session) -> None:
        """Test a class feeds itself, its course's subjects, course and campus."""
        session.get.return_value = ClassRow(id="c-1", course_id="k-1", campus_id="p-1")
        session.execute.return_value = rows_result(["math", "physics"])

        refs = await SqlScopeDirectory(sessionmaker).scopes_for_class("c-1")

        assert [(r.scope, r.entity_id) for r in refs] == [
            (EntityScope.CLASS, "c-1"),
            (EntityScope.SUBJECT, "math"),
            (EntityScope.SUBJECT, "physics"),
            (EntityScope.COURSE, "k-1"),
            (EntityScope.CAMPUS, "p-1"),
        ]

    @pytest.mark.asyncio
    async def test_scopes_for_unknown_class(self, sessionmaker) -> None:
        """Test an unknown class is a data integrity error."""
        with pytest.raises(DataIntegrityError):
            await SqlScopeDirectory(sessionmaker).scopes_for_class("c-404")


class TestSqlMasteryRepository:
    """Tests for SqlMasteryRepository."""

    @pytest.mark.asyncio
    async def test_get_missing(self, sessionmaker) -> None:
        """Test an unknown key returns None."""
        assert await SqlMasteryRepository(sessionmaker).get("s-1", "c-1", "t-1") is None

    @pytest.mark.asyncio
    async def test_get_converts_levels(self, sessionmaker, session) -> None:
        """Test stored level names become cognitive levels."""
        session.get.return_value = TopicMasteryRow(
            student_id="s-1",
            class_id="c-1",
            topic_id="t-1",
            per_level_score={"apply": 80.0},
            overall_score=80.0,
            attempt_count=1,
            updated_at=None,
        )

        mastery = await SqlMasteryRepository(sessionmaker).get("s-1", "c-1", "t-1")

        assert mastery.per_level_score == {CognitiveLevel.APPLY: 80.0}
        session.get.assert_awaited_once_with(TopicMasteryRow, ("s-1", "c-1", "t-1"))

    @pytest.mark.asyncio
    async def test_upsert_merges_row(self, sessionmaker, session) -> None:
        """Test upsert merges a row with level names as keys."""
        mastery = TopicMastery(
            student_id="s-1",
            class_id="c-1",
            topic_id="t-1",
            per_level_score={CognitiveLevel.REMEMBER: 100.0, CognitiveLevel.APPLY: 70.0},
            overall_score=85.0,
            attempt_count=3,
        )

        await SqlMasteryRepository(sessionmaker).upsert(mastery)

        row = session.merge.await_args.args[0]
        assert row.per_level_score == {"remember": 100.0, "apply": 70.0}
        assert row.overall_score == 85.0
        session.commit.assert_awaited_once()


class TestSqlSnapshotRepository:
    """Tests for SqlSnapshotRepository."""

    @pytest.mark.asyncio
    async def test_find_converts_row(self, sessionmaker, session) -> None:
        """Test a stored row becomes a snapshot with UTC times."""
        session.execute.return_value = rows_result([snapshot_row()])

        snapshot = await SqlSnapshotRepository(sessionmaker).find(
            EntityScope.CLASS, "c-1", TimeGranularity.MONTHLY, "2026-10-01/2026-10-17"
        )

        assert snapshot.period.start == datetime(2026, 10, 1, tzinfo=timezone.utc)
        assert snapshot.entries[0].student_id == "s-1"
        assert snapshot.status is SnapshotStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_add_conflict_returns_stored_snapshot(self, sessionmaker, session) -> None:
        """Test a concurrent capture of the same period keeps the first one."""
        session.flush.side_effect = IntegrityError("INSERT", {}, Exception("duplicate key"))
        session.execute.return_value = rows_result([snapshot_row(id="snap-first")])
        snapshot = LeaderboardSnapshot(
            snapshot_id="snap-second",
            entity_scope=EntityScope.CLASS,
            entity_id="c-1",
            time_granularity=TimeGranularity.MONTHLY,
            period=Period.between(
                datetime(2026, 10, 1, tzinfo=timezone.utc),
                datetime(2026, 10, 17, tzinfo=timezone.utc),
            ),
            captured_at=CAPTURED_AT,
            partition_key="class_2026-10",
        )

        stored = await SqlSnapshotRepository(sessionmaker).add(snapshot)

        assert stored.snapshot_id == "snap-first"
        session.rollback.assert_awaited()

    @pytest.mark.asyncio
    async def test_archive_before_returns_rowcount(self, sessionmaker, session) -> None:
        """Test archiving reports the number of updated rows."""
        session.execute.return_value = MagicMock(rowcount=4)

        archived = await SqlSnapshotRepository(sessionmaker).archive_before(
            TimeGranularity.WEEKLY, CAPTURED_AT
        )

        assert archived == 4
