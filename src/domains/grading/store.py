# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Score store contract.

The score store is the durable source of raw facts. It belongs to the
surrounding platform; the aggregators only read from it. Every filter is
optional: ``None`` means "do not filter on this field", while an empty
sequence matches nothing.

Time filters are half-open: ``start <= t < end``.

Implementations raise TransientStoreError when the store is unavailable.
"""

from collections.abc import Sequence
from datetime import datetime
from typing import Protocol

from src.domains.grading.models import (
    ActivityRecord,
    AttendanceRecord,
    GradeRecord,
    RewardRecord,
    SubmissionRecord,
)


class ScoreStore(Protocol):
    """Read interface over grades, attendance, submissions and rewards."""

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
        """List grades matching every given filter."""
        ...

    async def list_attendance(
        self,
        *,
        student_ids: Sequence[str] | None = None,
        class_ids: Sequence[str] | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[AttendanceRecord]:
        """List attendance records matching every given filter."""
        ...

    async def list_submissions(
        self,
        *,
        student_ids: Sequence[str] | None = None,
        class_ids: Sequence[str] | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[SubmissionRecord]:
        """List submissions matching every given filter."""
        ...

    async def list_activities(
        self,
        *,
        class_ids: Sequence[str] | None = None,
        subject_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[ActivityRecord]:
        """List activities created in the window."""
        ...

    async def list_rewards(
        self,
        *,
        student_ids: Sequence[str] | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[RewardRecord]:
        """List reward point transactions matching every given filter."""
        ...
