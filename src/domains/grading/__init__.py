# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Grading domain: the GradeEvent and the raw facts it is derived from."""

from src.domains.grading.models import (
    ActivityRecord,
    AttendanceRecord,
    AttendanceStatus,
    CognitiveLevel,
    GradeEvent,
    GradeRecord,
    GradingType,
    RewardRecord,
    SubmissionRecord,
)
from src.domains.grading.store import ScoreStore

__all__ = [
    "ActivityRecord",
    "AttendanceRecord",
    "AttendanceStatus",
    "CognitiveLevel",
    "GradeEvent",
    "GradeRecord",
    "GradingType",
    "RewardRecord",
    "ScoreStore",
    "SubmissionRecord",
]
