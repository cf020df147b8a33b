# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Topic mastery models."""

from datetime import datetime
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field

from src.domains.grading.models import CognitiveLevel


class TopicMastery(BaseModel):
    """A student's mastery of one topic, per cognitive level.

    ``overall_score`` is always the mean of the levels present in
    ``per_level_score``; untested levels are absent rather than zero.

    Attributes:
        student_id: Student the mastery belongs to.
        class_id: Class the grades were recorded in.
        topic_id: Topic the grades cover.
        per_level_score: Score per cognitive level, 0..100.
        overall_score: Mean of the present level scores, 0 when empty.
        attempt_count: Number of graded attempts contributing.
        updated_at: graded_at of the newest contributing grade.
    """

    model_config = ConfigDict(frozen=True)

    student_id: str
    class_id: str
    topic_id: str
    per_level_score: dict[CognitiveLevel, float] = Field(default_factory=dict)
    overall_score: float = 0.0
    attempt_count: int = 0
    updated_at: datetime | None = None


class MasteryRepository(Protocol):
    """Storage for TopicMastery rows keyed by (student, class, topic)."""

    async def get(self, student_id: str, class_id: str, topic_id: str) -> TopicMastery | None:
        """Return the stored row, if any."""
        ...

    async def upsert(self, mastery: TopicMastery) -> None:
        """Replace the stored row for the mastery's key."""
        ...
