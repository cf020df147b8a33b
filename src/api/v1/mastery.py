# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Topic mastery endpoints."""

from fastapi import APIRouter

from src.api.dependencies import PipelineDep
from src.domains.mastery.models import TopicMastery

router = APIRouter()


@router.get("/{student_id}/{class_id}/{topic_id}", response_model=TopicMastery)
async def get_topic_mastery(
    student_id: str,
    class_id: str,
    topic_id: str,
    pipeline: PipelineDep,
) -> TopicMastery:
    """Get a student's mastery of a topic, per cognitive level.

    A student without grades on the topic gets an empty mastery with an
    overall score of 0.
    """
    return await pipeline.get_topic_mastery(student_id, class_id, topic_id)
