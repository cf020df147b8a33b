# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Grade notification endpoints.

The grading platform calls these after its own writes have committed:
- POST /grades/events - A grade was committed
- POST /enrollments/events - A class enrollment changed

Both return 202 as soon as affected cached reads are invalidated; derived
state is recomputed in the background.

Example:
    POST /api/v1/grades/events
    {"student_id": "s-1", "activity_id": "a-1", "class_id": "c-1", ...}
"""

import logging

from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from src.api.dependencies import PipelineDep
from src.domains.grading.models import GradeEvent

logger = logging.getLogger(__name__)

router = APIRouter()


class EventAccepted(BaseModel):
    """Acknowledgement of an accepted notification."""

    accepted: bool = Field(default=True, description="Whether the event was queued")
    event_id: str | None = Field(default=None, description="Correlation id for logs")


class EnrollmentChangedRequest(BaseModel):
    """An enrollment was added, withdrawn or transferred."""

    class_id: str = Field(min_length=1, description="Class whose roster changed")
    student_id: str | None = Field(default=None, description="Affected student, if known")


@router.post(
    "/grades/events",
    response_model=EventAccepted,
    status_code=status.HTTP_202_ACCEPTED,
)
async def grade_committed(event: GradeEvent, pipeline: PipelineDep) -> EventAccepted:
    """Notify the pipeline of a committed grade.

    Args:
        event: The committed grade.
        pipeline: Grade pipeline.

    Returns:
        The event id the pipeline logs under.
    """
    await pipeline.on_grade_committed(event)
    return EventAccepted(event_id=event.event_id)


@router.post(
    "/enrollments/events",
    response_model=EventAccepted,
    status_code=status.HTTP_202_ACCEPTED,
)
async def enrollment_changed(
    request: EnrollmentChangedRequest,
    pipeline: PipelineDep,
) -> EventAccepted:
    """Notify the pipeline of an enrollment change."""
    await pipeline.on_enrollment_changed(request.class_id, request.student_id)
    return EventAccepted()
