# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Leaderboard API endpoints.

This module provides read endpoints over the ranked leaderboards:
- GET /classes/{class_id}/metrics - Aggregated class metrics
- GET /{scope}/{entity_id} - A page of a leaderboard
- GET /{scope}/{entity_id}/students/{student_id} - A student's position
- GET /{scope}/{entity_id}/trends - Aggregates of recent snapshots
- GET /{scope}/{entity_id}/students/{student_id}/trends - A student's trend
- GET /{scope}/{entity_id}/history - Stored snapshots within a date range

``scope`` is one of class, subject, course, campus or group and
``granularity`` one of weekly, monthly, term or all_time. Unknown values
are answered with 422.

Example:
    GET /api/v1/leaderboards/class/c-1?granularity=weekly&limit=10
"""

import logging
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, status

from src.api.dependencies import PipelineDep
from src.domains.leaderboard.models import (
    ClassMetrics,
    LeaderboardEntry,
    LeaderboardPage,
    LeaderboardSnapshot,
    StudentTrendPoint,
    TrendPoint,
)

logger = logging.getLogger(__name__)

router = APIRouter()

GranularityQuery = Annotated[
    str,
    Query(description="Time granularity: weekly, monthly, term or all_time"),
]
PeriodsQuery = Annotated[
    int,
    Query(ge=1, le=120, description="Number of most recent snapshots"),
]


@router.get("/classes/{class_id}/metrics", response_model=ClassMetrics)
async def get_class_metrics(
    class_id: str,
    pipeline: PipelineDep,
    granularity: GranularityQuery = "monthly",
) -> ClassMetrics:
    """Get aggregated metrics of a class for the active period."""
    return await pipeline.get_class_metrics(class_id, granularity)


@router.get("/{scope}/{entity_id}", response_model=LeaderboardPage)
async def get_leaderboard(
    scope: str,
    entity_id: str,
    pipeline: PipelineDep,
    granularity: GranularityQuery = "monthly",
    limit: Annotated[int | None, Query(ge=1, description="Page size")] = None,
    offset: Annotated[int, Query(ge=0, description="Entries to skip")] = 0,
) -> LeaderboardPage:
    """Get a page of a leaderboard.

    Args:
        scope: Entity scope.
        entity_id: Scope entity id.
        pipeline: Grade pipeline.
        granularity: Time granularity.
        limit: Page size, capped by the configured maximum.
        offset: Number of ranked entries to skip.

    Returns:
        The page with the total number of ranked students.
    """
    return await pipeline.get_leaderboard(scope, entity_id, granularity, limit, offset)


@router.get(
    "/{scope}/{entity_id}/students/{student_id}",
    response_model=LeaderboardEntry,
)
async def get_student_position(
    scope: str,
    entity_id: str,
    student_id: str,
    pipeline: PipelineDep,
    granularity: GranularityQuery = "monthly",
) -> LeaderboardEntry:
    """Get a student's entry in a leaderboard.

    Raises:
        HTTPException: 404 if the student is not ranked there.
    """
    entry = await pipeline.get_student_position(scope, entity_id, student_id, granularity)
    if entry is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Student {student_id} is not ranked in {scope} {entity_id}",
        )
    return entry


@router.get("/{scope}/{entity_id}/trends", response_model=list[TrendPoint])
async def get_trends(
    scope: str,
    entity_id: str,
    pipeline: PipelineDep,
    granularity: GranularityQuery = "monthly",
    periods: PeriodsQuery = 6,
) -> list[TrendPoint]:
    """Get aggregates of the most recent snapshots, oldest first."""
    return await pipeline.get_trends(scope, entity_id, granularity, periods)


@router.get(
    "/{scope}/{entity_id}/students/{student_id}/trends",
    response_model=list[StudentTrendPoint],
)
async def get_student_trend(
    scope: str,
    entity_id: str,
    student_id: str,
    pipeline: PipelineDep,
    granularity: GranularityQuery = "monthly",
    periods: PeriodsQuery = 6,
) -> list[StudentTrendPoint]:
    """Get a student's rank and score across the most recent snapshots."""
    return await pipeline.get_student_trend(scope, entity_id, student_id, granularity, periods)


@router.get("/{scope}/{entity_id}/history", response_model=list[LeaderboardSnapshot])
async def get_historical_leaderboard(
    scope: str,
    entity_id: str,
    pipeline: PipelineDep,
    granularity: GranularityQuery = "monthly",
    start: Annotated[datetime | None, Query(description="Earliest period start")] = None,
    end: Annotated[datetime | None, Query(description="Exclusive bound on period start")] = None,
    limit: Annotated[int, Query(ge=1, le=100, description="Maximum snapshots")] = 10,
) -> list[LeaderboardSnapshot]:
    """Get stored snapshots of a leaderboard within a date range, newest first.

    Naive datetimes are read as UTC.
    """
    return await pipeline.get_historical_leaderboard(
        scope, entity_id, granularity, start, end, limit
    )
