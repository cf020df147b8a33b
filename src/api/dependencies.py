# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI dependency injection definitions.

Example:
    @router.get("/leaderboards/{scope}/{entity_id}")
    async def get_leaderboard(pipeline: PipelineDep, ...):
        ...
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from src.core.config.settings import Settings
from src.domains.grade_pipeline.service import GradePipeline


def get_pipeline(request: Request) -> GradePipeline:
    """Get the application's grade pipeline.

    Raises:
        HTTPException: 503 if the pipeline failed to initialize.
    """
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Grade pipeline is not available",
        )
    return pipeline


def get_app_settings(request: Request) -> Settings:
    """Get the settings the application was created with."""
    return request.app.state.settings


PipelineDep = Annotated[GradePipeline, Depends(get_pipeline)]
SettingsDep = Annotated[Settings, Depends(get_app_settings)]
