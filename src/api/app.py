# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI Application Factory.

This module provides the main application factory for the GradePulse API.
"""

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from src.api.routes import health
from src.api.v1 import router as v1_router
from src.core.config import get_settings
from src.core.config.settings import Settings
from src.core.exceptions import (
    ConfigurationError,
    DataIntegrityError,
    PipelineError,
    TransientStoreError,
)
from src.domains.grade_pipeline.service import GradePipeline
from src.infrastructure.background import (
    setup_dramatiq,
    shutdown_dramatiq,
    start_scheduler,
    stop_scheduler,
)
from src.infrastructure.bootstrap import close_pipeline, create_pipeline
from src.utils.logging import setup_logging

logger = logging.getLogger(__name__)


async def _sweep_cache_periodically(pipeline: GradePipeline, interval_seconds: int) -> None:
    """Drop expired entries of the in-process cache until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            removed = await pipeline.sweep_cache()
            if removed:
                logger.debug("Cache sweep removed %d entries", removed)
        except Exception as e:
            logger.warning("Cache sweep failed: %s", str(e))


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Handles startup and shutdown events for the application.
    Initializes and cleans up:
    - Grade pipeline (database, cache, event workers)
    - In-process cache sweeper, for the memory backend
    - Dramatiq broker
    - APScheduler for periodic tasks

    Args:
        app: The FastAPI application instance.

    Yields:
        None during application runtime.
    """
    settings: Settings = app.state.settings
    logger.info(
        "Starting GradePulse API",
        extra={"environment": settings.environment, "debug": settings.debug},
    )

    # =========================================================================
    # Startup
    # =========================================================================

    # The pipeline may be injected beforehand, e.g. by tests
    owns_pipeline = getattr(app.state, "pipeline", None) is None
    if owns_pipeline:
        try:
            app.state.pipeline = await create_pipeline(settings)
            logger.info("Grade pipeline initialized")
        except Exception as e:
            logger.warning("Failed to initialize grade pipeline: %s", str(e))
            app.state.pipeline = None

    pipeline: GradePipeline | None = app.state.pipeline
    sweeper: asyncio.Task | None = None

    if pipeline is not None:
        try:
            await pipeline.start()
            logger.info("Grade event workers started")
        except Exception as e:
            logger.warning("Failed to start grade event workers: %s", str(e))

        if settings.cache.backend == "memory":
            sweeper = asyncio.create_task(
                _sweep_cache_periodically(pipeline, settings.cache.sweep_interval_seconds),
                name="cache-sweeper",
            )

    if owns_pipeline:
        # Setup Dramatiq broker
        try:
            setup_dramatiq()
            logger.info("Dramatiq broker initialized")
        except Exception as e:
            logger.warning("Failed to setup Dramatiq: %s", str(e))

        # Start scheduler for periodic tasks
        try:
            await start_scheduler(settings)
            logger.info("Scheduler started")
        except Exception as e:
            logger.warning("Failed to start scheduler: %s", str(e))

    yield

    # =========================================================================
    # Shutdown
    # =========================================================================

    if owns_pipeline:
        # Stop scheduler first (it enqueues maintenance jobs)
        try:
            await stop_scheduler()
            logger.info("Scheduler stopped")
        except Exception as e:
            logger.warning("Error stopping scheduler: %s", str(e))

        # Shutdown Dramatiq
        try:
            shutdown_dramatiq()
            logger.info("Dramatiq broker shutdown")
        except Exception as e:
            logger.warning("Error shutting down Dramatiq: %s", str(e))

    if sweeper is not None:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper

    if pipeline is not None:
        try:
            if owns_pipeline:
                await close_pipeline(pipeline)
            else:
                await pipeline.stop()
            logger.info("Grade pipeline stopped")
        except Exception as e:
            logger.warning("Error stopping grade pipeline: %s", str(e))

    logger.info("Shutting down GradePulse API")


def _error_body(error: PipelineError) -> dict:
    return {"error": type(error).__name__, "message": error.message, "details": error.details}


async def _transient_store_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.warning("Transient store error on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=_error_body(exc),
        headers={"Retry-After": "5"},
    )


async def _data_integrity_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Data integrity error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content=_error_body(exc))


async def _configuration_error_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_error_body(exc),
    )


async def _value_error_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"error": "ValueError", "message": str(exc), "details": {}},
    )


def create_app(
    settings: Settings | None = None,
    pipeline: GradePipeline | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    This factory function creates a new FastAPI instance with all
    exception handlers, routes, and configurations applied.

    Args:
        settings: Application settings, defaults to get_settings().
        pipeline: Pre-built pipeline. When given, the lifespan starts and
            stops it but leaves database, broker and scheduler alone.

    Returns:
        Configured FastAPI application instance.
    """
    settings = settings or get_settings()
    setup_logging(settings)

    app = FastAPI(
        title="GradePulse API",
        description="Post-grade analytics: topic mastery, leaderboards and trends",
        version="1.0.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
        redirect_slashes=False,
    )

    # =========================================================================
    # State
    # =========================================================================
    app.state.settings = settings
    app.state.pipeline = pipeline

    # =========================================================================
    # Exception handlers
    # =========================================================================
    app.add_exception_handler(TransientStoreError, _transient_store_error_handler)
    app.add_exception_handler(DataIntegrityError, _data_integrity_error_handler)
    app.add_exception_handler(ConfigurationError, _configuration_error_handler)
    app.add_exception_handler(ValueError, _value_error_handler)

    # =========================================================================
    # Routes
    # =========================================================================
    app.include_router(health.router, tags=["Health"])
    app.include_router(v1_router)

    return app
