# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Health check endpoints.

This module provides health and readiness endpoints for the API.
"""

import time
import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from src.infrastructure.cache.backends import RedisCacheBackend
from src.infrastructure.database.connection import check_database_connection

logger = logging.getLogger(__name__)

router = APIRouter()

# Track server start time for uptime calculation
_server_start_time = time.time()


class ComponentHealth(BaseModel):
    """Individual component health status."""
    status: str = Field(description="Component status")
    latency_ms: float | None = Field(None, description="Response latency in ms")
    message: str | None = Field(None, description="Additional status message")


class ComponentsHealth(BaseModel):
    """All components health status."""
    database: ComponentHealth | None = None
    cache: ComponentHealth | None = None
    pipeline: ComponentHealth | None = None


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(description="Overall health status")
    version: str = Field(description="API version")
    environment: str = Field(description="Deployment environment")
    uptime_seconds: int = Field(description="Server uptime in seconds")
    checked_at: datetime = Field(description="When health was checked")
    components: ComponentsHealth = Field(default_factory=ComponentsHealth)
    stats: dict[str, Any] = Field(default_factory=dict, description="Pipeline statistics")


class ReadinessResponse(BaseModel):
    """Readiness check response model."""
    ready: bool = Field(description="Whether the service is ready")
    checks: dict[str, Any] = Field(description="Individual check results")


async def check_database() -> ComponentHealth:
    """Check PostgreSQL database connection."""
    start = time.time()
    if not await check_database_connection():
        return ComponentHealth(status="unhealthy", message="Database unreachable")
    latency = (time.time() - start) * 1000
    return ComponentHealth(status="healthy", latency_ms=round(latency, 2))


async def check_cache(request: Request) -> ComponentHealth:
    """Check the cache backend, pinging Redis when it backs the cache."""
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        return ComponentHealth(status="unhealthy", message="Pipeline not initialized")

    backend = pipeline.cache.backend
    if not isinstance(backend, RedisCacheBackend):
        return ComponentHealth(status="healthy", message="in-process")

    start = time.time()
    if not await backend.ping():
        logger.error("Redis health check failed")
        return ComponentHealth(status="unhealthy", message="Redis unreachable")
    latency = (time.time() - start) * 1000
    return ComponentHealth(status="healthy", latency_ms=round(latency, 2))


def check_pipeline(request: Request) -> ComponentHealth:
    """Check that grade events are being consumed."""
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        return ComponentHealth(status="unhealthy", message="Pipeline not initialized")
    if not pipeline.publisher.is_running:
        return ComponentHealth(status="degraded", message="Event workers not running")
    return ComponentHealth(status="healthy")


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Check if the API is healthy with component details.

    Returns:
        HealthResponse with detailed status.
    """
    settings = request.app.state.settings
    now = datetime.now(timezone.utc)
    uptime = int(time.time() - _server_start_time)

    db_health = await check_database()
    cache_health = await check_cache(request)
    pipeline_health = check_pipeline(request)

    component_statuses = [db_health.status, cache_health.status, pipeline_health.status]
    if all(s == "healthy" for s in component_statuses):
        overall_status = "healthy"
    elif any(s == "unhealthy" for s in component_statuses):
        overall_status = "unhealthy"
    else:
        overall_status = "degraded"

    pipeline = getattr(request.app.state, "pipeline", None)
    return HealthResponse(
        status=overall_status,
        version="1.0.0",
        environment=settings.environment,
        uptime_seconds=uptime,
        checked_at=now,
        components=ComponentsHealth(
            database=db_health,
            cache=cache_health,
            pipeline=pipeline_health,
        ),
        stats=pipeline.get_stats() if pipeline is not None else {},
    )


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check(request: Request) -> ReadinessResponse:
    """Check if the API is ready to accept traffic.

    Returns:
        ReadinessResponse with individual check results.
    """
    checks: dict[str, Any] = {}
    all_ready = True

    db_health = await check_database()
    checks["database"] = {"status": db_health.status, "latency_ms": db_health.latency_ms}
    if db_health.status != "healthy":
        all_ready = False

    cache_health = await check_cache(request)
    checks["cache"] = {"status": cache_health.status, "latency_ms": cache_health.latency_ms}
    if cache_health.status != "healthy":
        all_ready = False

    return ReadinessResponse(ready=all_ready, checks=checks)
