# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Process-level wiring of the grade pipeline.

The API lifespan and the background workers both build their pipeline
here, so they share the same cache backend selection and repositories.

Example:
    pipeline = await create_pipeline(settings)
    await pipeline.start()
    ...
    await close_pipeline(pipeline)
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.config.settings import Settings
from src.domains.grade_pipeline.service import GradePipeline
from src.infrastructure.cache.backends import (
    CacheBackend,
    InMemoryCacheBackend,
    RedisCacheBackend,
)
from src.infrastructure.cache.layer import CacheLayer
from src.infrastructure.cache.redis_client import RedisClient
from src.infrastructure.database.connection import (
    close_database,
    get_sessionmaker,
    init_database,
)
from src.infrastructure.database.migrations.runner import run_migrations
from src.infrastructure.database.repositories import (
    SqlLeaderboardRepository,
    SqlMasteryRepository,
    SqlScopeDirectory,
    SqlScoreStore,
    SqlSnapshotRepository,
)

logger = logging.getLogger(__name__)


async def create_cache_backend(settings: Settings) -> CacheBackend:
    """Build the cache backend selected by ``CACHE_BACKEND``.

    Args:
        settings: Application settings.

    Returns:
        A connected cache backend.
    """
    if settings.cache.backend == "redis":
        client = RedisClient(settings, namespace=settings.cache.namespace)
        await client.connect()
        logger.info("Using Redis cache backend")
        return RedisCacheBackend(client)

    logger.info("Using in-process cache backend")
    return InMemoryCacheBackend()


async def build_pipeline(
    settings: Settings,
    sessionmaker: async_sessionmaker[AsyncSession],
) -> GradePipeline:
    """Build a GradePipeline over SQL repositories.

    The returned pipeline is not started.

    Args:
        settings: Application settings.
        sessionmaker: Session factory of the score store.

    Returns:
        The wired pipeline.
    """
    backend = await create_cache_backend(settings)
    cache = CacheLayer(backend, stale_ttl_seconds=settings.cache.stale_ttl_seconds)

    pipeline = GradePipeline(
        settings,
        score_store=SqlScoreStore(sessionmaker),
        directory=SqlScopeDirectory(sessionmaker),
        mastery_repository=SqlMasteryRepository(sessionmaker),
        leaderboard_repository=SqlLeaderboardRepository(sessionmaker),
        snapshot_repository=SqlSnapshotRepository(sessionmaker),
        cache=cache,
    )
    logger.info(
        "Grade pipeline created (granularities: %s)",
        ", ".join(g.value for g in pipeline.granularities),
    )
    return pipeline


async def create_pipeline(settings: Settings) -> GradePipeline:
    """Initialize the module-level database connection and build a pipeline.

    Used by the API process, which owns a single event loop. Pending
    pipeline migrations are applied first when ``DB_RUN_MIGRATIONS`` is set.

    Args:
        settings: Application settings.

    Returns:
        The wired, not yet started, pipeline.
    """
    if settings.database.run_migrations:
        applied = await run_migrations(settings.database.url)
        if applied:
            logger.info("Applied migrations: %s", ", ".join(applied))
    await init_database(settings)
    return await build_pipeline(settings, get_sessionmaker())


async def close_pipeline(pipeline: GradePipeline) -> None:
    """Stop the pipeline and release its connections."""
    await pipeline.stop()
    await pipeline.cache.close()
    await close_database()
