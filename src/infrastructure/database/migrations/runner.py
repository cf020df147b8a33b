# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Database migration runner.

Applies the pipeline's Alembic revisions programmatically, without the
alembic CLI, so the API and workers can bring the schema up to date at
startup.

Example:
    from src.infrastructure.database.migrations.runner import run_migrations

    applied = await run_migrations(settings.database.url)
"""

import importlib
import logging
from typing import Callable

from sqlalchemy import Connection, text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

logger = logging.getLogger(__name__)

# Revisions in order (must be maintained manually)
MIGRATIONS = [
    "001_pipeline_tables",
]

_VERSIONS_PACKAGE = "src.infrastructure.database.migrations.versions"


async def run_migrations(
    db_url: str,
    target_revision: str | None = None,
) -> list[str]:
    """Run pending migrations.

    Args:
        db_url: Database connection URL (asyncpg format).
        target_revision: Optional revision to stop at. If None, runs all
            pending migrations.

    Returns:
        List of applied revision IDs.
    """
    engine = create_async_engine(db_url, echo=False)

    try:
        await _ensure_version_table(engine)

        current_version = await _get_current_version(engine)
        logger.info("Current migration version: %s", current_version or "None")

        pending = _get_pending_migrations(current_version, target_revision)
        if not pending:
            logger.info("No pending migrations")
            return []

        logger.info("Applying %d migrations: %s", len(pending), ", ".join(pending))

        applied = []
        for revision in pending:
            await _apply_migration(engine, revision)
            applied.append(revision)
            logger.info("Applied migration: %s", revision)
        return applied

    finally:
        await engine.dispose()


async def _ensure_version_table(engine: AsyncEngine) -> None:
    """Create alembic_version table if not exists."""
    async with engine.begin() as conn:
        await conn.execute(
            text("""
                CREATE TABLE IF NOT EXISTS alembic_version (
                    version_num VARCHAR(128) NOT NULL,
                    CONSTRAINT alembic_version_pkc PRIMARY KEY (version_num)
                )
            """)
        )


async def _get_current_version(engine: AsyncEngine) -> str | None:
    """Get current migration version from database."""
    async with engine.connect() as conn:
        result = await conn.execute(text("SELECT version_num FROM alembic_version LIMIT 1"))
        row = result.fetchone()
        return row[0] if row else None


def _get_pending_migrations(
    current_version: str | None,
    target_revision: str | None = None,
) -> list[str]:
    """Get the revisions between the current and the target version.

    Args:
        current_version: Current database version.
        target_revision: Target revision to migrate to.

    Returns:
        List of revision IDs to apply in order.
    """
    if current_version is None:
        start_idx = 0
    else:
        try:
            start_idx = MIGRATIONS.index(current_version) + 1
        except ValueError:
            logger.warning("Current version %s not in known migrations list", current_version)
            return []

    if target_revision:
        try:
            end_idx = MIGRATIONS.index(target_revision) + 1
        except ValueError:
            logger.warning("Target revision %s not found", target_revision)
            return []
    else:
        end_idx = len(MIGRATIONS)

    return MIGRATIONS[start_idx:end_idx]


async def _apply_migration(engine: AsyncEngine, revision: str) -> None:
    """Apply a single revision and record it as the current version.

    Raises:
        ValueError: If the revision module has no upgrade() function.
    """
    module = importlib.import_module(f"{_VERSIONS_PACKAGE}.{revision}")
    upgrade_fn: Callable[[], None] | None = getattr(module, "upgrade", None)
    if upgrade_fn is None:
        raise ValueError(f"Migration {revision} has no upgrade() function")

    async with engine.begin() as conn:
        await conn.run_sync(_run_upgrade_sync, upgrade_fn)
        await conn.execute(text("DELETE FROM alembic_version"))
        await conn.execute(
            text("INSERT INTO alembic_version (version_num) VALUES (:version)"),
            {"version": revision},
        )


def _run_upgrade_sync(connection: Connection, upgrade_fn: Callable[[], None]) -> None:
    """Run an upgrade function with alembic operations bound to the connection."""
    from alembic.operations import Operations
    from alembic.runtime.migration import MigrationContext

    context = MigrationContext.configure(connection)
    with context.begin_transaction():
        with Operations.context(context):
            upgrade_fn()

