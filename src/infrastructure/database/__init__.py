# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Database infrastructure for the PostgreSQL score store.

This package provides the SQLAlchemy async connection, the table mappings
and the repositories implementing the pipeline's storage contracts.

Example:
    from src.infrastructure.database import (
        SqlScoreStore,
        get_sessionmaker,
        init_database,
    )

    await init_database(settings)
    store = SqlScoreStore(get_sessionmaker())
"""

from src.infrastructure.database.connection import (
    DatabaseError,
    check_database_connection,
    close_database,
    create_engine,
    create_sessionmaker,
    get_engine,
    get_session,
    get_sessionmaker,
    init_database,
    session_scope,
)
from src.infrastructure.database.models import Base
from src.infrastructure.database.repositories import (
    SqlLeaderboardRepository,
    SqlMasteryRepository,
    SqlScopeDirectory,
    SqlScoreStore,
    SqlSnapshotRepository,
)

__all__ = [
    # Connection
    "DatabaseError",
    "check_database_connection",
    "close_database",
    "create_engine",
    "create_sessionmaker",
    "get_engine",
    "get_session",
    "get_sessionmaker",
    "init_database",
    "session_scope",
    # Models
    "Base",
    # Repositories
    "SqlLeaderboardRepository",
    "SqlMasteryRepository",
    "SqlScopeDirectory",
    "SqlScoreStore",
    "SqlSnapshotRepository",
]
