# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Configuration package for GradePulse.

This package provides centralized configuration management through
Pydantic-based settings loaded from environment variables.

Example:
    >>> from src.core.config import get_settings
    >>> settings = get_settings()
    >>> print(settings.environment)
    'development'
"""

from src.core.config.settings import (
    AlertSettings,
    CacheSettings,
    DatabaseSettings,
    DispatchSettings,
    LeaderboardSettings,
    MasterySettings,
    RedisSettings,
    ScoringWeights,
    Settings,
    SnapshotSettings,
    WorkerSettings,
    clear_settings_cache,
    get_settings,
    load_settings,
)

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    "load_settings",
    "clear_settings_cache",
    # Subsettings
    "DatabaseSettings",
    "RedisSettings",
    "CacheSettings",
    "ScoringWeights",
    "LeaderboardSettings",
    "MasterySettings",
    "DispatchSettings",
    "SnapshotSettings",
    "AlertSettings",
    "WorkerSettings",
]
