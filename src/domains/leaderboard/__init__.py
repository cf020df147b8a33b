# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Leaderboard domain.

This package ranks students within entity scopes over time windows and
keeps snapshots for trend reads.

Components:
- LeaderboardAggregationEngine: metrics, composite score, ranking
- SnapshotStore: write-once periodic captures and history
- LeaderboardService: cached reads (pages, positions, trends, metrics)
"""

from src.domains.leaderboard.engine import LeaderboardAggregationEngine
from src.domains.leaderboard.models import (
    ClassMetrics,
    EntityScope,
    LeaderboardEntry,
    LeaderboardPage,
    LeaderboardSnapshot,
    Period,
    RankedLeaderboard,
    ScopeMembership,
    ScopeRef,
    SnapshotStatus,
    StudentTrendPoint,
    TimeGranularity,
    TopPerformer,
    TrendPoint,
)
from src.domains.leaderboard.periods import active_period, resolve_periods, split_halves
from src.domains.leaderboard.repositories import LeaderboardRepository, SnapshotRepository
from src.domains.leaderboard.scope import ScopeDirectory
from src.domains.leaderboard.service import LeaderboardService
from src.domains.leaderboard.snapshots import SnapshotHistory, SnapshotStore

__all__ = [
    # Engine and services
    "LeaderboardAggregationEngine",
    "LeaderboardService",
    "SnapshotStore",
    "SnapshotHistory",
    # Contracts
    "LeaderboardRepository",
    "SnapshotRepository",
    "ScopeDirectory",
    # Models
    "ClassMetrics",
    "EntityScope",
    "LeaderboardEntry",
    "LeaderboardPage",
    "LeaderboardSnapshot",
    "Period",
    "RankedLeaderboard",
    "ScopeMembership",
    "ScopeRef",
    "SnapshotStatus",
    "StudentTrendPoint",
    "TimeGranularity",
    "TopPerformer",
    "TrendPoint",
    # Time bucketing
    "active_period",
    "resolve_periods",
    "split_halves",
]
