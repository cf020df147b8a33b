# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

This module provides fixtures used across all test types:
- Unit tests over pure scoring, bucketing and mastery functions
- Pipeline tests wired over in-memory collaborators
- API tests through the FastAPI test client
"""

import os

import pytest

# Actors are declared at import time; keep them off Redis in tests
os.environ.setdefault("DRAMATIQ_TEST_MODE", "true")

from src.core.config.settings import Settings, clear_settings_cache  # noqa: E402
from src.domains.grade_pipeline.service import GradePipeline  # noqa: E402
from src.infrastructure.cache.backends import InMemoryCacheBackend  # noqa: E402
from src.infrastructure.cache.layer import CacheLayer  # noqa: E402
from tests.fakes import (  # noqa: E402
    NOW,
    FakeClass,
    FakeScopeDirectory,
    FakeScoreStore,
    InMemoryLeaderboardRepository,
    InMemoryMasteryRepository,
    InMemorySnapshotRepository,
)


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test (requires services)"
    )


# =============================================================================
# Settings Fixtures
# =============================================================================


@pytest.fixture
def settings() -> Settings:
    """Provide development settings with the in-process cache."""
    clear_settings_cache()
    return Settings(environment="development", debug=True, log_level="DEBUG")


@pytest.fixture
def clock():
    """Provide a clock frozen at NOW."""
    return lambda: NOW


# =============================================================================
# Collaborator Fixtures
# =============================================================================


@pytest.fixture
def score_store() -> FakeScoreStore:
    """Provide an empty in-memory score store."""
    return FakeScoreStore()


@pytest.fixture
def directory() -> FakeScopeDirectory:
    """Provide a directory with one campus, one course and two classes.

    - c-1 (course k-1, campus p-1): s-1, s-2, s-3
    - c-2 (course k-1, campus p-1): s-4
    - subject math belongs to course k-1
    - group g-1: s-1, s-4
    """
    return FakeScopeDirectory(
        classes={
            "c-1": FakeClass(course_id="k-1", campus_id="p-1", students=["s-1", "s-2", "s-3"]),
            "c-2": FakeClass(course_id="k-1", campus_id="p-1", students=["s-4"]),
        },
        subjects={"math": "k-1"},
        groups={"g-1": ["s-1", "s-4"]},
    )


@pytest.fixture
def mastery_repository() -> InMemoryMasteryRepository:
    """Provide an empty mastery repository."""
    return InMemoryMasteryRepository()


@pytest.fixture
def leaderboard_repository() -> InMemoryLeaderboardRepository:
    """Provide an empty leaderboard repository."""
    return InMemoryLeaderboardRepository()


@pytest.fixture
def snapshot_repository() -> InMemorySnapshotRepository:
    """Provide an empty snapshot repository."""
    return InMemorySnapshotRepository()


@pytest.fixture
def cache(clock) -> CacheLayer:
    """Provide a cache over the in-process backend."""
    return CacheLayer(InMemoryCacheBackend(clock=clock), stale_ttl_seconds=3600)


@pytest.fixture
def pipeline(
    settings,
    score_store,
    directory,
    mastery_repository,
    leaderboard_repository,
    snapshot_repository,
    cache,
    clock,
) -> GradePipeline:
    """Provide a pipeline wired over the in-memory collaborators."""
    return GradePipeline(
        settings,
        score_store=score_store,
        directory=directory,
        mastery_repository=mastery_repository,
        leaderboard_repository=leaderboard_repository,
        snapshot_repository=snapshot_repository,
        cache=cache,
        clock=clock,
    )
