# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""API v1 routes package.

This package contains all v1 API endpoint definitions.
Each module provides a FastAPI router for a specific domain.

Modules:
    grades: Grade and enrollment change notifications.
    leaderboards: Leaderboard pages, positions, trends and class metrics.
    mastery: Topic mastery reads.
"""

from fastapi import APIRouter

from src.api.v1 import grades, leaderboards, mastery

# Create the main v1 router
router = APIRouter(prefix="/api/v1")

# Include domain routers
router.include_router(grades.router, tags=["Grades"])
router.include_router(leaderboards.router, prefix="/leaderboards", tags=["Leaderboards"])
router.include_router(mastery.router, prefix="/mastery", tags=["Mastery"])

__all__ = ["router"]
