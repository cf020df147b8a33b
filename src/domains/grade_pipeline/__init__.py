# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Post-grade pipeline.

Wires the publisher and dispatcher to the aggregators and exposes the
operations the platform calls after a grade is committed and when it
reads leaderboards or mastery.
"""

from src.domains.grade_pipeline.handlers import (
    AlertType,
    GradeActivityObserver,
    LeaderboardRefreshHandler,
    MasteryRefreshHandler,
    PerformanceAlert,
    evaluate_alerts,
    refresh_scopes,
)
from src.domains.grade_pipeline.service import GradePipeline

__all__ = [
    "GradePipeline",
    "AlertType",
    "GradeActivityObserver",
    "LeaderboardRefreshHandler",
    "MasteryRefreshHandler",
    "PerformanceAlert",
    "evaluate_alerts",
    "refresh_scopes",
]
