# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Domain services layer for GradePulse.

Domains:
    grading: Grade events and the raw facts the aggregators read.
    mastery: Per topic, per cognitive level mastery aggregation.
    leaderboard: Ranked leaderboards, snapshots and trends.
    grade_pipeline: Event handlers and the pipeline facade.
"""
