# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Create the tables owned by the grade pipeline.

Revision ID: 001_pipeline_tables
Revises: None
Create Date: 2025-06-02

This migration adds:
- topic_mastery: per student, class and topic mastery rows
- leaderboards / leaderboard_entries: current ranked entries per
  (scope, entity, granularity)
- leaderboard_snapshots: write-once captures, unique per period
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001_pipeline_tables"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create pipeline tables."""
    op.create_table(
        "topic_mastery",
        sa.Column("student_id", sa.String(64), primary_key=True),
        sa.Column("class_id", sa.String(64), primary_key=True),
        sa.Column("topic_id", sa.String(64), primary_key=True),
        sa.Column("per_level_score", sa.JSON, nullable=False),
        sa.Column("overall_score", sa.Float, nullable=False, server_default="0"),
        sa.Column("attempt_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "leaderboards",
        sa.Column("entity_scope", sa.String(16), primary_key=True),
        sa.Column("entity_id", sa.String(64), primary_key=True),
        sa.Column("time_granularity", sa.String(16), primary_key=True),
        sa.Column("period_label", sa.String(32), nullable=False),
        sa.Column("period_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("period_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("computed_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "leaderboard_entries",
        sa.Column("entity_scope", sa.String(16), primary_key=True),
        sa.Column("entity_id", sa.String(64), primary_key=True),
        sa.Column("time_granularity", sa.String(16), primary_key=True),
        sa.Column("student_id", sa.String(64), primary_key=True),
        sa.Column("rank", sa.Integer, nullable=False),
        sa.Column("academic_score", sa.Float, nullable=False, server_default="0"),
        sa.Column("reward_points", sa.Integer, nullable=False, server_default="0"),
        sa.Column("attendance_rate", sa.Float, nullable=False, server_default="0"),
        sa.Column("participation_rate", sa.Float, nullable=False, server_default="0"),
        sa.Column("improvement_score", sa.Float, nullable=False, server_default="0"),
        sa.Column("composite_score", sa.Float, nullable=False, server_default="0"),
        sa.Column("rank_delta", sa.Integer, nullable=False, server_default="0"),
        sa.Column("previous_rank", sa.Integer, nullable=True),
        sa.Column("period_label", sa.String(32), nullable=False),
        sa.Column("period_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("period_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("computed_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "idx_leaderboard_entries_rank",
        "leaderboard_entries",
        ["entity_scope", "entity_id", "time_granularity", "rank"],
    )

    op.create_table(
        "leaderboard_snapshots",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("entity_scope", sa.String(16), nullable=False),
        sa.Column("entity_id", sa.String(64), nullable=False),
        sa.Column("time_granularity", sa.String(16), nullable=False),
        sa.Column("period_label", sa.String(32), nullable=False),
        sa.Column("period_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("period_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("captured_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("entries", sa.JSON, nullable=False),
        sa.Column("partition_key", sa.String(64), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.UniqueConstraint(
            "entity_scope",
            "entity_id",
            "time_granularity",
            "period_label",
            name="uq_leaderboard_snapshots_period",
        ),
    )
    op.create_index(
        "idx_leaderboard_snapshots_history",
        "leaderboard_snapshots",
        ["entity_scope", "entity_id", "time_granularity", "period_start"],
    )
    op.create_index(
        "idx_leaderboard_snapshots_partition",
        "leaderboard_snapshots",
        ["partition_key"],
    )


def downgrade() -> None:
    """Drop pipeline tables."""
    op.drop_table("leaderboard_snapshots")
    op.drop_table("leaderboard_entries")
    op.drop_table("leaderboards")
    op.drop_table("topic_mastery")
