# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Topic mastery domain.

Usage:
    from src.domains.mastery import TopicMasteryAggregator

    aggregator = TopicMasteryAggregator(score_store, repository)
    mastery = await aggregator.refresh(student_id, class_id, topic_id)
"""

from src.domains.mastery.aggregator import (
    LevelAttempt,
    TopicMasteryAggregator,
    extract_attempts,
    recency_weights,
    weighted_level_score,
)
from src.domains.mastery.models import MasteryRepository, TopicMastery

__all__ = [
    "LevelAttempt",
    "MasteryRepository",
    "TopicMastery",
    "TopicMasteryAggregator",
    "extract_attempts",
    "recency_weights",
    "weighted_level_score",
]
