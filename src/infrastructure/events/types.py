# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Centralized handler name definitions for GradePulse.

Using constants instead of string literals provides:
- Single source of truth for handler names
- Stable keys for dispatcher statistics and log filtering
"""


class HandlerNames:
    """Names under which grade event handlers are registered."""

    TOPIC_MASTERY = "topic_mastery"
    LEADERBOARD = "leaderboard"
    ACTIVITY = "activity"
