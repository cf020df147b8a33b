# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Utility functions and helpers for GradePulse.

This package contains cross-cutting utilities:
- logging: Structured logging with structlog
- datetime: Timezone-aware datetime and calendar operations
"""

from src.utils.datetime import (
    add_months,
    ensure_utc,
    month_key,
    parse_iso,
    seconds_from,
    start_of_day,
    start_of_month,
    subtract_months,
    utc_now,
)
from src.utils.logging import bind_context, clear_context, setup_logging

__all__ = [
    # Logging
    "setup_logging",
    "bind_context",
    "clear_context",
    # Datetime
    "utc_now",
    "ensure_utc",
    "start_of_day",
    "start_of_month",
    "add_months",
    "subtract_months",
    "month_key",
    "seconds_from",
    "parse_iso",
]
