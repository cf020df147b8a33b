# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background processing middleware for GradePulse.

This module provides custom Dramatiq middleware for:
- Log context binding per processed message
"""

from src.infrastructure.background.middleware.context import LogContextMiddleware

__all__ = [
    "LogContextMiddleware",
]
