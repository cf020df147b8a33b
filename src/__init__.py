"""GradePulse Backend.

Post-grade event pipeline and leaderboard/mastery aggregation engine
for school-management platforms.

Copyright (C) 2025 Global Digital Labs (gdlabs.io)
SPDX-License-Identifier: LGPL-3.0-or-later
"""

__version__ = "1.0.0"
