# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Time bucketing for leaderboards and snapshots.

Buckets are reproducible for a fixed ``now``: history starts at midnight
UTC of ``now``'s day minus N months, so every call made on the same day
produces the same bucket boundaries and labels.

- WEEKLY: 7-day buckets walked forward from the history start. A bucket
  whose end lies after ``now`` is dropped, so the active weekly window is
  the most recent complete week.
- MONTHLY: one bucket per calendar month from the history start; the
  first is clipped to the history start and the last ends at ``now``.
- TERM: one bucket covering the last 4 months up to ``now``.
- ALL_TIME: one bucket covering the last year up to ``now``.

Example:
    >>> periods = resolve_periods(TimeGranularity.MONTHLY, now, history_months=3)
    >>> active_period(TimeGranularity.TERM, now).label
    '2026-06-17/2026-10-17'
"""

from datetime import datetime, timedelta

from src.domains.leaderboard.models import Period, TimeGranularity
from src.utils.datetime import add_months, ensure_utc, start_of_day, start_of_month, subtract_months

WEEK = timedelta(days=7)
TERM_MONTHS = 4
ALL_TIME_MONTHS = 12
DEFAULT_HISTORY_MONTHS = 3


def resolve_periods(
    granularity: TimeGranularity,
    now: datetime,
    history_months: int = DEFAULT_HISTORY_MONTHS,
) -> list[Period]:
    """Bucket the history window for a granularity.

    Args:
        granularity: Period resolution.
        now: Reference time.
        history_months: Months of history walked for WEEKLY and MONTHLY.

    Returns:
        Periods in ascending order.
    """
    now = ensure_utc(now)
    anchor = start_of_day(now)

    if granularity is TimeGranularity.WEEKLY:
        periods: list[Period] = []
        cursor = subtract_months(anchor, history_months)
        while cursor + WEEK <= now:
            periods.append(Period.between(cursor, cursor + WEEK))
            cursor += WEEK
        return periods

    if granularity is TimeGranularity.MONTHLY:
        periods = []
        cursor = subtract_months(anchor, history_months)
        while cursor < now:
            end = min(add_months(start_of_month(cursor), 1), now)
            periods.append(Period.between(cursor, end))
            cursor = end
        return periods

    if granularity is TimeGranularity.TERM:
        return [Period.between(subtract_months(anchor, TERM_MONTHS), now)]

    return [Period.between(subtract_months(anchor, ALL_TIME_MONTHS), now)]


def active_period(
    granularity: TimeGranularity,
    now: datetime,
    history_months: int = DEFAULT_HISTORY_MONTHS,
) -> Period:
    """The window a leaderboard is currently computed over.

    Args:
        granularity: Period resolution.
        now: Reference time.
        history_months: Months of history walked for WEEKLY and MONTHLY.

    Returns:
        The last bucket produced by resolve_periods().
    """
    periods = resolve_periods(granularity, now, history_months)
    if periods:
        return periods[-1]
    # Only reachable for WEEKLY with less than a week of history
    now = ensure_utc(now)
    return Period.between(now - WEEK, now)


def split_halves(period: Period) -> tuple[Period, Period]:
    """Split a period at its midpoint.

    Args:
        period: Period to split.

    Returns:
        The first and second halves, both half-open.
    """
    middle = period.midpoint
    first = Period(label=f"{period.label}#1", start=period.start, end=middle)
    second = Period(label=f"{period.label}#2", start=middle, end=period.end)
    return first, second
