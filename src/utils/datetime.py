# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""DateTime utilities for GradePulse.

This module provides standardized datetime operations to ensure consistency
across the entire codebase. All datetime operations should use these utilities.

Design Decisions:
-----------------
1. All timestamps are stored in UTC (PostgreSQL TIMESTAMPTZ)
2. All Python datetimes are timezone-aware (with timezone.utc)
3. Period arithmetic is calendar based: subtracting a month from 31 March
   lands on the last day of February, never on 3 March

Usage:
------
    from src.utils.datetime import utc_now, subtract_months

    # For current time
    now = utc_now()

    # Three months of history
    anchor = subtract_months(start_of_day(now), 3)
"""

import calendar
from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Timezone-aware datetime representing current UTC time.

    Example:
        >>> now = utc_now()
        >>> now.tzinfo
        datetime.timezone.utc
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Ensure a datetime is timezone-aware UTC.

    Args:
        dt: A datetime object (naive or aware) or None.

    Returns:
        Timezone-aware UTC datetime or None.

    Note:
        - If dt is None, returns None
        - If dt is naive, assumes UTC and adds tzinfo
        - If dt is aware, converts to UTC
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        # Naive datetime - assume UTC
        return dt.replace(tzinfo=timezone.utc)

    # Already aware - convert to UTC
    return dt.astimezone(timezone.utc)


def start_of_day(dt: datetime) -> datetime:
    """Truncate a datetime to midnight UTC of the same day.

    Args:
        dt: Datetime to truncate.

    Returns:
        Timezone-aware datetime at 00:00:00 UTC.
    """
    return ensure_utc(dt).replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_month(dt: datetime) -> datetime:
    """Truncate a datetime to midnight UTC on the first of its month.

    Args:
        dt: Datetime to truncate.

    Returns:
        Timezone-aware datetime at the start of the month.
    """
    return start_of_day(dt).replace(day=1)


def add_months(dt: datetime, months: int) -> datetime:
    """Shift a datetime by a number of calendar months.

    The day of month is clamped to the length of the target month.

    Args:
        dt: Datetime to shift.
        months: Number of months, negative to go back.

    Returns:
        Shifted datetime with the same time of day and tzinfo.

    Example:
        >>> add_months(datetime(2024, 3, 31, tzinfo=timezone.utc), -1).day
        29
    """
    month_index = dt.year * 12 + (dt.month - 1) + months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def subtract_months(dt: datetime, months: int) -> datetime:
    """Shift a datetime back by a number of calendar months.

    Args:
        dt: Datetime to shift.
        months: Number of months to go back.

    Returns:
        Shifted datetime.
    """
    return add_months(dt, -months)


def month_key(dt: datetime) -> str:
    """Format the UTC year and month of a datetime as ``YYYY-MM``.

    Args:
        dt: Datetime to format.

    Returns:
        Year-month string.
    """
    return ensure_utc(dt).strftime("%Y-%m")


def seconds_from(dt: datetime, seconds: float) -> datetime:
    """Get a datetime a number of seconds after another.

    Args:
        dt: Reference datetime.
        seconds: Seconds to add.

    Returns:
        Timezone-aware UTC datetime.
    """
    return ensure_utc(dt) + timedelta(seconds=seconds)


def parse_iso(iso_string: str | None) -> datetime | None:
    """Parse an ISO 8601 datetime string.

    Args:
        iso_string: ISO 8601 formatted string.

    Returns:
        Timezone-aware UTC datetime or None.
    """
    if iso_string is None:
        return None

    dt = datetime.fromisoformat(iso_string.replace("Z", "+00:00"))
    return ensure_utc(dt)
