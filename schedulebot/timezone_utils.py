"""Timezone resolution and clock utilities for schedulebot."""

from __future__ import annotations

import datetime
import logging
import os
import zoneinfo

logger = logging.getLogger(__name__)

# Default fallback timezone for all timezone operations
DEFAULT_TIMEZONE = "America/Los_Angeles"

TEST_TIME_ENV = "SCHEDULEBOT_TEST_TIME"


def get_zone(name: str | None, fallback: str = DEFAULT_TIMEZONE) -> zoneinfo.ZoneInfo:
    """Resolve an IANA zone name, falling back when it is missing or unknown.

    Args:
        name: IANA timezone identifier (e.g. "Europe/Berlin")
        fallback: Zone used when ``name`` is empty or invalid

    Returns:
        ZoneInfo instance
    """
    if name:
        try:
            return zoneinfo.ZoneInfo(name)
        except (zoneinfo.ZoneInfoNotFoundError, ValueError):
            logger.warning("Invalid timezone %r, falling back to %r", name, fallback)
    return zoneinfo.ZoneInfo(fallback)


def now_utc() -> datetime.datetime:
    """Return current UTC time with tzinfo.

    Can be overridden for testing via the SCHEDULEBOT_TEST_TIME environment
    variable (ISO 8601, e.g. "2025-10-27T08:20:00-07:00"). A naive test time is
    taken as UTC.
    """
    test_time = os.environ.get(TEST_TIME_ENV)
    if test_time:
        try:
            from dateutil import parser as date_parser

            dt = date_parser.isoparse(test_time)
            if dt.tzinfo is not None:
                return dt.astimezone(datetime.timezone.utc)
            return dt.replace(tzinfo=datetime.timezone.utc)
        except ValueError as e:
            logger.warning("Failed to parse %s=%r: %s", TEST_TIME_ENV, test_time, e)

    return datetime.datetime.now(datetime.timezone.utc)


def now_local(tz: datetime.tzinfo) -> datetime.datetime:
    """Current time expressed in ``tz``."""
    return now_utc().astimezone(tz)


def timezone_offset_minutes(instant: datetime.datetime) -> int:
    """Minutes to add to local wall time at ``instant`` to reach UTC.

    Positive west of Greenwich: 420 for PDT, 480 for PST, -60 for CET,
    -330 for IST.
    """
    offset = instant.utcoffset()
    if offset is None:
        return 0
    return -int(offset.total_seconds() // 60)


def start_of_day(instant: datetime.datetime, tz: datetime.tzinfo) -> datetime.datetime:
    """Local midnight of the calendar day ``instant`` falls on in ``tz``."""
    local = instant.astimezone(tz)
    return datetime.datetime.combine(local.date(), datetime.time.min, tzinfo=tz)


def ensure_aware(dt: datetime.datetime, tz: datetime.tzinfo) -> datetime.datetime:
    """Attach ``tz`` to naive (floating) datetimes; aware ones pass through."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    return dt
