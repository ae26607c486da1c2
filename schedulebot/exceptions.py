"""Exception hierarchy for schedulebot."""

from __future__ import annotations

from typing import Optional


class ScheduleBotError(Exception):
    """Base exception for all schedulebot errors."""


class ConfigError(ScheduleBotError):
    """Invalid or missing configuration value."""


class CalendarFetchError(ScheduleBotError):
    """Base exception for ICS fetch errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class CalendarNetworkError(CalendarFetchError):
    """Network error during ICS fetch."""


class CalendarTimeoutError(CalendarFetchError):
    """Timeout error during ICS fetch."""


class CalendarParseError(ScheduleBotError):
    """ICS content could not be parsed into events."""


class RRuleExpansionError(ScheduleBotError):
    """Base exception for RRULE expansion errors."""


class RRuleParseError(RRuleExpansionError):
    """Error parsing RRULE string."""


class PrimaryCalendarError(ScheduleBotError):
    """The primary calendar failed to load; no schedule can be shown."""


class UnknownTopicError(ScheduleBotError, ValueError):
    """A topic name outside the fixed topic table was requested."""
