"""RRULE expansion for schedulebot.

Occurrences of a rule-based series are produced by ``dateutil.rrule``. The engine
keeps the authored wall-clock time but can roll the calendar day over on the UTC
side of the local offset, so occurrences near midnight may land on the wrong
local day. ``adjust_date`` is the one place that compensates for this: the query
window is widened to cover its bounds pushed forward by the current UTC offset,
and every raw occurrence has its calendar date re-stamped from an instant
shifted back by the same offset. Dates are always taken in the local zone.

The offset is taken from the current instant, not from each occurrence, so the
correction is only exact while no DST transition falls inside the horizon.
"""

from __future__ import annotations

import logging
from datetime import datetime, time, timedelta, timezone, tzinfo
from typing import Optional

from dateutil.rrule import rruleset, rrulestr

from .exceptions import RRuleExpansionError, RRuleParseError
from .models import Block, EventRecord
from .timezone_utils import ensure_aware

logger = logging.getLogger(__name__)

# Direction arguments for adjust_date
FORWARD = 1
BACKWARD = -1

DEFAULT_MAX_OCCURRENCES = 250


def adjust_date(value: datetime, offset_minutes: int, direction: int) -> datetime:
    """Re-stamp the calendar date of ``value`` from ``value`` shifted by the UTC offset.

    The time of day and tzinfo of ``value`` are kept; only year, month and day
    are taken from ``value + direction * offset_minutes``.

    Args:
        value: Instant to correct
        offset_minutes: Minutes to add to local time to reach UTC (420 for PDT)
        direction: FORWARD (+1) for query bounds, BACKWARD (-1) for occurrences

    Returns:
        Corrected datetime
    """
    shifted = value + timedelta(minutes=direction * offset_minutes)
    return value.replace(year=shifted.year, month=shifted.month, day=shifted.day)


def _until_as_utc(value: str, tz: tzinfo) -> str:
    """UTC form of a date-only or floating UNTIL value, read in ``tz``."""
    if len(value) == 8:
        until = datetime.combine(datetime.strptime(value, "%Y%m%d").date(), time(23, 59, 59))
    else:
        until = datetime.strptime(value, "%Y%m%dT%H%M%S")
    return until.replace(tzinfo=tz).astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def localize_until(rule_string: str, tz: tzinfo) -> str:
    """Rewrite UNTIL in UTC so dateutil accepts it next to an aware DTSTART.

    A date-only UNTIL covers the whole local day.
    """
    parts = []
    for part in rule_string.split(";"):
        key, sep, value = part.partition("=")
        value = value.strip()
        if sep and key.strip().upper() == "UNTIL" and not value.upper().endswith("Z"):
            part = f"{key}={_until_as_utc(value, tz)}"
        parts.append(part)
    return ";".join(parts)


def occurrence_id(uid: str, occurrence: datetime) -> str:
    """Identifier of one occurrence of a recurring series."""
    return f"{uid}_{occurrence.isoformat()}"


class RecurrenceExpander:
    """Expands rule-based recurring events into dated blocks inside a horizon."""

    def __init__(self, max_occurrences: int = DEFAULT_MAX_OCCURRENCES):
        self.max_occurrences = max_occurrences

    def build_rule_set(self, event: EventRecord, tz: tzinfo) -> rruleset:
        """Parse the event's RRULE (plus EXDATEs) into a dateutil rule set.

        Raises:
            RRuleParseError: If the rule string cannot be parsed
        """
        rule_string = (event.recurrence_rule or "").strip()
        if not rule_string:
            raise RRuleParseError(f"Empty RRULE for event {event.uid!r}")
        if event.start is None:
            raise RRuleParseError(f"Event {event.uid!r} has no DTSTART to anchor its RRULE")

        dtstart = ensure_aware(event.start, tz)
        try:
            parsed_rule = rrulestr(
                localize_until(rule_string, dtstart.tzinfo), dtstart=dtstart, forceset=True
            )
        except (ValueError, TypeError, KeyError) as e:
            raise RRuleParseError(f"Invalid RRULE {rule_string!r}: {e}") from e

        for ex in event.exdates:
            parsed_rule.exdate(ensure_aware(ex, tz))

        return parsed_rule

    def occurrences(
        self,
        event: EventRecord,
        now: datetime,
        horizon_end: datetime,
        offset_minutes: int,
        tz: tzinfo,
    ) -> list[datetime]:
        """Occurrence starts of ``event`` strictly inside ``(now, horizon_end)``.

        Args:
            event: Template event carrying a recurrence rule
            now: Horizon start (exclusive)
            horizon_end: Horizon end (exclusive)
            offset_minutes: UTC offset of the current instant, see timezone_offset_minutes
            tz: Local zone the occurrences are expressed in

        Returns:
            Ordered list of corrected occurrence instants

        Raises:
            RRuleExpansionError: If the rule cannot be parsed or evaluated
        """
        rule_set = self.build_rule_set(event, tz)

        # The window never starts after now nor ends before horizon_end; the
        # exact bounds are applied to the corrected occurrences below.
        local_now = now.astimezone(tz)
        local_end = horizon_end.astimezone(tz)
        window_start = min(local_now, adjust_date(local_now, offset_minutes, FORWARD))
        window_end = max(local_end, adjust_date(local_end, offset_minutes, FORWARD))

        try:
            raw_occurrences = rule_set.between(
                window_start - timedelta(days=1), window_end + timedelta(days=1), inc=False
            )
        except (ValueError, TypeError) as e:
            raise RRuleExpansionError(f"Failed to expand RRULE for {event.uid!r}: {e}") from e

        results: list[datetime] = []
        for raw in raw_occurrences:
            corrected = adjust_date(raw.astimezone(tz), offset_minutes, BACKWARD)
            if not now < corrected < horizon_end:
                continue
            if len(results) >= self.max_occurrences:
                logger.warning(
                    "RRULE expansion for %s limited to %d occurrences",
                    event.uid,
                    self.max_occurrences,
                )
                break
            results.append(corrected)

        logger.debug(
            "Expanded %s: %d raw occurrences, %d inside horizon",
            event.uid,
            len(raw_occurrences),
            len(results),
        )
        return results

    def expand(
        self,
        event: EventRecord,
        now: datetime,
        horizon_end: datetime,
        offset_minutes: int,
        tz: tzinfo,
        calendar: Optional[str] = None,
    ) -> list[Block]:
        """Expand ``event`` into one Block per occurrence, keeping the template duration."""
        if event.start is None or event.end is None:
            raise RRuleExpansionError(f"Event {event.uid!r} is missing DTSTART or DTEND")

        duration = event.end - event.start
        return [
            Block.for_occurrence(
                event,
                occurrence,
                occurrence + duration,
                block_id=occurrence_id(event.uid, occurrence),
                calendar=calendar,
            )
            for occurrence in self.occurrences(event, now, horizon_end, offset_minutes, tz)
        ]
