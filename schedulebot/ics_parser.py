"""ICS parsing: raw calendar text -> event map keyed by component UID."""

from __future__ import annotations

import datetime
import logging
from typing import Any, Optional

from icalendar import Calendar

from .exceptions import CalendarParseError
from .models import EventRecord

logger = logging.getLogger(__name__)

# Component types kept in the event map; only VEVENTs are materialized
SUPPORTED_COMPONENTS = ("VEVENT", "VTODO", "VJOURNAL", "VFREEBUSY")


class ICSEventParser:
    """Parses iCalendar text into ``{uid: EventRecord}``.

    Components carrying a RECURRENCE-ID are folded into their master's
    ``recurrence_overrides``, keyed by the RECURRENCE-ID instant. Date-only
    values become local midnights and floating times get the default zone.
    """

    def __init__(self, default_tz: datetime.tzinfo):
        self.default_tz = default_tz

    def parse(self, ics_content: str) -> dict[str, EventRecord]:
        """Parse ICS text.

        Raises:
            CalendarParseError: If the content is not a parseable VCALENDAR
        """
        if not ics_content or "BEGIN:VCALENDAR" not in ics_content:
            raise CalendarParseError("Content does not appear to be valid ICS format")

        try:
            calendar = Calendar.from_ical(ics_content)
        except (ValueError, IndexError) as e:
            raise CalendarParseError(f"Failed to parse ICS content: {e}") from e

        masters: list[Any] = []
        overrides: dict[str, dict[datetime.datetime, EventRecord]] = {}

        for index, component in enumerate(calendar.walk()):
            if component.name not in SUPPORTED_COMPONENTS:
                continue
            uid = str(component.get("UID") or f"component-{index}")
            if component.get("RECURRENCE-ID") is None:
                masters.append((uid, component))
                continue
            try:
                recurrence_id = self._to_datetime(component.decoded("RECURRENCE-ID"))
                overrides.setdefault(uid, {})[recurrence_id] = self._build_record(uid, component)
            except (ValueError, TypeError, KeyError):
                logger.warning("Skipping malformed override of %s", uid, exc_info=True)

        events: dict[str, EventRecord] = {}
        for uid, component in masters:
            try:
                record = self._build_record(uid, component, overrides.pop(uid, {}))
            except (ValueError, TypeError, KeyError):
                logger.warning("Skipping malformed component %s", uid, exc_info=True)
                continue
            existing = events.get(uid)
            # Prefer the recurring master when a UID appears twice
            if existing is None or (existing.recurrence_rule is None and record.recurrence_rule):
                events[uid] = record

        # Overrides whose master is absent still block time on their own
        for uid, orphans in overrides.items():
            for recurrence_id, record in orphans.items():
                events[f"{uid}_{recurrence_id.isoformat()}"] = record

        logger.debug("Parsed %d components into %d event records", len(masters), len(events))
        return events

    def _build_record(
        self,
        uid: str,
        component: Any,
        recurrence_overrides: Optional[dict[datetime.datetime, EventRecord]] = None,
    ) -> EventRecord:
        start = self._decoded_datetime(component, "DTSTART")
        end = self._decoded_datetime(component, "DTEND")
        if end is None and start is not None:
            end = self._implicit_end(component, start)

        summary = component.get("SUMMARY")
        return EventRecord(
            uid=uid,
            type=component.name,
            summary=str(summary) if summary is not None else None,
            start=start,
            end=end,
            recurrence_rule=self._rrule_string(component),
            recurrence_overrides=recurrence_overrides or {},
            exdates=tuple(self._exdates(component)),
        )

    def _to_datetime(self, value: Any) -> datetime.datetime:
        if isinstance(value, datetime.datetime):
            return value if value.tzinfo is not None else value.replace(tzinfo=self.default_tz)
        if isinstance(value, datetime.date):
            return datetime.datetime.combine(value, datetime.time.min, tzinfo=self.default_tz)
        raise TypeError(f"Unsupported date value: {value!r}")

    def _decoded_datetime(self, component: Any, prop: str) -> Optional[datetime.datetime]:
        if prop not in component:
            return None
        return self._to_datetime(component.decoded(prop))

    def _implicit_end(self, component: Any, start: datetime.datetime) -> datetime.datetime:
        """End from DURATION, else one day for date-only starts, else the start itself."""
        if "DURATION" in component:
            return start + component.decoded("DURATION")
        raw_start = component.decoded("DTSTART")
        if not isinstance(raw_start, datetime.datetime):
            return start + datetime.timedelta(days=1)
        return start

    def _rrule_string(self, component: Any) -> Optional[str]:
        rrule_prop = component.get("RRULE")
        if not rrule_prop:
            return None
        if isinstance(rrule_prop, list):
            rrule_prop = rrule_prop[0]
        if hasattr(rrule_prop, "to_ical"):
            return rrule_prop.to_ical().decode("utf-8")
        return str(rrule_prop)

    def _exdates(self, component: Any) -> list[datetime.datetime]:
        exdate_props = component.get("EXDATE")
        if not exdate_props:
            return []
        if not isinstance(exdate_props, list):
            exdate_props = [exdate_props]
        values = []
        for prop in exdate_props:
            for dt_value in getattr(prop, "dts", []):
                try:
                    values.append(self._to_datetime(dt_value.dt))
                except TypeError:
                    logger.debug("Ignoring EXDATE value %r", dt_value)
        return values


def parse_ics(ics_content: str, default_tz: datetime.tzinfo) -> dict[str, EventRecord]:
    """Convenience wrapper around ICSEventParser."""
    return ICSEventParser(default_tz).parse(ics_content)
