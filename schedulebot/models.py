"""Data models for calendar events, free blocks and schedule output."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, model_validator

VEVENT = "VEVENT"


class EventRecord(BaseModel):
    """One calendar component as delivered by a calendar source.

    Recurrence is described either by an RFC 5545 rule string (``recurrence_rule``)
    or by an explicit mapping of overridden occurrence instants
    (``recurrence_overrides``, keyed by RECURRENCE-ID). ``start`` is optional so
    malformed components survive parsing and can be skipped downstream.
    """

    uid: str = Field(..., description="Component UID")
    type: str = Field(default=VEVENT, description="Component type, e.g. VEVENT")
    summary: Optional[str] = Field(default=None, description="Event summary/title")
    start: Optional[datetime] = Field(default=None, description="Start instant")
    end: Optional[datetime] = Field(default=None, description="End instant")
    recurrence_rule: Optional[str] = Field(default=None, description="RRULE string")
    recurrence_overrides: dict[datetime, EventRecord] = Field(
        default_factory=dict, description="RECURRENCE-ID instant -> overriding component"
    )
    exdates: tuple[datetime, ...] = Field(
        default=(), description="EXDATE instants removed from the rule expansion"
    )

    model_config = ConfigDict(frozen=True)

    @property
    def is_vevent(self) -> bool:
        return self.type == VEVENT


EventRecord.model_rebuild()

# component id -> record, as produced by the ICS parser
EventMap = Mapping[str, EventRecord]


class Block(BaseModel):
    """A concrete, dated occurrence of an event."""

    id: str = Field(..., description="Unique per concrete occurrence")
    date: datetime = Field(..., description="Occurrence start")
    end_date: datetime = Field(..., description="Occurrence end")
    summary: Optional[str] = None

    # Carried over from the source event
    uid: str = ""
    event_type: str = VEVENT
    calendar: Optional[str] = Field(default=None, description="Name of the source calendar")

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_order(self) -> Block:
        if not self.date < self.end_date:
            raise ValueError(f"Block {self.id!r} must start before it ends")
        return self

    @classmethod
    def for_occurrence(
        cls,
        event: EventRecord,
        start: datetime,
        end: datetime,
        *,
        block_id: str,
        calendar: Optional[str] = None,
    ) -> Block:
        """Build the block for one occurrence of ``event``."""
        return cls(
            id=block_id,
            date=start,
            end_date=end,
            summary=event.summary,
            uid=event.uid,
            event_type=event.type,
            calendar=calendar,
        )

    @property
    def duration(self) -> timedelta:
        return self.end_date - self.date

    @field_serializer("date", "end_date")
    def serialize_datetime(self, dt: datetime) -> str:
        """Serialize datetime to ISO format."""
        return dt.isoformat()


class DayEntry(BaseModel):
    """One day of the display horizon."""

    date: datetime = Field(..., description="Local start of day")
    label: str = Field(..., description='"Today", "Tmrw" or short weekday name')

    model_config = ConfigDict(frozen=True)


class CalendarSource(BaseModel):
    """Configuration for an ICS calendar source."""

    name: str = Field(..., description="Human-readable name for this calendar source")
    url: str = Field(..., description="ICS calendar URL")
    timeout: int = Field(default=30, description="HTTP timeout in seconds")
    custom_headers: dict[str, str] = Field(default_factory=dict, description="Custom HTTP headers")


class CalendarResult(BaseModel):
    """Outcome of loading one calendar: either parsed events or an error message."""

    data: Optional[dict[str, EventRecord]] = None
    error: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _exactly_one(self) -> CalendarResult:
        if (self.data is None) == (self.error is None):
            raise ValueError("CalendarResult needs exactly one of data or error")
        return self

    @classmethod
    def success(cls, data: Mapping[str, EventRecord]) -> CalendarResult:
        return cls(data=dict(data))

    @classmethod
    def failure(cls, error: str) -> CalendarResult:
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.data is not None


class ScheduleConfig(BaseModel):
    """Settings for one schedule page: whose schedule, which calendars, which zone."""

    name: str = Field(default="me", description="Display name shown in the header")
    calendar: Optional[CalendarSource] = Field(default=None, description="Primary calendar")
    plans: list[CalendarSource] = Field(default_factory=list, description="Plan calendars")
    timezone: str = Field(default="America/Los_Angeles", description="IANA zone for local days")
    weeks: int = Field(default=3, ge=1, description="Horizon length in weeks")

    # Fetch settings
    request_timeout: int = Field(default=30, description="HTTP read timeout in seconds")
    max_retries: int = Field(default=3, ge=0, description="Retries for network failures")
    retry_backoff_factor: float = Field(default=1.5, description="Exponential backoff base")

    # Materialization settings
    dedupe_plan_overrides: bool = Field(
        default=False, description="Drop a plan base block that an override replaces"
    )
    expand_plan_rules: bool = Field(
        default=False, description="Expand RRULEs of plan events that carry no overrides"
    )
    max_occurrences_per_rule: int = Field(default=250, ge=1)


class ScheduleResult(BaseModel):
    """Output handed to the UI layer."""

    blocks: list[Block] = Field(default_factory=list, description="Topic-filtered free blocks")
    free_blocks: list[Block] = Field(default_factory=list, description="Free blocks before topics")
    days: list[DayEntry] = Field(default_factory=list)
    enabled_days: list[DayEntry] = Field(default_factory=list)
    selected_day: Optional[datetime] = Field(
        default=None, description="Selected day after correction"
    )

    model_config = ConfigDict(frozen=True)
