"""Schedule computation: event maps -> free blocks, days and enabled days.

``compute_schedule`` is the pure entry point. ``ScheduleSession`` wraps it with
the loading rules for calendar sources and memoizes materialization so topic or
day changes only re-run classification and the day index.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from collections.abc import Callable, Iterable, Sequence
from enum import Enum
from typing import Optional, Union

from .availability import filter_available
from .days import build_days, enabled_days, resolve_selected_day
from .exceptions import PrimaryCalendarError
from .fetcher import ICSFetcher
from .materializer import MaterializeOptions, materialize_plans, materialize_primary
from .models import Block, CalendarResult, CalendarSource, EventMap, ScheduleConfig, ScheduleResult
from .timezone_utils import ensure_aware, get_zone, now_utc
from .topics import Topic, filter_by_topics, parse_topics

logger = logging.getLogger(__name__)

TopicSelection = Iterable[Union[Topic, str]]


def _as_topics(topics: TopicSelection) -> frozenset[Topic]:
    members = [t for t in topics if isinstance(t, Topic)]
    names = [t for t in topics if not isinstance(t, Topic)]
    return frozenset(members) | parse_topics(names)


def compute_free_blocks(
    primary_events: EventMap,
    plan_events_list: Sequence[EventMap],
    now: datetime.datetime,
    tz: datetime.tzinfo,
    options: Optional[MaterializeOptions] = None,
    plan_names: Optional[Sequence[Optional[str]]] = None,
    primary_name: Optional[str] = None,
) -> list[Block]:
    """Materialize both sides and keep the primary blocks no plan block overlaps."""
    now = ensure_aware(now, tz).astimezone(tz)
    primary_blocks = materialize_primary(primary_events, now, tz, options, primary_name)
    plan_blocks = materialize_plans(plan_events_list, now, tz, options, plan_names)
    return filter_available(primary_blocks, plan_blocks)


def build_result(
    free_blocks: Sequence[Block],
    topics: TopicSelection,
    now: datetime.datetime,
    tz: datetime.tzinfo,
    weeks: int = 3,
    selected_day: Optional[datetime.datetime] = None,
) -> ScheduleResult:
    """Classify free blocks and build the day index for display."""
    selected_topics = _as_topics(list(topics))
    days = build_days(ensure_aware(now, tz), tz, weeks)
    enabled = enabled_days(days, free_blocks, tz)
    return ScheduleResult(
        blocks=filter_by_topics(free_blocks, selected_topics, tz),
        free_blocks=list(free_blocks),
        days=days,
        enabled_days=enabled,
        selected_day=resolve_selected_day(selected_day, enabled, tz),
    )


def compute_schedule(
    primary_events: EventMap,
    plan_events_list: Sequence[EventMap],
    topics: TopicSelection,
    now: datetime.datetime,
    *,
    tz: datetime.tzinfo,
    options: Optional[MaterializeOptions] = None,
    selected_day: Optional[datetime.datetime] = None,
) -> ScheduleResult:
    """Compute the schedule for one instant.

    Args:
        primary_events: Event map of the primary calendar
        plan_events_list: Event maps of the plan calendars
        topics: Selected topics (members or names); empty selects everything
        now: Current instant; the horizon is ``(now, now + weeks)``
        tz: Local zone used for days, hours and floating times
        options: Materialization options
        selected_day: Day picked in the UI, corrected to an enabled day

    Returns:
        ScheduleResult with blocks, days and enabled days
    """
    options = options or MaterializeOptions()
    free = compute_free_blocks(primary_events, plan_events_list, now, tz, options)
    return build_result(free, topics, now, tz, options.weeks, selected_day)


class SessionState(str, Enum):
    LOADING = "loading"
    ERROR = "error"
    READY = "ready"


class ScheduleSession:
    """Holds the latest result of each calendar and recomputes on demand.

    Each source is ``None`` until its load resolves. A primary failure is
    surfaced as PrimaryCalendarError; a plan that is still loading or failed
    defers the computation instead of running it with partial data.
    """

    def __init__(
        self,
        config: ScheduleConfig,
        clock: Callable[[], datetime.datetime] = now_utc,
    ):
        self.config = config
        self.tz = get_zone(config.timezone)
        self.clock = clock
        self.options = MaterializeOptions.from_config(config)

        self.primary: Optional[CalendarResult] = None
        self.plans: list[Optional[CalendarResult]] = [None] * len(config.plans)

        self._memo_inputs: Optional[tuple[CalendarResult, ...]] = None
        self._memo_blocks: list[Block] = []
        self._memo_now: Optional[datetime.datetime] = None

    @property
    def sources(self) -> list[CalendarSource]:
        primary = [self.config.calendar] if self.config.calendar is not None else []
        return primary + list(self.config.plans)

    def set_primary(self, result: CalendarResult) -> None:
        self.primary = result

    def set_plan(self, index: int, result: CalendarResult) -> None:
        self.plans[index] = result

    @property
    def state(self) -> SessionState:
        if self.primary is not None and not self.primary.ok:
            return SessionState.ERROR
        if self.primary is None or any(p is None or not p.ok for p in self.plans):
            return SessionState.LOADING
        return SessionState.READY

    def free_blocks(self) -> Optional[list[Block]]:
        """Memoized free blocks, or None while data is not available.

        Raises:
            PrimaryCalendarError: If the primary calendar failed to load
        """
        if self.primary is not None and self.primary.error is not None:
            raise PrimaryCalendarError(self.primary.error)
        if self.primary is None or self.primary.data is None:
            return None
        for index, plan in enumerate(self.plans):
            if plan is None:
                logger.debug("Plan calendar %d still loading; deferring", index)
                return None
            if plan.data is None:
                logger.warning("Plan calendar %d unavailable (%s); deferring", index, plan.error)
                return None

        inputs = (self.primary, *self.plans)
        if self._memo_inputs is not None and all(
            a is b for a, b in zip(inputs, self._memo_inputs)
        ):
            return self._memo_blocks

        now = self.clock()
        plan_data = [plan.data for plan in self.plans if plan is not None and plan.data is not None]
        self._memo_blocks = compute_free_blocks(
            self.primary.data,
            plan_data,
            now,
            self.tz,
            self.options,
            plan_names=[source.name for source in self.config.plans],
            primary_name=self.config.calendar.name if self.config.calendar else None,
        )
        self._memo_inputs = inputs
        self._memo_now = now
        logger.debug("Recomputed %d free blocks", len(self._memo_blocks))
        return self._memo_blocks

    def compute(
        self,
        topics: TopicSelection = (),
        selected_day: Optional[datetime.datetime] = None,
    ) -> Optional[ScheduleResult]:
        """Schedule for the current data, or None while calendars are loading.

        Raises:
            PrimaryCalendarError: If the primary calendar failed to load
        """
        free = self.free_blocks()
        if free is None:
            return None
        now = self._memo_now or self.clock()
        return build_result(free, topics, now, self.tz, self.options.weeks, selected_day)

    async def refresh(self, fetcher: Optional[ICSFetcher] = None) -> None:
        """Fetch every source concurrently; each result is applied as it resolves."""
        sources = self.sources
        if not sources:
            logger.error("No calendar sources configured, skipping refresh")
            return

        owned = fetcher is None
        active = fetcher or ICSFetcher(self.config)
        has_primary = self.config.calendar is not None

        async def load(index: int, source: CalendarSource) -> None:
            try:
                result = await active.fetch_calendar(source, self.tz)
            except Exception as e:
                logger.exception("Unexpected failure loading %r", source.name)
                result = CalendarResult.failure(str(e))
            if has_primary and index == 0:
                self.set_primary(result)
            else:
                self.set_plan(index - 1 if has_primary else index, result)

        try:
            await asyncio.gather(*(load(i, s) for i, s in enumerate(sources)))
        finally:
            if owned:
                await active.close()
