"""Occurrence materialization: event maps -> concrete dated blocks."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, tzinfo
from enum import Enum
from typing import Optional, Union

from .exceptions import RRuleExpansionError
from .models import Block, EventMap, EventRecord
from .rrule_expander import DEFAULT_MAX_OCCURRENCES, RecurrenceExpander, occurrence_id
from .timezone_utils import ensure_aware, timezone_offset_minutes

logger = logging.getLogger(__name__)

WEEKS = 3


class CalendarRole(str, Enum):
    """Which side of the availability subtraction a calendar sits on."""

    PRIMARY = "primary"
    PLAN = "plan"


@dataclass(frozen=True)
class RuleBased:
    rule: str


@dataclass(frozen=True)
class OverrideBased:
    overrides: Mapping[datetime, EventRecord]


@dataclass(frozen=True)
class NoRecurrence:
    pass


RecurrenceSpec = Union[RuleBased, OverrideBased, NoRecurrence]


@dataclass(frozen=True)
class MaterializeOptions:
    """Knobs for materialization. Both flags are off by default."""

    weeks: int = WEEKS
    dedupe_plan_overrides: bool = False
    expand_plan_rules: bool = False
    max_occurrences_per_rule: int = DEFAULT_MAX_OCCURRENCES

    @classmethod
    def from_config(cls, config: object) -> MaterializeOptions:
        return cls(
            weeks=getattr(config, "weeks", WEEKS),
            dedupe_plan_overrides=getattr(config, "dedupe_plan_overrides", False),
            expand_plan_rules=getattr(config, "expand_plan_rules", False),
            max_occurrences_per_rule=getattr(
                config, "max_occurrences_per_rule", DEFAULT_MAX_OCCURRENCES
            ),
        )


def horizon_end(now: datetime, weeks: int = WEEKS) -> datetime:
    return now + timedelta(weeks=weeks)


def recurrence_spec(
    event: EventRecord, role: CalendarRole, expand_plan_rules: bool = False
) -> RecurrenceSpec:
    """Decide how an event recurs for the given calendar role.

    The primary calendar recurs by RRULE only. Plan calendars recur by their
    RECURRENCE-ID overrides, falling back to the RRULE only when
    ``expand_plan_rules`` is set.
    """
    if role is CalendarRole.PRIMARY:
        if event.recurrence_rule:
            return RuleBased(event.recurrence_rule)
        return NoRecurrence()

    if event.recurrence_overrides:
        return OverrideBased(event.recurrence_overrides)
    if expand_plan_rules and event.recurrence_rule:
        return RuleBased(event.recurrence_rule)
    return NoRecurrence()


def _in_horizon(instant: datetime, now: datetime, end: datetime) -> bool:
    return now < instant < end


def _is_usable(event: EventRecord) -> bool:
    if event.start is None or event.end is None:
        logger.debug("Skipping event %s: missing start or end", event.uid)
        return False
    if event.end <= event.start:
        logger.debug("Skipping event %s: end is not after start", event.uid)
        return False
    return True


@dataclass
class _BlockBatch:
    """Collects blocks for one materialization batch, keeping ids unique."""

    blocks: list[Block] = field(default_factory=list)
    _seen: set[str] = field(default_factory=set)

    def add(self, block: Block) -> None:
        if block.id in self._seen:
            logger.debug("Dropping duplicate block id %s", block.id)
            return
        self._seen.add(block.id)
        self.blocks.append(block)

    def extend(self, blocks: Iterable[Block]) -> None:
        for block in blocks:
            self.add(block)

    def result(self) -> list[Block]:
        return sorted(self.blocks, key=lambda b: (b.date, b.id))


class OccurrenceMaterializer:
    """Turns event maps into blocks for one fixed ``now``."""

    def __init__(self, tz: tzinfo, options: Optional[MaterializeOptions] = None):
        self.tz = tz
        self.options = options or MaterializeOptions()
        self.expander = RecurrenceExpander(self.options.max_occurrences_per_rule)

    def materialize(
        self,
        events: EventMap,
        role: CalendarRole,
        now: datetime,
        calendar: Optional[str] = None,
    ) -> list[Block]:
        """Materialize every VEVENT of ``events`` into blocks inside the horizon.

        Args:
            events: Component id -> event record
            role: PRIMARY or PLAN, selects the recurrence representation
            now: Horizon start; captured once by the caller
            calendar: Source name carried onto each block

        Returns:
            Blocks sorted by start, ids unique within the batch
        """
        end = horizon_end(now, self.options.weeks)
        offset_minutes = timezone_offset_minutes(now.astimezone(self.tz))
        batch = _BlockBatch()

        for event in events.values():
            if not event.is_vevent:
                continue
            event = self._normalize(event)
            if not _is_usable(event):
                continue

            spec = recurrence_spec(event, role, self.options.expand_plan_rules)
            try:
                if isinstance(spec, RuleBased):
                    batch.extend(
                        self.expander.expand(event, now, end, offset_minutes, self.tz, calendar)
                    )
                elif isinstance(spec, OverrideBased):
                    batch.extend(self._override_blocks(event, spec, now, end, calendar))
                    batch.extend(self._base_block(event, now, end, calendar, spec))
                else:
                    batch.extend(self._base_block(event, now, end, calendar))
            except RRuleExpansionError as e:
                logger.warning("Skipping recurring event %s: %s", event.uid, e)
            except ValueError as e:
                logger.warning("Skipping malformed event %s: %s", event.uid, e)

        blocks = batch.result()
        logger.debug(
            "Materialized %d %s blocks from %d records (calendar=%s)",
            len(blocks),
            role.value,
            len(events),
            calendar,
        )
        return blocks

    def _normalize(self, event: EventRecord) -> EventRecord:
        """Give floating start/end the local zone so comparisons with ``now`` work."""
        updates = {}
        if event.start is not None and event.start.tzinfo is None:
            updates["start"] = ensure_aware(event.start, self.tz)
        if event.end is not None and event.end.tzinfo is None:
            updates["end"] = ensure_aware(event.end, self.tz)
        return event.model_copy(update=updates) if updates else event

    def _base_block(
        self,
        event: EventRecord,
        now: datetime,
        end: datetime,
        calendar: Optional[str],
        spec: Optional[OverrideBased] = None,
    ) -> list[Block]:
        if not _in_horizon(event.start, now, end):
            return []
        if (
            spec is not None
            and self.options.dedupe_plan_overrides
            and any(ensure_aware(key, self.tz) == event.start for key in spec.overrides)
        ):
            logger.debug("Base occurrence of %s is overridden; not emitting it", event.uid)
            return []
        return [
            Block.for_occurrence(
                event, event.start, event.end, block_id=event.uid, calendar=calendar
            )
        ]

    def _override_blocks(
        self,
        event: EventRecord,
        spec: OverrideBased,
        now: datetime,
        end: datetime,
        calendar: Optional[str],
    ) -> list[Block]:
        blocks = []
        for override in spec.overrides.values():
            override = self._normalize(override)
            if not _is_usable(override):
                continue
            if not _in_horizon(override.start, now, end):
                continue
            # Overrides keep the series UID; their own start/end win
            blocks.append(
                Block.for_occurrence(
                    override,
                    override.start,
                    override.end,
                    block_id=occurrence_id(event.uid, override.start),
                    calendar=calendar,
                )
            )
        return blocks


def materialize_primary(
    events: EventMap,
    now: datetime,
    tz: tzinfo,
    options: Optional[MaterializeOptions] = None,
    calendar: Optional[str] = None,
) -> list[Block]:
    """Blocks offered as candidate availability."""
    return OccurrenceMaterializer(tz, options).materialize(
        events, CalendarRole.PRIMARY, now, calendar
    )


def materialize_plans(
    plan_events_list: Iterable[EventMap],
    now: datetime,
    tz: tzinfo,
    options: Optional[MaterializeOptions] = None,
    calendars: Optional[Iterable[Optional[str]]] = None,
) -> list[Block]:
    """Blocks of every plan calendar, flattened. Each calendar is its own batch."""
    materializer = OccurrenceMaterializer(tz, options)
    plan_events_list = list(plan_events_list)
    names = list(calendars) if calendars is not None else [None] * len(plan_events_list)
    blocks: list[Block] = []
    for events, name in zip(plan_events_list, names):
        blocks.extend(materializer.materialize(events, CalendarRole.PLAN, now, name))
    return blocks
