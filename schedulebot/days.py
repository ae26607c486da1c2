"""Day index for the display horizon."""

from __future__ import annotations

import datetime
from collections.abc import Sequence
from typing import Optional

from .models import Block, DayEntry

DAYS_IN_WEEK = 7


def _label(day: datetime.datetime, today: datetime.datetime, tomorrow: datetime.datetime) -> str:
    if day == today:
        return "Today"
    if day == tomorrow:
        return "Tmrw"
    return day.strftime("%a")


def build_days(now: datetime.datetime, tz: datetime.tzinfo, weeks: int = 3) -> list[DayEntry]:
    """``weeks * 7`` consecutive local days starting at today's local midnight.

    Each entry is built from its calendar date so every entry is a real local
    midnight, DST changes included.
    """
    today_date = now.astimezone(tz).date()
    starts = [
        datetime.datetime.combine(
            today_date + datetime.timedelta(days=i), datetime.time.min, tzinfo=tz
        )
        for i in range(weeks * DAYS_IN_WEEK)
    ]
    today = starts[0]
    tomorrow = datetime.datetime.combine(
        today_date + datetime.timedelta(days=1), datetime.time.min, tzinfo=tz
    )
    return [DayEntry(date=start, label=_label(start, today, tomorrow)) for start in starts]


def enabled_days(
    days: Sequence[DayEntry], blocks: Sequence[Block], tz: datetime.tzinfo
) -> list[DayEntry]:
    """Days on whose local calendar date at least one block starts."""
    block_dates = {b.date.astimezone(tz).date() for b in blocks}
    return [d for d in days if d.date.astimezone(tz).date() in block_dates]


def resolve_selected_day(
    selected: Optional[datetime.datetime],
    enabled: Sequence[DayEntry],
    tz: datetime.tzinfo,
) -> Optional[datetime.datetime]:
    """Keep ``selected`` if it is an enabled day, else move it to the first enabled day."""
    if not enabled:
        return selected
    if selected is not None:
        selected_date = selected.astimezone(tz).date() if selected.tzinfo else selected.date()
        for day in enabled:
            if day.date.astimezone(tz).date() == selected_date:
                return day.date
    return enabled[0].date
