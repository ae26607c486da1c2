"""Command-line entry for schedulebot.

Fetches the configured calendars, computes the free schedule and prints it:
a header, the day strip with days that have no free time marked, and the free
blocks of the selected day.
"""

from __future__ import annotations

import argparse
import asyncio
import datetime
import logging
import sys
from collections.abc import Sequence
from typing import NoReturn, Optional

from . import _init_logging
from .config_manager import ConfigManager, require_calendar
from .exceptions import ConfigError, PrimaryCalendarError, UnknownTopicError
from .logging_config import configure_logging
from .models import ScheduleResult
from .schedule import ScheduleSession
from .topics import matching_topics, parse_topics

logger = logging.getLogger(__name__)


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the schedulebot CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="schedulebot",
        description="schedulebot - free time in a primary calendar not taken by any plan",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m schedulebot                          # All free blocks of the first free day
  python -m schedulebot --topics lunch,dinner    # Only lunch or dinner blocks
  python -m schedulebot --day 2025-10-28         # Free blocks of a specific day
        """,
    )

    parser.add_argument(
        "--topics",
        default="",
        metavar="TOPICS",
        help="Comma-separated topics: lunch, dinner, work, afternoon, evening (default: all)",
    )
    parser.add_argument(
        "--day",
        type=datetime.date.fromisoformat,
        metavar="YYYY-MM-DD",
        help="Day to show (default: first day with free time)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging (or set SCHEDULEBOT_DEBUG=1)",
    )

    return parser


def render_schedule(name: str, result: ScheduleResult, tz: datetime.tzinfo) -> str:
    """Plain-text rendering of a schedule result."""
    enabled = {day.date for day in result.enabled_days}
    strip = []
    for day in result.days:
        label = f"{day.label} {day.date:%d}"
        if day.date == result.selected_day:
            label = f"[{label}]"
        elif day.date not in enabled:
            label = f"({label})"
        strip.append(label)

    lines = [f"Schedule with {name}", " ".join(strip), ""]

    if result.selected_day is None:
        lines.append("No free time in the next weeks.")
        return "\n".join(lines)

    selected_date = result.selected_day.date()
    shown = [b for b in result.blocks if b.date.astimezone(tz).date() == selected_date]
    if not shown:
        lines.append(f"No matching free blocks on {selected_date:%a %b %d}.")
    for block in shown:
        start = block.date.astimezone(tz)
        end = block.end_date.astimezone(tz)
        tags = ", ".join(topic.value for topic in matching_topics(block, tz))
        line = f"{start:%H:%M}-{end:%H:%M}  {block.summary or '(untitled)'}"
        lines.append(f"{line}  [{tags}]" if tags else line)
    return "\n".join(lines)


def _selected_datetime(
    day: Optional[datetime.date], tz: datetime.tzinfo
) -> Optional[datetime.datetime]:
    if day is None:
        return None
    return datetime.datetime.combine(day, datetime.time.min, tzinfo=tz)


def run(argv: Optional[Sequence[str]] = None) -> int:
    """Run the CLI and return its exit code."""
    parser = _create_parser()
    args = parser.parse_args(argv)

    _init_logging("DEBUG" if args.debug else "INFO")
    configure_logging(debug_mode=args.debug)

    try:
        topics = parse_topics(args.topics.split(","))
        config = ConfigManager().load_config()
        require_calendar(config)
    except (ConfigError, UnknownTopicError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    session = ScheduleSession(config)
    asyncio.run(session.refresh())

    try:
        result = session.compute(topics, _selected_datetime(args.day, session.tz))
    except PrimaryCalendarError as e:
        print(f"Error loading calendar: {e}", file=sys.stderr)
        return 1

    if result is None:
        logger.info("Plan calendars not ready; schedule deferred")
        print(f"Schedule with {config.name}\n\nSchedule not available yet.")
        return 0

    print(render_schedule(config.name, result, session.tz))
    return 0


def main() -> NoReturn:
    """Console script entry point."""
    sys.exit(run())


if __name__ == "__main__":
    main()
