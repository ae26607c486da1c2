"""Shared fixtures for schedulebot tests."""

import logging
import os
from collections.abc import Generator
from datetime import datetime
from types import SimpleNamespace
from typing import Any
from zoneinfo import ZoneInfo

import pytest

from schedulebot.models import CalendarSource, ScheduleConfig


def pytest_configure(config: Any) -> None:
    """Register markers used across the suite."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "integration: Multi-module scenario tests")
    config.addinivalue_line("markers", "smoke: Basic smoke tests")


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: Any) -> Generator[None, Any, None]:
    """Clear SCHEDULEBOT_* variables before and after each test.

    ConfigManager.load_env_file writes to os.environ directly, so keys it sets
    are removed explicitly after the test.
    """
    for key in list(os.environ):
        if key.startswith("SCHEDULEBOT_"):
            monkeypatch.delenv(key, raising=False)
    yield
    for key in list(os.environ):
        if key.startswith("SCHEDULEBOT_"):
            del os.environ[key]


@pytest.fixture(autouse=True)
def restore_logger_levels() -> Generator[None, Any, None]:
    """Undo logger level changes made by logging configuration tests."""
    names = ["", "schedulebot", "httpx", "httpcore", "asyncio", "icalendar"]
    names += [f"schedulebot.{m}" for m in ("ics_parser", "fetcher", "rrule_expander",
                                            "materializer", "availability", "schedule")]
    saved = {name: logging.getLogger(name).level for name in names}
    yield
    for name, level in saved.items():
        logging.getLogger(name).setLevel(level)


@pytest.fixture
def la_tz() -> ZoneInfo:
    """Deterministic local zone so tests do not depend on the host zone."""
    return ZoneInfo("America/Los_Angeles")


@pytest.fixture
def fixed_now(la_tz: ZoneInfo) -> datetime:
    """Monday 2025-06-02 08:00 PDT; the three-week horizon has no DST change."""
    return datetime(2025, 6, 2, 8, 0, tzinfo=la_tz)


@pytest.fixture
def simple_settings() -> SimpleNamespace:
    """Minimal fetch settings with fast retries."""
    return SimpleNamespace(
        request_timeout=5,
        max_retries=1,
        retry_backoff_factor=1.0,
    )


@pytest.fixture
def schedule_config() -> ScheduleConfig:
    """Config with one primary and two plan calendars."""
    return ScheduleConfig(
        name="Alice",
        calendar=CalendarSource(name="calendar", url="https://example.com/primary.ics"),
        plans=[
            CalendarSource(name="plan-1", url="https://example.com/plan1.ics"),
            CalendarSource(name="plan-2", url="https://example.com/plan2.ics"),
        ],
        timezone="America/Los_Angeles",
    )


def ics(*lines: str) -> str:
    """Wrap component lines into a VCALENDAR document with CRLF endings."""
    body = ["BEGIN:VCALENDAR", "VERSION:2.0", "PRODID:-//schedulebot//tests//EN", *lines]
    body.append("END:VCALENDAR")
    return "\r\n".join(body) + "\r\n"


@pytest.fixture
def ics_builder():
    """Return the ICS document builder."""
    return ics
