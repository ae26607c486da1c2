"""Unit tests for schedulebot.timezone_utils."""

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from schedulebot.timezone_utils import (
    TEST_TIME_ENV,
    ensure_aware,
    get_zone,
    now_local,
    now_utc,
    start_of_day,
    timezone_offset_minutes,
)

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    ("zone", "instant", "expected"),
    [
        ("America/Los_Angeles", datetime(2025, 6, 2, 12), 420),
        ("America/Los_Angeles", datetime(2025, 1, 6, 12), 480),
        ("Europe/Berlin", datetime(2025, 1, 6, 12), -60),
        ("Asia/Kolkata", datetime(2025, 1, 6, 12), -330),
        ("UTC", datetime(2025, 1, 6, 12), 0),
    ],
)
def test_timezone_offset_minutes_when_zone_then_minutes_to_utc(zone, instant, expected) -> None:
    assert timezone_offset_minutes(instant.replace(tzinfo=ZoneInfo(zone))) == expected


def test_timezone_offset_minutes_when_naive_then_zero() -> None:
    assert timezone_offset_minutes(datetime(2025, 6, 2, 12)) == 0


def test_get_zone_when_unknown_then_fallback() -> None:
    assert get_zone("Nowhere/Special").key == "America/Los_Angeles"
    assert get_zone(None, "UTC").key == "UTC"
    assert get_zone("Europe/Berlin").key == "Europe/Berlin"


def test_now_utc_when_test_time_set_then_frozen(monkeypatch) -> None:
    monkeypatch.setenv(TEST_TIME_ENV, "2025-06-02T08:00:00-07:00")

    assert now_utc() == datetime(2025, 6, 2, 15, 0, tzinfo=timezone.utc)
    assert now_utc().tzinfo == timezone.utc


def test_now_utc_when_test_time_naive_then_taken_as_utc(monkeypatch) -> None:
    monkeypatch.setenv(TEST_TIME_ENV, "2025-06-02T15:00:00")

    assert now_utc() == datetime(2025, 6, 2, 15, 0, tzinfo=timezone.utc)


def test_now_utc_when_test_time_invalid_then_real_clock(monkeypatch) -> None:
    monkeypatch.setenv(TEST_TIME_ENV, "yesterday-ish")

    assert abs(now_utc() - datetime.now(timezone.utc)) < timedelta(minutes=1)


def test_now_local_when_test_time_set_then_in_zone(monkeypatch, la_tz) -> None:
    monkeypatch.setenv(TEST_TIME_ENV, "2025-06-02T15:00:00Z")

    assert now_local(la_tz).hour == 8


def test_start_of_day_when_utc_instant_then_local_midnight(la_tz) -> None:
    instant = datetime(2025, 6, 3, 2, 0, tzinfo=timezone.utc)

    assert start_of_day(instant, la_tz) == datetime(2025, 6, 2, tzinfo=la_tz)


def test_ensure_aware_when_naive_then_zone_attached(la_tz) -> None:
    naive = datetime(2025, 6, 2, 9)
    aware = datetime(2025, 6, 2, 9, tzinfo=timezone.utc)

    assert ensure_aware(naive, la_tz).tzinfo is la_tz
    assert ensure_aware(aware, la_tz) is aware
