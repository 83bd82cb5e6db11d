"""Tests for reset time formatting."""

from datetime import datetime, timedelta, timezone

from claude_panel.utils.reset_format import (
    DEFAULT_SESSION_RESET,
    DEFAULT_WEEKLY_RESET,
    format_reset_time,
    format_window_reset,
)

UTC = timezone.utc
NOW = datetime(2026, 3, 10, 12, 0, 0, tzinfo=UTC)


def _ts(delta: timedelta) -> int:
    return int((NOW + delta).timestamp())


def test_elapsed_is_now():
    assert format_reset_time(_ts(timedelta(seconds=-5)), now=NOW) == "Now"
    assert format_reset_time(_ts(timedelta(0)), now=NOW) == "Now"


def test_hours_and_minutes():
    assert format_reset_time(_ts(timedelta(hours=2, minutes=15)), now=NOW, tz=UTC) == "2h 15m @ 2:15 PM"


def test_minutes_only():
    assert format_reset_time(_ts(timedelta(minutes=42, seconds=30)), now=NOW, tz=UTC) == "42m @ 12:42 PM"


def test_just_under_a_day_is_relative():
    assert format_reset_time(_ts(timedelta(hours=23, minutes=59)), now=NOW, tz=UTC) == "23h 59m @ 11:59 AM"


def test_absolute_beyond_a_day():
    reset = _ts(timedelta(days=3, hours=3, minutes=5))
    assert format_reset_time(reset, now=NOW, tz=timezone.utc) == "Mar 13 at 3:05 PM UTC"


def test_absolute_morning_hour_unpadded():
    reset = int(datetime(2026, 3, 14, 9, 7, tzinfo=timezone.utc).timestamp())
    assert format_reset_time(reset, now=NOW, tz=timezone.utc) == "Mar 14 at 9:07 AM UTC"


def test_absolute_midnight_reads_twelve():
    reset = int(datetime(2026, 3, 15, 0, 30, tzinfo=timezone.utc).timestamp())
    assert format_reset_time(reset, now=NOW, tz=timezone.utc) == "Mar 15 at 12:30 AM UTC"


def test_window_defaults():
    assert format_window_reset(None, DEFAULT_SESSION_RESET) == "~5 hr"
    assert format_window_reset(0, DEFAULT_WEEKLY_RESET) == "~7 days"
    assert format_window_reset(_ts(timedelta(hours=1)), DEFAULT_SESSION_RESET, now=NOW, tz=UTC) == "1h 0m @ 1:00 PM"


def test_relative_label_uses_local_clock():
    tokyo = timezone(timedelta(hours=9))
    assert format_reset_time(_ts(timedelta(hours=3)), now=NOW, tz=tokyo) == "3h 0m @ 12:00 AM"
