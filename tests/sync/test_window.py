"""Unit tests for certsync.sync.window: maintenance window arithmetic."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from certsync.sync.window import (
    ALL_WEEKDAYS,
    MaintenanceWindow,
    parse_time_of_day,
    parse_weekday,
    parse_weekdays,
)

# 2025-01-01 is a Wednesday.
WED = datetime(2025, 1, 1)
THU = WED + timedelta(days=1)
TUE = WED - timedelta(days=1)


def _at(day: datetime, hour: int, minute: int = 0, second: int = 0) -> datetime:
    return day.replace(hour=hour, minute=minute, second=second)


@pytest.fixture
def overnight_wednesday() -> MaintenanceWindow:
    """22:00-02:00 opening on Wednesdays only."""
    return MaintenanceWindow(22, 0, 2, 0, weekdays=frozenset({2}))


@pytest.fixture
def early_morning() -> MaintenanceWindow:
    """03:00-05:00 every day."""
    return MaintenanceWindow(3, 0, 5, 0)


# ---------------------------------------------------------------------------
# TestInWindow
# ---------------------------------------------------------------------------


class TestInWindow:
    @pytest.mark.parametrize(
        "now,expected",
        [
            (_at(WED, 23, 30), True),
            (_at(THU, 1, 30), True),
            (_at(THU, 3, 0), False),
            (_at(TUE, 23, 30), False),
            (_at(THU, 22, 30), False),
            (_at(WED, 21, 59), False),
        ],
    )
    def test_overnight_truth_table(self, overnight_wednesday, now, expected):
        assert overnight_wednesday.in_window(now) is expected

    def test_overnight_bounds_are_inclusive(self, overnight_wednesday):
        assert overnight_wednesday.in_window(_at(WED, 22, 0)) is True
        assert overnight_wednesday.in_window(_at(THU, 2, 0, 59)) is True
        assert overnight_wednesday.in_window(_at(THU, 2, 1)) is False

    @pytest.mark.parametrize(
        "hour,minute,expected",
        [
            (2, 59, False),
            (3, 0, True),
            (4, 0, True),
            (5, 0, True),
            (5, 1, False),
        ],
    )
    def test_same_day_window(self, early_morning, hour, minute, expected):
        assert early_morning.in_window(_at(WED, hour, minute)) is expected

    def test_same_day_window_respects_weekdays(self):
        window = MaintenanceWindow(3, 0, 5, 0, weekdays=frozenset({3}))
        assert window.in_window(_at(WED, 4)) is False
        assert window.in_window(_at(THU, 4)) is True

    def test_spans_midnight(self, overnight_wednesday, early_morning):
        assert overnight_wednesday.spans_midnight is True
        assert early_morning.spans_midnight is False


# ---------------------------------------------------------------------------
# TestNextWindowStart
# ---------------------------------------------------------------------------


class TestNextWindowStart:
    def test_today_before_start(self, early_morning):
        assert early_morning.next_window_start(_at(WED, 1), jitter_seconds=0) == _at(WED, 3)

    def test_today_exactly_at_start(self, early_morning):
        assert early_morning.next_window_start(_at(WED, 3), jitter_seconds=0) == _at(WED, 3)

    def test_after_start_moves_to_tomorrow(self, early_morning):
        assert early_morning.next_window_start(_at(WED, 3, 1), jitter_seconds=0) == _at(THU, 3)

    def test_skips_to_next_approved_day(self):
        window = MaintenanceWindow(3, 0, 5, 0, weekdays=frozenset({4}))
        expected = _at(WED + timedelta(days=2), 3)
        assert window.next_window_start(_at(WED, 10), jitter_seconds=0) == expected

    def test_same_weekday_next_week(self, overnight_wednesday):
        result = overnight_wednesday.next_window_start(_at(WED, 23), jitter_seconds=0)
        assert result == _at(WED + timedelta(days=7), 22)

    def test_jitter_is_added(self, early_morning):
        result = early_morning.next_window_start(_at(WED, 1), jitter_seconds=42)
        assert result == _at(WED, 3, 0, 42)

    def test_random_jitter_within_a_minute(self, early_morning):
        result = early_morning.next_window_start(_at(WED, 1))
        assert _at(WED, 3) <= result <= _at(WED, 3, 0, 59)

    def test_no_weekdays_never_more_than_eight_days(self, caplog):
        window = MaintenanceWindow(3, 0, 5, 0, weekdays=frozenset())
        now = _at(WED, 10)
        result = window.next_window_start(now, jitter_seconds=59)
        assert result - now <= timedelta(days=8)
        assert "No approved weekday" in caplog.text

    @pytest.mark.parametrize("hour", range(0, 24, 5))
    def test_result_is_never_in_the_past(self, early_morning, hour):
        now = _at(WED, hour, 7)
        assert early_morning.next_window_start(now, jitter_seconds=0) > now - timedelta(minutes=1)


# ---------------------------------------------------------------------------
# TestParsing
# ---------------------------------------------------------------------------


class TestParsing:
    @pytest.mark.parametrize(
        "text,expected",
        [("03:00", (3, 0)), ("23:59", (23, 59)), ("0:05", (0, 5)), (" 18:05 ", (18, 5))],
    )
    def test_time_of_day(self, text, expected):
        assert parse_time_of_day(text) == expected

    @pytest.mark.parametrize("text", ["24:00", "12:60", "6pm", "12", "12:00:00", "-1:00", ""])
    def test_time_of_day_invalid(self, text):
        with pytest.raises(ValueError):
            parse_time_of_day(text)

    @pytest.mark.parametrize(
        "name,expected",
        [("Monday", 0), ("mon", 0), ("SUNDAY", 6), ("Wed", 2), (" friday ", 4)],
    )
    def test_weekday(self, name, expected):
        assert parse_weekday(name) == expected

    def test_weekday_invalid(self):
        with pytest.raises(ValueError, match="invalid weekday"):
            parse_weekday("Funday")

    def test_weekdays_from_string(self):
        assert parse_weekdays("Monday wed Friday") == frozenset({0, 2, 4})

    def test_weekdays_from_list(self):
        assert parse_weekdays(["sat", "sun"]) == frozenset({5, 6})

    @pytest.mark.parametrize("value", [None, "", [], "   "])
    def test_weekdays_empty_means_all(self, value):
        assert parse_weekdays(value) == ALL_WEEKDAYS

    def test_describe(self, overnight_wednesday):
        assert overnight_wednesday.describe() == "Wed between 22:00 and 02:00"
