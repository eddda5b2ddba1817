"""Maintenance window arithmetic.

A window is a recurring time-of-day range plus a set of approved
weekdays.  When the end time is earlier than the start time the window
spans midnight and belongs to the weekday on which it *starts*, so a
``22:00-02:00`` window on Wednesday covers Wednesday 22:00 through
Thursday 02:00.

Weekdays use :meth:`datetime.weekday` numbering (Monday is 0).
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta

log = logging.getLogger(__name__)

ALL_WEEKDAYS = frozenset(range(7))

_WEEKDAY_NAMES = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
    "mon": 0,
    "tue": 1,
    "wed": 2,
    "thu": 3,
    "fri": 4,
    "sat": 5,
    "sun": 6,
}

_SHORT_NAMES = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")

# A full week always contains an approved day; scanning past it means the
# window has no weekdays at all.
_MAX_SCAN_DAYS = 7


def parse_time_of_day(text: str) -> tuple[int, int]:
    """Parse ``HH:MM`` (24 hour) into ``(hour, minute)``.

    Raises :class:`ValueError` on anything else.
    """
    parts = str(text).strip().split(":")
    if len(parts) == 2 and parts[0].isdigit() and parts[1].isdigit():
        hour, minute = int(parts[0]), int(parts[1])
        if 0 <= hour <= 23 and 0 <= minute <= 59:  # noqa: PLR2004
            return hour, minute
    msg = f"invalid time '{text}' (use 24 hour format, e.g. 18:05 for 6:05 PM)"
    raise ValueError(msg)


def parse_weekday(name: str) -> int:
    """Return the weekday number for a full or three-letter name."""
    try:
        return _WEEKDAY_NAMES[name.strip().lower()]
    except KeyError:
        msg = f"invalid weekday '{name}'"
        raise ValueError(msg) from None


def parse_weekdays(value: str | list[str] | None) -> frozenset[int]:
    """Parse a list or space-separated string of weekday names.

    An empty or missing value approves every day.
    """
    if not value:
        return ALL_WEEKDAYS
    names = value.split() if isinstance(value, str) else list(value)
    if not names:
        return ALL_WEEKDAYS
    return frozenset(parse_weekday(n) for n in names)


def _at_or_after(hour: int, minute: int, ref_hour: int, ref_minute: int) -> bool:
    return (hour, minute) >= (ref_hour, ref_minute)


def _at_or_before(hour: int, minute: int, ref_hour: int, ref_minute: int) -> bool:
    return (hour, minute) <= (ref_hour, ref_minute)


@dataclass(frozen=True)
class MaintenanceWindow:
    """Recurring period during which files may be written.

    Attributes
    ----------
    start_hour, start_minute:
        Window opening time of day.
    end_hour, end_minute:
        Window closing time of day (inclusive).
    weekdays:
        Approved weekdays on which the window may *open*.

    """

    start_hour: int
    start_minute: int
    end_hour: int
    end_minute: int
    weekdays: frozenset[int] = field(default=ALL_WEEKDAYS)

    @property
    def spans_midnight(self) -> bool:
        return (self.end_hour, self.end_minute) < (self.start_hour, self.start_minute)

    def in_window(self, now: datetime) -> bool:
        """Return True if *now* falls inside the window."""
        today_ok = now.weekday() in self.weekdays
        after_start = _at_or_after(now.hour, now.minute, self.start_hour, self.start_minute)
        before_end = _at_or_before(now.hour, now.minute, self.end_hour, self.end_minute)

        if self.spans_midnight:
            yesterday_ok = (now.weekday() - 1) % 7 in self.weekdays
            return (yesterday_ok and before_end) or (today_ok and after_start)

        return today_ok and after_start and before_end

    def next_window_start(self, now: datetime, *, jitter_seconds: int | None = None) -> datetime:
        """Return the next instant the window opens, plus jitter.

        Parameters
        ----------
        now:
            Reference time.  Naive values are treated as local time.
        jitter_seconds:
            Seconds to add to the result.  ``None`` picks a random
            value in ``[0, 59]``.

        """
        if jitter_seconds is None:
            jitter_seconds = random.randint(0, 59)  # noqa: S311

        start_today = now.replace(
            hour=self.start_hour,
            minute=self.start_minute,
            second=0,
            microsecond=0,
        )

        if now.weekday() in self.weekdays and _at_or_before(
            now.hour, now.minute, self.start_hour, self.start_minute
        ):
            return start_today + timedelta(seconds=jitter_seconds)

        add_days = 1
        while add_days <= _MAX_SCAN_DAYS:
            if (now.weekday() + add_days) % 7 in self.weekdays:
                break
            add_days += 1
        else:
            log.error(
                "No approved weekday within 7 days; weekdays=%s",
                sorted(self.weekdays),
            )
            add_days = _MAX_SCAN_DAYS

        return start_today + timedelta(days=add_days, seconds=jitter_seconds)

    def describe(self) -> str:
        days = " ".join(_SHORT_NAMES[d] for d in sorted(self.weekdays))
        return (
            f"{days} between {self.start_hour:02d}:{self.start_minute:02d}"
            f" and {self.end_hour:02d}:{self.end_minute:02d}"
        )
