from __future__ import annotations

import re
from datetime import datetime, time, timedelta
from enum import IntEnum
from typing import Dict, Iterable, Optional

REPEAT_INTERVAL = timedelta(days=7)

_TIME_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})(?::(\d{2}))?\s*$")


class Weekday(IntEnum):
    MON = 0
    TUE = 1
    WED = 2
    THU = 3
    FRI = 4
    SAT = 5
    SUN = 6

    @property
    def label(self) -> str:
        return self.name.capitalize()

    @classmethod
    def parse(cls, value) -> "Weekday":
        if isinstance(value, cls):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            return cls(value)
        if isinstance(value, str):
            key = value.strip().lower()
            for day in cls:
                if key in (day.label.lower(), _FULL_NAMES[day]):
                    return day
        raise ValueError(f"Unknown weekday: {value!r}")


_FULL_NAMES = {
    Weekday.MON: "monday",
    Weekday.TUE: "tuesday",
    Weekday.WED: "wednesday",
    Weekday.THU: "thursday",
    Weekday.FRI: "friday",
    Weekday.SAT: "saturday",
    Weekday.SUN: "sunday",
}


def parse_weekdays(values: Iterable) -> frozenset:
    return frozenset(Weekday.parse(v) for v in values)


def parse_time_of_day(value) -> time:
    """Normalise a wall-clock time to hour/minute precision."""
    if isinstance(value, datetime):
        raise ValueError("Expected a time of day, got a full datetime")
    if isinstance(value, time):
        return time(value.hour, value.minute)
    if isinstance(value, str):
        match = _TIME_RE.match(value)
        if match:
            hour, minute = int(match.group(1)), int(match.group(2))
            second = int(match.group(3) or 0)
            if 0 <= hour <= 23 and 0 <= minute <= 59 and 0 <= second <= 59:
                return time(hour, minute)
    raise ValueError(f"Invalid time of day: {value!r}")


def next_occurrence(time_of_day: time, weekday: Weekday, now: datetime) -> datetime:
    """Return the first instant strictly after ``now`` falling on ``weekday`` at ``time_of_day``.

    The result carries ``now``'s tzinfo, so wall-clock times are interpreted in
    whatever zone the caller's clock runs in.
    """
    days_ahead = (int(weekday) - now.weekday() + 7) % 7
    candidate = datetime.combine(
        now.date() + timedelta(days=days_ahead),
        time(time_of_day.hour, time_of_day.minute),
        tzinfo=now.tzinfo,
    )
    if candidate <= now:
        candidate += REPEAT_INTERVAL
    return candidate


def occurrences(time_of_day: time, days: Iterable[Weekday], now: datetime) -> Dict[Weekday, datetime]:
    return {day: next_occurrence(time_of_day, day, now) for day in sorted(set(days))}


def next_alarm_time(time_of_day: time, days: Iterable[Weekday], now: datetime) -> Optional[datetime]:
    upcoming = occurrences(time_of_day, days, now)
    if not upcoming:
        return None
    return min(upcoming.values())


def seconds_until(instant: datetime, now: datetime) -> float:
    # timestamps respect utcoffset, plain subtraction does not for a shared tzinfo
    return instant.timestamp() - now.timestamp()
