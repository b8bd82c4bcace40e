from datetime import datetime, time, timedelta, timezone

import pytest

from alarms.schedule import (
    REPEAT_INTERVAL,
    Weekday,
    next_alarm_time,
    next_occurrence,
    occurrences,
    parse_time_of_day,
    parse_weekdays,
    seconds_until,
)


def _now() -> datetime:
    return datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)  # Monday


def test_next_occurrence_always_in_future_with_matching_weekday_and_time():
    base = _now()
    for offset_hours in (0, 5, 23, 50, 100):
        now = base + timedelta(hours=offset_hours, minutes=17, seconds=3)
        for weekday in Weekday:
            for tod in (time(0, 0), time(8, 0), time(9, 17), time(23, 59)):
                result = next_occurrence(tod, weekday, now)
                assert result > now
                assert result - now <= REPEAT_INTERVAL
                assert result.weekday() == weekday
                assert (result.hour, result.minute, result.second) == (tod.hour, tod.minute, 0)


def test_exact_now_is_not_a_valid_trigger():
    result = next_occurrence(time(9, 0), Weekday.MON, _now())
    assert result == _now() + timedelta(days=7)


def test_later_today_stays_today():
    result = next_occurrence(time(9, 1), Weekday.MON, _now())
    assert result == datetime(2025, 1, 6, 9, 1, tzinfo=timezone.utc)


def test_deterministic_for_same_inputs():
    now = _now()
    assert next_occurrence(time(7, 30), Weekday.FRI, now) == next_occurrence(time(7, 30), Weekday.FRI, now)


def test_monday_and_wednesday_scenario():
    result = occurrences(time(8, 0), {Weekday.MON, Weekday.WED}, _now())
    assert result[Weekday.MON] == datetime(2025, 1, 13, 8, 0, tzinfo=timezone.utc)
    assert result[Weekday.WED] == datetime(2025, 1, 8, 8, 0, tzinfo=timezone.utc)


def test_empty_days_yield_no_occurrences():
    assert occurrences(time(8, 0), [], _now()) == {}
    assert next_alarm_time(time(8, 0), [], _now()) is None


def test_next_alarm_time_picks_soonest_day():
    soonest = next_alarm_time(time(8, 0), {Weekday.MON, Weekday.TUE}, _now())
    assert soonest == datetime(2025, 1, 7, 8, 0, tzinfo=timezone.utc)


def test_naive_now_keeps_naive_result():
    now = datetime(2025, 1, 6, 9, 0)
    result = next_occurrence(time(10, 0), Weekday.MON, now)
    assert result.tzinfo is None
    assert result == datetime(2025, 1, 6, 10, 0)


def test_seconds_until_uses_real_offsets():
    now = _now()
    later = now.astimezone(timezone(timedelta(hours=3))) + timedelta(hours=2)
    assert seconds_until(later, now) == 7200


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("mon", Weekday.MON),
        ("Sun", Weekday.SUN),
        ("wednesday", Weekday.WED),
        (4, Weekday.FRI),
        (Weekday.SAT, Weekday.SAT),
    ],
)
def test_weekday_parse(raw, expected):
    assert Weekday.parse(raw) is expected


@pytest.mark.parametrize("raw", ["Mo", "funday", 7, True, None])
def test_weekday_parse_rejects_unknown(raw):
    with pytest.raises(ValueError):
        Weekday.parse(raw)


def test_parse_weekdays_collapses_duplicates():
    assert parse_weekdays(["Mon", "mon", 0, "Wed"]) == frozenset({Weekday.MON, Weekday.WED})


def test_parse_time_of_day():
    assert parse_time_of_day("7:05") == time(7, 5)
    assert parse_time_of_day("23:59:30") == time(23, 59)
    assert parse_time_of_day(time(6, 45, 12)) == time(6, 45)


@pytest.mark.parametrize("raw", ["24:00", "12:60", "07:00:99", "07:00:60", "noon", "", None])
def test_parse_time_of_day_rejects_garbage(raw):
    with pytest.raises(ValueError):
        parse_time_of_day(raw)
