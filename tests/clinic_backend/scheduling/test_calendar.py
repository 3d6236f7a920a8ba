from datetime import date, datetime, time, timedelta, timezone

import pytest

from clinic_backend.scheduling.calendar import (
    ClinicCalendar,
    Weekday,
    make_date_key,
    parse_date_key,
    parse_date_or_instant,
)
from clinic_backend.scheduling.errors import InvalidDateError


def test_instant_to_date_key_uses_clinic_offset_not_utc_date(calendar: ClinicCalendar) -> None:
    # 03:00 UTC on the 6th is still 22:00 on the 5th in New York.
    instant = datetime(2026, 1, 6, 3, 0, tzinfo=timezone.utc)

    assert calendar.instant_to_date_key(instant) == date(2026, 1, 5)


def test_instant_to_date_key_reads_naive_values_as_utc(calendar: ClinicCalendar) -> None:
    assert calendar.instant_to_date_key(datetime(2026, 1, 6, 4, 59)) == date(2026, 1, 5)
    assert calendar.instant_to_date_key(datetime(2026, 1, 6, 5, 0)) == date(2026, 1, 6)


def test_day_bounds_cover_local_midnight_to_midnight(calendar: ClinicCalendar) -> None:
    start, end = calendar.date_key_to_day_bounds(date(2026, 1, 5))

    assert start == datetime(2026, 1, 5, 5, 0, tzinfo=timezone.utc)
    assert end == datetime(2026, 1, 6, 5, 0, tzinfo=timezone.utc)


def test_day_bounds_span_23_hours_when_clocks_spring_forward(calendar: ClinicCalendar) -> None:
    start, end = calendar.date_key_to_day_bounds(date(2026, 3, 8))

    assert start == datetime(2026, 3, 8, 5, 0, tzinfo=timezone.utc)
    assert end == datetime(2026, 3, 9, 4, 0, tzinfo=timezone.utc)
    assert end - start == timedelta(hours=23)


def test_day_bounds_span_25_hours_when_clocks_fall_back(calendar: ClinicCalendar) -> None:
    start, end = calendar.date_key_to_day_bounds(date(2026, 11, 1))

    assert end - start == timedelta(hours=25)


def test_local_instant_keeps_wall_clock_time_across_dst(calendar: ClinicCalendar) -> None:
    before = calendar.local_instant(date(2026, 3, 7), time(9, 0))
    after = calendar.local_instant(date(2026, 3, 9), time(9, 0))

    assert before == datetime(2026, 3, 7, 14, 0, tzinfo=timezone.utc)
    assert after == datetime(2026, 3, 9, 13, 0, tzinfo=timezone.utc)


def test_today_date_key_uses_injected_now(calendar: ClinicCalendar) -> None:
    now = datetime(2026, 7, 1, 2, 30, tzinfo=timezone.utc)

    assert calendar.today_date_key(now) == date(2026, 6, 30)


@pytest.mark.parametrize(
    ('start', 'days', 'expected'),
    [
        (date(2026, 3, 7), 1, date(2026, 3, 8)),
        (date(2026, 3, 8), 1, date(2026, 3, 9)),
        (date(2026, 10, 31), 2, date(2026, 11, 2)),
        (date(2026, 12, 31), 1, date(2027, 1, 1)),
        (date(2028, 2, 28), 1, date(2028, 2, 29)),
        (date(2026, 1, 5), -1, date(2026, 1, 4)),
    ],
)
def test_add_days_is_civil_date_arithmetic(start: date, days: int, expected: date) -> None:
    assert ClinicCalendar.add_days(start, days) == expected


def test_date_key_to_weekday() -> None:
    assert ClinicCalendar.date_key_to_weekday(date(2026, 1, 4)) == Weekday.SUNDAY
    assert ClinicCalendar.date_key_to_weekday(date(2026, 1, 5)) == Weekday.MONDAY


def test_make_date_key_rejects_impossible_dates() -> None:
    with pytest.raises(InvalidDateError):
        make_date_key(2026, 4, 31)


@pytest.mark.parametrize('value', ['2026-02-30', '2026-13-01', 'tomorrow', '2026/01/05', ''])
def test_parse_date_key_rejects_invalid_values(value: str) -> None:
    with pytest.raises(InvalidDateError):
        parse_date_key(value)


def test_parse_date_key_accepts_iso_dates() -> None:
    assert parse_date_key(' 2026-01-05 ') == date(2026, 1, 5)


@pytest.mark.parametrize(
    ('instant', 'label'),
    [
        (datetime(2026, 1, 5, 14, 0, tzinfo=timezone.utc), '9:00 AM'),
        (datetime(2026, 1, 5, 17, 30, tzinfo=timezone.utc), '12:30 PM'),
        (datetime(2026, 1, 5, 21, 0, tzinfo=timezone.utc), '4:00 PM'),
        (datetime(2026, 1, 5, 5, 0, tzinfo=timezone.utc), '12:00 AM'),
    ],
)
def test_format_label_renders_clinic_local_twelve_hour_time(
    calendar: ClinicCalendar,
    instant: datetime,
    label: str,
) -> None:
    assert calendar.format_label(instant) == label


def test_weekday_parse_is_case_insensitive() -> None:
    assert Weekday.parse(' monday ') == Weekday.MONDAY

    with pytest.raises(ValueError):
        Weekday.parse('Funday')


def test_wall_clock_exists_is_false_inside_the_spring_forward_gap(calendar: ClinicCalendar) -> None:
    assert calendar.wall_clock_exists(date(2026, 3, 8), time(1, 30))
    assert not calendar.wall_clock_exists(date(2026, 3, 8), time(2, 0))
    assert not calendar.wall_clock_exists(date(2026, 3, 8), time(2, 30))
    assert calendar.wall_clock_exists(date(2026, 3, 8), time(3, 0))
    assert calendar.wall_clock_exists(date(2026, 11, 1), time(1, 30))


def test_parse_date_or_instant() -> None:
    assert parse_date_or_instant('2026-03-01') == date(2026, 3, 1)
    assert parse_date_or_instant('2026-03-01T15:00:00.000Z') == datetime(2026, 3, 1, 15, 0, tzinfo=timezone.utc)
    assert parse_date_or_instant('2026-03-01T10:00:00-05:00') == datetime(2026, 3, 1, 15, 0, tzinfo=timezone.utc)

    with pytest.raises(InvalidDateError):
        parse_date_or_instant('01/05/2026')
    with pytest.raises(InvalidDateError):
        parse_date_or_instant('2026-03-01Tnoon')
