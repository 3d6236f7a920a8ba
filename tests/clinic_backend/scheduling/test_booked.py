from datetime import datetime, timedelta, timezone

from clinic_backend.scheduling.booked import AppointmentInterval, AppointmentStatus, BookedIntervalIndex

NINE = datetime(2026, 1, 5, 14, 0, tzinfo=timezone.utc)
HALF_HOUR = timedelta(minutes=30)


def _interval(start: datetime, status=AppointmentStatus.UPCOMING, doctor_id: int = 1, appointment_id=None):
    return AppointmentInterval(
        doctor_id=doctor_id,
        patient_id=10,
        start=start,
        end=start + HALF_HOUR,
        status=status,
        appointment_id=appointment_id,
    )


def test_index_ignores_cancelled_and_other_doctors() -> None:
    index = BookedIntervalIndex(
        1,
        [
            _interval(NINE),
            _interval(NINE + HALF_HOUR, status=AppointmentStatus.CANCELLED),
            _interval(NINE + 2 * HALF_HOUR, doctor_id=2),
            _interval(NINE + 3 * HALF_HOUR, status=AppointmentStatus.COMPLETED),
        ],
    )

    assert len(index) == 2
    assert index.overlaps(NINE, NINE + HALF_HOUR)
    assert not index.overlaps(NINE + HALF_HOUR, NINE + 2 * HALF_HOUR)
    assert not index.overlaps(NINE + 2 * HALF_HOUR, NINE + 3 * HALF_HOUR)
    assert index.overlaps(NINE + 3 * HALF_HOUR, NINE + 4 * HALF_HOUR)


def test_touching_intervals_do_not_overlap() -> None:
    index = BookedIntervalIndex(1, [_interval(NINE)])

    assert not index.overlaps(NINE - HALF_HOUR, NINE)
    assert not index.overlaps(NINE + HALF_HOUR, NINE + 2 * HALF_HOUR)


def test_partial_overlap_is_detected_from_either_side() -> None:
    index = BookedIntervalIndex(1, [_interval(NINE + timedelta(minutes=15))])

    assert index.overlaps(NINE, NINE + HALF_HOUR)
    assert index.overlaps(NINE + HALF_HOUR, NINE + 2 * HALF_HOUR)


def test_duplicate_bookings_are_tolerated() -> None:
    index = BookedIntervalIndex(1, [_interval(NINE), _interval(NINE)])

    assert len(index.overlapping(NINE, NINE + HALF_HOUR)) == 2


def test_long_interval_is_found_from_later_slot() -> None:
    long_block = AppointmentInterval(doctor_id=1, patient_id=None, start=NINE, end=NINE + timedelta(hours=3))
    index = BookedIntervalIndex(1, [long_block, _interval(NINE + timedelta(hours=5))])

    assert index.overlaps(NINE + timedelta(hours=2), NINE + timedelta(hours=2, minutes=30))


def test_naive_instants_are_read_as_utc() -> None:
    index = BookedIntervalIndex(1, [_interval(datetime(2026, 1, 5, 14, 0))])

    assert index.overlaps(NINE, NINE + HALF_HOUR)


def test_without_drops_one_appointment() -> None:
    index = BookedIntervalIndex(1, [_interval(NINE, appointment_id=5), _interval(NINE + HALF_HOUR, appointment_id=6)])

    trimmed = index.without(5)

    assert not trimmed.overlaps(NINE, NINE + HALF_HOUR)
    assert trimmed.overlaps(NINE + HALF_HOUR, NINE + 2 * HALF_HOUR)
    assert index.overlaps(NINE, NINE + HALF_HOUR)


def test_empty_index_has_no_overlaps() -> None:
    assert not BookedIntervalIndex(1).overlaps(NINE, NINE + HALF_HOUR)


def test_index_iterates_kept_intervals_in_order() -> None:
    late = _interval(datetime(2026, 1, 5, 15, 0, tzinfo=timezone.utc))
    early = _interval(datetime(2026, 1, 5, 14, 0, tzinfo=timezone.utc))

    index = BookedIntervalIndex(1, [late, early])

    assert [interval.start for interval in index] == [early.start, late.start]
