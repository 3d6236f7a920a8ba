"""Booked appointment intervals and the per-doctor overlap index."""

from bisect import bisect_left
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from clinic_backend.scheduling.calendar import ensure_utc


class AppointmentStatus(str, Enum):
    UPCOMING = "upcoming"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"


@dataclass(frozen=True)
class AppointmentInterval:
    doctor_id: int
    patient_id: int | None
    start: datetime
    end: datetime
    status: AppointmentStatus = AppointmentStatus.UPCOMING
    appointment_id: int | None = None

    @property
    def blocks_slot(self) -> bool:
        return self.status != AppointmentStatus.CANCELLED

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return self.start < end and self.end > start


class BookedIntervalIndex:
    """Sorted, read-only view of one doctor's non-cancelled intervals.

    Intervals for other doctors and cancelled intervals are dropped on
    construction. Overlap lookups are half-open: touching intervals do
    not overlap.
    """

    def __init__(self, doctor_id: int, intervals: Iterable[AppointmentInterval] = ()) -> None:
        self.doctor_id = doctor_id
        kept = [
            AppointmentInterval(
                doctor_id=interval.doctor_id,
                patient_id=interval.patient_id,
                start=ensure_utc(interval.start),
                end=ensure_utc(interval.end),
                status=AppointmentStatus(interval.status),
                appointment_id=interval.appointment_id,
            )
            for interval in intervals
            if interval.doctor_id == doctor_id and interval.blocks_slot
        ]
        kept.sort(key=lambda interval: (interval.start, interval.end))
        self._intervals = kept
        self._starts = [interval.start for interval in kept]
        self._longest = max((interval.end - interval.start for interval in kept), default=None)

    def __len__(self) -> int:
        return len(self._intervals)

    def __iter__(self):
        return iter(self._intervals)

    def overlapping(self, start: datetime, end: datetime) -> list[AppointmentInterval]:
        if self._longest is None:
            return []
        start = ensure_utc(start)
        end = ensure_utc(end)
        # Only intervals starting after start - longest can reach into [start, end).
        first = bisect_left(self._starts, start - self._longest)
        last = bisect_left(self._starts, end)
        return [interval for interval in self._intervals[first:last] if interval.overlaps(start, end)]

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return bool(self.overlapping(start, end))

    def without(self, appointment_id: int) -> "BookedIntervalIndex":
        """Copy of the index that ignores one appointment, for rescheduling."""
        return BookedIntervalIndex(
            self.doctor_id,
            (interval for interval in self._intervals if interval.appointment_id != appointment_id),
        )
