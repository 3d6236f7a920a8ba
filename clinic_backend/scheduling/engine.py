"""Derive bookable slots from a weekly template and booked intervals.

The functions here are pure: callers pass the template, the booked
intervals and ``now`` in, and get plain values back. Nothing in this
module touches the database or the clock.
"""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from clinic_backend.core import config
from clinic_backend.scheduling.booked import AppointmentInterval, BookedIntervalIndex
from clinic_backend.scheduling.calendar import ClinicCalendar, DateKey, ensure_utc
from clinic_backend.scheduling.errors import InvalidTemplateError, UnavailableDependencyError
from clinic_backend.scheduling.template import GridWindow, WeeklyAvailability, format_mark

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SlotConfig:
    min_lead_time: timedelta = timedelta(minutes=60)
    roll_forward_limit: int = 14
    grid_window: GridWindow = field(default_factory=GridWindow)

    @property
    def slot_length(self) -> timedelta:
        return timedelta(minutes=self.grid_window.slot_minutes)

    @classmethod
    def from_settings(cls) -> "SlotConfig":
        return cls(
            min_lead_time=timedelta(minutes=config.MIN_LEAD_MINUTES),
            roll_forward_limit=config.ROLL_FORWARD_LIMIT_DAYS,
            grid_window=GridWindow.from_settings(),
        )


@dataclass(frozen=True)
class Slot:
    start: datetime
    end: datetime
    label: str
    available: bool


@dataclass(frozen=True)
class SlotResult:
    doctor_id: int
    resolved_date: DateKey
    slots: list[Slot]

    @property
    def available_slots(self) -> list[Slot]:
        return [slot for slot in self.slots if slot.available]

    @property
    def has_availability(self) -> bool:
        return any(slot.available for slot in self.slots)


BookedIntervals = BookedIntervalIndex | Iterable[AppointmentInterval]


def _as_index(doctor_id: int, booked_intervals: BookedIntervals) -> BookedIntervalIndex:
    if isinstance(booked_intervals, BookedIntervalIndex) and booked_intervals.doctor_id == doctor_id:
        return booked_intervals
    return BookedIntervalIndex(doctor_id, booked_intervals)


def _check_grid(template: WeeklyAvailability, window: GridWindow) -> None:
    for weekday, marks in template.days.items():
        for mark in marks:
            if not window.is_on_grid(mark):
                raise InvalidTemplateError(
                    f"{weekday.value} {format_mark(mark)} is not on the {window.slot_minutes}-minute grid."
                )


def slots_for_date(
    date_key: DateKey,
    template: WeeklyAvailability,
    index: BookedIntervalIndex,
    now: datetime,
    slot_config: SlotConfig,
    calendar: ClinicCalendar,
) -> list[Slot]:
    """Slots for one civil date, too-soon marks dropped, booked marks unavailable."""
    cutoff = ensure_utc(now) + slot_config.min_lead_time
    window = slot_config.grid_window
    weekday = calendar.date_key_to_weekday(date_key)

    slots: list[Slot] = []
    for mark in template.marks_for(weekday):
        if not window.contains(mark) or not calendar.wall_clock_exists(date_key, mark):
            continue
        start = calendar.local_instant(date_key, mark)
        if start < cutoff:
            continue
        end = start + slot_config.slot_length
        slots.append(
            Slot(
                start=start,
                end=end,
                label=calendar.format_label(start),
                available=not index.overlaps(start, end),
            )
        )

    slots.sort(key=lambda slot: slot.start)
    return slots


def compute_slots(
    doctor_id: int,
    requested_date: DateKey,
    weekly_template: WeeklyAvailability,
    booked_intervals: BookedIntervals,
    now: datetime,
    slot_config: SlotConfig | None = None,
    *,
    auto_roll_forward: bool = False,
    calendar: ClinicCalendar | None = None,
) -> SlotResult:
    """Compute the slot list for ``doctor_id`` on ``requested_date``.

    When ``auto_roll_forward`` is set and ``requested_date`` is today in the
    clinic timezone, a day with no available slot advances to the next civil
    day, at most ``roll_forward_limit`` times. If no day in that range has an
    available slot the result is today's date with no slots. Any other request
    returns exactly the requested date.
    """
    slot_config = slot_config or SlotConfig.from_settings()
    calendar = calendar or ClinicCalendar()
    _check_grid(weekly_template, slot_config.grid_window)
    index = _as_index(doctor_id, booked_intervals)

    may_roll = auto_roll_forward and requested_date == calendar.today_date_key(now)
    candidate = requested_date

    for _ in range(slot_config.roll_forward_limit + 1):
        slots = slots_for_date(candidate, weekly_template, index, now, slot_config, calendar)
        if not may_roll or any(slot.available for slot in slots):
            return SlotResult(doctor_id=doctor_id, resolved_date=candidate, slots=slots)
        candidate = calendar.add_days(candidate, 1)

    logger.debug(
        'No availability for doctor %s within %s days of %s',
        doctor_id,
        slot_config.roll_forward_limit,
        requested_date,
    )
    return SlotResult(doctor_id=doctor_id, resolved_date=requested_date, slots=[])


def roll_forward_window(
    requested_date: DateKey,
    slot_config: SlotConfig,
    calendar: ClinicCalendar,
) -> tuple[datetime, datetime]:
    """Instant range a caller must load booked intervals for."""
    start, _ = calendar.date_key_to_day_bounds(requested_date)
    last_day = calendar.add_days(requested_date, slot_config.roll_forward_limit)
    _, end = calendar.date_key_to_day_bounds(last_day)
    return start, end


@dataclass
class DoctorSlotRequest:
    """One doctor's inputs for a batch query, loaded lazily."""

    doctor_id: int
    load_template: Callable[[], WeeklyAvailability]
    load_booked_intervals: Callable[[datetime, datetime], BookedIntervals]


def compute_slots_for_doctors(
    requests: Iterable[DoctorSlotRequest],
    requested_date: DateKey,
    now: datetime,
    slot_config: SlotConfig | None = None,
    *,
    auto_roll_forward: bool = False,
    calendar: ClinicCalendar | None = None,
) -> list[SlotResult]:
    """Compute slots for several doctors, isolating storage failures per doctor.

    A doctor whose template or bookings cannot be loaded is reported with no
    slots for ``requested_date``; the rest of the batch is unaffected.
    """
    slot_config = slot_config or SlotConfig.from_settings()
    calendar = calendar or ClinicCalendar()
    range_start, range_end = roll_forward_window(requested_date, slot_config, calendar)

    results: list[SlotResult] = []
    for request in requests:
        try:
            template = request.load_template()
            booked = request.load_booked_intervals(range_start, range_end)
            result = compute_slots(
                request.doctor_id,
                requested_date,
                template,
                booked,
                now,
                slot_config,
                auto_roll_forward=auto_roll_forward,
                calendar=calendar,
            )
        except (UnavailableDependencyError, InvalidTemplateError):
            logger.warning(
                'Availability lookup failed for doctor %s; reporting no slots',
                request.doctor_id,
                exc_info=True,
            )
            result = SlotResult(doctor_id=request.doctor_id, resolved_date=requested_date, slots=[])

        results.append(result)
    return results


def is_slot_bookable(
    template: WeeklyAvailability,
    index: BookedIntervalIndex,
    start: datetime,
    now: datetime,
    slot_config: SlotConfig | None = None,
    calendar: ClinicCalendar | None = None,
) -> bool:
    """Whether ``start`` is an offered, far-enough-ahead, unbooked slot right now."""
    slot_config = slot_config or SlotConfig.from_settings()
    calendar = calendar or ClinicCalendar()
    start = ensure_utc(start)
    date_key = calendar.instant_to_date_key(start)
    slots = slots_for_date(date_key, template, index, now, slot_config, calendar)
    return any(slot.start == start and slot.available for slot in slots)
