"""Weekly availability templates.

A template maps each weekday to the set of grid marks (clinic-local
times of day) at which a doctor sees patients. Marks are stored on the
wire and in the database as ``"HH:MM"`` strings.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import time

from clinic_backend.core import config
from clinic_backend.scheduling.calendar import Weekday
from clinic_backend.scheduling.errors import InvalidTemplateError


@dataclass(frozen=True)
class GridWindow:
    """Half-open ``[start, end)`` range of bookable times of day."""

    start: time = time(9, 0)
    end: time = time(17, 0)
    slot_minutes: int = 30

    @classmethod
    def from_settings(cls) -> "GridWindow":
        return cls(
            start=config.parse_clock(config.CLINIC_DAY_START),
            end=config.parse_clock(config.CLINIC_DAY_END),
            slot_minutes=config.SLOT_MINUTES,
        )

    def is_on_grid(self, mark: time) -> bool:
        return mark.second == 0 and mark.microsecond == 0 and mark.minute % self.slot_minutes == 0

    def contains(self, mark: time) -> bool:
        return self.start <= mark < self.end

    def marks(self) -> list[time]:
        """Every grid mark inside the window, in order."""
        result: list[time] = []
        minutes = self.start.hour * 60 + self.start.minute
        end_minutes = self.end.hour * 60 + self.end.minute
        while minutes < end_minutes:
            result.append(time(minutes // 60, minutes % 60))
            minutes += self.slot_minutes
        return result


def format_mark(mark: time) -> str:
    return f"{mark.hour:02d}:{mark.minute:02d}"


def parse_mark(value: str) -> time:
    """Parse an ``"HH:MM"`` 24-hour mark without checking the grid."""
    if not isinstance(value, str):
        raise InvalidTemplateError(f"Time mark {value!r} must be an HH:MM string.")

    hours, separator, minutes = value.strip().partition(":")
    if not separator or not hours.isdigit() or not minutes.isdigit() or len(minutes) != 2:
        raise InvalidTemplateError(f"Time mark {value!r} must be an HH:MM string.")

    try:
        return time(int(hours), int(minutes))
    except ValueError as exc:
        raise InvalidTemplateError(f"Time mark {value!r} is not a valid time of day.") from exc


def _empty_days() -> dict[Weekday, frozenset[time]]:
    return {weekday: frozenset() for weekday in Weekday}


@dataclass(frozen=True)
class WeeklyAvailability:
    doctor_id: int
    days: Mapping[Weekday, frozenset[time]] = field(default_factory=_empty_days)

    def marks_for(self, weekday: Weekday) -> frozenset[time]:
        return self.days.get(weekday, frozenset())

    def is_empty(self) -> bool:
        return not any(self.days.values())

    def validate(self, window: GridWindow) -> None:
        """Raise :class:`InvalidTemplateError` if any mark is off-grid or outside ``window``."""
        for weekday, marks in self.days.items():
            if not isinstance(weekday, Weekday):
                raise InvalidTemplateError(f"Unknown weekday {weekday!r}.")
            for mark in marks:
                if not window.is_on_grid(mark):
                    raise InvalidTemplateError(
                        f"{weekday.value} {format_mark(mark)} is not on the {window.slot_minutes}-minute grid."
                    )
                if not window.contains(mark):
                    raise InvalidTemplateError(
                        f"{weekday.value} {format_mark(mark)} is outside "
                        f"{format_mark(window.start)}-{format_mark(window.end)}."
                    )

    def to_payload(self) -> dict[str, list[str]]:
        return {
            weekday.value: [format_mark(mark) for mark in sorted(self.marks_for(weekday))]
            for weekday in Weekday
        }

    @classmethod
    def empty(cls, doctor_id: int) -> "WeeklyAvailability":
        return cls(doctor_id=doctor_id)

    @classmethod
    def from_payload(
        cls,
        doctor_id: int,
        payload: Mapping[str, Iterable[str]] | None,
        window: GridWindow | None = None,
    ) -> "WeeklyAvailability":
        """Build a template from a ``{weekday: ["HH:MM", ...]}`` mapping.

        Weekdays absent from ``payload`` are empty. Duplicate marks collapse,
        but a weekday spelled twice (``"Monday"`` and ``" monday"``) is an error.
        When ``window`` is given the result is validated against it.
        """
        days = _empty_days()
        seen: set[Weekday] = set()
        for key, values in (payload or {}).items():
            try:
                weekday = Weekday.parse(key)
            except (AttributeError, ValueError) as exc:
                raise InvalidTemplateError(f"Unknown weekday {key!r}.") from exc
            if weekday in seen:
                raise InvalidTemplateError(f"{weekday.value} is listed more than once.")
            seen.add(weekday)
            if isinstance(values, str) or values is None:
                raise InvalidTemplateError(f"{weekday.value} must map to a list of HH:MM marks.")
            days[weekday] = frozenset(parse_mark(value) for value in values)

        template = cls(doctor_id=doctor_id, days=days)
        if window is not None:
            template.validate(window)
        return template
