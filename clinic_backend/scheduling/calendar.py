"""Clinic-local calendar arithmetic.

Every conversion between absolute instants and clinic civil dates goes
through :class:`ClinicCalendar`. Civil dates are plain ``datetime.date``
values; instants are timezone-aware ``datetime`` values in UTC.
"""

from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from zoneinfo import ZoneInfo

from clinic_backend.core import config
from clinic_backend.scheduling.errors import InvalidDateError

DateKey = date


class Weekday(str, Enum):
    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"
    SATURDAY = "Saturday"
    SUNDAY = "Sunday"

    @classmethod
    def from_index(cls, index: int) -> "Weekday":
        return list(cls)[index]

    @classmethod
    def parse(cls, value: str) -> "Weekday":
        normalized = value.strip().capitalize()
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"Unknown weekday {value!r}.") from None


def make_date_key(year: int, month: int, day: int) -> DateKey:
    try:
        return date(year, month, day)
    except (TypeError, ValueError) as exc:
        raise InvalidDateError(f"{year}-{month}-{day} is not a valid calendar date.") from exc


def parse_date_key(value: str) -> DateKey:
    """Parse a ``YYYY-MM-DD`` string into a civil date."""
    parts = value.strip().split("-")
    if len(parts) != 3 or not all(part.isdigit() for part in parts):
        raise InvalidDateError(f"{value!r} is not a YYYY-MM-DD date.")
    year, month, day = (int(part) for part in parts)
    return make_date_key(year, month, day)


def parse_date_or_instant(value: str) -> DateKey | datetime:
    """Parse ``YYYY-MM-DD`` as a civil date and anything longer as an ISO-8601 instant."""
    text = value.strip()
    if len(text) <= len("YYYY-MM-DD"):
        return parse_date_key(text)
    try:
        instant = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError as exc:
        raise InvalidDateError(f"{value!r} is not a YYYY-MM-DD date or an ISO-8601 instant.") from exc
    return ensure_utc(instant)


def ensure_utc(instant: datetime) -> datetime:
    """Return ``instant`` as an aware UTC datetime; naive values are read as UTC."""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


class ClinicCalendar:
    """Converts between instants and civil dates in the clinic timezone."""

    def __init__(self, timezone_name: str | None = None) -> None:
        self.timezone_name = timezone_name or config.CLINIC_TIMEZONE
        self.zone = ZoneInfo(self.timezone_name)

    def instant_to_date_key(self, instant: datetime) -> DateKey:
        return ensure_utc(instant).astimezone(self.zone).date()

    def local_instant(self, date_key: DateKey, clock: time) -> datetime:
        """UTC instant at which the clinic wall clock reads ``clock`` on ``date_key``."""
        local = datetime.combine(date_key, clock, tzinfo=self.zone)
        return local.astimezone(timezone.utc)

    def wall_clock_exists(self, date_key: DateKey, clock: time) -> bool:
        """False when ``clock`` is skipped on ``date_key`` by a forward DST shift."""
        return self.local_instant(date_key, clock).astimezone(self.zone).time() == clock

    def date_key_to_day_bounds(self, date_key: DateKey) -> tuple[datetime, datetime]:
        start = self.local_instant(date_key, time(0, 0))
        end = self.local_instant(self.add_days(date_key, 1), time(0, 0))
        return start, end

    def today_date_key(self, now: datetime | None = None) -> DateKey:
        return self.instant_to_date_key(now or datetime.now(timezone.utc))

    @staticmethod
    def add_days(date_key: DateKey, days: int) -> DateKey:
        try:
            return date_key + timedelta(days=days)
        except OverflowError as exc:
            raise InvalidDateError(f"{date_key} + {days} days is out of range.") from exc

    @staticmethod
    def date_key_to_weekday(date_key: DateKey) -> Weekday:
        return Weekday.from_index(date_key.weekday())

    def format_label(self, instant: datetime) -> str:
        local = ensure_utc(instant).astimezone(self.zone)
        hour = local.hour % 12 or 12
        suffix = "AM" if local.hour < 12 else "PM"
        return f"{hour}:{local.minute:02d} {suffix}"
