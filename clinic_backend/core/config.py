import os
from datetime import time
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    return int(value.strip())


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if value is None:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


def parse_clock(value: str) -> time:
    """Parse an ``HH:MM`` 24-hour clock string."""
    hours, _, minutes = value.strip().partition(":")
    return time(int(hours), int(minutes))


APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
SQL_ECHO = _get_bool(os.getenv("SQL_ECHO"), default=False)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./clinic.db")

CLINIC_TIMEZONE = os.getenv("CLINIC_TIMEZONE", "America/New_York")
CLINIC_DAY_START = os.getenv("CLINIC_DAY_START", "09:00")
CLINIC_DAY_END = os.getenv("CLINIC_DAY_END", "17:00")
SLOT_MINUTES = _get_int(os.getenv("SLOT_MINUTES"), 30)
MIN_LEAD_MINUTES = _get_int(os.getenv("MIN_LEAD_MINUTES"), 60)
ROLL_FORWARD_LIMIT_DAYS = _get_int(os.getenv("ROLL_FORWARD_LIMIT_DAYS"), 14)
MAX_APPOINTMENT_REASON_LENGTH = _get_int(os.getenv("MAX_APPOINTMENT_REASON_LENGTH"), 600)

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = _get_int(os.getenv("JWT_EXPIRES_MINUTES"), 60)

CORS_ALLOW_ORIGINS = _get_list(os.getenv("CORS_ALLOW_ORIGINS"), ["http://localhost:3000"])


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")

    try:
        ZoneInfo(CLINIC_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise RuntimeError(f"CLINIC_TIMEZONE {CLINIC_TIMEZONE!r} is not a known timezone.") from exc

    if SLOT_MINUTES <= 0 or 60 % SLOT_MINUTES != 0:
        raise RuntimeError("SLOT_MINUTES must be a positive divisor of 60.")
    if MIN_LEAD_MINUTES < 0:
        raise RuntimeError("MIN_LEAD_MINUTES must not be negative.")
    if ROLL_FORWARD_LIMIT_DAYS < 1:
        raise RuntimeError("ROLL_FORWARD_LIMIT_DAYS must be at least 1.")

    try:
        day_start = parse_clock(CLINIC_DAY_START)
        day_end = parse_clock(CLINIC_DAY_END)
    except ValueError as exc:
        raise RuntimeError("CLINIC_DAY_START and CLINIC_DAY_END must be HH:MM values.") from exc

    if day_start >= day_end:
        raise RuntimeError("CLINIC_DAY_START must be earlier than CLINIC_DAY_END.")
    for bound in (day_start, day_end):
        if bound.minute % SLOT_MINUTES != 0:
            raise RuntimeError("Clinic day bounds must fall on the slot grid.")
