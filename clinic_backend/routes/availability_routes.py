from datetime import date, datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator, model_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_backend.auth.dependencies import get_current_doctor
from clinic_backend.database import ensure_appointment_schema, ensure_availability_schema, get_db
from clinic_backend.models.user import User
from clinic_backend.routes.errors import DATABASE_UNAVAILABLE_DETAIL, to_http_exception
from clinic_backend.scheduling.calendar import ClinicCalendar, parse_date_key
from clinic_backend.scheduling.engine import (
    DoctorSlotRequest,
    SlotConfig,
    SlotResult,
    compute_slots,
    compute_slots_for_doctors,
    roll_forward_window,
)
from clinic_backend.scheduling.errors import SchedulingError
from clinic_backend.scheduling.template import GridWindow, format_mark
from clinic_backend.services import appointment_service, availability_service

router = APIRouter(tags=['availability'])


class DoctorResponse(BaseModel):
    id: int
    name: str | None = None
    email: str | None = None
    specialty: str | None = None

    class Config:
        from_attributes = True


class SlotResponse(BaseModel):
    start: datetime
    end: datetime
    time: str
    available: bool


class DoctorAvailabilityResponse(BaseModel):
    doctor_id: int
    date: date
    slots: list[SlotResponse]
    doctor: DoctorResponse | None = None


class WeeklyAvailabilityResponse(BaseModel):
    doctor_id: int
    availability: dict[str, list[str]]
    grid: list[str]


class UpdateAvailabilityRequest(BaseModel):
    availability: dict[str, list[str]]

    @model_validator(mode='before')
    @classmethod
    def accept_bare_weekday_map(cls, value):
        if isinstance(value, dict) and 'availability' not in value:
            return {'availability': value}
        return value

    @field_validator('availability')
    @classmethod
    def strip_marks(cls, value: dict[str, list[str]]) -> dict[str, list[str]]:
        return {day: [mark.strip() for mark in marks] for day, marks in value.items()}


def ensure_database_ready() -> None:
    try:
        ensure_availability_schema()
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


def get_now() -> datetime:
    return datetime.now(timezone.utc)


def get_calendar() -> ClinicCalendar:
    return ClinicCalendar()


def get_slot_config() -> SlotConfig:
    return SlotConfig.from_settings()


def build_availability_response(result: SlotResult, doctor: User | None = None) -> DoctorAvailabilityResponse:
    return DoctorAvailabilityResponse(
        doctor_id=result.doctor_id,
        date=result.resolved_date,
        slots=[
            SlotResponse(start=slot.start, end=slot.end, time=slot.label, available=slot.available)
            for slot in result.slots
        ],
        doctor=DoctorResponse.model_validate(doctor) if doctor is not None else None,
    )


def resolve_requested_date(
    requested: str | None,
    auto: bool | None,
    now: datetime,
    calendar: ClinicCalendar,
) -> tuple[date, bool]:
    """Requested civil date and whether roll-forward applies.

    Omitting the date means "today, pick the first day with openings";
    an explicit date only rolls forward when ``auto`` asks for it.
    """
    if requested is None or not requested.strip():
        return calendar.today_date_key(now), True if auto is None else auto
    return parse_date_key(requested), bool(auto)


@router.get('/doctors', response_model=list[DoctorResponse])
def list_doctors(
    specialty: str | None = Query(default=None),
    name: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return appointment_service.list_doctors(db, specialty=specialty, name=name)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.get('/doctors/specialties', response_model=list[str])
def list_specialties(db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return appointment_service.list_specialties(db)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.get('/doctors/availability', response_model=list[DoctorAvailabilityResponse])
def list_doctors_availability(
    date: str | None = Query(default=None),
    auto: bool | None = Query(default=None),
    specialty: str | None = Query(default=None),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    calendar: ClinicCalendar = Depends(get_calendar),
    slot_config: SlotConfig = Depends(get_slot_config),
):
    ensure_database_ready()

    try:
        requested_date, roll_forward = resolve_requested_date(date, auto, now, calendar)
        doctors = appointment_service.list_doctors(db, specialty=specialty)
        requests = [
            DoctorSlotRequest(
                doctor_id=doctor.id,
                load_template=lambda doctor_id=doctor.id: availability_service.get_weekly_availability(doctor_id, db),
                load_booked_intervals=lambda start, end, doctor_id=doctor.id: appointment_service.load_booked_intervals(
                    doctor_id, start, end, db
                ),
            )
            for doctor in doctors
        ]
        results = compute_slots_for_doctors(
            requests,
            requested_date,
            now,
            slot_config,
            auto_roll_forward=roll_forward,
            calendar=calendar,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    doctors_by_id = {doctor.id: doctor for doctor in doctors}
    return [build_availability_response(result, doctors_by_id.get(result.doctor_id)) for result in results]


@router.get('/doctors/{doctor_id}/availability', response_model=DoctorAvailabilityResponse)
def get_doctor_availability(
    doctor_id: int,
    date: str | None = Query(default=None),
    auto: bool | None = Query(default=None),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    calendar: ClinicCalendar = Depends(get_calendar),
    slot_config: SlotConfig = Depends(get_slot_config),
):
    ensure_database_ready()

    try:
        requested_date, roll_forward = resolve_requested_date(date, auto, now, calendar)
        doctor = appointment_service.get_doctor(doctor_id, db)
        template = availability_service.get_weekly_availability(doctor_id, db)
        range_start, range_end = roll_forward_window(requested_date, slot_config, calendar)
        booked = appointment_service.load_booked_intervals(doctor_id, range_start, range_end, db)
        result = compute_slots(
            doctor_id,
            requested_date,
            template,
            booked,
            now,
            slot_config,
            auto_roll_forward=roll_forward,
            calendar=calendar,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return build_availability_response(result, doctor)


@router.get('/doctor/my-availability', response_model=WeeklyAvailabilityResponse)
def get_my_availability(
    current_doctor: User = Depends(get_current_doctor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        template = availability_service.get_weekly_availability(current_doctor.id, db)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    grid = [format_mark(mark) for mark in GridWindow.from_settings().marks()]
    return WeeklyAvailabilityResponse(doctor_id=current_doctor.id, availability=template.to_payload(), grid=grid)


@router.post('/doctor/update-availability', response_model=WeeklyAvailabilityResponse)
def update_my_availability(
    data: UpdateAvailabilityRequest,
    current_doctor: User = Depends(get_current_doctor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    window = GridWindow.from_settings()
    try:
        template = availability_service.replace_weekly_availability(
            current_doctor.id,
            current_doctor.id,
            data.availability,
            db,
            window=window,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    grid = [format_mark(mark) for mark in window.marks()]
    return WeeklyAvailabilityResponse(doctor_id=current_doctor.id, availability=template.to_payload(), grid=grid)


@router.post('/doctors/{doctor_id}/availability', response_model=WeeklyAvailabilityResponse)
def replace_doctor_availability(
    doctor_id: int,
    data: UpdateAvailabilityRequest,
    current_doctor: User = Depends(get_current_doctor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    window = GridWindow.from_settings()
    try:
        template = availability_service.replace_weekly_availability(
            doctor_id,
            current_doctor.id,
            data.availability,
            db,
            window=window,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    grid = [format_mark(mark) for mark in window.marks()]
    return WeeklyAvailabilityResponse(doctor_id=doctor_id, availability=template.to_payload(), grid=grid)
