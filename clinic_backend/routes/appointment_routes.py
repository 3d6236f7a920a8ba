import math
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from clinic_backend.auth.dependencies import get_current_doctor, get_current_user
from clinic_backend.core import config
from clinic_backend.database import get_db
from clinic_backend.models.appointment import Appointment
from clinic_backend.models.user import User
from clinic_backend.routes.availability_routes import ensure_database_ready, get_calendar, get_now, get_slot_config
from clinic_backend.routes.errors import to_http_exception
from clinic_backend.scheduling.booked import AppointmentStatus
from clinic_backend.scheduling.calendar import ClinicCalendar, parse_date_or_instant
from clinic_backend.scheduling.engine import SlotConfig
from clinic_backend.scheduling.errors import SchedulingError
from clinic_backend.services import appointment_service

router = APIRouter(tags=['appointments'])


def _normalize_reason(value: str | None) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > config.MAX_APPOINTMENT_REASON_LENGTH:
        raise ValueError(f'Reason must be {config.MAX_APPOINTMENT_REASON_LENGTH} characters or fewer.')

    return normalized


class CreateAppointmentRequest(BaseModel):
    doctor_id: int
    start_time: datetime
    reason: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        return _normalize_reason(value)


class RescheduleAppointmentRequest(BaseModel):
    start_time: datetime
    reason: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        return _normalize_reason(value)


class UpdateStatusRequest(BaseModel):
    status: AppointmentStatus


class AppointmentResponse(BaseModel):
    id: int
    doctor_id: int
    patient_id: int
    start_time: datetime
    end_time: datetime
    status: str
    reason: str | None = None


class PaginationResponse(BaseModel):
    page: int
    pages: int
    total: int
    limit: int


class AppointmentListResponse(BaseModel):
    appointments: list[AppointmentResponse]
    total: int
    page: int
    pagination: PaginationResponse


def build_appointment_response(appointment: Appointment) -> AppointmentResponse:
    return AppointmentResponse(
        id=appointment.id,
        doctor_id=appointment.doctor_id,
        patient_id=appointment.patient_id,
        start_time=appointment_service.from_db_time(appointment.start_time),
        end_time=appointment_service.from_db_time(appointment.end_time),
        status=appointment.status,
        reason=appointment.reason,
    )


def require_patient(user: User) -> None:
    if user.is_doctor:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only patients can book appointments.',
        )


@router.post('/appointments', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    calendar: ClinicCalendar = Depends(get_calendar),
    slot_config: SlotConfig = Depends(get_slot_config),
):
    require_patient(current_user)
    ensure_database_ready()

    try:
        appointment = appointment_service.book_appointment(
            data.doctor_id,
            current_user.id,
            data.start_time,
            db,
            reason=data.reason,
            now=now,
            slot_config=slot_config,
            calendar=calendar,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return build_appointment_response(appointment)


@router.get('/appointments', response_model=AppointmentListResponse)
def list_my_appointments(
    status_filter: AppointmentStatus | None = Query(default=None, alias='status'),
    date_from: str | None = Query(default=None, alias='from'),
    date_to: str | None = Query(default=None, alias='to'),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, ge=1, le=100),
    limit: int | None = Query(default=None, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    calendar: ClinicCalendar = Depends(get_calendar),
):
    ensure_database_ready()

    # ``limit`` is the web client's name for ``page_size``.
    page_size = limit or page_size
    try:
        appointments, total = appointment_service.list_patient_appointments(
            current_user.id,
            db,
            status=status_filter,
            date_from=parse_date_or_instant(date_from) if date_from else None,
            date_to=parse_date_or_instant(date_to) if date_to else None,
            page=page,
            page_size=page_size,
            calendar=calendar,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return AppointmentListResponse(
        appointments=[build_appointment_response(appointment) for appointment in appointments],
        total=total,
        page=page,
        pagination=PaginationResponse(
            page=page,
            pages=max(1, math.ceil(total / page_size)),
            total=total,
            limit=page_size,
        ),
    )


@router.put('/appointments/{appointment_id}', response_model=AppointmentResponse)
def reschedule_appointment(
    appointment_id: int,
    data: RescheduleAppointmentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    calendar: ClinicCalendar = Depends(get_calendar),
    slot_config: SlotConfig = Depends(get_slot_config),
):
    ensure_database_ready()

    try:
        appointment = appointment_service.reschedule_appointment(
            appointment_id,
            current_user.id,
            data.start_time,
            db,
            reason=data.reason,
            now=now,
            slot_config=slot_config,
            calendar=calendar,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return build_appointment_response(appointment)


@router.post('/appointments/{appointment_id}/cancel', response_model=AppointmentResponse)
@router.delete('/appointments/{appointment_id}', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    ensure_database_ready()

    try:
        appointment = appointment_service.cancel_appointment(appointment_id, current_user.id, db, now=now)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return build_appointment_response(appointment)


@router.get('/doctor/upcoming-appointments', response_model=list[AppointmentResponse])
def list_upcoming_appointments(
    current_doctor: User = Depends(get_current_doctor),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    ensure_database_ready()

    try:
        appointments = appointment_service.list_doctor_appointments(current_doctor.id, db, scope='upcoming', now=now)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return [build_appointment_response(appointment) for appointment in appointments]


@router.get('/doctor/past-appointments', response_model=list[AppointmentResponse])
def list_past_appointments(
    current_doctor: User = Depends(get_current_doctor),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    ensure_database_ready()

    try:
        appointments = appointment_service.list_doctor_appointments(current_doctor.id, db, scope='past', now=now)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return [build_appointment_response(appointment) for appointment in appointments]


@router.patch('/doctor/appointments/{appointment_id}/status', response_model=AppointmentResponse)
def update_appointment_status(
    appointment_id: int,
    data: UpdateStatusRequest,
    current_doctor: User = Depends(get_current_doctor),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    ensure_database_ready()

    try:
        appointment = appointment_service.update_appointment_status(
            appointment_id,
            current_doctor.id,
            data.status,
            db,
            now=now,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return build_appointment_response(appointment)
