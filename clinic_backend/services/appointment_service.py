"""Appointment admission and lifecycle on top of the slot engine.

Booking and rescheduling re-check the requested slot against fresh data
at commit time; the partial unique index on ``(doctor_id, start_time)``
decides races that slip past the check. Appointments are never deleted.
Read failures roll the session back so callers sharing one session, such
as the batch availability query, can keep using it.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_backend.models.appointment import Appointment
from clinic_backend.models.user import User
from clinic_backend.scheduling.booked import AppointmentInterval, AppointmentStatus, BookedIntervalIndex
from clinic_backend.scheduling.calendar import ClinicCalendar, DateKey, ensure_utc
from clinic_backend.scheduling.engine import SlotConfig, is_slot_bookable
from clinic_backend.scheduling.errors import (
    AppointmentNotFoundError,
    AppointmentStateError,
    DoctorNotFoundError,
    NotOwnerError,
    SlotNoLongerAvailableError,
    UnavailableDependencyError,
)
from clinic_backend.services.availability_service import get_weekly_availability

logger = logging.getLogger(__name__)

SLOT_TAKEN_MESSAGE = 'This time is no longer available. Please pick another time.'
DOCTOR_SET_STATUSES = {AppointmentStatus.COMPLETED, AppointmentStatus.NO_SHOW}


def to_db_time(instant: datetime) -> datetime:
    return ensure_utc(instant).replace(tzinfo=None)


def from_db_time(value: datetime) -> datetime:
    return ensure_utc(value)


def to_interval(appointment: Appointment) -> AppointmentInterval:
    return AppointmentInterval(
        doctor_id=appointment.doctor_id,
        patient_id=appointment.patient_id,
        start=from_db_time(appointment.start_time),
        end=from_db_time(appointment.end_time),
        status=AppointmentStatus(appointment.status),
        appointment_id=appointment.id,
    )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def load_booked_intervals(doctor_id: int, start: datetime, end: datetime, db: Session) -> BookedIntervalIndex:
    """Non-cancelled intervals for ``doctor_id`` overlapping ``[start, end)``."""
    try:
        appointments = db.query(Appointment).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.status != AppointmentStatus.CANCELLED.value,
            Appointment.start_time < to_db_time(end),
            Appointment.end_time > to_db_time(start),
        ).all()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Could not read booked intervals for doctor %s', doctor_id)
        raise UnavailableDependencyError('Booked appointments could not be read.') from exc

    return BookedIntervalIndex(doctor_id, (to_interval(appointment) for appointment in appointments))


def get_doctor(doctor_id: int, db: Session) -> User:
    try:
        doctor = db.get(User, doctor_id)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Could not read doctor %s', doctor_id)
        raise UnavailableDependencyError('Doctor could not be read.') from exc

    if doctor is None or not doctor.is_doctor:
        raise DoctorNotFoundError(f'Doctor {doctor_id} not found.')
    return doctor


def list_doctors(db: Session, *, specialty: str | None = None, name: str | None = None) -> list[User]:
    try:
        query = db.query(User).filter(User.role == 'doctor')
        if specialty:
            query = query.filter(User.specialty.ilike(specialty.strip()))
        if name:
            query = query.filter(User.name.ilike(f'%{name.strip()}%'))
        return query.order_by(User.name.asc(), User.id.asc()).all()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Could not list doctors')
        raise UnavailableDependencyError('Doctors could not be read.') from exc


def list_specialties(db: Session) -> list[str]:
    try:
        rows = (
            db.query(User.specialty)
            .filter(User.role == 'doctor', User.specialty.isnot(None), User.specialty != '')
            .distinct()
            .order_by(User.specialty.asc())
            .all()
        )
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Could not list specialties')
        raise UnavailableDependencyError('Specialties could not be read.') from exc

    return [specialty for (specialty,) in rows]


def _get_appointment(appointment_id: int, db: Session) -> Appointment:
    try:
        appointment = db.get(Appointment, appointment_id)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Could not read appointment %s', appointment_id)
        raise UnavailableDependencyError('Appointment could not be read.') from exc

    if appointment is None:
        raise AppointmentNotFoundError('Appointment not found.')
    return appointment


def _ensure_bookable(
    doctor_id: int,
    start: datetime,
    now: datetime,
    db: Session,
    slot_config: SlotConfig,
    calendar: ClinicCalendar,
    ignore_appointment_id: int | None = None,
) -> None:
    template = get_weekly_availability(doctor_id, db)
    day_start, day_end = calendar.date_key_to_day_bounds(calendar.instant_to_date_key(start))
    index = load_booked_intervals(doctor_id, day_start, day_end, db)
    if ignore_appointment_id is not None:
        index = index.without(ignore_appointment_id)

    if not is_slot_bookable(template, index, start, now, slot_config, calendar):
        raise SlotNoLongerAvailableError(SLOT_TAKEN_MESSAGE)


def _commit_admission(db: Session, doctor_id: int, start: datetime) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.info('Lost booking race for doctor %s at %s', doctor_id, start.isoformat())
        raise SlotNoLongerAvailableError(SLOT_TAKEN_MESSAGE) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Could not save appointment for doctor %s', doctor_id)
        raise UnavailableDependencyError('Appointment could not be saved.') from exc


def book_appointment(
    doctor_id: int,
    patient_id: int,
    start: datetime,
    db: Session,
    *,
    reason: str | None = None,
    now: datetime | None = None,
    slot_config: SlotConfig | None = None,
    calendar: ClinicCalendar | None = None,
) -> Appointment:
    """Admit a new appointment if ``start`` is still a bookable slot."""
    slot_config = slot_config or SlotConfig.from_settings()
    calendar = calendar or ClinicCalendar()
    now = now or _utcnow()
    start = ensure_utc(start)

    get_doctor(doctor_id, db)
    _ensure_bookable(doctor_id, start, now, db, slot_config, calendar)

    appointment = Appointment(
        doctor_id=doctor_id,
        patient_id=patient_id,
        start_time=to_db_time(start),
        end_time=to_db_time(start + slot_config.slot_length),
        status=AppointmentStatus.UPCOMING.value,
        reason=reason,
        updated_at=to_db_time(now),
    )
    db.add(appointment)
    _commit_admission(db, doctor_id, start)
    db.refresh(appointment)

    logger.info('Booked appointment %s with doctor %s at %s', appointment.id, doctor_id, start.isoformat())
    return appointment


def reschedule_appointment(
    appointment_id: int,
    requesting_user_id: int,
    new_start: datetime,
    db: Session,
    *,
    reason: str | None = None,
    now: datetime | None = None,
    slot_config: SlotConfig | None = None,
    calendar: ClinicCalendar | None = None,
) -> Appointment:
    """Move an upcoming appointment owned by the requesting patient."""
    slot_config = slot_config or SlotConfig.from_settings()
    calendar = calendar or ClinicCalendar()
    now = now or _utcnow()
    new_start = ensure_utc(new_start)

    appointment = _get_appointment(appointment_id, db)
    if appointment.patient_id != requesting_user_id:
        raise NotOwnerError('Only the patient who booked this appointment can reschedule it.')
    if appointment.status != AppointmentStatus.UPCOMING.value:
        raise AppointmentStateError('Only upcoming appointments can be rescheduled.')

    _ensure_bookable(
        appointment.doctor_id,
        new_start,
        now,
        db,
        slot_config,
        calendar,
        ignore_appointment_id=appointment.id,
    )

    appointment.start_time = to_db_time(new_start)
    appointment.end_time = to_db_time(new_start + slot_config.slot_length)
    if reason is not None:
        appointment.reason = reason
    appointment.updated_at = to_db_time(now)
    _commit_admission(db, appointment.doctor_id, new_start)
    db.refresh(appointment)

    logger.info('Rescheduled appointment %s to %s', appointment.id, new_start.isoformat())
    return appointment


def _save(db: Session, appointment: Appointment) -> Appointment:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Could not update appointment %s', appointment.id)
        raise UnavailableDependencyError('Appointment could not be saved.') from exc
    db.refresh(appointment)
    return appointment


def cancel_appointment(
    appointment_id: int,
    requesting_user_id: int,
    db: Session,
    *,
    now: datetime | None = None,
) -> Appointment:
    """Mark an appointment cancelled; the row is kept and the slot reopens."""
    appointment = _get_appointment(appointment_id, db)
    if requesting_user_id not in (appointment.patient_id, appointment.doctor_id):
        raise NotOwnerError('Only the patient or doctor of this appointment can cancel it.')

    if appointment.status == AppointmentStatus.CANCELLED.value:
        return appointment
    if appointment.status != AppointmentStatus.UPCOMING.value:
        raise AppointmentStateError('Only upcoming appointments can be cancelled.')

    appointment.status = AppointmentStatus.CANCELLED.value
    appointment.updated_at = to_db_time(now or _utcnow())
    _save(db, appointment)

    logger.info('Cancelled appointment %s', appointment.id)
    return appointment


def update_appointment_status(
    appointment_id: int,
    requesting_user_id: int,
    status: AppointmentStatus | str,
    db: Session,
    *,
    now: datetime | None = None,
) -> Appointment:
    """Let the doctor record the outcome of an appointment that has started."""
    try:
        new_status = AppointmentStatus(status)
    except ValueError as exc:
        raise AppointmentStateError(f'Unknown appointment status {status!r}.') from exc
    if new_status not in DOCTOR_SET_STATUSES:
        raise AppointmentStateError('Doctors can only mark appointments completed or no-show.')

    now = now or _utcnow()
    appointment = _get_appointment(appointment_id, db)
    if appointment.doctor_id != requesting_user_id:
        raise NotOwnerError('Only the doctor of this appointment can update its status.')
    if appointment.status == AppointmentStatus.CANCELLED.value:
        raise AppointmentStateError('Cancelled appointments cannot change status.')
    if from_db_time(appointment.start_time) > ensure_utc(now):
        raise AppointmentStateError('Appointments can only be closed once they have started.')

    appointment.status = new_status.value
    appointment.updated_at = to_db_time(now)
    return _save(db, appointment)


def list_doctor_appointments(
    doctor_id: int,
    db: Session,
    *,
    scope: str = 'upcoming',
    now: datetime | None = None,
) -> list[Appointment]:
    """Upcoming appointments soonest first, or past ones most recent first."""
    now_db = to_db_time(now or _utcnow())
    try:
        query = db.query(Appointment).filter(Appointment.doctor_id == doctor_id)
        if scope == 'past':
            query = query.filter(
                or_(
                    Appointment.end_time <= now_db,
                    Appointment.status.in_([status.value for status in DOCTOR_SET_STATUSES]),
                )
            ).order_by(Appointment.start_time.desc())
        else:
            query = query.filter(
                Appointment.status == AppointmentStatus.UPCOMING.value,
                Appointment.end_time > now_db,
            ).order_by(Appointment.start_time.asc())
        return query.all()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Could not list appointments for doctor %s', doctor_id)
        raise UnavailableDependencyError('Appointments could not be read.') from exc


def list_patient_appointments(
    patient_id: int,
    db: Session,
    *,
    status: AppointmentStatus | str | None = None,
    date_from: DateKey | datetime | None = None,
    date_to: DateKey | datetime | None = None,
    page: int = 1,
    page_size: int = 10,
    calendar: ClinicCalendar | None = None,
) -> tuple[list[Appointment], int]:
    """One page of a patient's appointments, newest first, plus the total count.

    ``date_from`` and ``date_to`` are inclusive bounds on the start time:
    either clinic-local dates covering the whole day or exact instants.
    """
    calendar = calendar or ClinicCalendar()
    try:
        query = db.query(Appointment).filter(Appointment.patient_id == patient_id)
        if status:
            query = query.filter(Appointment.status == AppointmentStatus(status).value)
        if isinstance(date_from, datetime):
            query = query.filter(Appointment.start_time >= to_db_time(date_from))
        elif date_from is not None:
            range_start, _ = calendar.date_key_to_day_bounds(date_from)
            query = query.filter(Appointment.start_time >= to_db_time(range_start))
        if isinstance(date_to, datetime):
            query = query.filter(Appointment.start_time <= to_db_time(date_to))
        elif date_to is not None:
            _, range_end = calendar.date_key_to_day_bounds(date_to)
            query = query.filter(Appointment.start_time < to_db_time(range_end))

        total = query.count()
        appointments = (
            query.order_by(Appointment.start_time.desc())
            .offset((max(page, 1) - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return appointments, total
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Could not list appointments for patient %s', patient_id)
        raise UnavailableDependencyError('Appointments could not be read.') from exc
