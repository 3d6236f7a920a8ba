import logging
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_backend.models.availability import WeeklyAvailabilityRecord
from clinic_backend.scheduling.errors import NotOwnerError, UnavailableDependencyError
from clinic_backend.scheduling.template import GridWindow, WeeklyAvailability

logger = logging.getLogger(__name__)


def get_weekly_availability(doctor_id: int, db: Session) -> WeeklyAvailability:
    """Stored template for ``doctor_id``, or an empty one when none was saved."""
    try:
        record = db.get(WeeklyAvailabilityRecord, doctor_id)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Could not read weekly availability for doctor %s', doctor_id)
        raise UnavailableDependencyError('Weekly availability could not be read.') from exc

    if record is None:
        return WeeklyAvailability.empty(doctor_id)
    return WeeklyAvailability.from_payload(doctor_id, record.schedule)


def replace_weekly_availability(
    doctor_id: int,
    requesting_user_id: int,
    new_template: WeeklyAvailability | Mapping[str, Iterable[str]],
    db: Session,
    *,
    window: GridWindow | None = None,
) -> WeeklyAvailability:
    """Replace a doctor's whole weekly template in one write.

    Only the doctor may edit their own template. The template is validated
    in full before anything is written, and the stored JSON document is
    swapped in a single transaction so readers see either the old or the
    new template. Existing appointments are left untouched.
    """
    if requesting_user_id != doctor_id:
        raise NotOwnerError('Doctors can only edit their own availability.')

    window = window or GridWindow.from_settings()
    if isinstance(new_template, WeeklyAvailability):
        template = WeeklyAvailability(doctor_id=doctor_id, days=dict(new_template.days))
        template.validate(window)
    else:
        template = WeeklyAvailability.from_payload(doctor_id, new_template, window)

    payload = template.to_payload()
    try:
        record = db.get(WeeklyAvailabilityRecord, doctor_id)
        if record is None:
            record = WeeklyAvailabilityRecord(doctor_id=doctor_id)
            db.add(record)
        record.schedule = payload
        record.updated_at = datetime.now(timezone.utc).replace(tzinfo=None)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Could not replace weekly availability for doctor %s', doctor_id)
        raise UnavailableDependencyError('Weekly availability could not be saved.') from exc

    logger.info(
        'Replaced weekly availability for doctor %s (%s marks)',
        doctor_id,
        sum(len(marks) for marks in payload.values()),
    )
    return template
