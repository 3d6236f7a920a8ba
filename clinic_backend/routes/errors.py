from fastapi import HTTPException, status

from clinic_backend.scheduling.errors import (
    AppointmentNotFoundError,
    AppointmentStateError,
    DoctorNotFoundError,
    InvalidDateError,
    InvalidTemplateError,
    NotOwnerError,
    SchedulingError,
    SlotNoLongerAvailableError,
    UnavailableDependencyError,
)

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'

_STATUS_CODES = {
    InvalidDateError: status.HTTP_400_BAD_REQUEST,
    InvalidTemplateError: status.HTTP_400_BAD_REQUEST,
    AppointmentStateError: status.HTTP_400_BAD_REQUEST,
    NotOwnerError: status.HTTP_403_FORBIDDEN,
    DoctorNotFoundError: status.HTTP_404_NOT_FOUND,
    AppointmentNotFoundError: status.HTTP_404_NOT_FOUND,
    SlotNoLongerAvailableError: status.HTTP_409_CONFLICT,
    UnavailableDependencyError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def to_http_exception(exc: SchedulingError) -> HTTPException:
    if isinstance(exc, UnavailableDependencyError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=DATABASE_UNAVAILABLE_DETAIL)

    for error_type, status_code in _STATUS_CODES.items():
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))

    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
