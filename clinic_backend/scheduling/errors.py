"""Error kinds raised by the scheduling core and its services."""


class SchedulingError(Exception):
    """Base class for scheduling failures surfaced to callers."""


class InvalidDateError(SchedulingError):
    """A civil date could not be constructed or parsed."""


class InvalidTemplateError(SchedulingError):
    """A weekly availability template contains an unusable entry."""


class NotOwnerError(SchedulingError):
    """The requesting user does not own the resource being changed."""


class SlotNoLongerAvailableError(SchedulingError):
    """The slot was taken or became unbookable before admission."""


class AppointmentNotFoundError(SchedulingError):
    """No appointment exists with the requested id."""


class UnavailableDependencyError(SchedulingError):
    """Backing storage could not be read or written."""


class DoctorNotFoundError(SchedulingError):
    """No doctor exists with the requested id."""


class AppointmentStateError(SchedulingError):
    """The appointment's status does not allow the requested change."""
