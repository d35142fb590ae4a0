"""Exceptions raised by the scheduling core and the services built on it."""


class SchedulingError(Exception):
    """Base class for scheduler failures surfaced to callers."""


class TimeFormatError(SchedulingError, ValueError):
    """A time or date string matched none of the accepted formats."""


class DoctorNotFoundError(SchedulingError):
    pass


class AppointmentNotFoundError(SchedulingError):
    pass


class NoSlotAvailableError(SchedulingError):
    def __init__(self, message: str = "No slot available.") -> None:
        super().__init__(message)


class SlotUnavailableError(SchedulingError):
    """Raised when the chosen slot was taken by a concurrent booking."""

    def __init__(self, message: str = "Slot no longer available, please retry.") -> None:
        super().__init__(message)


class AdvanceCapacityReachedError(SchedulingError):
    def __init__(
        self,
        message: str = "Advance bookings have reached their share of this session. Book another day or as a walk-in.",
    ) -> None:
        super().__init__(message)


class DuplicateBookingError(SchedulingError):
    def __init__(self, message: str = "This patient already has an appointment with this doctor on that date.") -> None:
        super().__init__(message)


class InvalidStatusTransitionError(SchedulingError):
    pass
