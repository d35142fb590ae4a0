from enum import Enum


class AppointmentStatus(str, Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    NO_SHOW = "No-show"


class BookingChannel(str, Enum):
    ADVANCE = "Advanced Booking"
    ONLINE = "Online"
    WALK_IN = "Walk-in"
    PHONE = "Phone"


class ConsultationStatus(str, Enum):
    IN = "In"
    OUT = "Out"


# Statuses whose appointment no longer holds its slot.
VACATED_STATUSES = frozenset({AppointmentStatus.CANCELLED.value, AppointmentStatus.NO_SHOW.value})
# Statuses that delay propagation and recovery re-time.
WAITING_STATUSES = frozenset({AppointmentStatus.PENDING.value, AppointmentStatus.CONFIRMED.value})


def holds_slot(status: str | None) -> bool:
    return status not in VACATED_STATUSES


def is_walk_in(booked_via: str | None) -> bool:
    return booked_via == BookingChannel.WALK_IN.value
