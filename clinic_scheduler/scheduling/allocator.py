"""Booking allocation over a generated slot calendar.

The allocator is pure: it is handed the day's calendar and the appointments
already recorded for that doctor and date, and decides which slot a new booking
gets together with its token and deadlines. Persisting the result, and making
the occupancy check and the insert one transaction, is the booking service's job.
"""

import math
from collections.abc import Iterable
from datetime import date, datetime, timedelta
from typing import Any

from pydantic import BaseModel

from clinic_scheduler.core import config
from clinic_scheduler.scheduling.calendar import Slot, session_slots
from clinic_scheduler.scheduling.errors import (
    AdvanceCapacityReachedError,
    NoSlotAvailableError,
    SlotUnavailableError,
)
from clinic_scheduler.scheduling.statuses import (
    AppointmentStatus,
    holds_slot,
    is_walk_in,
)
from clinic_scheduler.scheduling.time_formats import at_clock, format_clock

WALK_IN_TOKEN_PREFIX = 'W'
ADVANCE_TOKEN_PREFIX = 'A'

# Advance bookings in these states no longer count against the session's share.
_RELEASED_FOR_CAPACITY = frozenset({
    AppointmentStatus.CANCELLED.value,
    AppointmentStatus.COMPLETED.value,
    AppointmentStatus.NO_SHOW.value,
})


class Allocation(BaseModel):
    slot_index: int
    session_index: int
    time: str
    cut_off_time: datetime
    no_show_time: datetime
    token_number: str
    numeric_token: int
    status: str


def occupied_slot_indexes(appointments: Iterable[Any]) -> set[int]:
    return {
        appointment.slot_index
        for appointment in appointments
        if appointment.slot_index is not None and holds_slot(appointment.status)
    }


def advance_capacity(total_slots: int, capacity_ratio: float) -> int:
    return math.floor(total_slots * capacity_ratio)


def count_advance_bookings(appointments: Iterable[Any], session_index: int) -> int:
    return sum(
        1
        for appointment in appointments
        if not is_walk_in(appointment.booked_via)
        and appointment.session_index == session_index
        and appointment.status not in _RELEASED_FOR_CAPACITY
    )


def next_token(appointments: Iterable[Any], booked_via: str) -> tuple[str, int]:
    highest = max((appointment.numeric_token or 0 for appointment in appointments), default=0)
    numeric_token = highest + 1
    prefix = WALK_IN_TOKEN_PREFIX if is_walk_in(booked_via) else ADVANCE_TOKEN_PREFIX
    return f'{prefix}{numeric_token:03d}', numeric_token


def slot_deadlines(target_date: date, start: int) -> tuple[datetime, datetime]:
    """Cut-off and no-show deadline for an appointment starting at ``start``."""
    starts_at = at_clock(target_date, start)
    return (
        starts_at - timedelta(minutes=config.CUT_OFF_MINUTES),
        starts_at + timedelta(minutes=config.NO_SHOW_GRACE_MINUTES),
    )


def has_active_booking(appointments: Iterable[Any], patient_id: str | None) -> bool:
    if not patient_id:
        return False
    return any(
        appointment.patient_id == patient_id and holds_slot(appointment.status)
        for appointment in appointments
    )


def find_free_slot(
    calendar: list[Slot],
    appointments: list[Any],
    target_date: date,
    booked_via: str,
    now: datetime,
    preferred_start: int | None = None,
    exclusion_minutes: int | None = None,
    capacity_ratio: float | None = None,
) -> Slot:
    if exclusion_minutes is None:
        exclusion_minutes = config.ADVANCE_BOOKING_EXCLUSION_MINUTES
    if capacity_ratio is None:
        capacity_ratio = config.ADVANCE_BOOKING_CAPACITY_RATIO

    walk_in = is_walk_in(booked_via)
    earliest_start = now if walk_in else now + timedelta(minutes=exclusion_minutes)
    occupied = occupied_slot_indexes(appointments)

    candidates = [
        slot
        for slot in calendar
        if slot.global_slot_index not in occupied
        and at_clock(target_date, slot.start) >= earliest_start
    ]

    if preferred_start is not None:
        candidates = [slot for slot in candidates if slot.start == preferred_start]
        if not candidates:
            raise SlotUnavailableError(f'{format_clock(preferred_start)} is not available for booking.')

    if not walk_in:
        full_sessions = {
            slot.session_index
            for slot in candidates
            if count_advance_bookings(appointments, slot.session_index)
            >= advance_capacity(len(session_slots(calendar, slot.session_index)), capacity_ratio)
        }
        open_candidates = [slot for slot in candidates if slot.session_index not in full_sessions]
        if candidates and not open_candidates:
            raise AdvanceCapacityReachedError()
        candidates = open_candidates

    if not candidates:
        raise NoSlotAvailableError()

    return candidates[0]


def plan_booking(
    calendar: list[Slot],
    appointments: list[Any],
    target_date: date,
    booked_via: str,
    now: datetime,
    preferred_start: int | None = None,
) -> Allocation:
    slot = find_free_slot(calendar, appointments, target_date, booked_via, now, preferred_start)
    cut_off_time, no_show_time = slot_deadlines(target_date, slot.start)
    token_number, numeric_token = next_token(appointments, booked_via)

    # Walk-in patients are already at the desk.
    status = AppointmentStatus.CONFIRMED if is_walk_in(booked_via) else AppointmentStatus.PENDING

    return Allocation(
        slot_index=slot.global_slot_index,
        session_index=slot.session_index,
        time=slot.time,
        cut_off_time=cut_off_time,
        no_show_time=no_show_time,
        token_number=token_number,
        numeric_token=numeric_token,
        status=status.value,
    )
