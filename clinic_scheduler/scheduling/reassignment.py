"""Pull arrived patients forward into empty slots of the same session.

Patients already at the clinic (walk-ins, and advance bookings once confirmed)
who sit in a later slot than necessary are moved into earlier empty slots of
their own session, on the current day only. Pending appointments never move.

Ordering between candidates is an explicit rank key (see ``CandidateRank``):

1. walk-ins that can take a slot inside the exclusion window,
2. the other walk-ins,
3. confirmed advance bookings,

ties broken by the originally scheduled time, then by slot index.

One planning pass consumes every empty slot at most once. Passes repeat on the
updated snapshot, so slots vacated by a move are offered on the next pass, until
nothing moves; running the planner again on its own result therefore moves no one.
"""

import logging
from datetime import date, datetime, timedelta
from enum import IntEnum
from typing import Any, NamedTuple

from pydantic import BaseModel

from clinic_scheduler.core import config
from clinic_scheduler.scheduling.allocator import slot_deadlines
from clinic_scheduler.scheduling.calendar import Slot
from clinic_scheduler.scheduling.errors import TimeFormatError
from clinic_scheduler.scheduling.statuses import (
    AppointmentStatus,
    holds_slot,
    is_walk_in,
)
from clinic_scheduler.scheduling.time_formats import MINUTES_PER_DAY, at_clock, parse_clock

logger = logging.getLogger(__name__)


class CandidateTier(IntEnum):
    WALK_IN_EXCLUSION_WINDOW = 0
    WALK_IN = 1
    ADVANCE = 2


class CandidateRank(NamedTuple):
    tier: CandidateTier
    scheduled_minutes: int
    slot_index: int


class SlotMove(BaseModel):
    appointment_id: int
    token_number: str | None = None
    from_slot_index: int
    to_slot_index: int
    from_time: str | None = None
    time: str
    cut_off_time: datetime
    no_show_time: datetime

    def describe(self) -> str:
        return (
            f'{self.token_number or self.appointment_id} moved from slot {self.from_slot_index} '
            f'({self.from_time}) to slot {self.to_slot_index} ({self.time})'
        )


class _Seat:
    """Mutable working copy of one appointment during planning."""

    def __init__(self, appointment: Any) -> None:
        self.appointment = appointment
        self.slot_index = appointment.slot_index

    @property
    def walk_in(self) -> bool:
        return is_walk_in(self.appointment.booked_via)

    def is_candidate(self) -> bool:
        # Walk-ins are booked Confirmed, so this covers both arrived walk-ins and confirmed advance bookings.
        return self.appointment.status == AppointmentStatus.CONFIRMED.value


def _original_minutes(appointment: Any) -> int:
    try:
        return parse_clock(appointment.time)
    except TimeFormatError:
        logger.warning('Appointment %s has unreadable time %r; ranking it last', appointment.id, appointment.time)
        return MINUTES_PER_DAY


def _empty_slots(session: list[Slot], seats: list[_Seat]) -> list[Slot]:
    taken = {seat.slot_index for seat in seats if holds_slot(seat.appointment.status)}
    return [slot for slot in session if slot.global_slot_index not in taken]


def _split_by_window(
    empty: list[Slot],
    target_date: date,
    now: datetime,
    window_minutes: int,
) -> tuple[list[Slot], list[Slot]]:
    window_end = now + timedelta(minutes=window_minutes)
    in_window: list[Slot] = []
    others: list[Slot] = []
    for slot in empty:
        starts_at = at_clock(target_date, slot.start)
        if now <= starts_at <= window_end:
            in_window.append(slot)
        else:
            others.append(slot)
    return in_window, others


def _earliest_before(slots: list[Slot], slot_index: int, used: set[int]) -> Slot | None:
    eligible = [
        slot for slot in slots if slot.global_slot_index < slot_index and slot.global_slot_index not in used
    ]
    return min(eligible, key=lambda slot: slot.global_slot_index, default=None)


def rank_candidate(seat: _Seat, in_window: list[Slot]) -> CandidateRank:
    if seat.walk_in:
        can_use_window = any(slot.global_slot_index < seat.slot_index for slot in in_window)
        tier = CandidateTier.WALK_IN_EXCLUSION_WINDOW if can_use_window else CandidateTier.WALK_IN
    else:
        tier = CandidateTier.ADVANCE
    return CandidateRank(tier, _original_minutes(seat.appointment), seat.slot_index)


def _plan_pass(
    session: list[Slot],
    seats: list[_Seat],
    target_date: date,
    now: datetime,
    window_minutes: int,
) -> list[tuple[_Seat, Slot]]:
    session_indexes = {slot.global_slot_index for slot in session}
    in_window, others = _split_by_window(_empty_slots(session, seats), target_date, now, window_minutes)
    every_empty = in_window + others

    candidates = [
        seat
        for seat in seats
        if seat.is_candidate()
        and seat.slot_index in session_indexes
        and any(slot.global_slot_index < seat.slot_index for slot in every_empty)
    ]
    candidates.sort(key=lambda seat: rank_candidate(seat, in_window))

    used: set[int] = set()
    moves: list[tuple[_Seat, Slot]] = []
    for seat in candidates:
        if seat.walk_in:
            target = _earliest_before(in_window, seat.slot_index, used) or _earliest_before(
                others, seat.slot_index, used
            )
        else:
            target = _earliest_before(every_empty, seat.slot_index, used)

        if target is not None:
            used.add(target.global_slot_index)
            moves.append((seat, target))

    return moves


def plan_reassignment(
    session: list[Slot],
    appointments: list[Any],
    target_date: date,
    now: datetime,
    window_minutes: int | None = None,
) -> list[SlotMove]:
    """Plan moves for one session's appointments; ``session`` is that session's slots."""
    if target_date != now.date() or not session:
        return []
    if window_minutes is None:
        window_minutes = config.ADVANCE_BOOKING_EXCLUSION_MINUTES

    seats = [_Seat(appointment) for appointment in appointments if appointment.slot_index is not None]
    slot_by_index = {slot.global_slot_index: slot for slot in session}
    final_slot: dict[int, Slot] = {}

    while True:
        moves = _plan_pass(session, seats, target_date, now, window_minutes)
        if not moves:
            break
        for seat, target in moves:
            seat.slot_index = target.global_slot_index
            final_slot[id(seat)] = target

    planned: list[SlotMove] = []
    for seat in seats:
        target = final_slot.get(id(seat))
        if target is None:
            continue
        cut_off_time, no_show_time = slot_deadlines(target_date, target.start)
        original = slot_by_index.get(seat.appointment.slot_index)
        planned.append(
            SlotMove(
                appointment_id=seat.appointment.id,
                token_number=seat.appointment.token_number,
                from_slot_index=seat.appointment.slot_index,
                to_slot_index=target.global_slot_index,
                from_time=seat.appointment.time or (original.time if original else None),
                time=target.time,
                cut_off_time=cut_off_time,
                no_show_time=no_show_time,
            )
        )

    return sorted(planned, key=lambda move: move.to_slot_index)
