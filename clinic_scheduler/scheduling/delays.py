"""Delay propagation and vacancy recovery planners.

Both planners take a snapshot of one doctor's appointments for one date and
return the field updates to apply; neither touches the store. Appointments are
always ordered by ``slot_index``, never by their displayed time, so an
appointment whose time has already been shifted or reassigned keeps its place.
"""

import logging
from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Any

from pydantic import BaseModel

from clinic_scheduler.core import config
from clinic_scheduler.scheduling.errors import TimeFormatError
from clinic_scheduler.scheduling.statuses import AppointmentStatus, WAITING_STATUSES
from clinic_scheduler.scheduling.time_formats import (
    LAST_CLOCK_MINUTE,
    at_clock,
    format_clock,
    parse_clock,
    parse_day,
)

logger = logging.getLogger(__name__)


class AppointmentUpdate(BaseModel):
    appointment_id: int
    changes: dict[str, Any]


def scheduled_start(appointment: Any) -> datetime:
    return at_clock(parse_day(appointment.date), parse_clock(appointment.time))


def _waiting_after(appointments: Iterable[Any], slot_index: int, inclusive: bool = False) -> list[Any]:
    def is_after(candidate: Any) -> bool:
        if candidate.slot_index is None:
            return False
        return candidate.slot_index >= slot_index if inclusive else candidate.slot_index > slot_index

    waiting = [
        appointment
        for appointment in appointments
        if appointment.status in WAITING_STATUSES and is_after(appointment)
    ]
    return sorted(waiting, key=lambda appointment: appointment.slot_index)


def consultation_overrun(appointment: Any, completed_at: datetime, duration: int) -> int:
    """Whole minutes by which a consultation ended after its slot should have."""
    expected_end = scheduled_start(appointment) + timedelta(minutes=duration)
    if completed_at <= expected_end:
        return 0
    return int((completed_at - expected_end).total_seconds() // 60)


def plan_delay_propagation(
    appointments: list[Any],
    trigger_id: int,
    overrun_minutes: int,
    include_trigger: bool = False,
) -> list[AppointmentUpdate]:
    if overrun_minutes <= 0:
        return []

    trigger = next((appointment for appointment in appointments if appointment.id == trigger_id), None)
    if trigger is None or trigger.slot_index is None:
        return []

    updates: list[AppointmentUpdate] = []
    for appointment in _waiting_after(appointments, trigger.slot_index, inclusive=include_trigger):
        try:
            shifted = parse_clock(appointment.time) + overrun_minutes
        except TimeFormatError:
            logger.warning('Skipping appointment %s: unreadable time %r', appointment.id, appointment.time)
            continue

        if shifted > LAST_CLOCK_MINUTE:
            # The full overrun still lands in ``delay``; only the displayed time stops at midnight.
            logger.warning(
                'Appointment %s pushed past midnight by %s minutes; showing %s',
                appointment.id,
                shifted - LAST_CLOCK_MINUTE,
                format_clock(LAST_CLOCK_MINUTE),
            )
            shifted = LAST_CLOCK_MINUTE

        updates.append(
            AppointmentUpdate(
                appointment_id=appointment.id,
                changes={
                    'time': format_clock(shifted),
                    'delay': (appointment.delay or 0) + overrun_minutes,
                },
            )
        )

    return updates


def plan_vacancy_recovery(
    appointments: list[Any],
    vacated_slot_index: int,
    slot_duration: int,
) -> list[AppointmentUpdate]:
    updates: list[AppointmentUpdate] = []

    for appointment in _waiting_after(appointments, vacated_slot_index):
        current_delay = appointment.delay or 0
        new_delay = max(0, current_delay - slot_duration)
        try:
            # The displayed time is left as it is; only the bookkeeping moves.
            no_show_time = scheduled_start(appointment) + timedelta(
                minutes=config.NO_SHOW_GRACE_MINUTES + new_delay
            )
        except TimeFormatError:
            logger.warning('Skipping appointment %s: unreadable date/time %r %r', appointment.id, appointment.date, appointment.time)
            continue

        if new_delay == current_delay and appointment.no_show_time == no_show_time:
            continue

        updates.append(
            AppointmentUpdate(
                appointment_id=appointment.id,
                changes={'delay': new_delay, 'no_show_time': no_show_time},
            )
        )

    return updates


def plan_doctor_late_delay(appointments: list[Any], now: datetime) -> list[AppointmentUpdate]:
    """Push the whole queue back when the doctor starts after the first arrived patient's time."""
    confirmed = sorted(
        (
            appointment
            for appointment in appointments
            if appointment.status == AppointmentStatus.CONFIRMED.value and appointment.slot_index is not None
        ),
        key=lambda appointment: appointment.slot_index,
    )
    if not confirmed:
        return []

    first = confirmed[0]
    try:
        first_start = scheduled_start(first)
    except TimeFormatError:
        logger.warning('Cannot measure lateness: appointment %s has unreadable time %r', first.id, first.time)
        return []

    if now <= first_start:
        return []

    late_minutes = int((now - first_start).total_seconds() // 60)
    return plan_delay_propagation(appointments, first.id, late_minutes, include_trigger=True)
