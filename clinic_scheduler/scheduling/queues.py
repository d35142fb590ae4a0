"""Live token queue for one session of a doctor's day.

Arrived patients (Confirmed appointments) are called in order of their current
time; at the same time an advance-booking token goes ahead of a walk-in token.
The buffer is the head of that queue, the patients told to stand by, and its
first entry is the one with the doctor now.
"""

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict

from clinic_scheduler.scheduling.errors import TimeFormatError
from clinic_scheduler.scheduling.statuses import AppointmentStatus, is_walk_in
from clinic_scheduler.scheduling.time_formats import MINUTES_PER_DAY, parse_clock

logger = logging.getLogger(__name__)

BUFFER_SIZE = 2


class QueueEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    token_number: str | None = None
    patient_name: str | None = None
    time: str | None = None
    slot_index: int | None = None
    booked_via: str | None = None


class SessionQueue(BaseModel):
    session_index: int
    arrived: list[QueueEntry]
    buffer: list[QueueEntry]
    current: QueueEntry | None = None
    completed_count: int = 0


def is_advance_token(appointment: Any) -> bool:
    token = appointment.token_number or ''
    return token.startswith('A') or not is_walk_in(appointment.booked_via)


def queue_key(appointment: Any) -> tuple[int, int, int]:
    try:
        minutes = parse_clock(appointment.time)
    except TimeFormatError:
        logger.warning('Appointment %s has unreadable time %r; queueing it last', appointment.id, appointment.time)
        minutes = MINUTES_PER_DAY
    return minutes, 0 if is_advance_token(appointment) else 1, appointment.id


def next_token(buffer: list[QueueEntry], arrived: list[QueueEntry]) -> QueueEntry | None:
    if buffer:
        return buffer[0]
    if arrived:
        return arrived[0]
    return None


def build_session_queue(
    appointments: list[Any],
    session_index: int,
    buffer_size: int = BUFFER_SIZE,
) -> SessionQueue:
    # Appointments stored without a session belong to every session.
    relevant = [
        appointment
        for appointment in appointments
        if appointment.session_index is None or appointment.session_index == session_index
    ]

    confirmed = [appointment for appointment in relevant if appointment.status == AppointmentStatus.CONFIRMED.value]
    arrived = [QueueEntry.model_validate(appointment) for appointment in sorted(confirmed, key=queue_key)]
    buffer = arrived[:buffer_size]

    return SessionQueue(
        session_index=session_index,
        arrived=arrived,
        buffer=buffer,
        current=next_token(buffer, arrived),
        completed_count=sum(
            1 for appointment in relevant if appointment.status == AppointmentStatus.COMPLETED.value
        ),
    )
