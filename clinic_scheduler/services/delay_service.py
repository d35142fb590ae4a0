"""Appointment status changes and the live-delay bookkeeping they trigger.

The status change is committed first. Propagation and recovery then run on
their own and a failure there is logged without undoing the status change.
"""

import logging
from datetime import date, datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_scheduler.models.appointment import Appointment
from clinic_scheduler.scheduling.delays import (
    consultation_overrun,
    plan_delay_propagation,
    plan_doctor_late_delay,
    plan_vacancy_recovery,
)
from clinic_scheduler.scheduling.errors import InvalidStatusTransitionError, SchedulingError
from clinic_scheduler.scheduling.statuses import (
    VACATED_STATUSES,
    WAITING_STATUSES,
    AppointmentStatus,
)
from clinic_scheduler.services.records import (
    apply_updates,
    consultation_minutes,
    load_appointment,
    load_day_appointments,
    load_doctor,
)

logger = logging.getLogger(__name__)


def confirm_arrival(db: Session, appointment_id: int) -> Appointment:
    appointment = load_appointment(db, appointment_id)
    if appointment.status == AppointmentStatus.CONFIRMED.value:
        return appointment
    if appointment.status != AppointmentStatus.PENDING.value:
        raise InvalidStatusTransitionError(f'Cannot confirm an appointment that is {appointment.status}.')

    appointment.status = AppointmentStatus.CONFIRMED.value
    db.commit()
    db.refresh(appointment)
    return appointment


def complete_consultation(db: Session, appointment_id: int, now: datetime | None = None) -> Appointment:
    now = now or datetime.now()
    appointment = load_appointment(db, appointment_id)
    if appointment.status not in WAITING_STATUSES:
        raise InvalidStatusTransitionError(f'Cannot complete an appointment that is {appointment.status}.')

    appointment.status = AppointmentStatus.COMPLETED.value
    appointment.completed_at = now
    db.commit()
    db.refresh(appointment)

    try:
        doctor = load_doctor(db, appointment.doctor_id)
        overrun = consultation_overrun(appointment, now, consultation_minutes(doctor))
        if overrun > 0:
            appointments = load_day_appointments(db, appointment.doctor_id, appointment.date)
            updated = apply_updates(
                appointments, plan_delay_propagation(appointments, appointment.id, overrun)
            )
            db.commit()
            logger.info(
                'Consultation %s ran %s min over; delayed %s later appointments',
                appointment.token_number,
                overrun,
                updated,
            )
    except (SQLAlchemyError, SchedulingError):
        db.rollback()
        logger.exception('Delay propagation failed after completing appointment %s', appointment_id)

    return appointment


def release_slot(db: Session, appointment_id: int, new_status: str) -> Appointment:
    """Cancel or mark no-show, then give the freed time back to later patients."""
    if new_status not in VACATED_STATUSES:
        raise InvalidStatusTransitionError(f'{new_status} does not release a slot.')

    appointment = load_appointment(db, appointment_id)
    if appointment.status in VACATED_STATUSES:
        raise InvalidStatusTransitionError(f'Appointment is already {appointment.status}.')

    appointment.status = new_status
    db.commit()
    db.refresh(appointment)

    if appointment.slot_index is None:
        return appointment

    try:
        doctor = load_doctor(db, appointment.doctor_id)
        appointments = load_day_appointments(db, appointment.doctor_id, appointment.date)
        updates = plan_vacancy_recovery(appointments, appointment.slot_index, consultation_minutes(doctor))
        if updates:
            updated = apply_updates(appointments, updates)
            db.commit()
            logger.info('Slot %s vacated; reduced delay for %s appointments', appointment.slot_index, updated)
    except (SQLAlchemyError, SchedulingError):
        db.rollback()
        logger.exception('Delay recovery failed after releasing appointment %s', appointment_id)

    return appointment


def propagate_doctor_late_delay(
    db: Session,
    doctor_id: int,
    target_date: date,
    now: datetime | None = None,
) -> int:
    now = now or datetime.now()
    load_doctor(db, doctor_id)
    appointments = load_day_appointments(db, doctor_id, target_date)

    updated = apply_updates(appointments, plan_doctor_late_delay(appointments, now))
    if updated:
        db.commit()
        logger.info('Doctor %s running late on %s; delayed %s appointments', doctor_id, target_date, updated)
    return updated
