import logging
from collections.abc import Callable
from datetime import date, datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_scheduler.database import SessionLocal
from clinic_scheduler.scheduling.calendar import session_slots
from clinic_scheduler.scheduling.errors import SchedulingError
from clinic_scheduler.scheduling.reassignment import SlotMove, plan_reassignment
from clinic_scheduler.services.records import doctor_calendar, load_day_appointments, load_doctor

logger = logging.getLogger(__name__)


def reassign_arrived_patients(
    db: Session,
    doctor_id: int,
    target_date: date,
    session_index: int,
    now: datetime | None = None,
) -> list[SlotMove]:
    """Move arrived patients of one session into earlier empty slots, in one transaction."""
    now = now or datetime.now()
    if target_date != now.date():
        return []

    doctor = load_doctor(db, doctor_id)
    session = session_slots(doctor_calendar(doctor, target_date), session_index)
    appointments = load_day_appointments(db, doctor_id, target_date)

    moves = plan_reassignment(session, appointments, target_date, now)
    if not moves:
        return []

    by_id = {appointment.id: appointment for appointment in appointments}
    try:
        # Ascending targets: each slot is vacated by its occupant's earlier move before it is reused.
        for move in moves:
            appointment = by_id[move.appointment_id]
            appointment.slot_index = move.to_slot_index
            appointment.time = move.time
            appointment.cut_off_time = move.cut_off_time
            appointment.no_show_time = move.no_show_time
            db.flush()
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    for move in moves:
        logger.info('Reassigned %s', move.describe())
    return moves


def run_reassignment_in_background(
    doctor_id: int,
    target_date: date,
    session_index: int,
    now: datetime | None = None,
    session_factory: Callable[[], Session] | None = None,
) -> None:
    db = (session_factory or SessionLocal)()
    try:
        reassign_arrived_patients(db, doctor_id, target_date, session_index, now)
    except (SQLAlchemyError, SchedulingError, ValueError):
        db.rollback()
        logger.exception(
            'Reassignment failed for doctor %s on %s (session %s)', doctor_id, target_date, session_index
        )
    finally:
        db.close()
