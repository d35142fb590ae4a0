import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from threading import Lock

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_scheduler.core import config
from clinic_scheduler.database import SessionLocal
from clinic_scheduler.models.doctor import Doctor
from clinic_scheduler.scheduling.calendar import leave_from_record, template_from_record
from clinic_scheduler.scheduling.doctor_status import compute_consultation_status
from clinic_scheduler.scheduling.statuses import ConsultationStatus
from clinic_scheduler.services.records import load_doctor

logger = logging.getLogger(__name__)

_sweep_lock = Lock()


def sweep_doctor_statuses(db: Session, clinic_id: str | None, now: datetime | None = None) -> int:
    """Recompute In/Out for every doctor of the clinic; returns how many changed."""
    if not clinic_id:
        return 0

    now = now or datetime.now()
    doctors = db.query(Doctor).filter(Doctor.clinic_id == clinic_id).all()

    changed = 0
    for doctor in doctors:
        try:
            computed = compute_consultation_status(template_from_record(doctor), leave_from_record(doctor), now)
        except ValueError:
            logger.warning('Skipping doctor %s: malformed availability or leave', doctor.id, exc_info=True)
            continue

        if doctor.consultation_status != computed.value:
            doctor.consultation_status = computed.value
            changed += 1

    if changed:
        db.commit()
        logger.info('Updated consultation status for %s of %s doctors in clinic %s', changed, len(doctors), clinic_id)
    return changed


def set_consultation_status(db: Session, doctor_id: int, consultation_status: ConsultationStatus) -> Doctor:
    doctor = load_doctor(db, doctor_id)
    doctor.consultation_status = consultation_status.value
    db.commit()
    db.refresh(doctor)
    return doctor


def sweep_active_clinic(db: Session, now: datetime | None = None) -> int | None:
    """Sweep the active clinic unless another sweep is running; None means skipped."""
    if not _sweep_lock.acquire(blocking=False):
        logger.info('Doctor status sweep already in progress; skipping')
        return None

    try:
        return sweep_doctor_statuses(db, config.ACTIVE_CLINIC_ID, now)
    finally:
        _sweep_lock.release()


def run_status_sweep(
    now: datetime | None = None,
    session_factory: Callable[[], Session] | None = None,
) -> int | None:
    """One sweep on its own session. Returns None when skipped or failed."""
    db = (session_factory or SessionLocal)()
    try:
        return sweep_active_clinic(db, now)
    except SQLAlchemyError:
        db.rollback()
        logger.exception('Doctor status sweep failed')
        return None
    finally:
        db.close()


async def run_status_worker(interval_seconds: int | None = None) -> None:
    interval = config.DOCTOR_STATUS_INTERVAL_SECONDS if interval_seconds is None else interval_seconds
    logger.info('Starting doctor status worker (every %ss)', interval)

    while True:
        try:
            await asyncio.to_thread(run_status_sweep)
        except Exception as exc:
            logger.error(f'Error in doctor status worker loop: {exc}')
        await asyncio.sleep(interval)
