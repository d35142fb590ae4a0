from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_scheduler.routes.common import (
    DATABASE_UNAVAILABLE_DETAIL,
    ensure_database_ready,
    get_db,
    scheduling_http_error,
)
from clinic_scheduler.scheduling.errors import SchedulingError
from clinic_scheduler.scheduling.queues import SessionQueue, build_session_queue
from clinic_scheduler.scheduling.reassignment import SlotMove
from clinic_scheduler.scheduling.statuses import ConsultationStatus, holds_slot
from clinic_scheduler.services import delay_service, doctor_status_service, reassignment_service
from clinic_scheduler.services.records import doctor_calendar, load_day_appointments, load_doctor

router = APIRouter(tags=['doctors'])


class DaySlotResponse(BaseModel):
    slot_index: int
    session_index: int
    time: str
    duration_minutes: int
    is_booked: bool
    appointment_id: int | None = None
    token_number: str | None = None
    appointment_time: str | None = None
    status: str | None = None


class DoctorStatusRequest(BaseModel):
    consultation_status: ConsultationStatus


class DoctorStatusResponse(BaseModel):
    id: int
    name: str
    consultation_status: str

    class Config:
        from_attributes = True


class UpdatedCountResponse(BaseModel):
    updated: int


class SweepResponse(UpdatedCountResponse):
    skipped: bool = False


@router.get('/{doctor_id}/slots', response_model=list[DaySlotResponse])
def list_day_slots(
    doctor_id: int,
    target_date: date = Query(..., alias='date'),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        doctor = load_doctor(db, doctor_id)
        calendar = doctor_calendar(doctor, target_date)
        occupants = {
            appointment.slot_index: appointment
            for appointment in load_day_appointments(db, doctor_id, target_date)
            if holds_slot(appointment.status)
        }
    except SchedulingError as exc:
        raise scheduling_http_error(exc) from exc
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Doctor availability is malformed.',
        ) from exc
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc

    slots: list[DaySlotResponse] = []
    for slot in calendar:
        occupant = occupants.get(slot.global_slot_index)
        slots.append(
            DaySlotResponse(
                slot_index=slot.global_slot_index,
                session_index=slot.session_index,
                time=slot.time,
                duration_minutes=slot.duration,
                is_booked=occupant is not None,
                appointment_id=occupant.id if occupant else None,
                token_number=occupant.token_number if occupant else None,
                appointment_time=occupant.time if occupant else None,
                status=occupant.status if occupant else None,
            )
        )
    return slots


@router.post('/{doctor_id}/late', response_model=UpdatedCountResponse)
def report_doctor_late(
    doctor_id: int,
    target_date: date | None = Query(default=None, alias='date'),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    now = datetime.now()
    try:
        updated = delay_service.propagate_doctor_late_delay(db, doctor_id, target_date or now.date(), now)
    except SchedulingError as exc:
        raise scheduling_http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc

    return UpdatedCountResponse(updated=updated)


@router.post('/{doctor_id}/reassign', response_model=list[SlotMove])
def reassign_session(
    doctor_id: int,
    session_index: int = Query(..., ge=0),
    target_date: date | None = Query(default=None, alias='date'),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    now = datetime.now()
    try:
        return reassignment_service.reassign_arrived_patients(
            db, doctor_id, target_date or now.date(), session_index, now
        )
    except SchedulingError as exc:
        raise scheduling_http_error(exc) from exc
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Doctor availability is malformed.',
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.put('/{doctor_id}/status', response_model=DoctorStatusResponse)
def update_doctor_status(doctor_id: int, data: DoctorStatusRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return doctor_status_service.set_consultation_status(db, doctor_id, data.consultation_status)
    except SchedulingError as exc:
        raise scheduling_http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.post('/status-sweep', response_model=SweepResponse)
def sweep_doctor_statuses(db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        updated = doctor_status_service.sweep_active_clinic(db)
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc

    if updated is None:
        return SweepResponse(updated=0, skipped=True)
    return SweepResponse(updated=updated)


@router.get('/{doctor_id}/queue', response_model=SessionQueue)
def get_session_queue(
    doctor_id: int,
    session_index: int = Query(..., ge=0),
    target_date: date | None = Query(default=None, alias='date'),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        load_doctor(db, doctor_id)
        appointments = load_day_appointments(db, doctor_id, target_date or date.today())
    except SchedulingError as exc:
        raise scheduling_http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc

    return build_session_queue(appointments, session_index)
