from datetime import date, datetime
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_scheduler.models.appointment import Appointment
from clinic_scheduler.routes.common import (
    DATABASE_UNAVAILABLE_DETAIL,
    ensure_database_ready,
    get_db,
    scheduling_http_error,
)
from clinic_scheduler.scheduling.errors import SchedulingError
from clinic_scheduler.scheduling.statuses import AppointmentStatus, BookingChannel
from clinic_scheduler.scheduling.time_formats import format_clock, parse_clock, parse_day
from clinic_scheduler.services import booking_service, delay_service
from clinic_scheduler.services.reassignment_service import run_reassignment_in_background
from clinic_scheduler.services.records import load_day_appointments

router = APIRouter(tags=['appointments'])

MAX_PATIENT_NAME_LENGTH = 120


class CreateAppointmentRequest(BaseModel):
    doctor_id: int
    date: date
    booked_via: BookingChannel = BookingChannel.ADVANCE
    patient_id: str | None = None
    patient_name: str | None = None
    preferred_time: str | None = None

    @field_validator('date', mode='before')
    @classmethod
    def parse_date(cls, value: Any) -> Any:
        if isinstance(value, str):
            return parse_day(value)
        return value

    @field_validator('patient_id', 'patient_name')
    @classmethod
    def strip_blank(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_PATIENT_NAME_LENGTH:
            raise ValueError(f'Must be {MAX_PATIENT_NAME_LENGTH} characters or fewer.')

        return normalized

    @field_validator('preferred_time')
    @classmethod
    def normalize_preferred_time(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return format_clock(parse_clock(value))


class AppointmentResponse(BaseModel):
    id: int
    doctor_id: int
    doctor_name: str | None = None
    patient_id: str | None = None
    patient_name: str | None = None
    date: date
    time: str | None = None
    slot_index: int | None = None
    session_index: int | None = None
    token_number: str | None = None
    status: str
    booked_via: str | None = None
    delay: int | None = 0
    cut_off_time: datetime | None = None
    no_show_time: datetime | None = None
    completed_at: datetime | None = None

    class Config:
        from_attributes = True


def schedule_reassignment(background_tasks: BackgroundTasks, appointment: Appointment) -> None:
    if appointment.session_index is None:
        return
    background_tasks.add_task(
        run_reassignment_in_background,
        appointment.doctor_id,
        appointment.date,
        appointment.session_index,
    )


@router.get('', response_model=list[AppointmentResponse])
def list_appointments(
    doctor_id: int = Query(...),
    target_date: date = Query(..., alias='date'),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return load_day_appointments(db, doctor_id, target_date)
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(data: CreateAppointmentRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return booking_service.book_appointment(
            db,
            doctor_id=data.doctor_id,
            target_date=data.date,
            booked_via=data.booked_via.value,
            patient_id=data.patient_id,
            patient_name=data.patient_name,
            preferred_time=data.preferred_time,
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


@router.post('/{appointment_id}/confirm', response_model=AppointmentResponse)
def confirm_appointment(
    appointment_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = delay_service.confirm_arrival(db, appointment_id)
    except SchedulingError as exc:
        raise scheduling_http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc

    schedule_reassignment(background_tasks, appointment)
    return appointment


@router.post('/{appointment_id}/complete', response_model=AppointmentResponse)
def complete_appointment(appointment_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return delay_service.complete_consultation(db, appointment_id)
    except SchedulingError as exc:
        raise scheduling_http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


def _release(
    appointment_id: int,
    new_status: AppointmentStatus,
    background_tasks: BackgroundTasks,
    db: Session,
) -> Appointment:
    ensure_database_ready()

    try:
        appointment = delay_service.release_slot(db, appointment_id, new_status.value)
    except SchedulingError as exc:
        raise scheduling_http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc

    schedule_reassignment(background_tasks, appointment)
    return appointment


@router.post('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    return _release(appointment_id, AppointmentStatus.CANCELLED, background_tasks, db)


@router.post('/{appointment_id}/no-show', response_model=AppointmentResponse)
def mark_no_show(
    appointment_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    return _release(appointment_id, AppointmentStatus.NO_SHOW, background_tasks, db)
