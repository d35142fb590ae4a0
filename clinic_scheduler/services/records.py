"""Store lookups shared by the services."""

from datetime import date

from sqlalchemy.orm import Session

from clinic_scheduler.core import config
from clinic_scheduler.models.appointment import Appointment
from clinic_scheduler.models.doctor import Doctor
from clinic_scheduler.scheduling.calendar import (
    Slot,
    build_day_calendar,
    leave_from_record,
    template_from_record,
)
from clinic_scheduler.scheduling.delays import AppointmentUpdate
from clinic_scheduler.scheduling.errors import AppointmentNotFoundError, DoctorNotFoundError


def load_doctor(db: Session, doctor_id: int) -> Doctor:
    doctor = db.query(Doctor).filter(Doctor.id == doctor_id).first()
    if doctor is None:
        raise DoctorNotFoundError(f'Doctor {doctor_id} not found.')
    return doctor


def load_appointment(db: Session, appointment_id: int) -> Appointment:
    appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    if appointment is None:
        raise AppointmentNotFoundError(f'Appointment {appointment_id} not found.')
    return appointment


def load_day_appointments(db: Session, doctor_id: int, target_date: date) -> list[Appointment]:
    return (
        db.query(Appointment)
        .filter(Appointment.doctor_id == doctor_id, Appointment.date == target_date)
        .order_by(Appointment.slot_index)
        .all()
    )


def consultation_minutes(doctor: Doctor) -> int:
    return doctor.average_consulting_time or config.DEFAULT_CONSULTATION_MINUTES


def doctor_calendar(doctor: Doctor, target_date: date) -> list[Slot]:
    return build_day_calendar(template_from_record(doctor), leave_from_record(doctor), target_date)


def apply_updates(appointments: list[Appointment], updates: list[AppointmentUpdate]) -> int:
    """Copy planned changes onto the loaded rows; the caller commits."""
    by_id = {appointment.id: appointment for appointment in appointments}
    applied = 0
    for update in updates:
        appointment = by_id.get(update.appointment_id)
        if appointment is None:
            continue
        for field, value in update.changes.items():
            setattr(appointment, field, value)
        applied += 1
    return applied
