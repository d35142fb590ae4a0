"""Appointment model definitions."""

from datetime import datetime

from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, Integer, String, text

from clinic_scheduler.database import ACTIVE_SLOT_PREDICATE, Base
from clinic_scheduler.scheduling.statuses import AppointmentStatus, BookingChannel


class Appointment(Base):
    """A booked token occupying one slot of a doctor's day."""
    __tablename__ = "appointments"
    __table_args__ = (
        Index('idx_appointments_doctor_date', 'doctor_id', 'date', 'status'),
        Index(
            'uq_appointments_active_slot',
            'doctor_id',
            'date',
            'slot_index',
            unique=True,
            sqlite_where=text(ACTIVE_SLOT_PREDICATE),
            postgresql_where=text(ACTIVE_SLOT_PREDICATE),
        ),
    )

    id = Column(Integer, primary_key=True)
    clinic_id = Column(String, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)
    doctor_name = Column(String)
    patient_id = Column(String)
    patient_name = Column(String)
    date = Column(Date, nullable=False)
    time = Column(String)
    slot_index = Column(Integer)
    session_index = Column(Integer)
    token_number = Column(String)
    numeric_token = Column(Integer)
    status = Column(String, default=AppointmentStatus.PENDING.value)
    booked_via = Column(String, default=BookingChannel.ADVANCE.value)
    delay = Column(Integer, default=0)
    cut_off_time = Column(DateTime)
    no_show_time = Column(DateTime)
    completed_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)
