"""Doctor model definitions."""

from sqlalchemy import JSON, Column, Integer, String

from clinic_scheduler.core import config
from clinic_scheduler.database import Base
from clinic_scheduler.scheduling.statuses import ConsultationStatus


class Doctor(Base):
    """A doctor with a weekly availability template and date-specific leave."""
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True)
    clinic_id = Column(String, index=True)
    name = Column(String, nullable=False)
    department = Column(String)
    # {"Monday": [{"from": "09:00 AM", "to": "01:00 PM"}, ...], ...}
    availability_slots = Column(JSON, default=dict)
    # {"2026-10-17": [{"from": "10:00", "to": "11:00"}], ...}
    leave_slots = Column(JSON, default=dict)
    average_consulting_time = Column(Integer, default=config.DEFAULT_CONSULTATION_MINUTES)
    consultation_status = Column(String, default=ConsultationStatus.OUT.value)
