import os

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')
os.environ.setdefault('DOCTOR_STATUS_WORKER_ENABLED', 'false')

from clinic_scheduler.database import Base  # noqa: E402
from clinic_scheduler.models.appointment import Appointment  # noqa: E402
from clinic_scheduler.models.doctor import Doctor  # noqa: E402

MORNING_SESSION = [{'from': '09:00 AM', 'to': '10:00 AM'}]


@pytest.fixture
def scheduler_db():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine, tables=[Doctor.__table__, Appointment.__table__])

    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine, tables=[Appointment.__table__, Doctor.__table__])


@pytest.fixture
def make_doctor(scheduler_db):
    def _make_doctor(
        availability_slots=None,
        average_consulting_time=20,
        leave_slots=None,
        clinic_id='clinic-1',
        name='Dr. Meera Rao',
        consultation_status='Out',
    ) -> Doctor:
        doctor = Doctor(
            clinic_id=clinic_id,
            name=name,
            department='General Medicine',
            availability_slots=availability_slots if availability_slots is not None else {'Monday': MORNING_SESSION},
            leave_slots=leave_slots or {},
            average_consulting_time=average_consulting_time,
            consultation_status=consultation_status,
        )
        scheduler_db.add(doctor)
        scheduler_db.commit()
        scheduler_db.refresh(doctor)
        return doctor

    return _make_doctor


@pytest.fixture
def add_appointment(scheduler_db):
    def _add_appointment(
        doctor: Doctor,
        day,
        slot_index: int,
        time: str,
        status: str = 'Confirmed',
        booked_via: str = 'Walk-in',
        session_index: int = 0,
        patient_id: str | None = None,
    ) -> Appointment:
        prefix = 'W' if booked_via == 'Walk-in' else 'A'
        appointment = Appointment(
            clinic_id=doctor.clinic_id,
            doctor_id=doctor.id,
            doctor_name=doctor.name,
            patient_id=patient_id or f'patient-{slot_index}',
            date=day,
            time=time,
            slot_index=slot_index,
            session_index=session_index,
            token_number=f'{prefix}{slot_index + 1:03d}',
            numeric_token=slot_index + 1,
            status=status,
            booked_via=booked_via,
            delay=0,
        )
        scheduler_db.add(appointment)
        scheduler_db.commit()
        scheduler_db.refresh(appointment)
        return appointment

    return _add_appointment
