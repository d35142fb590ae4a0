from datetime import date, datetime

import pytest
from sqlalchemy.exc import IntegrityError

from clinic_scheduler.models.appointment import Appointment
from clinic_scheduler.scheduling.errors import (
    DoctorNotFoundError,
    DuplicateBookingError,
    NoSlotAvailableError,
    SlotUnavailableError,
)
from clinic_scheduler.services import booking_service

MONDAY = date(2026, 10, 19)
EARLY = datetime(2026, 10, 19, 7, 0)


def test_walk_ins_fill_the_session_then_no_slot_is_left(scheduler_db, make_doctor) -> None:
    doctor = make_doctor()

    booked = [
        booking_service.book_appointment(scheduler_db, doctor.id, MONDAY, 'Walk-in', patient_id=f'p-{n}', now=EARLY)
        for n in range(3)
    ]

    assert [appointment.time for appointment in booked] == ['09:00 AM', '09:20 AM', '09:40 AM']
    assert [appointment.token_number for appointment in booked] == ['W001', 'W002', 'W003']
    assert {appointment.status for appointment in booked} == {'Confirmed'}

    with pytest.raises(NoSlotAvailableError) as exception_info:
        booking_service.book_appointment(scheduler_db, doctor.id, MONDAY, 'Walk-in', patient_id='p-4', now=EARLY)

    assert str(exception_info.value) == 'No slot available.'


def test_advance_booking_is_stored_pending_with_deadlines(scheduler_db, make_doctor) -> None:
    doctor = make_doctor()

    appointment = booking_service.book_appointment(
        scheduler_db,
        doctor.id,
        MONDAY,
        'Advanced Booking',
        patient_id='p-1',
        patient_name='Anita Shah',
        now=EARLY,
    )

    assert appointment.id is not None
    assert appointment.status == 'Pending'
    assert appointment.token_number == 'A001'
    assert appointment.doctor_name == doctor.name
    assert appointment.clinic_id == 'clinic-1'
    assert appointment.session_index == 0
    assert appointment.cut_off_time == datetime(2026, 10, 19, 8, 45)
    assert appointment.no_show_time == datetime(2026, 10, 19, 9, 15)
    assert appointment.delay == 0


def test_preferred_time_is_honoured(scheduler_db, make_doctor) -> None:
    doctor = make_doctor()

    appointment = booking_service.book_appointment(
        scheduler_db, doctor.id, MONDAY, 'Walk-in', preferred_time='9:40 am', now=EARLY
    )

    assert appointment.slot_index == 2


def test_patient_cannot_hold_two_active_bookings_with_one_doctor(scheduler_db, make_doctor) -> None:
    doctor = make_doctor()
    booking_service.book_appointment(scheduler_db, doctor.id, MONDAY, 'Walk-in', patient_id='p-1', now=EARLY)

    with pytest.raises(DuplicateBookingError):
        booking_service.book_appointment(scheduler_db, doctor.id, MONDAY, 'Walk-in', patient_id='p-1', now=EARLY)


def test_unknown_doctor_is_reported(scheduler_db) -> None:
    with pytest.raises(DoctorNotFoundError):
        booking_service.book_appointment(scheduler_db, 404, MONDAY, 'Walk-in', now=EARLY)


def test_active_slot_index_rejects_a_second_occupant(scheduler_db, make_doctor, add_appointment) -> None:
    doctor = make_doctor()
    add_appointment(doctor, MONDAY, 0, '09:00 AM', status='Cancelled', patient_id='p-1')
    add_appointment(doctor, MONDAY, 0, '09:00 AM', patient_id='p-2')

    with pytest.raises(IntegrityError):
        add_appointment(doctor, MONDAY, 0, '09:00 AM', patient_id='p-3')
    scheduler_db.rollback()


def test_lost_race_is_retried_against_a_fresh_read(scheduler_db, make_doctor, add_appointment, monkeypatch) -> None:
    doctor = make_doctor()
    add_appointment(doctor, MONDAY, 0, '09:00 AM', patient_id='p-1')

    real_load = booking_service.load_day_appointments
    reads = []

    def stale_first_read(db, doctor_id, target_date):
        reads.append(target_date)
        if len(reads) == 1:
            return []
        return real_load(db, doctor_id, target_date)

    monkeypatch.setattr(booking_service, 'load_day_appointments', stale_first_read)

    appointment = booking_service.book_appointment(scheduler_db, doctor.id, MONDAY, 'Walk-in', patient_id='p-2', now=EARLY)

    assert len(reads) == 2
    assert appointment.slot_index == 1
    assert scheduler_db.query(Appointment).count() == 2


def test_persistent_conflict_gives_up_after_bounded_retries(
    scheduler_db, make_doctor, add_appointment, monkeypatch
) -> None:
    doctor = make_doctor()
    add_appointment(doctor, MONDAY, 0, '09:00 AM', patient_id='p-1')
    monkeypatch.setattr(booking_service, 'load_day_appointments', lambda db, doctor_id, target_date: [])
    monkeypatch.setattr(booking_service.config, 'BOOKING_MAX_RETRIES', 2)

    with pytest.raises(SlotUnavailableError) as exception_info:
        booking_service.book_appointment(scheduler_db, doctor.id, MONDAY, 'Walk-in', patient_id='p-2', now=EARLY)

    assert str(exception_info.value) == 'Slot no longer available, please retry.'
    assert scheduler_db.query(Appointment).count() == 1
