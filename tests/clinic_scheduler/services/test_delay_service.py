import logging
from datetime import date, datetime

import pytest

from clinic_scheduler.models.appointment import Appointment
from clinic_scheduler.scheduling.errors import (
    AppointmentNotFoundError,
    InvalidStatusTransitionError,
    SchedulingError,
)
from clinic_scheduler.services import delay_service

MONDAY = date(2026, 10, 19)


@pytest.fixture
def morning_queue(make_doctor, add_appointment):
    doctor = make_doctor()
    return [
        add_appointment(doctor, MONDAY, 0, '09:00 AM'),
        add_appointment(doctor, MONDAY, 1, '09:20 AM'),
        add_appointment(doctor, MONDAY, 2, '09:40 AM', status='Pending', booked_via='Advanced Booking'),
    ]


def test_overrun_then_cancellation_scenario(scheduler_db, morning_queue) -> None:
    first, second, third = morning_queue

    completed = delay_service.complete_consultation(scheduler_db, second.id, now=datetime(2026, 10, 19, 9, 50))

    assert completed.status == 'Completed'
    assert completed.completed_at == datetime(2026, 10, 19, 9, 50)
    scheduler_db.refresh(third)
    assert third.time == '09:50 AM'
    assert third.delay == 10
    scheduler_db.refresh(first)
    assert first.time == '09:00 AM'

    delay_service.release_slot(scheduler_db, second.id, 'Cancelled')

    scheduler_db.refresh(third)
    assert third.delay == 0
    assert third.time == '09:50 AM'
    assert third.no_show_time == datetime(2026, 10, 19, 10, 5)


def test_on_time_completion_leaves_queue_alone(scheduler_db, morning_queue) -> None:
    first, second, _ = morning_queue

    delay_service.complete_consultation(scheduler_db, first.id, now=datetime(2026, 10, 19, 9, 18))

    scheduler_db.refresh(second)
    assert second.time == '09:20 AM'
    assert second.delay == 0


def test_propagation_failure_keeps_the_completion(scheduler_db, morning_queue, monkeypatch, caplog) -> None:
    _, second, third = morning_queue

    def broken_plan(*args, **kwargs):
        raise SchedulingError('planner exploded')

    monkeypatch.setattr(delay_service, 'plan_delay_propagation', broken_plan)

    with caplog.at_level(logging.ERROR):
        completed = delay_service.complete_consultation(scheduler_db, second.id, now=datetime(2026, 10, 19, 10, 0))

    assert completed.status == 'Completed'
    assert scheduler_db.get(Appointment, second.id).status == 'Completed'
    scheduler_db.refresh(third)
    assert third.time == '09:40 AM'
    assert 'Delay propagation failed' in caplog.text


def test_no_show_recovers_delay_for_later_patients(scheduler_db, morning_queue) -> None:
    first, second, third = morning_queue
    for appointment in (second, third):
        appointment.delay = 15
    scheduler_db.commit()

    released = delay_service.release_slot(scheduler_db, first.id, 'No-show')

    assert released.status == 'No-show'
    scheduler_db.refresh(second)
    scheduler_db.refresh(third)
    assert (second.delay, third.delay) == (0, 0)
    assert second.no_show_time == datetime(2026, 10, 19, 9, 35)
    assert third.no_show_time == datetime(2026, 10, 19, 9, 55)


def test_release_rejects_repeat_and_non_releasing_statuses(scheduler_db, morning_queue) -> None:
    first = morning_queue[0]

    with pytest.raises(InvalidStatusTransitionError):
        delay_service.release_slot(scheduler_db, first.id, 'Completed')

    delay_service.release_slot(scheduler_db, first.id, 'Cancelled')
    with pytest.raises(InvalidStatusTransitionError):
        delay_service.release_slot(scheduler_db, first.id, 'No-show')


def test_confirm_arrival_moves_pending_to_confirmed(scheduler_db, morning_queue) -> None:
    third = morning_queue[2]

    assert delay_service.confirm_arrival(scheduler_db, third.id).status == 'Confirmed'
    assert delay_service.confirm_arrival(scheduler_db, third.id).status == 'Confirmed'


def test_confirm_arrival_rejects_released_appointment(scheduler_db, morning_queue) -> None:
    first = morning_queue[0]
    delay_service.release_slot(scheduler_db, first.id, 'Cancelled')

    with pytest.raises(InvalidStatusTransitionError):
        delay_service.confirm_arrival(scheduler_db, first.id)


def test_complete_rejects_cancelled_and_missing_appointments(scheduler_db, morning_queue) -> None:
    first = morning_queue[0]
    delay_service.release_slot(scheduler_db, first.id, 'Cancelled')

    with pytest.raises(InvalidStatusTransitionError):
        delay_service.complete_consultation(scheduler_db, first.id)
    with pytest.raises(AppointmentNotFoundError):
        delay_service.complete_consultation(scheduler_db, 999)


def test_doctor_running_late_shifts_the_whole_queue(scheduler_db, morning_queue) -> None:
    doctor_id = morning_queue[0].doctor_id

    updated = delay_service.propagate_doctor_late_delay(
        scheduler_db, doctor_id, MONDAY, now=datetime(2026, 10, 19, 9, 12)
    )

    assert updated == 3
    for appointment in morning_queue:
        scheduler_db.refresh(appointment)
    assert [appointment.time for appointment in morning_queue] == ['09:12 AM', '09:32 AM', '09:52 AM']
    assert delay_service.propagate_doctor_late_delay(
        scheduler_db, doctor_id, MONDAY, now=datetime(2026, 10, 19, 9, 12)
    ) == 0
