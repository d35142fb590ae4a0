from datetime import date, datetime
from types import SimpleNamespace

import pytest

from clinic_scheduler.scheduling.allocator import (
    advance_capacity,
    count_advance_bookings,
    find_free_slot,
    has_active_booking,
    next_token,
    plan_booking,
)
from clinic_scheduler.scheduling.calendar import TimeWindow, generate_slots
from clinic_scheduler.scheduling.errors import (
    AdvanceCapacityReachedError,
    NoSlotAvailableError,
    SlotUnavailableError,
)

MONDAY = date(2026, 10, 19)
EARLY = datetime(2026, 10, 19, 7, 0)
CALENDAR = generate_slots([TimeWindow.model_validate({'from': '09:00', 'to': '10:00'})], [], 20)


def booked(slot_index, status='Confirmed', booked_via='Walk-in', numeric_token=None, patient_id=None):
    return SimpleNamespace(
        slot_index=slot_index,
        session_index=0,
        status=status,
        booked_via=booked_via,
        numeric_token=numeric_token if numeric_token is not None else slot_index + 1,
        patient_id=patient_id,
    )


def test_walk_in_gets_earliest_slot_and_is_confirmed() -> None:
    allocation = plan_booking(CALENDAR, [], MONDAY, 'Walk-in', EARLY)

    assert allocation.slot_index == 0
    assert allocation.session_index == 0
    assert allocation.time == '09:00 AM'
    assert allocation.cut_off_time == datetime(2026, 10, 19, 8, 45)
    assert allocation.no_show_time == datetime(2026, 10, 19, 9, 15)
    assert allocation.token_number == 'W001'
    assert allocation.status == 'Confirmed'


def test_advance_booking_is_pending_with_advance_token() -> None:
    allocation = plan_booking(CALENDAR, [booked(0, numeric_token=3)], MONDAY, 'Advanced Booking', EARLY)

    assert allocation.slot_index == 1
    assert allocation.token_number == 'A004'
    assert allocation.numeric_token == 4
    assert allocation.status == 'Pending'


def test_occupied_slots_are_skipped_but_vacated_ones_reused() -> None:
    appointments = [booked(0, status='Cancelled'), booked(1)]

    slot = find_free_slot(CALENDAR, appointments, MONDAY, 'Walk-in', EARLY)

    assert slot.global_slot_index == 0


def test_completed_appointment_still_holds_its_slot() -> None:
    slot = find_free_slot(CALENDAR, [booked(0, status='Completed')], MONDAY, 'Walk-in', EARLY)

    assert slot.global_slot_index == 1


def test_walk_in_skips_slots_that_already_started() -> None:
    slot = find_free_slot(CALENDAR, [], MONDAY, 'Walk-in', datetime(2026, 10, 19, 9, 10))

    assert slot.time == '09:20 AM'


def test_advance_booking_is_barred_from_the_next_hour() -> None:
    slot = find_free_slot(CALENDAR, [], MONDAY, 'Online', datetime(2026, 10, 19, 8, 30))

    assert slot.time == '09:40 AM'


def test_advance_booking_inside_exclusion_window_has_no_slot() -> None:
    with pytest.raises(NoSlotAvailableError):
        find_free_slot(CALENDAR, [], MONDAY, 'Phone', datetime(2026, 10, 19, 9, 0))


def test_full_session_raises_no_slot_available() -> None:
    appointments = [booked(0), booked(1), booked(2)]

    with pytest.raises(NoSlotAvailableError) as exception_info:
        find_free_slot(CALENDAR, appointments, MONDAY, 'Walk-in', EARLY)

    assert str(exception_info.value) == 'No slot available.'


def test_advance_bookings_are_capped_per_session() -> None:
    appointments = [booked(0, booked_via='Advanced Booking'), booked(1, booked_via='Online')]

    with pytest.raises(AdvanceCapacityReachedError):
        find_free_slot(CALENDAR, appointments, MONDAY, 'Advanced Booking', EARLY)

    walk_in_slot = find_free_slot(CALENDAR, appointments, MONDAY, 'Walk-in', EARLY)
    assert walk_in_slot.global_slot_index == 2


def test_cancelled_advance_booking_frees_capacity() -> None:
    appointments = [
        booked(0, booked_via='Advanced Booking', status='Cancelled'),
        booked(1, booked_via='Online'),
    ]

    slot = find_free_slot(CALENDAR, appointments, MONDAY, 'Advanced Booking', EARLY)

    assert slot.global_slot_index == 0


def test_preferred_time_must_be_free() -> None:
    slot = find_free_slot(CALENDAR, [], MONDAY, 'Walk-in', EARLY, preferred_start=580)
    assert slot.global_slot_index == 2

    with pytest.raises(SlotUnavailableError):
        find_free_slot(CALENDAR, [booked(2)], MONDAY, 'Walk-in', EARLY, preferred_start=580)


def test_advance_capacity_rounds_down() -> None:
    assert advance_capacity(3, 0.85) == 2
    assert advance_capacity(10, 0.85) == 8
    assert advance_capacity(1, 0.85) == 0


def test_count_advance_bookings_ignores_walk_ins_and_released() -> None:
    appointments = [
        booked(0, booked_via='Advanced Booking'),
        booked(1, booked_via='Walk-in'),
        booked(2, booked_via='Phone', status='No-show'),
    ]

    assert count_advance_bookings(appointments, 0) == 1
    assert count_advance_bookings(appointments, 1) == 0


def test_next_token_continues_from_highest_number() -> None:
    assert next_token([], 'Walk-in') == ('W001', 1)
    assert next_token([booked(0, numeric_token=1), booked(1, numeric_token=12)], 'Online') == ('A013', 13)


def test_has_active_booking_ignores_released_appointments() -> None:
    appointments = [booked(0, status='Cancelled', patient_id='p-1'), booked(1, patient_id='p-2')]

    assert has_active_booking(appointments, 'p-2') is True
    assert has_active_booking(appointments, 'p-1') is False
    assert has_active_booking(appointments, None) is False
