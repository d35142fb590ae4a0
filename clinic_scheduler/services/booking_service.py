import logging
from datetime import date, datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clinic_scheduler.core import config
from clinic_scheduler.models.appointment import Appointment
from clinic_scheduler.scheduling.allocator import has_active_booking, plan_booking
from clinic_scheduler.scheduling.errors import DuplicateBookingError, SlotUnavailableError
from clinic_scheduler.scheduling.statuses import BookingChannel
from clinic_scheduler.scheduling.time_formats import parse_clock
from clinic_scheduler.services.records import doctor_calendar, load_day_appointments, load_doctor

logger = logging.getLogger(__name__)


def book_appointment(
    db: Session,
    doctor_id: int,
    target_date: date,
    booked_via: str = BookingChannel.ADVANCE.value,
    patient_id: str | None = None,
    patient_name: str | None = None,
    preferred_time: str | None = None,
    now: datetime | None = None,
) -> Appointment:
    """Allocate the earliest eligible slot and persist the booking.

    The occupancy read and the insert share one transaction. A concurrent
    booking that wins the same slot trips the active-slot unique index; the
    allocation is then re-planned from a fresh read, up to
    ``BOOKING_MAX_RETRIES`` times.
    """
    now = now or datetime.now()
    preferred_start = parse_clock(preferred_time) if preferred_time else None

    doctor = load_doctor(db, doctor_id)
    calendar = doctor_calendar(doctor, target_date)

    for attempt in range(1, config.BOOKING_MAX_RETRIES + 1):
        appointments = load_day_appointments(db, doctor_id, target_date)
        if has_active_booking(appointments, patient_id):
            raise DuplicateBookingError()

        allocation = plan_booking(calendar, appointments, target_date, booked_via, now, preferred_start)

        appointment = Appointment(
            clinic_id=doctor.clinic_id,
            doctor_id=doctor.id,
            doctor_name=doctor.name,
            patient_id=patient_id,
            patient_name=patient_name,
            date=target_date,
            booked_via=booked_via,
            delay=0,
            **allocation.model_dump(),
        )
        db.add(appointment)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.warning(
                'Slot %s for doctor %s on %s was taken concurrently (attempt %s/%s)',
                allocation.slot_index,
                doctor_id,
                target_date,
                attempt,
                config.BOOKING_MAX_RETRIES,
            )
            continue

        db.refresh(appointment)
        logger.info(
            'Booked %s for doctor %s on %s at %s (slot %s)',
            appointment.token_number,
            doctor_id,
            target_date,
            appointment.time,
            appointment.slot_index,
        )
        return appointment

    raise SlotUnavailableError()
