from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError

from clinic_scheduler.database import SessionLocal, ensure_appointment_schema, ensure_doctor_schema
from clinic_scheduler.scheduling.errors import (
    AdvanceCapacityReachedError,
    AppointmentNotFoundError,
    DoctorNotFoundError,
    DuplicateBookingError,
    InvalidStatusTransitionError,
    NoSlotAvailableError,
    SchedulingError,
    SlotUnavailableError,
    TimeFormatError,
)

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'

_STATUS_BY_ERROR = (
    ((DoctorNotFoundError, AppointmentNotFoundError), status.HTTP_404_NOT_FOUND),
    (
        (
            NoSlotAvailableError,
            SlotUnavailableError,
            AdvanceCapacityReachedError,
            DuplicateBookingError,
            InvalidStatusTransitionError,
        ),
        status.HTTP_409_CONFLICT,
    ),
    ((TimeFormatError,), status.HTTP_400_BAD_REQUEST),
)


def ensure_database_ready() -> None:
    try:
        ensure_doctor_schema()
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def scheduling_http_error(exc: SchedulingError) -> HTTPException:
    for error_types, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_types):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
