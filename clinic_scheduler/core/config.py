import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./clinic_scheduler.db")
CORS_ORIGINS = _get_list(os.getenv("CORS_ORIGINS"), ["http://localhost:4200"])

# Clinic whose doctors the periodic status sweep looks after.
ACTIVE_CLINIC_ID = os.getenv("ACTIVE_CLINIC_ID", "")

DEFAULT_CONSULTATION_MINUTES = int(os.getenv("DEFAULT_CONSULTATION_MINUTES", "15"))
CUT_OFF_MINUTES = int(os.getenv("CUT_OFF_MINUTES", "15"))
NO_SHOW_GRACE_MINUTES = int(os.getenv("NO_SHOW_GRACE_MINUTES", "15"))
ADVANCE_BOOKING_EXCLUSION_MINUTES = int(os.getenv("ADVANCE_BOOKING_EXCLUSION_MINUTES", "60"))
ADVANCE_BOOKING_CAPACITY_RATIO = float(os.getenv("ADVANCE_BOOKING_CAPACITY_RATIO", "0.85"))
BOOKING_MAX_RETRIES = int(os.getenv("BOOKING_MAX_RETRIES", "3"))

DOCTOR_STATUS_INTERVAL_SECONDS = int(os.getenv("DOCTOR_STATUS_INTERVAL_SECONDS", "120"))
DOCTOR_STATUS_WORKER_ENABLED = _get_bool(os.getenv("DOCTOR_STATUS_WORKER_ENABLED"), default=True)


def validate_runtime_config() -> None:
    if DEFAULT_CONSULTATION_MINUTES <= 0:
        raise RuntimeError("DEFAULT_CONSULTATION_MINUTES must be positive.")
    if not 0 < ADVANCE_BOOKING_CAPACITY_RATIO <= 1:
        raise RuntimeError("ADVANCE_BOOKING_CAPACITY_RATIO must be in (0, 1].")
    if BOOKING_MAX_RETRIES < 1:
        raise RuntimeError("BOOKING_MAX_RETRIES must be at least 1.")
    if DOCTOR_STATUS_INTERVAL_SECONDS <= 0:
        raise RuntimeError("DOCTOR_STATUS_INTERVAL_SECONDS must be positive.")
    if APP_ENV.lower() == "production" and DATABASE_URL.startswith("sqlite"):
        raise RuntimeError("DATABASE_URL must point at Postgres in production.")
