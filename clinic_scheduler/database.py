from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from clinic_scheduler.core import config


engine = create_engine(config.DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_doctor_schema_checked = False
_appointment_schema_checked = False

# A slot stays taken until its appointment is cancelled or marked no-show.
ACTIVE_SLOT_PREDICATE = "status NOT IN ('Cancelled', 'No-show')"


def ensure_doctor_schema() -> None:
    global _doctor_schema_checked

    if _doctor_schema_checked:
        return

    with _schema_lock:
        if _doctor_schema_checked:
            return

        inspector = inspect(engine)

        if 'doctors' not in inspector.get_table_names():
            _doctor_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('doctors')}
        migration_steps = [
            ('leave_slots', 'ALTER TABLE doctors ADD COLUMN leave_slots JSON'),
            ('average_consulting_time', 'ALTER TABLE doctors ADD COLUMN average_consulting_time INTEGER'),
            ('consultation_status', "ALTER TABLE doctors ADD COLUMN consultation_status VARCHAR DEFAULT 'Out'"),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_doctors_clinic ON doctors(clinic_id)')
            )

        _doctor_schema_checked = True


def ensure_appointment_schema() -> None:
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        inspector = inspect(engine)

        if 'appointments' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('appointments')}
        migration_steps = [
            ('session_index', 'ALTER TABLE appointments ADD COLUMN session_index INTEGER'),
            ('delay', 'ALTER TABLE appointments ADD COLUMN delay INTEGER DEFAULT 0'),
            ('cut_off_time', 'ALTER TABLE appointments ADD COLUMN cut_off_time TIMESTAMP'),
            ('no_show_time', 'ALTER TABLE appointments ADD COLUMN no_show_time TIMESTAMP'),
            ('completed_at', 'ALTER TABLE appointments ADD COLUMN completed_at TIMESTAMP'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_doctor_date ON appointments(doctor_id, date, status)')
            )
            connection.execute(
                text(
                    'CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_active_slot '
                    f'ON appointments(doctor_id, date, slot_index) WHERE {ACTIVE_SLOT_PREDICATE}'
                )
            )

        _appointment_schema_checked = True
