from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from truheal.core import config


connect_args = {'check_same_thread': False} if config.DATABASE_URL.startswith('sqlite') else {}

engine = create_engine(config.DATABASE_URL, echo=config.SQL_ECHO, connect_args=connect_args)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

ACTIVE_SLOT_INDEX_NAME = 'uq_booked_appointments_active_slot'
ACTIVE_SLOT_INDEX_WHERE = "status IN ('pending', 'confirmed')"

_schema_lock = Lock()
_availability_schema_checked = False
_appointment_schema_checked = False


def ensure_availability_schema(bind=None) -> None:
    global _availability_schema_checked

    if _availability_schema_checked:
        return

    with _schema_lock:
        if _availability_schema_checked:
            return

        bind = bind or engine
        inspector = inspect(bind)

        if 'appointment_availability' not in inspector.get_table_names():
            _availability_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('appointment_availability')}
        migration_steps = [
            ('is_active', 'ALTER TABLE appointment_availability ADD COLUMN is_active BOOLEAN DEFAULT TRUE'),
            ('last_updated', 'ALTER TABLE appointment_availability ADD COLUMN last_updated TIMESTAMP'),
            ('created_at', 'ALTER TABLE appointment_availability ADD COLUMN created_at TIMESTAMP'),
        ]

        with bind.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text(
                    'CREATE UNIQUE INDEX IF NOT EXISTS uq_appointment_availability_doctor '
                    'ON appointment_availability(doctor_id)'
                )
            )
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS idx_appointment_availability_active '
                    'ON appointment_availability(is_active)'
                )
            )

        _availability_schema_checked = True


def ensure_appointment_schema(bind=None) -> None:
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        bind = bind or engine
        inspector = inspect(bind)

        if 'booked_appointments' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('booked_appointments')}
        migration_steps = [
            ('cancelled_at', 'ALTER TABLE booked_appointments ADD COLUMN cancelled_at TIMESTAMP'),
            ('cancel_reason', 'ALTER TABLE booked_appointments ADD COLUMN cancel_reason VARCHAR'),
            ('created_at', 'ALTER TABLE booked_appointments ADD COLUMN created_at TIMESTAMP'),
        ]

        with bind.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_booked_appointments_user_date ON booked_appointments(user_id, date)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_booked_appointments_doctor_date ON booked_appointments(doctor_id, date)')
            )
            connection.execute(
                text(
                    f'CREATE UNIQUE INDEX IF NOT EXISTS {ACTIVE_SLOT_INDEX_NAME} '
                    f'ON booked_appointments(doctor_id, date, time) WHERE {ACTIVE_SLOT_INDEX_WHERE}'
                )
            )

        _appointment_schema_checked = True
