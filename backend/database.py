from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from backend.core import config


def _connect_args(url: str) -> dict:
    # FastAPI runs sync endpoints and APScheduler jobs on worker threads.
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(config.DATABASE_URL, connect_args=_connect_args(config.DATABASE_URL))

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_appointment_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_appointment_schema() -> None:
    """Add the slot and lookup indexes to an existing appointments table.

    Tables created by ``create_all`` already carry the slot constraint. A table
    created before the constraint existed gets a unique index on (date, time)
    instead, which enforces the same rule.
    """
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

        with engine.begin() as connection:
            connection.execute(
                text('CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_date_time_idx ON appointments(date, time)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_status_date ON appointments(status, date)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_owner ON appointments(owner_id)')
            )

        _appointment_schema_checked = True
