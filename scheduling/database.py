import logging
from threading import Lock
from weakref import WeakSet

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from scheduling.core import config

logger = logging.getLogger(__name__)


def _sqlite_on_connect(dbapi_connection, connection_record):
    # Let SQLAlchemy emit BEGIN itself instead of pysqlite.
    dbapi_connection.isolation_level = None


def _sqlite_begin_immediate(connection):
    # Writers queue on the busy timeout instead of failing on a lock upgrade.
    connection.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(database_url: str) -> Engine:
    is_sqlite = database_url.startswith("sqlite")
    connect_args = {}
    if is_sqlite:
        connect_args = {
            "check_same_thread": False,
            "timeout": config.SQLITE_BUSY_TIMEOUT_SECONDS,
        }
    new_engine = create_engine(
        database_url,
        echo=config.DATABASE_ECHO,
        pool_pre_ping=True,
        connect_args=connect_args,
    )
    if is_sqlite:
        event.listen(new_engine, "connect", _sqlite_on_connect)
        event.listen(new_engine, "begin", _sqlite_begin_immediate)
    return new_engine


engine = build_engine(config.DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_availability_schema_checked: WeakSet = WeakSet()
_appointment_schema_checked: WeakSet = WeakSet()


def ensure_availability_schema(bind: Engine | None = None) -> None:
    bind = bind or engine
    if bind in _availability_schema_checked:
        return

    with _schema_lock:
        if bind in _availability_schema_checked:
            return

        inspector = inspect(bind)
        if 'availability_templates' not in inspector.get_table_names():
            _availability_schema_checked.add(bind)
            return

        with bind.begin() as connection:
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS idx_templates_doctor_day '
                    'ON availability_templates(doctor_id, day_of_week, is_active)'
                )
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_breaks_template ON availability_breaks(template_id)')
            )

        _availability_schema_checked.add(bind)


def ensure_appointment_schema(bind: Engine | None = None) -> None:
    bind = bind or engine
    if bind in _appointment_schema_checked:
        return

    with _schema_lock:
        if bind in _appointment_schema_checked:
            return

        inspector = inspect(bind)
        if 'appointments' not in inspector.get_table_names():
            _appointment_schema_checked.add(bind)
            return

        existing_constraints = set()
        if bind.dialect.name == 'postgresql':
            with bind.connect() as connection:
                existing_constraints = {
                    row[0]
                    for row in connection.execute(
                        text("SELECT conname FROM pg_constraint WHERE conrelid = 'appointments'::regclass")
                    )
                }

        with bind.begin() as connection:
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_doctor_range ON appointments(doctor_id, scheduled_at, ends_at)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_reminder ON appointments(status, reminder_sent_at, scheduled_at)')
            )
            if bind.dialect.name == 'postgresql' and 'appointments_no_overlap' not in existing_constraints:
                # Datastore-level backstop for the booking guard's per-doctor lock.
                connection.execute(text('CREATE EXTENSION IF NOT EXISTS btree_gist'))
                connection.execute(
                    text(
                        'ALTER TABLE appointments ADD CONSTRAINT appointments_no_overlap '
                        'EXCLUDE USING gist (doctor_id WITH =, tsrange(scheduled_at, ends_at) WITH &&) '
                        "WHERE (status NOT IN ('canceled', 'rescheduled'))"
                    )
                )
                logger.info('Installed appointments_no_overlap exclusion constraint')

        _appointment_schema_checked.add(bind)


def init_db(bind: Engine | None = None) -> None:
    """Create tables and schema extras; safe to call repeatedly."""
    from scheduling.models import appointment, availability, user  # noqa: F401

    bind = bind or engine
    Base.metadata.create_all(bind=bind)
    ensure_availability_schema(bind)
    ensure_appointment_schema(bind)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
