import os
from datetime import date, datetime, time, timedelta

import pytest
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from scheduling.database import Base, build_engine  # noqa: E402
from scheduling.models import appointment, availability, user  # noqa: E402,F401
from scheduling.models.availability import AvailabilityBreak, AvailabilityTemplate, BreakType, DayOfWeek  # noqa: E402
from scheduling.models.user import ROLE_ADMIN, ROLE_DOCTOR, ROLE_PATIENT, User  # noqa: E402
from scheduling.services.lifecycle import AppointmentLifecycle  # noqa: E402
from scheduling.services.notifications import NotificationTrigger  # noqa: E402
from scheduling.store import SchedulingStore  # noqa: E402

MONDAY = date(2026, 1, 5)
SUNDAY = date(2026, 1, 4)


def at(hour: int, minute: int = 0, on_date: date = MONDAY) -> datetime:
    return datetime.combine(on_date, time(hour, minute))


class RecordingSink:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.triggers: list[NotificationTrigger] = []

    def emit(self, appointment_id, recipient_id, event_kind) -> None:
        if self.fail:
            raise RuntimeError('mail server unreachable')
        self.triggers.append(NotificationTrigger(appointment_id, recipient_id, event_kind))

    def kinds_for(self, appointment_id):
        return [trigger.event_kind for trigger in self.triggers if trigger.appointment_id == appointment_id]


class FixedClock:
    def __init__(self, now: datetime):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **delta) -> None:
        self.current += timedelta(**delta)


def add_user(db, email: str, role: str = ROLE_PATIENT, timezone: str = 'UTC') -> User:
    new_user = User(email=email, full_name=email.split('@')[0], role=role, timezone=timezone)
    db.add(new_user)
    db.commit()
    db.refresh(new_user)
    return new_user


def add_template(
    db,
    doctor_id: int,
    day_of_week: DayOfWeek = DayOfWeek.MONDAY,
    start_time: time = time(9, 0),
    end_time: time = time(17, 0),
    slot_duration_minutes: int = 30,
    breaks=(),
    effective_from: date = date(2025, 1, 1),
    effective_to: date | None = None,
    is_active: bool = True,
) -> AvailabilityTemplate:
    template = AvailabilityTemplate(
        doctor_id=doctor_id,
        day_of_week=day_of_week,
        start_time=start_time,
        end_time=end_time,
        slot_duration_minutes=slot_duration_minutes,
        effective_from=effective_from,
        effective_to=effective_to,
        is_active=is_active,
    )
    db.add(template)
    db.flush()
    for break_start, break_end in breaks:
        db.add(
            AvailabilityBreak(
                template_id=template.id,
                start_time=break_start,
                end_time=break_end,
                break_type=BreakType.LUNCH,
            )
        )
    db.commit()
    db.refresh(template)
    return template


@pytest.fixture
def db_session():
    engine = build_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def store(db_session) -> SchedulingStore:
    return SchedulingStore(db_session)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2026, 1, 4, 8, 0))


@pytest.fixture
def lifecycle(store, sink, clock) -> AppointmentLifecycle:
    return AppointmentLifecycle(store, sink=sink, clock=clock)


@pytest.fixture
def doctor(db_session) -> User:
    return add_user(db_session, 'doctor@clinic.test', role=ROLE_DOCTOR)


@pytest.fixture
def patient(db_session) -> User:
    return add_user(db_session, 'patient@clinic.test', role=ROLE_PATIENT)


@pytest.fixture
def admin(db_session) -> User:
    return add_user(db_session, 'admin@clinic.test', role=ROLE_ADMIN)


@pytest.fixture
def monday_template(db_session, doctor) -> AvailabilityTemplate:
    """Monday 09:00-17:00, 30 minute slots, lunch 12:00-13:00."""
    return add_template(db_session, doctor.id, breaks=[(time(12, 0), time(13, 0))])
