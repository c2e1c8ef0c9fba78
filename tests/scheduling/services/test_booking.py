import threading
from datetime import datetime
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy.orm import sessionmaker

from conftest import SUNDAY, FixedClock, RecordingSink, add_template, add_user, at
from scheduling.core.errors import NotFound, OutsideAvailability, SlotConflict, ValidationError
from scheduling.database import Base, build_engine
from scheduling.models.appointment import Appointment, AppointmentStatus, AppointmentType
from scheduling.models.user import ROLE_DOCTOR
from scheduling.services.booking import normalize_notes, parse_appointment_type
from scheduling.services.lifecycle import AppointmentLifecycle
from scheduling.services.notifications import EventKind
from scheduling.store import SchedulingStore


def test_parse_appointment_type_accepts_hyphenated_names() -> None:
    assert parse_appointment_type(' Follow-Up ') == AppointmentType.FOLLOW_UP


def test_parse_appointment_type_rejects_unknown_type() -> None:
    with pytest.raises(ValidationError):
        parse_appointment_type('surgery')


def test_normalize_notes_strips_and_limits_length() -> None:
    assert normalize_notes('  bring referral  ') == 'bring referral'
    assert normalize_notes('   ') is None
    with pytest.raises(ValidationError):
        normalize_notes('x' * 601)


def test_book_creates_scheduled_appointment_and_notifies_both_parties(
    lifecycle, sink, doctor, patient, monday_template
) -> None:
    appointment = lifecycle.book(doctor.id, patient.id, at(9), 30, 'consultation', notes=' first visit ')

    assert appointment.status == AppointmentStatus.SCHEDULED
    assert appointment.scheduled_at == at(9)
    assert appointment.ends_at == at(9, 30)
    assert appointment.notes == 'first visit'
    assert sorted(trigger.recipient_id for trigger in sink.triggers) == sorted([patient.id, doctor.id])
    assert sink.kinds_for(appointment.id) == [EventKind.BOOKED, EventKind.BOOKED]

    (entry,) = lifecycle.audit_trail(appointment.id)
    assert entry.action == 'appointment_booked'
    assert entry.user_id == patient.id
    assert entry.new_status == 'scheduled'


def test_overlapping_booking_is_rejected_with_slot_conflict(lifecycle, doctor, patient, monday_template) -> None:
    lifecycle.book(doctor.id, patient.id, at(9), 30, AppointmentType.CONSULTATION)

    with pytest.raises(SlotConflict):
        lifecycle.book(doctor.id, patient.id, at(9, 15), 30, AppointmentType.CONSULTATION)


def test_adjacent_booking_is_allowed(lifecycle, doctor, patient, monday_template) -> None:
    lifecycle.book(doctor.id, patient.id, at(9), 30, AppointmentType.CONSULTATION)
    second = lifecycle.book(doctor.id, patient.id, at(9, 30), 30, AppointmentType.THERAPY)

    assert second.scheduled_at == at(9, 30)


@pytest.mark.parametrize(
    'start',
    [at(12), at(11, 45), at(8, 30), at(16, 45), at(10, on_date=SUNDAY)],
)
def test_booking_outside_availability_is_rejected(lifecycle, doctor, patient, monday_template, start) -> None:
    with pytest.raises(OutsideAvailability):
        lifecycle.book(doctor.id, patient.id, start, 30, AppointmentType.CONSULTATION)


def test_regular_booking_must_use_window_slot_duration(lifecycle, doctor, patient, monday_template) -> None:
    with pytest.raises(ValidationError):
        lifecycle.book(doctor.id, patient.id, at(9), 45, AppointmentType.CONSULTATION)


def test_emergency_booking_may_use_its_own_duration(lifecycle, doctor, patient, monday_template) -> None:
    appointment = lifecycle.book(doctor.id, patient.id, at(13), 45, AppointmentType.EMERGENCY)

    assert appointment.ends_at == at(13, 45)


@pytest.mark.parametrize('duration', [0, -30, True])
def test_booking_rejects_invalid_duration(lifecycle, doctor, patient, monday_template, duration) -> None:
    with pytest.raises(ValidationError):
        lifecycle.book(doctor.id, patient.id, at(9), duration, AppointmentType.CONSULTATION)


@pytest.mark.parametrize('duration', [24 * 60 + 1, 10**10])
def test_emergency_booking_rejects_oversized_duration(
    db_session, lifecycle, doctor, patient, monday_template, duration
) -> None:
    with pytest.raises(ValidationError) as exception_info:
        lifecycle.book(doctor.id, patient.id, at(9), duration, AppointmentType.EMERGENCY)

    assert exception_info.value.message == 'Duration must be 1440 minutes or fewer.'
    assert db_session.query(Appointment).count() == 0


def test_booking_with_unknown_doctor_or_patient_raises_not_found(lifecycle, doctor, patient, monday_template) -> None:
    with pytest.raises(NotFound):
        lifecycle.book(999, patient.id, at(9), 30, AppointmentType.CONSULTATION)
    with pytest.raises(NotFound):
        lifecycle.book(doctor.id, 999, at(9), 30, AppointmentType.CONSULTATION)


def test_booking_normalizes_aware_start_to_utc(lifecycle, doctor, patient, monday_template) -> None:
    start = datetime(2026, 1, 5, 10, 0, tzinfo=ZoneInfo('America/New_York'))

    appointment = lifecycle.book(doctor.id, patient.id, start, 30, AppointmentType.CONSULTATION)

    assert appointment.scheduled_at == at(15)


def test_booking_drops_seconds_from_start(lifecycle, doctor, patient, monday_template) -> None:
    appointment = lifecycle.book(doctor.id, patient.id, at(9).replace(second=42), 30, AppointmentType.CONSULTATION)

    assert appointment.scheduled_at == at(9)


def test_canceled_appointment_frees_its_time(lifecycle, doctor, patient, monday_template) -> None:
    first = lifecycle.book(doctor.id, patient.id, at(10), 30, AppointmentType.CONSULTATION)
    lifecycle.cancel(first.id, patient.id, 'conflict at work')

    second = lifecycle.book(doctor.id, patient.id, at(10), 30, AppointmentType.CONSULTATION)

    assert second.id != first.id


def test_failing_sink_does_not_undo_booking(store, clock, doctor, patient, monday_template) -> None:
    lifecycle = AppointmentLifecycle(store, sink=RecordingSink(fail=True), clock=clock)

    appointment = lifecycle.book(doctor.id, patient.id, at(9), 30, AppointmentType.CONSULTATION)

    assert store.get_appointment(appointment.id).status == AppointmentStatus.SCHEDULED


def test_bookings_for_other_doctors_do_not_conflict(db_session, lifecycle, doctor, patient, monday_template) -> None:
    other_doctor = add_user(db_session, 'other@clinic.test', role=ROLE_DOCTOR)
    add_template(db_session, other_doctor.id)

    lifecycle.book(doctor.id, patient.id, at(9), 30, AppointmentType.CONSULTATION)
    other = lifecycle.book(other_doctor.id, patient.id, at(9), 30, AppointmentType.CONSULTATION)

    assert other.doctor_id == other_doctor.id


def test_simultaneous_bookings_for_same_doctor_admit_exactly_one(tmp_path) -> None:
    engine = build_engine(f'sqlite:///{tmp_path / "race.db"}')
    session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    seed = session_factory()
    try:
        race_doctor = add_user(seed, 'race-doctor@clinic.test', role=ROLE_DOCTOR)
        race_patient = add_user(seed, 'race-patient@clinic.test')
        add_template(seed, race_doctor.id)
        doctor_id, patient_id = race_doctor.id, race_patient.id
    finally:
        seed.close()

    barrier = threading.Barrier(2)
    outcomes = []
    outcomes_lock = threading.Lock()

    def attempt_booking() -> None:
        session = session_factory()
        lifecycle = AppointmentLifecycle(
            SchedulingStore(session),
            sink=RecordingSink(),
            clock=FixedClock(datetime(2026, 1, 4, 8, 0)),
        )
        try:
            barrier.wait()
            lifecycle.book(doctor_id, patient_id, at(9), 30, AppointmentType.CONSULTATION)
            outcome = 'booked'
        except SlotConflict:
            outcome = 'conflict'
        except Exception as exc:
            outcome = exc
        finally:
            session.close()
        with outcomes_lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=attempt_booking) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    check = session_factory()
    try:
        stored = check.query(Appointment).filter(Appointment.doctor_id == doctor_id).all()
    finally:
        check.close()
        engine.dispose()

    assert sorted(map(str, outcomes)) == ['booked', 'conflict']
    assert len(stored) == 1
