from conftest import MONDAY, at
from scheduling.models.appointment import AppointmentStatus
from scheduling.services.engine import SchedulingEngine


def test_engine_routes_read_and_write_paths_through_one_store(
    db_session, sink, clock, doctor, patient, monday_template
) -> None:
    engine = SchedulingEngine(db_session, sink=sink, clock=clock)

    assert len(engine.resolve_availability(doctor.id, MONDAY)) == 2
    assert len(list(engine.generate_slots(doctor.id, MONDAY))) == 14

    appointment = engine.book(doctor.id, patient.id, at(9), 30, 'consultation')
    assert at(9) not in [slot.start for slot in engine.generate_slots(doctor.id, MONDAY)]

    moved = engine.reschedule(appointment.id, at(14), actor_id=patient.id)
    assert engine.get_appointment(appointment.id).status == AppointmentStatus.RESCHEDULED
    assert at(9) in [slot.start for slot in engine.generate_slots(doctor.id, MONDAY)]

    engine.confirm(moved.id, actor_id=doctor.id)
    clock.current = at(14, 5)
    engine.start(moved.id, actor_id=doctor.id)
    completed = engine.complete(moved.id, actor_id=doctor.id)

    assert completed.status == AppointmentStatus.COMPLETED
    assert [entry.action for entry in engine.audit_trail(moved.id)] == [
        'appointment_booked',
        'appointment_confirmed',
        'appointment_started',
        'appointment_completed',
    ]


def test_engine_sweep_and_no_show(db_session, sink, clock, doctor, patient, monday_template) -> None:
    engine = SchedulingEngine(db_session, sink=sink, clock=clock)
    appointment = engine.book(doctor.id, patient.id, at(10), 30, 'consultation')

    clock.current = at(8)
    assert engine.run_reminder_sweep(lookahead_hours=4) == 1

    clock.current = at(10, 20)
    assert engine.mark_no_show(appointment.id, actor_id=doctor.id).status == AppointmentStatus.NO_SHOW
