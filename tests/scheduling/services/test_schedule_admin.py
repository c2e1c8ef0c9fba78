from datetime import date, time

import pytest

from conftest import MONDAY, at
from scheduling.core.errors import NotFound, ValidationError
from scheduling.models.availability import BreakType, DayOfWeek
from scheduling.services.availability import resolve_availability
from scheduling.services.schedule_admin import ScheduleAdmin


@pytest.fixture
def admin_service(store) -> ScheduleAdmin:
    return ScheduleAdmin(store)


def test_create_template_normalizes_day_and_defaults_duration(admin_service, store, doctor) -> None:
    template = admin_service.create_template(
        doctor.id,
        ' Monday ',
        time(9, 0),
        time(12, 0),
        effective_from=date(2025, 6, 1),
    )

    assert template.day_of_week == DayOfWeek.MONDAY
    assert template.slot_duration_minutes == 60
    assert template.is_active is True
    assert [(window.start, window.end) for window in resolve_availability(store, doctor.id, MONDAY)] == [
        (at(9), at(12))
    ]


@pytest.mark.parametrize(
    ('day', 'start_time', 'end_time', 'duration'),
    [
        ('funday', time(9, 0), time(12, 0), 30),
        ('monday', time(12, 0), time(9, 0), 30),
        ('monday', time(9, 0), time(9, 0), 30),
        ('monday', time(9, 0), time(12, 0), 10),
        ('monday', time(9, 0), time(12, 0), 300),
    ],
)
def test_create_template_rejects_invalid_input(admin_service, doctor, day, start_time, end_time, duration) -> None:
    with pytest.raises(ValidationError):
        admin_service.create_template(doctor.id, day, start_time, end_time, slot_duration_minutes=duration)


def test_create_template_rejects_reversed_effective_range(admin_service, doctor) -> None:
    with pytest.raises(ValidationError):
        admin_service.create_template(
            doctor.id,
            DayOfWeek.MONDAY,
            time(9, 0),
            time(12, 0),
            effective_from=date(2026, 2, 1),
            effective_to=date(2026, 1, 1),
        )


def test_create_template_for_patient_raises_not_found(admin_service, patient) -> None:
    with pytest.raises(NotFound):
        admin_service.create_template(patient.id, DayOfWeek.MONDAY, time(9, 0), time(12, 0))


def test_deactivated_template_no_longer_resolves(admin_service, store, doctor, monday_template) -> None:
    template = admin_service.deactivate_template(monday_template.id)

    assert template.is_active is False
    assert resolve_availability(store, doctor.id, MONDAY) == []
    assert store.get_template(monday_template.id) is not None


def test_add_break_must_fall_inside_template(admin_service, monday_template) -> None:
    with pytest.raises(ValidationError):
        admin_service.add_break(monday_template.id, time(16, 30), time(17, 30))


def test_add_break_splits_resolved_window(admin_service, store, doctor, monday_template) -> None:
    availability_break = admin_service.add_break(monday_template.id, time(15, 0), time(15, 30), 'Meeting')

    assert availability_break.break_type == BreakType.MEETING
    assert [(window.start, window.end) for window in resolve_availability(store, doctor.id, MONDAY)] == [
        (at(9), at(12)),
        (at(13), at(15)),
        (at(15, 30), at(17)),
    ]


def test_set_exception_requires_hours_when_available(admin_service, doctor) -> None:
    with pytest.raises(ValidationError):
        admin_service.set_exception(doctor.id, MONDAY, is_available=True, start_time=time(9, 0))


def test_blocking_exception_clears_hours_and_blocks_day(admin_service, store, doctor, monday_template) -> None:
    exception = admin_service.set_exception(
        doctor.id,
        MONDAY,
        is_available=False,
        start_time=time(9, 0),
        end_time=time(10, 0),
        reason=' Conference ',
    )

    assert exception.start_time is None
    assert exception.reason == 'Conference'
    assert resolve_availability(store, doctor.id, MONDAY) == []


def test_clear_exception_restores_template_hours(admin_service, store, doctor, monday_template) -> None:
    admin_service.set_exception(doctor.id, MONDAY, is_available=False)

    assert admin_service.clear_exception(doctor.id, MONDAY) is True
    assert admin_service.clear_exception(doctor.id, MONDAY) is False
    assert len(resolve_availability(store, doctor.id, MONDAY)) == 2


def test_list_weekly_templates_orders_by_weekday(admin_service, doctor) -> None:
    admin_service.create_template(doctor.id, DayOfWeek.FRIDAY, time(9, 0), time(12, 0), effective_from=date(2025, 1, 1))
    admin_service.create_template(doctor.id, DayOfWeek.MONDAY, time(13, 0), time(16, 0), effective_from=date(2025, 1, 1))
    admin_service.create_template(doctor.id, DayOfWeek.MONDAY, time(8, 0), time(11, 0), effective_from=date(2025, 1, 1))

    templates = admin_service.list_weekly_templates(doctor.id)

    assert [(template.day_of_week, template.start_time) for template in templates] == [
        (DayOfWeek.MONDAY, time(8, 0)),
        (DayOfWeek.MONDAY, time(13, 0)),
        (DayOfWeek.FRIDAY, time(9, 0)),
    ]
