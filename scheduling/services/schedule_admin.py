"""Doctor-facing administration of weekly templates, breaks and date exceptions."""

import logging
from datetime import date, time

from scheduling.core import config
from scheduling.core.errors import ValidationError
from scheduling.models.availability import (
    AvailabilityBreak,
    AvailabilityException,
    AvailabilityTemplate,
    BreakType,
    DayOfWeek,
)
from scheduling.store import SchedulingStore

logger = logging.getLogger(__name__)

MAX_EXCEPTION_REASON_LENGTH = 255


def parse_day_of_week(value: DayOfWeek | str) -> DayOfWeek:
    if isinstance(value, DayOfWeek):
        return value
    try:
        return DayOfWeek(str(value or '').strip().lower())
    except ValueError as exc:
        raise ValidationError(f'Invalid day of week: {value!r}.') from exc


def parse_break_type(value: BreakType | str) -> BreakType:
    if isinstance(value, BreakType):
        return value
    try:
        return BreakType(str(value or '').strip().lower())
    except ValueError as exc:
        raise ValidationError(f'Invalid break type: {value!r}.') from exc


def validate_time_range(start_time: time, end_time: time, label: str = 'Window') -> None:
    if start_time >= end_time:
        raise ValidationError(f'{label} start time must be before its end time.')


def validate_slot_duration(slot_duration_minutes: int) -> int:
    if isinstance(slot_duration_minutes, bool) or not isinstance(slot_duration_minutes, int):
        raise ValidationError('Slot duration must be a whole number of minutes.')
    if not config.MIN_SLOT_DURATION_MINUTES <= slot_duration_minutes <= config.MAX_SLOT_DURATION_MINUTES:
        raise ValidationError(
            f'Slot duration must be between {config.MIN_SLOT_DURATION_MINUTES} '
            f'and {config.MAX_SLOT_DURATION_MINUTES} minutes.'
        )
    return slot_duration_minutes


class ScheduleAdmin:
    def __init__(self, store: SchedulingStore):
        self.store = store

    def list_weekly_templates(self, doctor_id: int, on_date: date | None = None) -> list[AvailabilityTemplate]:
        self.store.get_doctor(doctor_id)
        return self.store.list_weekly_templates(doctor_id, on_date)

    def create_template(
        self,
        doctor_id: int,
        day_of_week: DayOfWeek | str,
        start_time: time,
        end_time: time,
        slot_duration_minutes: int | None = None,
        effective_from: date | None = None,
        effective_to: date | None = None,
    ) -> AvailabilityTemplate:
        day_of_week = parse_day_of_week(day_of_week)
        validate_time_range(start_time, end_time)
        if slot_duration_minutes is None:
            slot_duration_minutes = config.DEFAULT_SLOT_DURATION_MINUTES
        validate_slot_duration(slot_duration_minutes)
        effective_from = effective_from or date.today()
        if effective_to is not None and effective_to < effective_from:
            raise ValidationError('Effective end date cannot be before the effective start date.')

        with self.store.transaction():
            self.store.get_doctor(doctor_id)
            template = self.store.create_template(
                doctor_id=doctor_id,
                day_of_week=day_of_week,
                start_time=start_time,
                end_time=end_time,
                slot_duration_minutes=slot_duration_minutes,
                effective_from=effective_from,
                effective_to=effective_to,
            )
            template_id = template.id

        logger.info('Doctor %s added %s template %s', doctor_id, day_of_week.value, template_id)
        return self.store.get_template(template_id)

    def deactivate_template(self, template_id: int) -> AvailabilityTemplate:
        with self.store.transaction():
            template = self.store.deactivate_template(template_id)
            doctor_id = template.doctor_id

        logger.info('Doctor %s deactivated template %s', doctor_id, template_id)
        return self.store.get_template(template_id)

    def add_break(
        self,
        template_id: int,
        start_time: time,
        end_time: time,
        break_type: BreakType | str = BreakType.LUNCH,
    ) -> AvailabilityBreak:
        break_type = parse_break_type(break_type)
        validate_time_range(start_time, end_time, label='Break')

        with self.store.transaction():
            template = self.store.get_template(template_id)
            if start_time < template.start_time or end_time > template.end_time:
                raise ValidationError('Break must fall within its template window.')
            availability_break = self.store.create_break(template_id, start_time, end_time, break_type)

        return availability_break

    def set_exception(
        self,
        doctor_id: int,
        on_date: date,
        is_available: bool,
        start_time: time | None = None,
        end_time: time | None = None,
        slot_duration_minutes: int | None = None,
        reason: str | None = None,
    ) -> AvailabilityException:
        """Block a date, or replace its hours when ``is_available`` is true."""
        if is_available:
            if start_time is None or end_time is None:
                raise ValidationError('Override hours need both a start and an end time.')
            validate_time_range(start_time, end_time)
            if slot_duration_minutes is not None:
                validate_slot_duration(slot_duration_minutes)
        else:
            start_time = end_time = slot_duration_minutes = None

        reason = reason.strip() if reason else None
        if reason and len(reason) > MAX_EXCEPTION_REASON_LENGTH:
            raise ValidationError(f'Reason must be {MAX_EXCEPTION_REASON_LENGTH} characters or fewer.')

        with self.store.transaction():
            self.store.get_doctor(doctor_id)
            exception = self.store.upsert_exception(
                doctor_id,
                on_date,
                is_available=is_available,
                start_time=start_time,
                end_time=end_time,
                slot_duration_minutes=slot_duration_minutes,
                reason=reason or None,
            )

        logger.info(
            'Doctor %s %s on %s',
            doctor_id,
            'overrode hours' if is_available else 'blocked the day',
            on_date.isoformat(),
        )
        return exception

    def clear_exception(self, doctor_id: int, on_date: date) -> bool:
        with self.store.transaction():
            self.store.get_doctor(doctor_id)
            removed = self.store.delete_exception(doctor_id, on_date)
        return removed
