"""The booking guard: the only code path that inserts appointments.

``reserve`` must run inside a store transaction. It takes the doctor's
schedule lock before reading anything, so the availability check, the
overlap check and the insert are linearizable per doctor. Bookings for
different doctors never contend.
"""

import logging
from datetime import datetime, timedelta

from scheduling.core import config
from scheduling.core.errors import OutsideAvailability, SlotConflict, ValidationError
from scheduling.core.timeutils import get_zone, local_date_of, to_naive_utc
from scheduling.models.appointment import INACTIVE_STATUSES, Appointment, AppointmentType
from scheduling.services.availability import AvailabilityWindow, resolve_availability
from scheduling.store import SchedulingStore

logger = logging.getLogger(__name__)

MAX_APPOINTMENT_DURATION_MINUTES = 24 * 60


def parse_appointment_type(value: AppointmentType | str) -> AppointmentType:
    if isinstance(value, AppointmentType):
        return value
    normalized = str(value or '').strip().lower().replace('-', '_')
    try:
        return AppointmentType(normalized)
    except ValueError as exc:
        raise ValidationError(f'Invalid appointment type: {value!r}.') from exc


def normalize_notes(notes: str | None) -> str | None:
    if notes is None:
        return None
    normalized = notes.strip()
    if not normalized:
        return None
    if len(normalized) > config.MAX_APPOINTMENT_NOTES_LENGTH:
        raise ValidationError(f'Notes must be {config.MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')
    return normalized


def validate_duration(duration_minutes: int) -> int:
    if isinstance(duration_minutes, bool) or not isinstance(duration_minutes, int):
        raise ValidationError('Duration must be a whole number of minutes.')
    if duration_minutes <= 0:
        raise ValidationError('Duration must be positive.')
    if duration_minutes > MAX_APPOINTMENT_DURATION_MINUTES:
        raise ValidationError(f'Duration must be {MAX_APPOINTMENT_DURATION_MINUTES} minutes or fewer.')
    return duration_minutes


class BookingGuard:
    def __init__(self, store: SchedulingStore):
        self.store = store

    def find_window(self, doctor_id: int, start: datetime, end: datetime) -> AvailabilityWindow:
        doctor = self.store.get_doctor(doctor_id)
        local_date = local_date_of(start, get_zone(doctor.timezone))
        for window in resolve_availability(self.store, doctor_id, local_date):
            if window.contains(start, end):
                return window
        raise OutsideAvailability('The requested time is outside the doctor\'s availability.')

    def reserve(
        self,
        doctor_id: int,
        patient_id: int,
        start: datetime,
        duration_minutes: int,
        appointment_type: AppointmentType | str,
        notes: str | None = None,
        exclude_appointment_id: int | None = None,
        original_appointment_id: int | None = None,
    ) -> Appointment:
        if not isinstance(start, datetime):
            raise ValidationError('Appointment start must be a datetime.')
        appointment_type = parse_appointment_type(appointment_type)
        duration_minutes = validate_duration(duration_minutes)
        notes = normalize_notes(notes)

        start = to_naive_utc(start).replace(second=0, microsecond=0)
        end = start + timedelta(minutes=duration_minutes)

        self.store.get_user(patient_id)
        self.store.lock_doctor_schedule(doctor_id)

        window = self.find_window(doctor_id, start, end)
        if appointment_type != AppointmentType.EMERGENCY and duration_minutes != window.slot_duration_minutes:
            raise ValidationError(
                f'{appointment_type.value} appointments must last {window.slot_duration_minutes} minutes.'
            )

        conflicts = self.store.list_appointments(
            doctor_id,
            range_start=start,
            range_end=end,
            exclude_statuses=INACTIVE_STATUSES,
            exclude_appointment_id=exclude_appointment_id,
        )
        if conflicts:
            logger.info(
                'Booking conflict for doctor %s at %s: overlaps appointment %s',
                doctor_id,
                start.isoformat(),
                conflicts[0].id,
            )
            raise SlotConflict('This time is already booked.')

        return self.store.create_appointment(
            patient_id=patient_id,
            doctor_id=doctor_id,
            appointment_type=appointment_type,
            scheduled_at=start,
            ends_at=end,
            duration_minutes=duration_minutes,
            notes=notes,
            original_appointment_id=original_appointment_id,
        )
