"""Single entry point the handler layer calls into."""

from datetime import date, datetime

from sqlalchemy.orm import Session

from scheduling.models.appointment import Appointment, AppointmentAuditLog, AppointmentStatus, AppointmentType
from scheduling.services.availability import AvailabilityWindow, resolve_availability
from scheduling.services.clock import Clock
from scheduling.services.lifecycle import AppointmentLifecycle
from scheduling.services.notifications import NotificationSink
from scheduling.services.reminders import run_reminder_sweep
from scheduling.services.schedule_admin import ScheduleAdmin
from scheduling.services.slots import SlotSequence, generate_slots
from scheduling.store import SchedulingStore


class SchedulingEngine:
    def __init__(self, db: Session, sink: NotificationSink | None = None, clock: Clock | None = None):
        self.store = SchedulingStore(db)
        self.lifecycle = AppointmentLifecycle(self.store, sink=sink, clock=clock)
        self.admin = ScheduleAdmin(self.store)

    # Read path

    def resolve_availability(self, doctor_id: int, on_date: date) -> list[AvailabilityWindow]:
        return resolve_availability(self.store, doctor_id, on_date)

    def generate_slots(self, doctor_id: int, on_date: date) -> SlotSequence:
        return generate_slots(self.store, doctor_id, on_date)

    def get_appointment(self, appointment_id: int) -> Appointment:
        return self.lifecycle.get(appointment_id)

    def audit_trail(self, appointment_id: int) -> list[AppointmentAuditLog]:
        return self.lifecycle.audit_trail(appointment_id)

    def list_appointments(
        self,
        user_id: int,
        role: str,
        status: AppointmentStatus | str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Appointment]:
        return self.lifecycle.list_for_user(
            user_id, role, status=status, start=start, end=end, limit=limit, offset=offset
        )

    # Write path

    def book(
        self,
        doctor_id: int,
        patient_id: int,
        start: datetime,
        duration_minutes: int,
        appointment_type: AppointmentType | str,
        notes: str | None = None,
        actor_id: int | None = None,
    ) -> Appointment:
        return self.lifecycle.book(
            doctor_id,
            patient_id,
            start,
            duration_minutes,
            appointment_type,
            notes=notes,
            actor_id=actor_id,
        )

    def reschedule(
        self,
        appointment_id: int,
        new_start: datetime,
        actor_id: int | None = None,
        reason: str | None = None,
    ) -> Appointment:
        return self.lifecycle.reschedule(appointment_id, new_start, actor_id=actor_id, reason=reason)

    def cancel(self, appointment_id: int, actor_id: int | None, reason: str | None = None) -> Appointment:
        return self.lifecycle.cancel(appointment_id, actor_id, reason)

    def confirm(self, appointment_id: int, actor_id: int | None = None) -> Appointment:
        return self.lifecycle.confirm(appointment_id, actor_id=actor_id)

    def start(self, appointment_id: int, actor_id: int | None = None) -> Appointment:
        return self.lifecycle.start(appointment_id, actor_id=actor_id)

    def complete(self, appointment_id: int, actor_id: int | None = None) -> Appointment:
        return self.lifecycle.complete(appointment_id, actor_id=actor_id)

    def mark_no_show(self, appointment_id: int, actor_id: int | None = None) -> Appointment:
        return self.lifecycle.mark_no_show(appointment_id, actor_id=actor_id)

    def run_reminder_sweep(self, lookahead_hours: int | None = None, min_lead_minutes: int | None = None) -> int:
        return run_reminder_sweep(self.lifecycle, lookahead_hours=lookahead_hours, min_lead_minutes=min_lead_minutes)
