"""Appointment status lifecycle.

Every transition checks ``ALLOWED_TRANSITIONS``, writes the status and its
timestamp with a compare-and-set, appends one audit entry and commits. Only
then are notification triggers emitted; a failing sink never undoes a
committed transition.
"""

import logging
from datetime import datetime

from scheduling.core import config
from scheduling.core.errors import InvalidTransition, ValidationError
from scheduling.core.timeutils import to_naive_utc
from scheduling.models.appointment import Appointment, AppointmentAuditLog, AppointmentStatus, AppointmentType
from scheduling.services.booking import BookingGuard
from scheduling.services.clock import Clock, SystemClock
from scheduling.services.notifications import EventKind, LoggingNotificationSink, NotificationSink
from scheduling.store import SchedulingStore

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.SCHEDULED: frozenset(
        {
            AppointmentStatus.CONFIRMED,
            AppointmentStatus.CANCELED,
            AppointmentStatus.RESCHEDULED,
            AppointmentStatus.NO_SHOW,
        }
    ),
    AppointmentStatus.CONFIRMED: frozenset(
        {
            AppointmentStatus.IN_PROGRESS,
            AppointmentStatus.CANCELED,
            AppointmentStatus.RESCHEDULED,
        }
    ),
    AppointmentStatus.IN_PROGRESS: frozenset({AppointmentStatus.COMPLETED}),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELED: frozenset(),
    AppointmentStatus.RESCHEDULED: frozenset(),
    AppointmentStatus.NO_SHOW: frozenset(),
}

TERMINAL_STATUSES = frozenset(status for status, targets in ALLOWED_TRANSITIONS.items() if not targets)


def ensure_transition_allowed(current: AppointmentStatus, requested: AppointmentStatus) -> None:
    if requested in ALLOWED_TRANSITIONS[current]:
        return
    if current in TERMINAL_STATUSES:
        message = f'Appointment is already {current.value} and can no longer change.'
    else:
        message = f'Cannot move an appointment from {current.value} to {requested.value}.'
    raise InvalidTransition(message, current_status=current.value, requested_status=requested.value)


class AppointmentLifecycle:
    def __init__(
        self,
        store: SchedulingStore,
        sink: NotificationSink | None = None,
        clock: Clock | None = None,
    ):
        self.store = store
        self.sink = sink or LoggingNotificationSink()
        self.clock = clock or SystemClock()
        self.guard = BookingGuard(store)

    # Notification hook

    def notify(self, appointment_id: int, recipient_id: int, event_kind: EventKind) -> None:
        """Hand one trigger to the sink; failures are logged, never raised."""
        try:
            self.sink.emit(appointment_id, recipient_id, event_kind)
        except Exception:
            logger.exception(
                'Notification %s for appointment %s to user %s failed',
                event_kind.value,
                appointment_id,
                recipient_id,
            )

    def _notify_parties(self, appointment: Appointment, event_kind: EventKind) -> None:
        self.notify(appointment.id, appointment.patient_id, event_kind)
        self.notify(appointment.id, appointment.doctor_id, event_kind)

    # Reads

    def get(self, appointment_id: int) -> Appointment:
        return self.store.get_appointment(appointment_id)

    def audit_trail(self, appointment_id: int) -> list[AppointmentAuditLog]:
        self.store.get_appointment(appointment_id)
        return self.store.list_audit_logs(appointment_id)

    def list_for_user(
        self,
        user_id: int,
        role: str,
        status: AppointmentStatus | str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Appointment]:
        limit = config.APPOINTMENT_PAGE_SIZE if limit is None else limit
        if not 1 <= limit <= config.MAX_APPOINTMENT_PAGE_SIZE:
            raise ValidationError(f'Limit must be between 1 and {config.MAX_APPOINTMENT_PAGE_SIZE}.')
        if offset < 0:
            raise ValidationError('Offset cannot be negative.')
        if status is not None and not isinstance(status, AppointmentStatus):
            try:
                status = AppointmentStatus(str(status).strip().lower())
            except ValueError as exc:
                raise ValidationError(f'Invalid appointment status: {status!r}.') from exc
        start = to_naive_utc(start) if start is not None else None
        end = to_naive_utc(end) if end is not None else None
        if start is not None and end is not None and end < start:
            raise ValidationError('End of the range must not be before its start.')

        return self.store.list_appointments_for_user(
            user_id, role, status=status, start=start, end=end, limit=limit, offset=offset
        )

    # Writes

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
        with self.store.transaction():
            appointment = self.guard.reserve(
                doctor_id=doctor_id,
                patient_id=patient_id,
                start=start,
                duration_minutes=duration_minutes,
                appointment_type=appointment_type,
                notes=notes,
            )
            self.store.append_audit_log(
                appointment.id,
                actor_id if actor_id is not None else patient_id,
                'appointment_booked',
                detail=f'Booked for {appointment.scheduled_at:%Y-%m-%d %H:%M} UTC',
                new_status=AppointmentStatus.SCHEDULED,
            )
            appointment_id = appointment.id

        appointment = self.store.get_appointment(appointment_id)
        logger.info(
            'Appointment %s booked with doctor %s at %s',
            appointment.id,
            appointment.doctor_id,
            appointment.scheduled_at.isoformat(),
        )
        self._notify_parties(appointment, EventKind.BOOKED)
        return appointment

    def _transition(
        self,
        appointment_id: int,
        target: AppointmentStatus,
        action: str,
        actor_id: int | None = None,
        detail: str | None = None,
        extra_fields: dict | None = None,
    ) -> Appointment:
        with self.store.transaction():
            appointment = self.store.get_appointment(appointment_id)
            current = appointment.status
            ensure_transition_allowed(current, target)

            fields = dict(extra_fields or {})
            if not self.store.update_appointment_status(appointment_id, current, target, **fields):
                latest = self.store.get_appointment(appointment_id)
                raise InvalidTransition(
                    f'Appointment changed to {latest.status.value} while it was being updated.',
                    current_status=latest.status.value,
                    requested_status=target.value,
                )
            self.store.append_audit_log(
                appointment_id,
                actor_id,
                action,
                detail=detail,
                old_status=current,
                new_status=target,
            )

        logger.info('Appointment %s moved from %s to %s', appointment_id, current.value, target.value)
        return self.store.get_appointment(appointment_id)

    def confirm(self, appointment_id: int, actor_id: int | None = None) -> Appointment:
        appointment = self._transition(
            appointment_id,
            AppointmentStatus.CONFIRMED,
            'appointment_confirmed',
            actor_id=actor_id,
            extra_fields={'confirmed_at': self.clock.now()},
        )
        self.notify(appointment.id, appointment.patient_id, EventKind.CONFIRMED)
        return appointment

    def start(self, appointment_id: int, actor_id: int | None = None) -> Appointment:
        return self._transition(
            appointment_id,
            AppointmentStatus.IN_PROGRESS,
            'appointment_started',
            actor_id=actor_id,
            extra_fields={'started_at': self.clock.now()},
        )

    def complete(self, appointment_id: int, actor_id: int | None = None) -> Appointment:
        return self._transition(
            appointment_id,
            AppointmentStatus.COMPLETED,
            'appointment_completed',
            actor_id=actor_id,
            extra_fields={'completed_at': self.clock.now()},
        )

    def cancel(self, appointment_id: int, actor_id: int | None, reason: str | None = None) -> Appointment:
        reason = reason.strip() if reason else None
        appointment = self._transition(
            appointment_id,
            AppointmentStatus.CANCELED,
            'appointment_canceled',
            actor_id=actor_id,
            detail=reason,
            extra_fields={
                'canceled_at': self.clock.now(),
                'canceled_by': actor_id,
                'cancel_reason': reason,
            },
        )
        self._notify_parties(appointment, EventKind.CANCELED)
        return appointment

    def mark_no_show(self, appointment_id: int, actor_id: int | None = None) -> Appointment:
        appointment = self.store.get_appointment(appointment_id)
        if appointment.status == AppointmentStatus.SCHEDULED and self.clock.now() < appointment.scheduled_at:
            raise ValidationError('An appointment cannot be marked as a no-show before it starts.')
        return self._transition(
            appointment_id,
            AppointmentStatus.NO_SHOW,
            'appointment_no_show',
            actor_id=actor_id,
        )

    def reschedule(
        self,
        appointment_id: int,
        new_start: datetime,
        actor_id: int | None = None,
        reason: str | None = None,
    ) -> Appointment:
        """Retire the appointment and book its replacement as one unit.

        The replacement links back through ``original_appointment_id``. If the
        new time is rejected nothing is written and the original stays as it was.
        """
        reason = reason.strip() if reason else None
        with self.store.transaction():
            original = self.store.get_appointment(appointment_id)
            current = original.status
            ensure_transition_allowed(current, AppointmentStatus.RESCHEDULED)

            self.store.lock_doctor_schedule(original.doctor_id)
            if not self.store.update_appointment_status(appointment_id, current, AppointmentStatus.RESCHEDULED):
                latest = self.store.get_appointment(appointment_id)
                raise InvalidTransition(
                    f'Appointment changed to {latest.status.value} while it was being rescheduled.',
                    current_status=latest.status.value,
                    requested_status=AppointmentStatus.RESCHEDULED.value,
                )
            original = self.store.get_appointment(appointment_id)

            replacement = self.guard.reserve(
                doctor_id=original.doctor_id,
                patient_id=original.patient_id,
                start=new_start,
                duration_minutes=original.duration_minutes,
                appointment_type=original.appointment_type,
                notes=original.notes,
                exclude_appointment_id=original.id,
                original_appointment_id=original.id,
            )

            moved_to = f'Moved to {replacement.scheduled_at:%Y-%m-%d %H:%M} UTC as appointment {replacement.id}'
            self.store.append_audit_log(
                original.id,
                actor_id,
                'appointment_rescheduled',
                detail=f'{moved_to}. {reason}' if reason else moved_to,
                old_status=current,
                new_status=AppointmentStatus.RESCHEDULED,
            )
            self.store.append_audit_log(
                replacement.id,
                actor_id,
                'appointment_booked',
                detail=f'Rescheduled from appointment {original.id}',
                new_status=AppointmentStatus.SCHEDULED,
            )
            replacement_id = replacement.id

        replacement = self.store.get_appointment(replacement_id)
        logger.info('Appointment %s rescheduled as %s', appointment_id, replacement.id)
        self._notify_parties(replacement, EventKind.RESCHEDULED)
        return replacement
