"""Transactional repository the scheduling engine reads and writes through.

Every mutation of appointments goes through :class:`SchedulingStore` so that
the booking guard's lock and the audit trail stay consistent. Methods never
commit on their own; callers group them with :meth:`SchedulingStore.transaction`.
"""

import functools
import logging
from contextlib import contextmanager
from datetime import date, datetime, time
from typing import Iterable, Iterator

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from scheduling.core.errors import NotFound, SlotConflict, StoreUnavailable
from scheduling.models.appointment import (
    INACTIVE_STATUSES,
    Appointment,
    AppointmentAuditLog,
    AppointmentStatus,
    utc_now,
)
from scheduling.models.availability import (
    AvailabilityBreak,
    AvailabilityException,
    AvailabilityTemplate,
    BreakType,
    DayOfWeek,
)
from scheduling.models.user import ROLE_ADMIN, ROLE_DOCTOR, ROLE_PATIENT, User

logger = logging.getLogger(__name__)

OVERLAP_CONSTRAINT_NAME = 'appointments_no_overlap'


def _translate_store_errors(method):
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except IntegrityError as exc:
            if OVERLAP_CONSTRAINT_NAME in str(exc.orig):
                raise SlotConflict('This time is already booked.') from exc
            raise StoreUnavailable(f'Store rejected {method.__name__}: {exc.orig}') from exc
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f'Store failure during {method.__name__}.') from exc

    return wrapper


class SchedulingStore:
    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def transaction(self) -> Iterator['SchedulingStore']:
        """Run the block as one atomic unit; rolls back on any exception."""
        try:
            yield self
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            if OVERLAP_CONSTRAINT_NAME in str(exc.orig):
                raise SlotConflict('This time is already booked.') from exc
            raise StoreUnavailable(f'Transaction rejected: {exc.orig}') from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreUnavailable('Transaction failed.') from exc
        except Exception:
            self.db.rollback()
            raise

    # Users

    @_translate_store_errors
    def get_user(self, user_id: int) -> User:
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFound(f'User {user_id} not found.')
        return user

    @_translate_store_errors
    def get_doctor(self, doctor_id: int) -> User:
        doctor = self.db.query(User).filter(User.id == doctor_id, User.role == ROLE_DOCTOR).first()
        if doctor is None:
            raise NotFound(f'Doctor {doctor_id} not found.')
        return doctor

    @_translate_store_errors
    def lock_doctor_schedule(self, doctor_id: int) -> None:
        """Take the per-doctor write lock for the rest of the transaction.

        The version bump is a real row write, so concurrent bookings for the
        same doctor queue behind it on both PostgreSQL and SQLite.
        """
        result = self.db.execute(
            update(User)
            .where(User.id == doctor_id, User.role == ROLE_DOCTOR)
            .values(schedule_version=User.schedule_version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFound(f'Doctor {doctor_id} not found.')

    # Availability

    @_translate_store_errors
    def list_templates(self, doctor_id: int, day_of_week: DayOfWeek, on_date: date) -> list[AvailabilityTemplate]:
        return (
            self.db.query(AvailabilityTemplate)
            .filter(
                AvailabilityTemplate.doctor_id == doctor_id,
                AvailabilityTemplate.day_of_week == day_of_week,
                AvailabilityTemplate.is_active.is_(True),
                AvailabilityTemplate.effective_from <= on_date,
                (AvailabilityTemplate.effective_to.is_(None)) | (AvailabilityTemplate.effective_to >= on_date),
            )
            .order_by(AvailabilityTemplate.start_time.asc(), AvailabilityTemplate.id.asc())
            .all()
        )

    @_translate_store_errors
    def list_weekly_templates(self, doctor_id: int, on_date: date | None = None) -> list[AvailabilityTemplate]:
        query = self.db.query(AvailabilityTemplate).filter(
            AvailabilityTemplate.doctor_id == doctor_id,
            AvailabilityTemplate.is_active.is_(True),
        )
        if on_date is not None:
            query = query.filter(
                AvailabilityTemplate.effective_from <= on_date,
                (AvailabilityTemplate.effective_to.is_(None)) | (AvailabilityTemplate.effective_to >= on_date),
            )
        templates = query.order_by(AvailabilityTemplate.start_time.asc()).all()
        weekday_order = {day: index for index, day in enumerate(DayOfWeek)}
        return sorted(templates, key=lambda template: weekday_order[template.day_of_week])

    @_translate_store_errors
    def get_template(self, template_id: int) -> AvailabilityTemplate:
        template = self.db.get(AvailabilityTemplate, template_id)
        if template is None:
            raise NotFound(f'Availability template {template_id} not found.')
        return template

    @_translate_store_errors
    def create_template(
        self,
        doctor_id: int,
        day_of_week: DayOfWeek,
        start_time: time,
        end_time: time,
        slot_duration_minutes: int,
        effective_from: date,
        effective_to: date | None = None,
    ) -> AvailabilityTemplate:
        template = AvailabilityTemplate(
            doctor_id=doctor_id,
            day_of_week=day_of_week,
            start_time=start_time,
            end_time=end_time,
            slot_duration_minutes=slot_duration_minutes,
            effective_from=effective_from,
            effective_to=effective_to,
            is_active=True,
        )
        self.db.add(template)
        self.db.flush()
        return template

    @_translate_store_errors
    def deactivate_template(self, template_id: int) -> AvailabilityTemplate:
        template = self.get_template(template_id)
        template.is_active = False
        self.db.flush()
        return template

    @_translate_store_errors
    def list_breaks(self, template_id: int) -> list[AvailabilityBreak]:
        return (
            self.db.query(AvailabilityBreak)
            .filter(AvailabilityBreak.template_id == template_id)
            .order_by(AvailabilityBreak.start_time.asc())
            .all()
        )

    @_translate_store_errors
    def create_break(self, template_id: int, start_time: time, end_time: time, break_type: BreakType) -> AvailabilityBreak:
        availability_break = AvailabilityBreak(
            template_id=template_id,
            start_time=start_time,
            end_time=end_time,
            break_type=break_type,
        )
        self.db.add(availability_break)
        self.db.flush()
        return availability_break

    @_translate_store_errors
    def get_exception(self, doctor_id: int, on_date: date) -> AvailabilityException | None:
        return (
            self.db.query(AvailabilityException)
            .filter(AvailabilityException.doctor_id == doctor_id, AvailabilityException.date == on_date)
            .first()
        )

    @_translate_store_errors
    def upsert_exception(
        self,
        doctor_id: int,
        on_date: date,
        is_available: bool,
        start_time: time | None = None,
        end_time: time | None = None,
        slot_duration_minutes: int | None = None,
        reason: str | None = None,
    ) -> AvailabilityException:
        exception = self.get_exception(doctor_id, on_date)
        if exception is None:
            exception = AvailabilityException(doctor_id=doctor_id, date=on_date)
            self.db.add(exception)
        exception.is_available = is_available
        exception.start_time = start_time
        exception.end_time = end_time
        exception.slot_duration_minutes = slot_duration_minutes
        exception.reason = reason
        self.db.flush()
        return exception

    @_translate_store_errors
    def delete_exception(self, doctor_id: int, on_date: date) -> bool:
        exception = self.get_exception(doctor_id, on_date)
        if exception is None:
            return False
        self.db.delete(exception)
        self.db.flush()
        return True

    # Appointments

    @_translate_store_errors
    def get_appointment(self, appointment_id: int) -> Appointment:
        appointment = self.db.get(Appointment, appointment_id)
        if appointment is None:
            raise NotFound(f'Appointment {appointment_id} not found.')
        return appointment

    @_translate_store_errors
    def list_appointments(
        self,
        doctor_id: int,
        range_start: datetime,
        range_end: datetime,
        exclude_statuses: Iterable[AppointmentStatus] = INACTIVE_STATUSES,
        exclude_appointment_id: int | None = None,
    ) -> list[Appointment]:
        """Appointments whose interval overlaps [range_start, range_end)."""
        query = self.db.query(Appointment).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.scheduled_at < range_end,
            Appointment.ends_at > range_start,
        )
        excluded = list(exclude_statuses)
        if excluded:
            query = query.filter(Appointment.status.notin_(excluded))
        if exclude_appointment_id is not None:
            query = query.filter(Appointment.id != exclude_appointment_id)
        return query.order_by(Appointment.scheduled_at.asc()).all()

    @_translate_store_errors
    def list_appointments_for_user(
        self,
        user_id: int,
        role: str,
        status: AppointmentStatus | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Appointment]:
        """Appointments the user takes part in, earliest first; admins see every appointment.

        ``start`` and ``end`` bound ``scheduled_at`` inclusively.
        """
        query = self.db.query(Appointment)
        if role == ROLE_PATIENT:
            query = query.filter(Appointment.patient_id == user_id)
        elif role == ROLE_DOCTOR:
            query = query.filter(Appointment.doctor_id == user_id)
        elif role != ROLE_ADMIN:
            return []
        if status is not None:
            query = query.filter(Appointment.status == status)
        if start is not None:
            query = query.filter(Appointment.scheduled_at >= start)
        if end is not None:
            query = query.filter(Appointment.scheduled_at <= end)
        return (
            query.order_by(Appointment.scheduled_at.asc(), Appointment.id.asc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    @_translate_store_errors
    def create_appointment(self, **fields) -> Appointment:
        appointment = Appointment(status=AppointmentStatus.SCHEDULED, **fields)
        self.db.add(appointment)
        self.db.flush()
        return appointment

    @_translate_store_errors
    def update_appointment_status(
        self,
        appointment_id: int,
        expected_status: AppointmentStatus,
        new_status: AppointmentStatus,
        **fields,
    ) -> bool:
        """Compare-and-set the status; False when another writer got there first."""
        result = self.db.execute(
            update(Appointment)
            .where(Appointment.id == appointment_id, Appointment.status == expected_status)
            .values(status=new_status, updated_at=utc_now(), **fields)
            .execution_options(synchronize_session=False)
        )
        self.db.expire_all()
        return result.rowcount == 1

    @_translate_store_errors
    def list_reminder_candidates(self, window_start: datetime, window_end: datetime) -> list[Appointment]:
        return (
            self.db.query(Appointment)
            .filter(
                Appointment.status == AppointmentStatus.SCHEDULED,
                Appointment.reminder_sent_at.is_(None),
                Appointment.scheduled_at >= window_start,
                Appointment.scheduled_at <= window_end,
            )
            .order_by(Appointment.scheduled_at.asc())
            .all()
        )

    @_translate_store_errors
    def claim_reminder(self, appointment_id: int, sent_at: datetime) -> bool:
        result = self.db.execute(
            update(Appointment)
            .where(
                Appointment.id == appointment_id,
                Appointment.status == AppointmentStatus.SCHEDULED,
                Appointment.reminder_sent_at.is_(None),
            )
            .values(reminder_sent_at=sent_at)
            .execution_options(synchronize_session=False)
        )
        self.db.expire_all()
        return result.rowcount == 1

    # Audit trail

    @_translate_store_errors
    def append_audit_log(
        self,
        appointment_id: int,
        user_id: int | None,
        action: str,
        detail: str | None = None,
        old_status: AppointmentStatus | None = None,
        new_status: AppointmentStatus | None = None,
    ) -> AppointmentAuditLog:
        entry = AppointmentAuditLog(
            appointment_id=appointment_id,
            user_id=user_id,
            action=action,
            detail=detail,
            old_status=old_status.value if old_status else None,
            new_status=new_status.value if new_status else None,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    @_translate_store_errors
    def list_audit_logs(self, appointment_id: int) -> list[AppointmentAuditLog]:
        return (
            self.db.query(AppointmentAuditLog)
            .filter(AppointmentAuditLog.appointment_id == appointment_id)
            .order_by(AppointmentAuditLog.created_at.asc(), AppointmentAuditLog.id.asc())
            .all()
        )
