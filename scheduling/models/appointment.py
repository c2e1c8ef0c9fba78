"""Appointment model definitions."""

import enum
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, String, Text

from scheduling.database import Base


def utc_now() -> datetime:
    """Naive UTC, matching the TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class AppointmentStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELED = "canceled"
    RESCHEDULED = "rescheduled"
    NO_SHOW = "no_show"


class AppointmentType(str, enum.Enum):
    CONSULTATION = "consultation"
    FOLLOW_UP = "follow_up"
    THERAPY = "therapy"
    EMERGENCY = "emergency"


# Appointments in these states no longer hold their time.
INACTIVE_STATUSES = (AppointmentStatus.CANCELED, AppointmentStatus.RESCHEDULED)


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Appointment(Base):
    """Represents a booked appointment. Rows are never deleted."""
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    doctor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    appointment_type = Column(
        Enum(AppointmentType, native_enum=False, length=20, values_callable=_enum_values),
        nullable=False,
    )
    status = Column(
        Enum(AppointmentStatus, native_enum=False, length=20, values_callable=_enum_values),
        nullable=False,
        default=AppointmentStatus.SCHEDULED,
    )
    scheduled_at = Column(DateTime, nullable=False, index=True)
    ends_at = Column(DateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    notes = Column(Text)

    cancel_reason = Column(String)
    canceled_by = Column(Integer, ForeignKey("users.id"))
    canceled_at = Column(DateTime)
    confirmed_at = Column(DateTime)
    started_at = Column(DateTime)
    completed_at = Column(DateTime)
    reminder_sent_at = Column(DateTime)

    original_appointment_id = Column(Integer, ForeignKey("appointments.id"))

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)


class AppointmentAuditLog(Base):
    """Append-only record of one state-changing action on an appointment."""
    __tablename__ = "appointment_audit_logs"

    id = Column(Integer, primary_key=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"))
    action = Column(String, nullable=False)
    detail = Column(Text)
    old_status = Column(String)
    new_status = Column(String)
    created_at = Column(DateTime, nullable=False, default=utc_now)
