"""Availability model definitions."""

import enum

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    Enum,
    ForeignKey,
    Integer,
    String,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from scheduling.database import Base


class DayOfWeek(str, enum.Enum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def from_date(cls, value) -> "DayOfWeek":
        return list(cls)[value.weekday()]


class BreakType(str, enum.Enum):
    LUNCH = "lunch"
    MEETING = "meeting"
    PERSONAL = "personal"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class AvailabilityTemplate(Base):
    """A recurring weekly window during which a doctor takes appointments."""
    __tablename__ = "availability_templates"

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    day_of_week = Column(
        Enum(DayOfWeek, native_enum=False, length=16, values_callable=_enum_values),
        nullable=False,
    )
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    slot_duration_minutes = Column(Integer, nullable=False)
    # Templates are never deleted; historical appointments keep resolving to them.
    is_active = Column(Boolean, nullable=False, default=True)
    effective_from = Column(Date, nullable=False)
    effective_to = Column(Date)

    breaks = relationship("AvailabilityBreak", back_populates="template", order_by="AvailabilityBreak.start_time")


class AvailabilityBreak(Base):
    """A recurring gap inside one template's window."""
    __tablename__ = "availability_breaks"

    id = Column(Integer, primary_key=True)
    template_id = Column(Integer, ForeignKey("availability_templates.id"), nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    break_type = Column(
        Enum(BreakType, native_enum=False, length=16, values_callable=_enum_values),
        nullable=False,
        default=BreakType.LUNCH,
    )

    template = relationship("AvailabilityTemplate", back_populates="breaks")


class AvailabilityException(Base):
    """A date-specific override: either blocks the day or replaces its hours."""
    __tablename__ = "availability_exceptions"
    __table_args__ = (UniqueConstraint("doctor_id", "date", name="uq_availability_exceptions_doctor_date"),)

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    is_available = Column(Boolean, nullable=False, default=False)
    start_time = Column(Time)
    end_time = Column(Time)
    slot_duration_minutes = Column(Integer)
    reason = Column(String)

    @property
    def blocks_day(self) -> bool:
        return not self.is_available
