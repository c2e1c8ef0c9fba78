"""User model definitions."""

from sqlalchemy import Column, Integer, String

from scheduling.core import config
from scheduling.database import Base

ROLE_PATIENT = "patient"
ROLE_DOCTOR = "doctor"
ROLE_ADMIN = "admin"


class User(Base):
    """Represents an application user (patient, doctor or admin)."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String)
    role = Column(String, nullable=False, default=ROLE_PATIENT)
    # Doctors only: IANA zone their template clock times are read in.
    timezone = Column(String, nullable=False, default=config.DEFAULT_DOCTOR_TIMEZONE)
    # Bumped by the booking guard; the row write serializes bookings per doctor.
    schedule_version = Column(Integer, nullable=False, default=0)
