from fastapi import Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from scheduling.core.errors import (
    InvalidTransition,
    NotFound,
    OutsideAvailability,
    SchedulingError,
    SlotConflict,
    StoreUnavailable,
    ValidationError,
)
from scheduling.database import ensure_appointment_schema, ensure_availability_schema, get_db
from scheduling.models.user import ROLE_ADMIN, ROLE_DOCTOR, User
from scheduling.services.engine import SchedulingEngine

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and Postgres credentials.'

_STATUS_BY_ERROR = (
    (NotFound, status.HTTP_404_NOT_FOUND),
    (SlotConflict, status.HTTP_409_CONFLICT),
    (InvalidTransition, status.HTTP_409_CONFLICT),
    (OutsideAvailability, status.HTTP_400_BAD_REQUEST),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (StoreUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def to_http_exception(exc: SchedulingError) -> HTTPException:
    if isinstance(exc, StoreUnavailable):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=DATABASE_UNAVAILABLE_DETAIL)

    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=exc.message)

    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message)


def ensure_database_ready() -> None:
    try:
        ensure_availability_schema()
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


def get_scheduling_engine(db: Session = Depends(get_db)) -> SchedulingEngine:
    ensure_database_ready()
    return SchedulingEngine(db)


def is_admin(user: User) -> bool:
    return user.role == ROLE_ADMIN


def ensure_manages_doctor(current_user: User, doctor_id: int) -> None:
    if is_admin(current_user):
        return
    if current_user.role != ROLE_DOCTOR or current_user.id != doctor_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only the doctor or an admin can manage this schedule.',
        )
