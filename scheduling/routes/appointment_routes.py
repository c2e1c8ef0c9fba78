from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator

from scheduling.auth.dependencies import get_current_user
from scheduling.core import config
from scheduling.core.errors import SchedulingError
from scheduling.models.appointment import Appointment, AppointmentStatus, AppointmentType
from scheduling.models.user import ROLE_PATIENT, User
from scheduling.routes.common import ensure_manages_doctor, get_scheduling_engine, is_admin, to_http_exception
from scheduling.services.engine import SchedulingEngine

router = APIRouter(tags=['appointments'])

MAX_REASON_LENGTH = 255


def normalize_reason(value: str | None) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if len(normalized) > MAX_REASON_LENGTH:
        raise ValueError(f'Reason must be {MAX_REASON_LENGTH} characters or fewer.')

    return normalized or None


class BookAppointmentRequest(BaseModel):
    doctor_id: int
    patient_id: int | None = None
    start_time: datetime
    duration_minutes: int
    appointment_type: AppointmentType
    notes: str | None = None

    @field_validator('appointment_type', mode='before')
    @classmethod
    def normalize_appointment_type(cls, value):
        if isinstance(value, str):
            return value.strip().lower().replace('-', '_')
        return value

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > config.MAX_APPOINTMENT_NOTES_LENGTH:
            raise ValueError(f'Notes must be {config.MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')

        return normalized


class CancelAppointmentRequest(BaseModel):
    reason: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        return normalize_reason(value)


class RescheduleAppointmentRequest(BaseModel):
    start_time: datetime
    reason: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        return normalize_reason(value)


class AppointmentResponse(BaseModel):
    id: int
    patient_id: int
    doctor_id: int
    appointment_type: AppointmentType
    status: AppointmentStatus
    scheduled_at: datetime
    ends_at: datetime
    duration_minutes: int
    notes: str | None = None
    cancel_reason: str | None = None
    canceled_by: int | None = None
    canceled_at: datetime | None = None
    confirmed_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    reminder_sent_at: datetime | None = None
    original_appointment_id: int | None = None

    class Config:
        from_attributes = True


class AuditLogResponse(BaseModel):
    id: int
    appointment_id: int
    user_id: int | None = None
    action: str
    detail: str | None = None
    old_status: str | None = None
    new_status: str | None = None
    created_at: datetime

    class Config:
        from_attributes = True


def ensure_can_view(current_user: User, appointment: Appointment) -> None:
    if is_admin(current_user) or current_user.id in (appointment.patient_id, appointment.doctor_id):
        return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail='You do not have access to this appointment.',
    )


def load_appointment(engine: SchedulingEngine, appointment_id: int) -> Appointment:
    try:
        return engine.get_appointment(appointment_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def book_appointment(
    data: BookAppointmentRequest,
    current_user: User = Depends(get_current_user),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
):
    if current_user.role == ROLE_PATIENT:
        if data.patient_id not in (None, current_user.id):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail='Patients can only book appointments for themselves.',
            )
        patient_id = current_user.id
    else:
        if data.patient_id is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='A patient is required when booking on behalf of someone else.',
            )
        ensure_manages_doctor(current_user, data.doctor_id)
        patient_id = data.patient_id

    try:
        appointment = engine.book(
            doctor_id=data.doctor_id,
            patient_id=patient_id,
            start=data.start_time,
            duration_minutes=data.duration_minutes,
            appointment_type=data.appointment_type,
            notes=data.notes,
            actor_id=current_user.id,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return AppointmentResponse.model_validate(appointment)


@router.get('', response_model=list[AppointmentResponse])
def list_my_appointments(
    status_filter: AppointmentStatus | None = Query(default=None, alias='status'),
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    limit: int | None = Query(default=None),
    offset: int = Query(default=0),
    current_user: User = Depends(get_current_user),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
):
    try:
        appointments = engine.list_appointments(
            current_user.id,
            current_user.role,
            status=status_filter,
            start=start,
            end=end,
            limit=limit,
            offset=offset,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return [AppointmentResponse.model_validate(appointment) for appointment in appointments]


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
):
    appointment = load_appointment(engine, appointment_id)
    ensure_can_view(current_user, appointment)
    return AppointmentResponse.model_validate(appointment)


@router.get('/{appointment_id}/audit', response_model=list[AuditLogResponse])
def get_audit_trail(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
):
    appointment = load_appointment(engine, appointment_id)
    if not is_admin(current_user) and current_user.id != appointment.doctor_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only the doctor or an admin can view the audit trail.',
        )

    try:
        entries = engine.audit_trail(appointment_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return [AuditLogResponse.model_validate(entry) for entry in entries]


@router.post('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    data: CancelAppointmentRequest,
    current_user: User = Depends(get_current_user),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
):
    appointment = load_appointment(engine, appointment_id)
    ensure_can_view(current_user, appointment)

    try:
        appointment = engine.cancel(appointment_id, current_user.id, data.reason)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return AppointmentResponse.model_validate(appointment)


@router.post('/{appointment_id}/reschedule', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def reschedule_appointment(
    appointment_id: int,
    data: RescheduleAppointmentRequest,
    current_user: User = Depends(get_current_user),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
):
    appointment = load_appointment(engine, appointment_id)
    ensure_can_view(current_user, appointment)

    try:
        replacement = engine.reschedule(appointment_id, data.start_time, actor_id=current_user.id, reason=data.reason)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return AppointmentResponse.model_validate(replacement)


def _doctor_transition(operation: str, appointment_id: int, current_user: User, engine: SchedulingEngine):
    appointment = load_appointment(engine, appointment_id)
    ensure_manages_doctor(current_user, appointment.doctor_id)

    try:
        appointment = getattr(engine, operation)(appointment_id, actor_id=current_user.id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return AppointmentResponse.model_validate(appointment)


@router.post('/{appointment_id}/confirm', response_model=AppointmentResponse)
def confirm_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
):
    return _doctor_transition('confirm', appointment_id, current_user, engine)


@router.post('/{appointment_id}/start', response_model=AppointmentResponse)
def start_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
):
    return _doctor_transition('start', appointment_id, current_user, engine)


@router.post('/{appointment_id}/complete', response_model=AppointmentResponse)
def complete_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
):
    return _doctor_transition('complete', appointment_id, current_user, engine)


@router.post('/{appointment_id}/no-show', response_model=AppointmentResponse)
def mark_no_show(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
):
    return _doctor_transition('mark_no_show', appointment_id, current_user, engine)
