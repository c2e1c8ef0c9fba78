from datetime import date, datetime, time

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator

from scheduling.auth.dependencies import get_current_user
from scheduling.core.errors import SchedulingError
from scheduling.models.availability import BreakType, DayOfWeek
from scheduling.models.user import User
from scheduling.routes.common import ensure_manages_doctor, get_scheduling_engine, to_http_exception
from scheduling.services.engine import SchedulingEngine

router = APIRouter(tags=['availability'])


class CreateTemplateRequest(BaseModel):
    doctor_id: int
    day_of_week: DayOfWeek
    start_time: time
    end_time: time
    slot_duration_minutes: int | None = None
    effective_from: date | None = None
    effective_to: date | None = None

    @field_validator('day_of_week', mode='before')
    @classmethod
    def normalize_day_of_week(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value


class TemplateResponse(BaseModel):
    id: int
    doctor_id: int
    day_of_week: DayOfWeek
    start_time: time
    end_time: time
    slot_duration_minutes: int
    is_active: bool
    effective_from: date
    effective_to: date | None = None

    class Config:
        from_attributes = True


class CreateBreakRequest(BaseModel):
    start_time: time
    end_time: time
    break_type: BreakType = BreakType.LUNCH

    @field_validator('break_type', mode='before')
    @classmethod
    def normalize_break_type(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value


class BreakResponse(BaseModel):
    id: int
    template_id: int
    start_time: time
    end_time: time
    break_type: BreakType

    class Config:
        from_attributes = True


class SetExceptionRequest(BaseModel):
    is_available: bool = False
    start_time: time | None = None
    end_time: time | None = None
    slot_duration_minutes: int | None = None
    reason: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        return normalized or None


class ExceptionResponse(BaseModel):
    id: int
    doctor_id: int
    date: date
    is_available: bool
    start_time: time | None = None
    end_time: time | None = None
    slot_duration_minutes: int | None = None
    reason: str | None = None

    class Config:
        from_attributes = True


class WindowResponse(BaseModel):
    start_time: datetime
    end_time: datetime
    slot_duration_minutes: int
    template_id: int | None = None


class SlotResponse(BaseModel):
    start_time: datetime
    end_time: datetime
    duration_minutes: int


@router.get('/doctors/{doctor_id}/templates', response_model=list[TemplateResponse])
def list_weekly_templates(
    doctor_id: int,
    on_date: date | None = Query(default=None, alias='date'),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
):
    try:
        templates = engine.admin.list_weekly_templates(doctor_id, on_date)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return [TemplateResponse.model_validate(template) for template in templates]


@router.post('/templates', response_model=TemplateResponse, status_code=status.HTTP_201_CREATED)
def create_template(
    data: CreateTemplateRequest,
    current_user: User = Depends(get_current_user),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
):
    ensure_manages_doctor(current_user, data.doctor_id)

    try:
        template = engine.admin.create_template(
            doctor_id=data.doctor_id,
            day_of_week=data.day_of_week,
            start_time=data.start_time,
            end_time=data.end_time,
            slot_duration_minutes=data.slot_duration_minutes,
            effective_from=data.effective_from,
            effective_to=data.effective_to,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return TemplateResponse.model_validate(template)


@router.delete('/templates/{template_id}', response_model=TemplateResponse)
def deactivate_template(
    template_id: int,
    current_user: User = Depends(get_current_user),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
):
    try:
        template = engine.store.get_template(template_id)
        ensure_manages_doctor(current_user, template.doctor_id)
        template = engine.admin.deactivate_template(template_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return TemplateResponse.model_validate(template)


@router.post('/templates/{template_id}/breaks', response_model=BreakResponse, status_code=status.HTTP_201_CREATED)
def add_break(
    template_id: int,
    data: CreateBreakRequest,
    current_user: User = Depends(get_current_user),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
):
    try:
        template = engine.store.get_template(template_id)
        ensure_manages_doctor(current_user, template.doctor_id)
        availability_break = engine.admin.add_break(template_id, data.start_time, data.end_time, data.break_type)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return BreakResponse.model_validate(availability_break)


@router.put('/doctors/{doctor_id}/exceptions/{on_date}', response_model=ExceptionResponse)
def set_exception(
    doctor_id: int,
    on_date: date,
    data: SetExceptionRequest,
    current_user: User = Depends(get_current_user),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
):
    ensure_manages_doctor(current_user, doctor_id)

    try:
        exception = engine.admin.set_exception(
            doctor_id,
            on_date,
            is_available=data.is_available,
            start_time=data.start_time,
            end_time=data.end_time,
            slot_duration_minutes=data.slot_duration_minutes,
            reason=data.reason,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return ExceptionResponse.model_validate(exception)


@router.delete('/doctors/{doctor_id}/exceptions/{on_date}', status_code=status.HTTP_204_NO_CONTENT)
def clear_exception(
    doctor_id: int,
    on_date: date,
    current_user: User = Depends(get_current_user),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
):
    ensure_manages_doctor(current_user, doctor_id)

    try:
        removed = engine.admin.clear_exception(doctor_id, on_date)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    if not removed:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='No exception exists for that date.',
        )


@router.get('/doctors/{doctor_id}/windows', response_model=list[WindowResponse])
def list_availability_windows(
    doctor_id: int,
    on_date: date = Query(..., alias='date'),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
):
    try:
        windows = engine.resolve_availability(doctor_id, on_date)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return [
        WindowResponse(
            start_time=window.start,
            end_time=window.end,
            slot_duration_minutes=window.slot_duration_minutes,
            template_id=window.template_id,
        )
        for window in windows
    ]


@router.get('/doctors/{doctor_id}/slots', response_model=list[SlotResponse])
def list_open_slots(
    doctor_id: int,
    on_date: date = Query(..., alias='date'),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
):
    try:
        slots = list(engine.generate_slots(doctor_id, on_date))
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return [
        SlotResponse(start_time=slot.start, end_time=slot.end, duration_minutes=slot.duration_minutes)
        for slot in slots
    ]
