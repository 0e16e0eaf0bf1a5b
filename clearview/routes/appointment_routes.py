from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from clearview.auth.dependencies import get_current_actor
from clearview.core import config
from clearview.core.clock import Clock, to_local_naive
from clearview.database import get_db
from clearview.models.appointment import Appointment
from clearview.routes.deps import build_engine, ensure_database_ready, get_clock, http_error_for
from clearview.scheduling.actors import Actor
from clearview.scheduling.aggregator import VIEW_ALL, VIEWS, filter_by_view, pending_queue
from clearview.scheduling.errors import SchedulingError
from clearview.scheduling.states import (
    SESSION_DURATIONS,
    SESSION_LABELS,
    can_cancel,
    can_confirm,
    can_reschedule,
    normalize_session_type,
    normalize_status,
)
from clearview.scheduling.store import AppointmentStore

router = APIRouter(tags=['appointments'])


def _validate_notes(value: str | None) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > config.MAX_APPOINTMENT_NOTES_LENGTH:
        raise ValueError(f'Notes must be {config.MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')

    return normalized


class CreateAppointmentRequest(BaseModel):
    client_id: int | None = None
    session_type: str
    start_time: datetime
    notes: str | None = None

    @field_validator('start_time')
    @classmethod
    def validate_start_time(cls, value: datetime) -> datetime:
        return to_local_naive(value)

    @field_validator('session_type')
    @classmethod
    def validate_session_type(cls, value: str) -> str:
        return normalize_session_type(value)

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _validate_notes(value)


class RescheduleAppointmentRequest(BaseModel):
    start_time: datetime

    @field_validator('start_time')
    @classmethod
    def validate_start_time(cls, value: datetime) -> datetime:
        return to_local_naive(value)


class UpdateNotesRequest(BaseModel):
    notes: str | None = None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _validate_notes(value)


class SessionTypeOptionResponse(BaseModel):
    session_type: str
    label: str
    duration_minutes: int


class AppointmentResponse(BaseModel):
    id: int
    client_id: int
    client_name: str
    client_email: str
    client_phone: str
    session_type: str
    session_label: str
    duration_minutes: int
    start_time: datetime
    end_time: datetime
    status: str
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    cancelled_at: datetime | None = None
    can_cancel: bool
    can_confirm: bool
    can_reschedule: bool

    class Config:
        from_attributes = True


def to_response(appointment: Appointment) -> AppointmentResponse:
    appointment_status = normalize_status(appointment.status)
    return AppointmentResponse(
        id=appointment.id,
        client_id=appointment.client_id,
        client_name=appointment.client_name or '',
        client_email=appointment.client_email or '',
        client_phone=appointment.client_phone or '',
        session_type=appointment.session_type,
        session_label=SESSION_LABELS.get(appointment.session_type, appointment.session_type),
        duration_minutes=appointment.duration_minutes,
        start_time=appointment.start_time,
        end_time=appointment.end_time,
        status=appointment_status,
        notes=appointment.notes,
        created_at=appointment.created_at,
        updated_at=appointment.updated_at,
        cancelled_at=appointment.cancelled_at,
        can_cancel=can_cancel(appointment_status),
        can_confirm=can_confirm(appointment_status),
        can_reschedule=can_reschedule(appointment_status),
    )


def require_admin(actor: Actor, detail: str) -> None:
    if not actor.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


@router.get('/session-types', response_model=list[SessionTypeOptionResponse])
def list_session_types():
    return [
        SessionTypeOptionResponse(
            session_type=session_type,
            label=SESSION_LABELS[session_type],
            duration_minutes=duration_minutes,
        )
        for session_type, duration_minutes in SESSION_DURATIONS.items()
    ]


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def book_appointment(
    data: CreateAppointmentRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    if actor.is_admin and data.client_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Select a client for this appointment.',
        )
    client_id = data.client_id if data.client_id is not None else actor.user_id

    ensure_database_ready()

    try:
        appointment = build_engine(db, clock).book(
            client_id=client_id,
            start_time=data.start_time,
            session_type=data.session_type,
            notes=data.notes,
            actor=actor,
        )
    except SchedulingError as exc:
        raise http_error_for(exc) from exc

    return to_response(appointment)


@router.get('', response_model=list[AppointmentResponse])
def list_appointments(
    view: str = Query(default=VIEW_ALL),
    client_id: int | None = Query(default=None),
    start_from: datetime | None = Query(default=None),
    start_before: datetime | None = Query(default=None),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    normalized_view = view.strip().lower()
    if normalized_view not in VIEWS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Invalid appointment view.',
        )

    if not actor.is_admin:
        if client_id is not None and not actor.owns(client_id):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail='Clients can only view their own appointments.',
            )
        client_id = actor.user_id

    ensure_database_ready()

    store = AppointmentStore(db)
    try:
        if client_id is not None:
            appointments = store.query_by_client(client_id)
        else:
            appointments = store.query_all(
                start_from=to_local_naive(start_from) if start_from else None,
                start_before=to_local_naive(start_before) if start_before else None,
            )
    except SchedulingError as exc:
        raise http_error_for(exc) from exc

    return [to_response(appointment) for appointment in filter_by_view(appointments, normalized_view, clock())]


@router.get('/pending', response_model=list[AppointmentResponse])
def list_pending_appointments(
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    require_admin(actor, 'Only the practice can view pending requests.')

    ensure_database_ready()

    try:
        appointments = pending_queue(AppointmentStore(db), clock())
    except SchedulingError as exc:
        raise http_error_for(exc) from exc

    return [to_response(appointment) for appointment in appointments]


@router.post('/{appointment_id}/reschedule', response_model=AppointmentResponse)
def reschedule_appointment(
    appointment_id: int,
    data: RescheduleAppointmentRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    ensure_database_ready()

    try:
        appointment = build_engine(db, clock).reschedule(appointment_id, data.start_time, actor)
    except SchedulingError as exc:
        raise http_error_for(exc) from exc

    return to_response(appointment)


@router.post('/{appointment_id}/confirm', response_model=AppointmentResponse)
def confirm_appointment(
    appointment_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    ensure_database_ready()

    try:
        appointment = build_engine(db, clock).confirm(appointment_id, actor)
    except SchedulingError as exc:
        raise http_error_for(exc) from exc

    return to_response(appointment)


@router.post('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    ensure_database_ready()

    try:
        appointment = build_engine(db, clock).cancel(appointment_id, actor)
    except SchedulingError as exc:
        raise http_error_for(exc) from exc

    return to_response(appointment)


@router.patch('/{appointment_id}/notes', response_model=AppointmentResponse)
def update_appointment_notes(
    appointment_id: int,
    data: UpdateNotesRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    ensure_database_ready()

    try:
        appointment = build_engine(db, clock).update_notes(appointment_id, data.notes, actor)
    except SchedulingError as exc:
        raise http_error_for(exc) from exc

    return to_response(appointment)


@router.delete('/{appointment_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_appointment(
    appointment_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    ensure_database_ready()

    try:
        build_engine(db, clock).delete(appointment_id, actor)
    except SchedulingError as exc:
        raise http_error_for(exc) from exc
