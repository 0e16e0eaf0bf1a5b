from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clearview.core.clock import Clock, system_clock
from clearview.database import ensure_appointment_schema
from clearview.scheduling.engine import SchedulingEngine
from clearview.scheduling.errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    PastDateError,
    PermissionDeniedError,
    SchedulingError,
    StoreUnavailableError,
)
from clearview.scheduling.store import AppointmentStore

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'

ERROR_STATUS_CODES = {
    PastDateError: status.HTTP_400_BAD_REQUEST,
    ConflictError: status.HTTP_409_CONFLICT,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidTransitionError: status.HTTP_409_CONFLICT,
    PermissionDeniedError: status.HTTP_403_FORBIDDEN,
    StoreUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def ensure_database_ready() -> None:
    try:
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


def get_clock() -> Clock:
    return system_clock


def build_engine(db: Session, clock: Clock) -> SchedulingEngine:
    return SchedulingEngine(AppointmentStore(db), clock=clock)


def http_error_for(exc: SchedulingError) -> HTTPException:
    status_code = ERROR_STATUS_CODES.get(type(exc), status.HTTP_400_BAD_REQUEST)
    return HTTPException(status_code=status_code, detail=exc.message)
