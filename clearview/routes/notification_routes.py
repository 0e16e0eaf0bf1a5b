from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from clearview.auth.dependencies import get_current_actor
from clearview.core.clock import Clock
from clearview.database import get_db
from clearview.routes.deps import ensure_database_ready, get_clock, http_error_for
from clearview.scheduling.actors import Actor
from clearview.scheduling.aggregator import notification_counts
from clearview.scheduling.errors import SchedulingError
from clearview.scheduling.store import AppointmentStore, MessageStore

router = APIRouter(tags=['notifications'])


class NotificationCountsResponse(BaseModel):
    pending_appointments: int
    unread_messages: int
    total: int
    poll_interval_seconds: int


@router.get('/counts', response_model=NotificationCountsResponse)
def get_notification_counts(
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    ensure_database_ready()

    try:
        counts = notification_counts(AppointmentStore(db), MessageStore(db), actor, clock())
    except SchedulingError as exc:
        raise http_error_for(exc) from exc

    return NotificationCountsResponse(
        pending_appointments=counts.pending_appointments,
        unread_messages=counts.unread_messages,
        total=counts.total,
        poll_interval_seconds=counts.poll_interval_seconds,
    )
