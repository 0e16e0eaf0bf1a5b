"""Derived counts and list views over the appointment store.

Nothing here is cached: every call reads the store, and callers poll on
demand (``poll_interval_seconds`` is only a hint for the UI).
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from clearview.core import config
from clearview.models.appointment import Appointment
from clearview.scheduling.actors import Actor
from clearview.scheduling.states import STATUS_CANCELLED, STATUS_PENDING, normalize_status
from clearview.scheduling.store import AppointmentStore, MessageStore

VIEW_UPCOMING = 'upcoming'
VIEW_PAST = 'past'
VIEW_ALL = 'all'
VIEWS = (VIEW_UPCOMING, VIEW_PAST, VIEW_ALL)


@dataclass(frozen=True)
class NotificationCounts:
    pending_appointments: int
    unread_messages: int
    poll_interval_seconds: int = config.NOTIFICATION_POLL_SECONDS

    @property
    def total(self) -> int:
        return self.pending_appointments + self.unread_messages


def count_pending(
    store: AppointmentStore,
    for_admin: bool,
    since: datetime,
    client_id: int | None = None,
) -> int:
    """Pending appointments starting at or after ``since``.

    Admins see every client's; a client scope must name the client.
    """
    if not for_admin and client_id is None:
        raise ValueError('client_id is required when counting for a client.')
    return store.count(STATUS_PENDING, since, client_id=None if for_admin else client_id)


def count_unread_messages(message_store: MessageStore, user_id: int) -> int:
    return message_store.count_unread(user_id)


def notification_counts(
    store: AppointmentStore,
    message_store: MessageStore,
    actor: Actor,
    now: datetime,
) -> NotificationCounts:
    return NotificationCounts(
        pending_appointments=count_pending(store, actor.is_admin, now, client_id=actor.user_id),
        unread_messages=count_unread_messages(message_store, actor.user_id),
    )


def pending_queue(store: AppointmentStore, since: datetime) -> list[Appointment]:
    """Future pending appointments across all clients, earliest first."""
    return store.query_all(start_from=since, status=STATUS_PENDING)


def filter_by_view(appointments: Iterable[Appointment], view: str, now: datetime) -> list[Appointment]:
    if view not in VIEWS:
        raise ValueError(f'Unknown appointment view: {view!r}')

    today = now.date()
    selected = []
    for appointment in appointments:
        is_cancelled = normalize_status(appointment.status) == STATUS_CANCELLED
        is_before_today = appointment.start_time.date() < today
        if view == VIEW_UPCOMING and (is_cancelled or is_before_today):
            continue
        if view == VIEW_PAST and not (is_cancelled or is_before_today):
            continue
        selected.append(appointment)

    return sorted(selected, key=lambda appointment: (appointment.start_time, appointment.id or 0))
