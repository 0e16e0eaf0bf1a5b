"""Appointment scheduling engine.

Booking and rescheduling read the existing appointments, decide, and write
inside one store transaction while holding the lock for the conflict scope,
so two callers can never both pass the overlap check for the same calendar.
Status changes are compare-and-swap writes; a lost race re-runs the decision.
"""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime

from clearview.core import config
from clearview.core.clock import Clock, system_clock, to_local_naive
from clearview.models.appointment import Appointment
from clearview.scheduling.actors import Actor
from clearview.scheduling.conflicts import find_conflict, interval_end
from clearview.scheduling.errors import (
    ConflictError,
    NotFoundError,
    PastDateError,
    PermissionDeniedError,
)
from clearview.scheduling.states import (
    STATUS_CANCELLED,
    STATUS_CONFIRMED,
    STATUS_PENDING,
    ensure_transition,
    normalize_session_type,
    normalize_status,
    session_duration_minutes,
)
from clearview.scheduling.store import AppointmentStore

logger = logging.getLogger(__name__)


def truncate_to_minute(moment: datetime) -> datetime:
    return to_local_naive(moment).replace(second=0, microsecond=0)


def normalize_notes(notes: str | None) -> str | None:
    if notes is None:
        return None
    normalized = notes.strip()
    return normalized or None


class _ScopeLock:
    __slots__ = ('lock', 'users')

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class ScopeLockRegistry:
    """One lock per conflict scope key, shared by every engine in the process.

    A scope's entry lives only while some caller holds or waits on it.
    """

    def __init__(self):
        self._locks: dict[str, _ScopeLock] = {}
        self._registry_lock = threading.Lock()

    def active_scopes(self) -> list[str]:
        with self._registry_lock:
            return sorted(self._locks)

    def _checkout(self, scope_key: str) -> _ScopeLock:
        with self._registry_lock:
            entry = self._locks.get(scope_key)
            if entry is None:
                entry = _ScopeLock()
                self._locks[scope_key] = entry
            entry.users += 1
            return entry

    def _checkin(self, scope_key: str, entry: _ScopeLock) -> None:
        with self._registry_lock:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[scope_key]

    @contextmanager
    def hold(self, scope_key: str, timeout_seconds: float):
        entry = self._checkout(scope_key)
        try:
            if not entry.lock.acquire(timeout=timeout_seconds):
                logger.warning('Timed out waiting for scheduling lock %s.', scope_key)
                raise ConflictError()
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            self._checkin(scope_key, entry)


default_lock_registry = ScopeLockRegistry()


class SchedulingEngine:
    def __init__(
        self,
        store: AppointmentStore,
        clock: Clock = system_clock,
        conflict_scope: str = config.CONFLICT_SCOPE,
        lock_timeout_seconds: float = config.SCHEDULING_LOCK_TIMEOUT_SECONDS,
        max_retries: int = config.SCHEDULING_MAX_RETRIES,
        locks: ScopeLockRegistry | None = None,
    ):
        if conflict_scope not in config.CONFLICT_SCOPES:
            raise ValueError(f'Unknown conflict scope: {conflict_scope!r}')
        self.store = store
        self.clock = clock
        self.conflict_scope = conflict_scope
        self.lock_timeout_seconds = lock_timeout_seconds
        self.max_retries = max(1, max_retries)
        self.locks = locks if locks is not None else default_lock_registry

    def scope_key(self, client_id: int) -> str:
        if self.conflict_scope == config.CONFLICT_SCOPE_GLOBAL:
            return 'global'
        return f'client:{client_id}'

    @contextmanager
    def _scheduling_transaction(self, client_id: int):
        scope_key = self.scope_key(client_id)
        with self.locks.hold(scope_key, self.lock_timeout_seconds):
            with self.store.transaction():
                self.store.lock_scope(scope_key, self.lock_timeout_seconds)
                yield

    def _conflict_candidates(self, client_id: int, candidate_end: datetime) -> list[Appointment]:
        if self.conflict_scope == config.CONFLICT_SCOPE_GLOBAL:
            return self.store.query_all(start_before=candidate_end, active_only=True)
        return self.store.query_by_client(client_id, active_only=True)

    def _ensure_future(self, start_time: datetime) -> datetime:
        start_time = truncate_to_minute(start_time)
        if start_time <= self.clock():
            raise PastDateError(start_time)
        return start_time

    def _load(self, appointment_id: int) -> Appointment:
        appointment = self.store.get(appointment_id)
        if appointment is None:
            raise NotFoundError('Appointment', appointment_id)
        return appointment

    def _check_conflict(
        self,
        client_id: int,
        start_time: datetime,
        duration_minutes: int,
        exclude_id: int | None = None,
    ) -> None:
        existing = self._conflict_candidates(client_id, interval_end(start_time, duration_minutes))
        blocking = find_conflict(start_time, duration_minutes, existing, exclude_id=exclude_id)
        if blocking is not None:
            logger.warning(
                'Rejected %s at %s for client %s: overlaps appointment %s.',
                'reschedule' if exclude_id is not None else 'booking',
                start_time,
                client_id,
                blocking.id,
            )
            raise ConflictError(blocking)

    def book(
        self,
        client_id: int,
        start_time: datetime,
        session_type: str,
        notes: str | None,
        actor: Actor,
    ) -> Appointment:
        start_time = self._ensure_future(start_time)
        if not actor.is_admin and not actor.owns(client_id):
            raise PermissionDeniedError('Clients can only book appointments for themselves.')

        session_type = normalize_session_type(session_type)
        duration_minutes = session_duration_minutes(session_type)

        with self._scheduling_transaction(client_id):
            client = self.store.get_client_profile(client_id)
            if client is None:
                raise NotFoundError('Client', client_id)

            self._check_conflict(client_id, start_time, duration_minutes)

            now = self.clock()
            appointment = Appointment(
                client_id=client_id,
                client_name=client.display_name,
                client_email=client.email or '',
                client_phone=client.phone or '',
                start_time=start_time,
                session_type=session_type,
                duration_minutes=duration_minutes,
                notes=normalize_notes(notes),
                status=STATUS_PENDING,
                created_at=now,
                updated_at=now,
            )
            self.store.insert(appointment)

        logger.info(
            'Booked appointment %s (%s) for client %s at %s by %s.',
            appointment.id,
            session_type,
            client_id,
            start_time,
            actor.role,
        )
        return self._load(appointment.id)

    def reschedule(self, appointment_id: int, new_start: datetime, actor: Actor) -> Appointment:
        if not actor.is_admin:
            raise PermissionDeniedError('Only the practice can reschedule appointments.')

        appointment = self._load(appointment_id)
        new_start = self._ensure_future(new_start)

        for _ in range(self.max_retries):
            with self._scheduling_transaction(appointment.client_id):
                appointment = self._load(appointment_id)
                current_status = normalize_status(appointment.status)
                ensure_transition(current_status, STATUS_PENDING)

                self._check_conflict(
                    appointment.client_id,
                    new_start,
                    appointment.duration_minutes,
                    exclude_id=appointment.id,
                )

                written = self.store.update(
                    appointment.id,
                    {
                        'start_time': new_start,
                        'status': STATUS_PENDING,
                        'updated_at': self.clock(),
                    },
                    expected_status=current_status,
                )
            if written:
                logger.info(
                    'Rescheduled appointment %s to %s (was %s); awaiting confirmation.',
                    appointment_id,
                    new_start,
                    current_status,
                )
                return self._load(appointment_id)

        raise ConflictError(message='This appointment changed while it was being rescheduled. Please try again.')

    def confirm(self, appointment_id: int, actor: Actor) -> Appointment:
        if not actor.is_admin:
            raise PermissionDeniedError('Only the practice can confirm appointments.')

        for _ in range(self.max_retries):
            with self.store.transaction():
                appointment = self._load(appointment_id)
                current_status = normalize_status(appointment.status)
                ensure_transition(current_status, STATUS_CONFIRMED)
                written = self.store.update(
                    appointment_id,
                    {'status': STATUS_CONFIRMED, 'updated_at': self.clock()},
                    expected_status=current_status,
                )
            if written:
                logger.info('Confirmed appointment %s.', appointment_id)
                return self._load(appointment_id)

        raise ConflictError(message='This appointment changed while it was being confirmed. Please try again.')

    def cancel(self, appointment_id: int, actor: Actor) -> Appointment:
        for _ in range(self.max_retries):
            with self.store.transaction():
                appointment = self._load(appointment_id)
                if not actor.is_admin and not actor.owns(appointment.client_id):
                    raise PermissionDeniedError('Only the client who booked this appointment can cancel it.')

                current_status = normalize_status(appointment.status)
                if current_status == STATUS_CANCELLED:
                    return appointment

                ensure_transition(current_status, STATUS_CANCELLED)
                now = self.clock()
                written = self.store.update(
                    appointment_id,
                    {'status': STATUS_CANCELLED, 'updated_at': now, 'cancelled_at': now},
                    expected_status=current_status,
                )
            if written:
                logger.info('Cancelled appointment %s by %s.', appointment_id, actor.role)
                return self._load(appointment_id)

        raise ConflictError(message='This appointment changed while it was being cancelled. Please try again.')

    def update_notes(self, appointment_id: int, notes: str | None, actor: Actor) -> Appointment:
        if not actor.is_admin:
            raise PermissionDeniedError('Only the practice can edit appointment notes.')

        with self.store.transaction():
            self._load(appointment_id)
            self.store.update(appointment_id, {'notes': normalize_notes(notes), 'updated_at': self.clock()})
        return self._load(appointment_id)

    def delete(self, appointment_id: int, actor: Actor) -> None:
        """Administrative hard delete. Not part of the status lifecycle."""
        if not actor.is_admin:
            raise PermissionDeniedError('Only the practice can delete appointments.')

        with self.store.transaction():
            if not self.store.delete(appointment_id):
                raise NotFoundError('Appointment', appointment_id)
        logger.info('Deleted appointment %s.', appointment_id)
