"""SQLAlchemy-backed stores consumed by the scheduling engine.

Every database failure leaves this module as ``StoreUnavailableError``; the
engine never sees a raw ``SQLAlchemyError``.
"""

import functools
import logging
import zlib
from contextlib import contextmanager
from datetime import datetime

from sqlalchemy import func, or_, text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from clearview.models.appointment import Appointment
from clearview.models.message import Message
from clearview.models.user import User
from clearview.scheduling.errors import ConflictError, StoreUnavailableError
from clearview.scheduling.states import STATUS_CANCELLED, STATUS_CONFIRMED, STATUS_PENDING

logger = logging.getLogger(__name__)

POSTGRES_LOCK_NOT_AVAILABLE = '55P03'


def _translate_store_errors(method):
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except SQLAlchemyError as exc:
            logger.exception('Store call %s failed.', method.__name__)
            raise StoreUnavailableError() from exc

    return wrapper


def scope_lock_id(scope_key: str) -> int:
    return zlib.crc32(scope_key.encode('utf-8'))


def _normalized_status():
    # Matches normalize_status: case and surrounding whitespace are ignored.
    return func.lower(func.trim(Appointment.status))


def _status_filter(status: str):
    # Rows written before statuses were enforced count as pending.
    if status == STATUS_PENDING:
        return or_(
            Appointment.status.is_(None),
            _normalized_status().notin_([STATUS_CONFIRMED, STATUS_CANCELLED]),
        )
    return _normalized_status() == status


def _active_filter():
    return or_(Appointment.status.is_(None), _normalized_status() != STATUS_CANCELLED)


class AppointmentStore:
    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def transaction(self):
        """Commit everything done inside the block, or roll it all back."""
        try:
            yield self
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('Appointment transaction failed to commit.')
            raise StoreUnavailableError() from exc
        except BaseException:
            self.db.rollback()
            raise

    def lock_scope(self, scope_key: str, timeout_seconds: float) -> None:
        """Hold a transaction-scoped advisory lock on ``scope_key`` (PostgreSQL only)."""
        if self.db.get_bind().dialect.name != 'postgresql':
            return

        try:
            self.db.execute(text(f"SET LOCAL lock_timeout = '{int(timeout_seconds * 1000)}ms'"))
            self.db.execute(text('SELECT pg_advisory_xact_lock(:lock_id)'), {'lock_id': scope_lock_id(scope_key)})
        except OperationalError as exc:
            if getattr(exc.orig, 'pgcode', None) == POSTGRES_LOCK_NOT_AVAILABLE:
                logger.warning('Timed out waiting for scheduling lock %s.', scope_key)
                raise ConflictError() from exc
            logger.exception('Could not take scheduling lock %s.', scope_key)
            raise StoreUnavailableError() from exc
        except SQLAlchemyError as exc:
            logger.exception('Could not take scheduling lock %s.', scope_key)
            raise StoreUnavailableError() from exc

    @_translate_store_errors
    def get(self, appointment_id: int) -> Appointment | None:
        return (
            self.db.query(Appointment)
            .filter(Appointment.id == appointment_id)
            .populate_existing()
            .first()
        )

    @_translate_store_errors
    def query_by_client(self, client_id: int, active_only: bool = False) -> list[Appointment]:
        query = self.db.query(Appointment).filter(Appointment.client_id == client_id)
        if active_only:
            query = query.filter(_active_filter())
        return query.order_by(Appointment.start_time.asc(), Appointment.id.asc()).all()

    @_translate_store_errors
    def query_all(
        self,
        start_from: datetime | None = None,
        start_before: datetime | None = None,
        status: str | None = None,
        active_only: bool = False,
    ) -> list[Appointment]:
        query = self.db.query(Appointment).filter(Appointment.start_time.is_not(None))
        if start_from is not None:
            query = query.filter(Appointment.start_time >= start_from)
        if start_before is not None:
            query = query.filter(Appointment.start_time < start_before)
        if status is not None:
            query = query.filter(_status_filter(status))
        if active_only:
            query = query.filter(_active_filter())
        return query.order_by(Appointment.start_time.asc(), Appointment.id.asc()).all()

    @_translate_store_errors
    def count(self, status: str, start_from: datetime, client_id: int | None = None) -> int:
        query = self.db.query(func.count(Appointment.id)).filter(
            _status_filter(status),
            Appointment.start_time >= start_from,
        )
        if client_id is not None:
            query = query.filter(Appointment.client_id == client_id)
        return query.scalar() or 0

    @_translate_store_errors
    def insert(self, appointment: Appointment) -> int:
        self.db.add(appointment)
        self.db.flush()
        return appointment.id

    @_translate_store_errors
    def update(self, appointment_id: int, fields: dict, expected_status: str | None = None) -> bool:
        """Apply ``fields`` to one appointment.

        With ``expected_status`` the write only happens while the stored
        status still matches it; the return value says whether it did.
        """
        query = self.db.query(Appointment).filter(Appointment.id == appointment_id)
        if expected_status is not None:
            query = query.filter(_status_filter(expected_status))
        updated = query.update(fields, synchronize_session='fetch')
        self.db.flush()
        return updated == 1

    @_translate_store_errors
    def delete(self, appointment_id: int) -> bool:
        deleted = (
            self.db.query(Appointment)
            .filter(Appointment.id == appointment_id)
            .delete(synchronize_session='fetch')
        )
        self.db.flush()
        return deleted == 1

    @_translate_store_errors
    def get_client_profile(self, client_id: int) -> User | None:
        return self.db.query(User).filter(User.id == client_id).first()


class MessageStore:
    def __init__(self, db: Session):
        self.db = db

    @_translate_store_errors
    def count_unread(self, user_id: int) -> int:
        return self.db.query(func.count(Message.id)).filter(
            Message.to_user_id == user_id,
            or_(Message.read.is_(False), Message.read.is_(None)),
        ).scalar() or 0
