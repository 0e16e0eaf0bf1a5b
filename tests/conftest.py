import os
from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from clearview.database import Base  # noqa: E402
from clearview.models.appointment import Appointment  # noqa: E402
from clearview.models.message import Message  # noqa: E402
from clearview.models.user import User  # noqa: E402
from clearview.scheduling.actors import ROLE_ADMIN, ROLE_CLIENT, Actor  # noqa: E402
from clearview.scheduling.engine import SchedulingEngine, ScopeLockRegistry  # noqa: E402
from clearview.scheduling.store import AppointmentStore  # noqa: E402

NOW = datetime(2025, 3, 1, 9, 0)


class MutableClock:
    def __init__(self, moment: datetime):
        self.moment = moment

    def __call__(self) -> datetime:
        return self.moment


@pytest.fixture
def session_factory():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine, tables=[User.__table__, Appointment.__table__, Message.__table__])
    try:
        yield testing_session_local
    finally:
        Base.metadata.drop_all(bind=engine, tables=[Message.__table__, Appointment.__table__, User.__table__])
        engine.dispose()


@pytest.fixture
def appointment_db(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def users(appointment_db):
    admin = User(email='counsellor@clearview.example', first_name='Dana', last_name='Reyes', phone='555-0100', role=ROLE_ADMIN)
    alice = User(email='alice@example.com', first_name='Alice', last_name='Moreau', phone='555-0101', role=ROLE_CLIENT)
    bob = User(email='bob@example.com', first_name='Bob', last_name='Okafor', phone='555-0102', role=ROLE_CLIENT)
    appointment_db.add_all([admin, alice, bob])
    appointment_db.commit()
    return {'admin': admin, 'alice': alice, 'bob': bob}


@pytest.fixture
def admin_actor(users) -> Actor:
    return Actor(user_id=users['admin'].id, role=ROLE_ADMIN)


@pytest.fixture
def alice_actor(users) -> Actor:
    return Actor(user_id=users['alice'].id, role=ROLE_CLIENT)


@pytest.fixture
def bob_actor(users) -> Actor:
    return Actor(user_id=users['bob'].id, role=ROLE_CLIENT)


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock(NOW)


@pytest.fixture
def make_engine(appointment_db, clock):
    def _make(**kwargs) -> SchedulingEngine:
        kwargs.setdefault('clock', clock)
        kwargs.setdefault('conflict_scope', 'per_client')
        kwargs.setdefault('locks', ScopeLockRegistry())
        return SchedulingEngine(AppointmentStore(appointment_db), **kwargs)

    return _make


@pytest.fixture
def scheduling_engine(make_engine) -> SchedulingEngine:
    return make_engine()
