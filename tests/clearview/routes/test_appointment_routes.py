from datetime import datetime, timezone

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from clearview.routes.appointment_routes import (
    CreateAppointmentRequest,
    RescheduleAppointmentRequest,
    UpdateNotesRequest,
    book_appointment,
    cancel_appointment,
    confirm_appointment,
    delete_appointment,
    list_appointments,
    list_pending_appointments,
    list_session_types,
    reschedule_appointment,
    update_appointment_notes,
)
from clearview.routes.deps import ensure_database_ready
from clearview.routes.notification_routes import get_notification_counts

NOW = datetime(2025, 3, 1, 9, 0)


@pytest.fixture(autouse=True)
def skip_schema_check(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('clearview.routes.appointment_routes.ensure_database_ready', lambda: None)
    monkeypatch.setattr('clearview.routes.notification_routes.ensure_database_ready', lambda: None)


def _book(actor, db, clock, start, session_type='mentorship', client_id=None, notes=None):
    return book_appointment(
        CreateAppointmentRequest(client_id=client_id, session_type=session_type, start_time=start, notes=notes),
        actor=actor,
        db=db,
        clock=clock,
    )


def _list(actor, db, clock, view='all', client_id=None, start_from=None, start_before=None):
    return list_appointments(
        view=view,
        client_id=client_id,
        start_from=start_from,
        start_before=start_before,
        actor=actor,
        db=db,
        clock=clock,
    )


def test_create_appointment_request_normalizes_fields() -> None:
    request = CreateAppointmentRequest(
        session_type=' Discovery ',
        start_time=datetime(2025, 3, 10, 9, 0),
        notes='   ',
    )

    assert request.session_type == 'discovery_call'
    assert request.notes is None
    assert request.client_id is None


def test_start_times_with_offsets_become_naive_local_time() -> None:
    expected = datetime(2025, 3, 10, 10, 0, tzinfo=timezone.utc).astimezone().replace(tzinfo=None)

    create = CreateAppointmentRequest(session_type='mentorship', start_time='2025-03-10T10:00:00Z')
    reschedule = RescheduleAppointmentRequest(start_time='2025-03-10T10:00:00Z')

    assert create.start_time == expected
    assert create.start_time.tzinfo is None
    assert reschedule.start_time == expected
    assert reschedule.start_time.tzinfo is None


def test_create_appointment_request_rejects_unknown_session_type() -> None:
    with pytest.raises(ValidationError):
        CreateAppointmentRequest(session_type='massage', start_time=datetime(2025, 3, 10, 9, 0))


def test_update_notes_request_rejects_long_notes() -> None:
    with pytest.raises(ValidationError):
        UpdateNotesRequest(notes='x' * 601)


def test_list_session_types_exposes_catalog() -> None:
    options = {option.session_type: option.duration_minutes for option in list_session_types()}

    assert options == {'discovery_call': 15, 'mentorship': 60, 'zoom_session': 60}


def test_client_books_for_themselves(appointment_db, users, alice_actor, clock) -> None:
    response = _book(alice_actor, appointment_db, clock, datetime(2025, 3, 10, 10, 0), notes='Hello')

    assert response.client_id == users['alice'].id
    assert response.status == 'pending'
    assert response.session_label == 'Mentorship Session'
    assert response.end_time == datetime(2025, 3, 10, 11, 0)
    assert response.notes == 'Hello'
    assert response.can_confirm is True
    assert response.can_cancel is True


def test_book_conflict_maps_to_409(appointment_db, users, alice_actor, clock) -> None:
    _book(alice_actor, appointment_db, clock, datetime(2025, 3, 10, 10, 0))

    with pytest.raises(HTTPException) as exception_info:
        _book(alice_actor, appointment_db, clock, datetime(2025, 3, 10, 10, 30))

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail.startswith('This time slot conflicts with an existing appointment')


def test_book_in_past_maps_to_400(appointment_db, users, alice_actor, clock) -> None:
    with pytest.raises(HTTPException) as exception_info:
        _book(alice_actor, appointment_db, clock, datetime(2025, 2, 1, 10, 0))

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Appointments must be scheduled in the future.'


def test_client_booking_for_other_client_maps_to_403(appointment_db, users, alice_actor, clock) -> None:
    with pytest.raises(HTTPException) as exception_info:
        _book(alice_actor, appointment_db, clock, datetime(2025, 3, 10, 10, 0), client_id=users['bob'].id)

    assert exception_info.value.status_code == 403


def test_admin_booking_requires_client(appointment_db, users, admin_actor, clock) -> None:
    with pytest.raises(HTTPException) as exception_info:
        _book(admin_actor, appointment_db, clock, datetime(2025, 3, 10, 10, 0))

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Select a client for this appointment.'


def test_admin_booking_for_unknown_client_maps_to_404(appointment_db, users, admin_actor, clock) -> None:
    with pytest.raises(HTTPException) as exception_info:
        _book(admin_actor, appointment_db, clock, datetime(2025, 3, 10, 10, 0), client_id=9999)

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'Client not found.'


def test_confirm_reschedule_cancel_flow(appointment_db, users, alice_actor, admin_actor, clock) -> None:
    booked = _book(alice_actor, appointment_db, clock, datetime(2025, 3, 10, 10, 0))

    confirmed = confirm_appointment(booked.id, actor=admin_actor, db=appointment_db, clock=clock)
    assert confirmed.status == 'confirmed'
    assert confirmed.can_confirm is False

    rescheduled = reschedule_appointment(
        booked.id,
        RescheduleAppointmentRequest(start_time=datetime(2025, 3, 11, 15, 0)),
        actor=admin_actor,
        db=appointment_db,
        clock=clock,
    )
    assert rescheduled.status == 'pending'
    assert rescheduled.start_time == datetime(2025, 3, 11, 15, 0)

    cancelled = cancel_appointment(booked.id, actor=alice_actor, db=appointment_db, clock=clock)
    assert cancelled.status == 'cancelled'
    assert cancelled.can_cancel is False
    assert cancelled.can_reschedule is False

    again = cancel_appointment(booked.id, actor=alice_actor, db=appointment_db, clock=clock)
    assert again.status == 'cancelled'

    with pytest.raises(HTTPException) as exception_info:
        confirm_appointment(booked.id, actor=admin_actor, db=appointment_db, clock=clock)
    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'Cancelled appointments cannot be confirmed.'


def test_client_confirm_maps_to_403(appointment_db, users, alice_actor, clock) -> None:
    booked = _book(alice_actor, appointment_db, clock, datetime(2025, 3, 10, 10, 0))

    with pytest.raises(HTTPException) as exception_info:
        confirm_appointment(booked.id, actor=alice_actor, db=appointment_db, clock=clock)

    assert exception_info.value.status_code == 403
    assert exception_info.value.detail == 'Only the practice can confirm appointments.'


def test_reschedule_missing_appointment_maps_to_404(appointment_db, users, admin_actor, clock) -> None:
    with pytest.raises(HTTPException) as exception_info:
        reschedule_appointment(
            404,
            RescheduleAppointmentRequest(start_time=datetime(2025, 3, 11, 15, 0)),
            actor=admin_actor,
            db=appointment_db,
            clock=clock,
        )

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'Appointment not found.'


def test_list_appointments_for_client_shows_only_their_own(appointment_db, users, alice_actor, bob_actor, clock) -> None:
    _book(alice_actor, appointment_db, clock, datetime(2025, 3, 10, 10, 0))
    _book(bob_actor, appointment_db, clock, datetime(2025, 3, 10, 10, 0))

    appointments = _list(alice_actor, appointment_db, clock, view='upcoming')

    assert [appointment.client_id for appointment in appointments] == [users['alice'].id]


def test_list_appointments_rejects_other_clients(appointment_db, users, alice_actor, clock) -> None:
    with pytest.raises(HTTPException) as exception_info:
        _list(alice_actor, appointment_db, clock, client_id=users['bob'].id)

    assert exception_info.value.status_code == 403
    assert exception_info.value.detail == 'Clients can only view their own appointments.'


def test_list_appointments_rejects_unknown_view(appointment_db, users, alice_actor, clock) -> None:
    with pytest.raises(HTTPException) as exception_info:
        _list(alice_actor, appointment_db, clock, view='later')

    assert exception_info.value.status_code == 400


def test_admin_lists_calendar_range(appointment_db, users, alice_actor, bob_actor, admin_actor, clock) -> None:
    _book(alice_actor, appointment_db, clock, datetime(2025, 3, 10, 10, 0))
    _book(bob_actor, appointment_db, clock, datetime(2025, 4, 2, 10, 0))

    march = _list(
        admin_actor,
        appointment_db,
        clock,
        start_from=datetime(2025, 3, 1),
        start_before=datetime(2025, 4, 1),
    )
    bob_only = _list(admin_actor, appointment_db, clock, client_id=users['bob'].id)

    assert [appointment.client_id for appointment in march] == [users['alice'].id]
    assert [appointment.start_time for appointment in bob_only] == [datetime(2025, 4, 2, 10, 0)]


def test_pending_queue_is_admin_only(appointment_db, users, alice_actor, admin_actor, clock) -> None:
    booked = _book(alice_actor, appointment_db, clock, datetime(2025, 3, 10, 10, 0))

    with pytest.raises(HTTPException) as exception_info:
        list_pending_appointments(actor=alice_actor, db=appointment_db, clock=clock)
    assert exception_info.value.status_code == 403

    pending = list_pending_appointments(actor=admin_actor, db=appointment_db, clock=clock)
    assert [appointment.id for appointment in pending] == [booked.id]


def test_update_notes_and_delete(appointment_db, users, alice_actor, admin_actor, clock) -> None:
    booked = _book(alice_actor, appointment_db, clock, datetime(2025, 3, 10, 10, 0))

    updated = update_appointment_notes(
        booked.id,
        UpdateNotesRequest(notes='Moved online'),
        actor=admin_actor,
        db=appointment_db,
        clock=clock,
    )
    assert updated.notes == 'Moved online'

    delete_appointment(booked.id, actor=admin_actor, db=appointment_db, clock=clock)

    with pytest.raises(HTTPException) as exception_info:
        delete_appointment(booked.id, actor=admin_actor, db=appointment_db, clock=clock)
    assert exception_info.value.status_code == 404


def test_notification_counts_route(appointment_db, users, alice_actor, admin_actor, clock) -> None:
    _book(alice_actor, appointment_db, clock, datetime(2025, 3, 10, 10, 0))

    counts = get_notification_counts(actor=admin_actor, db=appointment_db, clock=clock)

    assert counts.pending_appointments == 1
    assert counts.unread_messages == 0
    assert counts.total == 1
    assert counts.poll_interval_seconds == 30


def test_ensure_database_ready_maps_schema_failures_to_503(monkeypatch: pytest.MonkeyPatch) -> None:
    from sqlalchemy.exc import OperationalError

    def broken_schema_check():
        raise OperationalError('SELECT 1', {}, Exception('connection refused'))

    monkeypatch.setattr('clearview.routes.deps.ensure_appointment_schema', broken_schema_check)

    with pytest.raises(HTTPException) as exception_info:
        ensure_database_ready()

    assert exception_info.value.status_code == 503


def test_booking_with_utc_start_time_succeeds(appointment_db, users, alice_actor, clock) -> None:
    response = _book(alice_actor, appointment_db, clock, '2025-03-10T10:00:00Z')

    assert response.start_time == datetime(2025, 3, 10, 10, 0, tzinfo=timezone.utc).astimezone().replace(tzinfo=None)
    assert response.status == 'pending'


def test_rescheduling_with_offset_start_time_succeeds(appointment_db, users, alice_actor, admin_actor, clock) -> None:
    booked = _book(alice_actor, appointment_db, clock, datetime(2025, 3, 10, 10, 0))

    rescheduled = reschedule_appointment(
        booked.id,
        RescheduleAppointmentRequest(start_time='2025-03-12T15:00:00+02:00'),
        actor=admin_actor,
        db=appointment_db,
        clock=clock,
    )

    assert rescheduled.start_time == datetime(2025, 3, 12, 13, 0, tzinfo=timezone.utc).astimezone().replace(tzinfo=None)
