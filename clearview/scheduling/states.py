"""Appointment status state machine and session type catalog.

Every legality check on an appointment's status goes through this module;
callers never compare status strings on their own.
"""

from clearview.scheduling.errors import InvalidTransitionError

STATUS_PENDING = 'pending'
STATUS_CONFIRMED = 'confirmed'
STATUS_CANCELLED = 'cancelled'
STATUSES = (STATUS_PENDING, STATUS_CONFIRMED, STATUS_CANCELLED)

# A reschedule moves any live appointment back to pending; nothing leaves cancelled.
ALLOWED_TRANSITIONS = {
    STATUS_PENDING: {STATUS_PENDING, STATUS_CONFIRMED, STATUS_CANCELLED},
    STATUS_CONFIRMED: {STATUS_PENDING, STATUS_CANCELLED},
    STATUS_CANCELLED: set(),
}

SESSION_DISCOVERY_CALL = 'discovery_call'
SESSION_MENTORSHIP = 'mentorship'
SESSION_ZOOM = 'zoom_session'

SESSION_DURATIONS = {
    SESSION_DISCOVERY_CALL: 15,
    SESSION_MENTORSHIP: 60,
    SESSION_ZOOM: 60,
}
SESSION_LABELS = {
    SESSION_DISCOVERY_CALL: 'Discovery Call',
    SESSION_MENTORSHIP: 'Mentorship Session',
    SESSION_ZOOM: 'Zoom Session',
}
# Names accepted from older clients of the booking form.
SESSION_ALIASES = {
    'discovery': SESSION_DISCOVERY_CALL,
    'discoverycall': SESSION_DISCOVERY_CALL,
    'zoom': SESSION_ZOOM,
    'zoomsession': SESSION_ZOOM,
}


def normalize_status(value: str | None) -> str:
    """Stored statuses that are missing or unknown read as pending."""
    normalized = (value or '').strip().lower()
    if normalized in STATUSES:
        return normalized
    return STATUS_PENDING


def normalize_session_type(value: str) -> str:
    normalized = value.strip().lower().replace('-', '_').replace(' ', '_')
    normalized = SESSION_ALIASES.get(normalized.replace('_', ''), normalized)
    if normalized not in SESSION_DURATIONS:
        raise ValueError('Invalid session type.')
    return normalized


def session_duration_minutes(session_type: str) -> int:
    return SESSION_DURATIONS[normalize_session_type(session_type)]


def is_transition_allowed(current: str | None, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS[normalize_status(current)]


def ensure_transition(current: str | None, target: str) -> None:
    current_status = normalize_status(current)
    if not is_transition_allowed(current_status, target):
        raise InvalidTransitionError(current_status, target)


def is_active(status: str | None) -> bool:
    return normalize_status(status) != STATUS_CANCELLED


def can_confirm(status: str | None) -> bool:
    return normalize_status(status) == STATUS_PENDING


def can_cancel(status: str | None) -> bool:
    return is_transition_allowed(status, STATUS_CANCELLED)


def can_reschedule(status: str | None) -> bool:
    return is_transition_allowed(status, STATUS_PENDING)
