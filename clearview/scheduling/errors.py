"""Error kinds raised by the scheduling engine.

Each error carries one user-facing ``message`` so the API can explain why an
operation failed instead of reporting a blanket failure.
"""

from datetime import datetime


def format_start(start_time: datetime) -> str:
    time_label = start_time.strftime('%I:%M %p').lstrip('0')
    return f'{start_time:%A, %B} {start_time.day} at {time_label}'


class SchedulingError(Exception):
    message = 'The appointment could not be updated.'

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class PastDateError(SchedulingError):
    message = 'Appointments must be scheduled in the future.'

    def __init__(self, start_time: datetime):
        self.start_time = start_time
        super().__init__()


class ConflictError(SchedulingError):
    def __init__(self, blocking=None, message: str | None = None):
        self.blocking = blocking
        if message is None:
            if blocking is not None:
                message = (
                    f'This time slot conflicts with an existing appointment on '
                    f'{format_start(blocking.start_time)}. Please select a different time.'
                )
            else:
                message = 'Another booking for this calendar is in progress. Please try again.'
        super().__init__(message)

    @property
    def blocking_id(self) -> int | None:
        return self.blocking.id if self.blocking is not None else None


class NotFoundError(SchedulingError):
    def __init__(self, resource: str, identifier):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f'{resource} not found.')


class InvalidTransitionError(SchedulingError):
    _messages = {
        ('cancelled', 'confirmed'): 'Cancelled appointments cannot be confirmed.',
        ('cancelled', 'pending'): 'Cancelled appointments cannot be rescheduled.',
        ('confirmed', 'confirmed'): 'This appointment is already confirmed.',
    }

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(
            self._messages.get(
                (current, target),
                f'An appointment cannot move from {current} to {target}.',
            )
        )


class PermissionDeniedError(SchedulingError):
    message = 'You are not allowed to change this appointment.'


class StoreUnavailableError(SchedulingError):
    """The appointment store could not be reached. Safe to retry."""
    message = 'Appointments are temporarily unavailable. Please try again shortly.'
