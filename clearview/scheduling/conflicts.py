"""Overlap detection between appointments.

Appointments occupy the half-open interval ``[start, start + duration)``.
Two intervals conflict iff each starts before the other ends, so sessions
that merely touch (one ends exactly when the next starts) do not conflict.
"""

from datetime import datetime, timedelta
from typing import Iterable

from clearview.models.appointment import Appointment
from clearview.scheduling.states import is_active


def interval_end(start_time: datetime, duration_minutes: int) -> datetime:
    return start_time + timedelta(minutes=duration_minutes)


def intervals_overlap(
    first_start: datetime,
    first_end: datetime,
    second_start: datetime,
    second_end: datetime,
) -> bool:
    return first_start < second_end and second_start < first_end


def find_conflict(
    candidate_start: datetime,
    candidate_duration: int,
    existing: Iterable[Appointment],
    exclude_id: int | None = None,
) -> Appointment | None:
    """Return the earliest live appointment overlapping the candidate, if any."""
    candidate_end = interval_end(candidate_start, candidate_duration)
    conflicts = [
        appointment
        for appointment in existing
        if (exclude_id is None or appointment.id != exclude_id)
        and is_active(appointment.status)
        and appointment.start_time is not None
        and intervals_overlap(
            candidate_start,
            candidate_end,
            appointment.start_time,
            interval_end(appointment.start_time, appointment.duration_minutes or 0),
        )
    ]
    if not conflicts:
        return None
    return min(conflicts, key=lambda appointment: (appointment.start_time, appointment.id or 0))


def overlaps(candidate_start: datetime, candidate_duration: int, existing: Iterable[Appointment]) -> bool:
    return find_conflict(candidate_start, candidate_duration, existing) is not None
