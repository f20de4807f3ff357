"""Conflict detection between a proposed booking and existing events.

Events are booked at a single instant. Two bookings collide when they share
the exact same time and either the room or the speaker.
"""

from datetime import datetime
from typing import Iterable, Optional

from models import Event


def _collides(event: Event, time: datetime, room_id: str, speaker_id: str) -> bool:
    return event.time == time and (event.room_id == room_id or event.speaker_id == speaker_id)


def find_conflicts(
    time: datetime,
    room_id: str,
    speaker_id: str,
    existing_events: Iterable[Event],
    exclude_event_id: Optional[str] = None,
) -> list[Event]:
    """Return existing events that collide with the proposed booking.

    The event whose id equals ``exclude_event_id`` is skipped, so an event
    being updated never conflicts with itself.
    """
    return [
        event
        for event in existing_events
        if event.id != exclude_event_id and _collides(event, time, room_id, speaker_id)
    ]


def has_conflict(
    time: datetime,
    room_id: str,
    speaker_id: str,
    existing_events: Iterable[Event],
    exclude_event_id: Optional[str] = None,
) -> bool:
    """Check whether the proposed booking collides with any existing event."""
    return any(
        event.id != exclude_event_id and _collides(event, time, room_id, speaker_id)
        for event in existing_events
    )
