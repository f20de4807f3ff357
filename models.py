import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


def new_id() -> str:
    """Generate a globally unique opaque identifier."""
    return str(uuid.uuid4())


@dataclass
class Event:
    id: str
    title: str
    time: datetime  # booking instant, no end time
    room_id: str
    speaker_id: str
    attendee_ids: list[str] = field(default_factory=list)

    def copy(self) -> "Event":
        """Return an independent copy of this event."""
        return Event(
            id=self.id,
            title=self.title,
            time=self.time,
            room_id=self.room_id,
            speaker_id=self.speaker_id,
            attendee_ids=list(self.attendee_ids),
        )


@dataclass
class EventDraft:
    """An event that has not been scheduled yet.

    The id is generated up front but only ever stored if scheduling succeeds.
    """
    title: str
    time: datetime
    room_id: str
    speaker_id: str
    id: str = field(default_factory=new_id)

    def to_event(self) -> Event:
        return Event(
            id=self.id,
            title=self.title,
            time=self.time,
            room_id=self.room_id,
            speaker_id=self.speaker_id,
        )


@dataclass
class Room:
    id: str
    room_num: int
    capacity: int


@dataclass
class User:
    id: str
    username: str
    password: str
    role: str  # 'organizer', 'speaker', or 'attendee'
    name: Optional[str] = None
