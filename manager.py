import logging
import threading
from datetime import datetime
from typing import Callable, Iterable, Iterator, Optional

from conflicts import find_conflicts, has_conflict
from models import Event, EventDraft, new_id
from store import EventStore

logger = logging.getLogger(__name__)


class AttendeeEvents:
    """Lazy view over the events an attendee is registered for.

    Every iteration rescans the manager's store, so the view can be iterated
    more than once and always reflects the store at iteration time.
    """

    def __init__(self, manager: "EventsManager", attendee_id: str):
        self._manager = manager
        self.attendee_id = attendee_id

    def __iter__(self) -> Iterator[Event]:
        for event in self._manager.get_events():
            if self.attendee_id in event.attendee_ids:
                yield event

    def __len__(self) -> int:
        return sum(1 for _ in self)


class EventsManager:
    def __init__(self, id_factory: Callable[[], str] = new_id):
        """Initialize EventsManager with an empty event store."""
        self._store = EventStore()
        self._lock = threading.RLock()
        self._id_factory = id_factory

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def _log_conflict(self, action: str, time: datetime, room_id: str, speaker_id: str, exclude_event_id=None):
        clashes = find_conflicts(time, room_id, speaker_id, self._store, exclude_event_id)
        if clashes:
            clash = clashes[0]
            logger.info(f"Rejected {action}: conflicts with event {clash.title!r} at {clash.time}")

    # -------------------------------
    # Scheduling
    # -------------------------------
    def schedule_event(self, title: str, time: datetime, room_id: str, speaker_id: str) -> bool:
        """Schedule a new event if its room and speaker are free at that time."""
        draft = EventDraft(title, time, room_id, speaker_id, id=self._id_factory())
        return self.schedule_draft(draft)

    def schedule_draft(self, draft: EventDraft) -> bool:
        """Commit a draft to the schedule, keeping the draft's id."""
        with self._lock:
            if draft.id in self._store:
                logger.warning(f"Rejected scheduling {draft.title!r}: id {draft.id} already scheduled")
                return False
            if has_conflict(draft.time, draft.room_id, draft.speaker_id, self._store):
                self._log_conflict(f"scheduling {draft.title!r}", draft.time, draft.room_id, draft.speaker_id)
                return False
            self._store.add(draft.to_event())
        logger.info(f"Scheduled event {draft.id} ({draft.title!r}) at {draft.time} in room {draft.room_id}")
        return True

    def remove_event(self, event_id: str) -> bool:
        """Remove an event from the schedule."""
        with self._lock:
            removed = self._store.remove(event_id)
        if removed is None:
            logger.info(f"Cannot remove event {event_id}: not scheduled")
            return False
        logger.info(f"Removed event {event_id} ({removed.title!r})")
        return True

    def load_events(self, events: Iterable[Event]) -> int:
        """Load previously persisted events, skipping any that would double-book.

        Returns the number of events loaded.
        """
        loaded = 0
        with self._lock:
            for event in events:
                if event.id in self._store:
                    logger.warning(f"Skipping duplicate event id {event.id} while loading")
                    continue
                if has_conflict(event.time, event.room_id, event.speaker_id, self._store):
                    logger.warning(f"Skipping event {event.id} ({event.title!r}) while loading: double-booked")
                    continue
                self._store.add(event.copy())
                loaded += 1
        return loaded

    # -------------------------------
    # Updates
    # -------------------------------
    def update_event_info(self, event_id: str, new_time: datetime, new_room_id: str) -> bool:
        """Move an event to a new time and room.

        Nothing changes unless the new slot is free for the event's speaker
        and room.
        """
        with self._lock:
            event = self._store.get(event_id)
            if event is None:
                logger.info(f"Cannot update event {event_id}: not scheduled")
                return False
            if has_conflict(new_time, new_room_id, event.speaker_id, self._store, exclude_event_id=event_id):
                self._log_conflict(f"update of {event_id}", new_time, new_room_id, event.speaker_id, event_id)
                return False
            event.time = new_time
            event.room_id = new_room_id
        logger.info(f"Event {event_id} now at {new_time} in room {new_room_id}")
        return True

    def update_time(self, event_id: str, new_time: datetime) -> bool:
        with self._lock:
            event = self._store.get(event_id)
            if event is None:
                return False
            return self.update_event_info(event_id, new_time, event.room_id)

    def update_room(self, event_id: str, new_room_id: str) -> bool:
        with self._lock:
            event = self._store.get(event_id)
            if event is None:
                return False
            return self.update_event_info(event_id, event.time, new_room_id)

    def update_speaker(self, event_id: str, new_speaker_id: str) -> bool:
        """Replace the speaker of an event.

        The new assignment is validated before anything is written, so a
        rejected change leaves the original speaker in place.
        """
        with self._lock:
            event = self._store.get(event_id)
            if event is None:
                logger.info(f"Cannot change speaker of event {event_id}: not scheduled")
                return False
            if event.speaker_id == new_speaker_id:
                return True
            if has_conflict(event.time, event.room_id, new_speaker_id, self._store, exclude_event_id=event_id):
                self._log_conflict(f"speaker change of {event_id}", event.time, event.room_id, new_speaker_id, event_id)
                return False
            event.speaker_id = new_speaker_id
        logger.info(f"Event {event_id} speaker changed to {new_speaker_id}")
        return True

    def update_event(
        self,
        event_id: str,
        title: Optional[str] = None,
        time: Optional[datetime] = None,
        room_id: Optional[str] = None,
        speaker_id: Optional[str] = None,
    ) -> bool:
        """Apply any combination of field changes in one step, or none of them.

        Fields left as None keep the value the event has when the lock is
        taken.
        """
        with self._lock:
            event = self._store.get(event_id)
            if event is None:
                logger.info(f"Cannot update event {event_id}: not scheduled")
                return False
            new_time = event.time if time is None else time
            new_room_id = event.room_id if room_id is None else room_id
            new_speaker_id = event.speaker_id if speaker_id is None else speaker_id
            if has_conflict(new_time, new_room_id, new_speaker_id, self._store, exclude_event_id=event_id):
                self._log_conflict(f"update of {event_id}", new_time, new_room_id, new_speaker_id, event_id)
                return False
            if title is not None:
                event.title = title
            event.time = new_time
            event.room_id = new_room_id
            event.speaker_id = new_speaker_id
        logger.info(f"Event {event_id} now at {new_time} in room {new_room_id} with speaker {new_speaker_id}")
        return True

    # -------------------------------
    # Attendees
    # -------------------------------
    def add_attendee(self, event_id: str, attendee_id: str) -> bool:
        """Register an attendee for an event. Repeated calls add repeated entries."""
        with self._lock:
            event = self._store.get(event_id)
            if event is None:
                return False
            event.attendee_ids.append(attendee_id)
        return True

    def register_attendee(self, event_id: str, attendee_id: str) -> bool:
        """Add an attendee unless already registered for the event."""
        with self._lock:
            event = self._store.get(event_id)
            if event is None or attendee_id in event.attendee_ids:
                return False
            event.attendee_ids.append(attendee_id)
        return True

    def remove_attendee(self, event_id: str, attendee_id: str) -> bool:
        """Remove the first matching registration of an attendee."""
        with self._lock:
            event = self._store.get(event_id)
            if event is None or attendee_id not in event.attendee_ids:
                return False
            event.attendee_ids.remove(attendee_id)
        return True

    # -------------------------------
    # Queries
    # -------------------------------
    def has_event(self, event_id: str) -> bool:
        with self._lock:
            return event_id in self._store

    def get_event(self, event_id: str) -> Optional[Event]:
        """Retrieve a copy of an event by ID."""
        with self._lock:
            event = self._store.get(event_id)
            return event.copy() if event else None

    def get_events(self) -> list[Event]:
        """Return a snapshot of all events in scheduling order.

        The returned events are copies; changing them does not affect the
        schedule.
        """
        with self._lock:
            return [event.copy() for event in self._store]

    def get_user_events(self, attendee_id: str) -> AttendeeEvents:
        """Return the events an attendee is registered for."""
        return AttendeeEvents(self, attendee_id)

    def get_speaker_events(self, speaker_id: str) -> list[Event]:
        """Return the events given by a speaker."""
        return [event for event in self.get_events() if event.speaker_id == speaker_id]
