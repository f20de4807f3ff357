from typing import Iterator, Optional

from models import Event


class EventStore:
    """In-memory collection of scheduled events, keyed by id.

    Iteration follows insertion order. Only EventsManager writes to it.
    """

    def __init__(self):
        self._events: dict[str, Event] = {}

    def __contains__(self, event_id: str) -> bool:
        return event_id in self._events

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[Event]:
        return iter(self._events.values())

    def ids(self) -> list[str]:
        return list(self._events)

    def get(self, event_id: str) -> Optional[Event]:
        return self._events.get(event_id)

    def add(self, event: Event) -> None:
        """Insert an event. Ids must be unique within the store."""
        if event.id in self._events:
            raise ValueError(f"Event {event.id} already exists")
        self._events[event.id] = event

    def remove(self, event_id: str) -> Optional[Event]:
        return self._events.pop(event_id, None)
