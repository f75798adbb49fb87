from __future__ import annotations
from typing import Iterable, Optional

from ..core.errors import TxAborted
from .models import EMPTY_EVENT, UINT128_MAX, Event, EventType


class EventLog:
    """Append-only audit trail. Ids start at 0 and increase by one per event."""

    def __init__(
        self,
        events: Optional[Iterable[tuple[int, Event]]] = None,
        next_event_id: int = 0,
    ) -> None:
        self._events: dict[int, Event] = dict(events or ())
        self._next_event_id = next_event_id

    @property
    def next_event_id(self) -> int:
        return self._next_event_id

    def check_capacity(self) -> None:
        if self._next_event_id > UINT128_MAX:
            raise TxAborted("event-id-exhausted")

    def log_event(
        self,
        event_type: EventType,
        sensor_id: str,
        asset_id: str,
        data: Optional[int],
        height: int,
    ) -> int:
        self.check_capacity()
        event_id = self._next_event_id
        self._events[event_id] = Event(
            event_type=EventType(event_type).value,
            sensor_id=sensor_id,
            asset_id=asset_id,
            timestamp=height,
            data=data,
        )
        self._next_event_id += 1
        return event_id

    def truncate(self, event_id: int) -> None:
        """Drop event_id and everything after it. Only used to undo an unpersisted transition."""
        for i in range(event_id, self._next_event_id):
            self._events.pop(i, None)
        self._next_event_id = min(self._next_event_id, event_id)

    def lookup(self, event_id: int) -> Optional[Event]:
        return self._events.get(event_id)

    def get_event(self, event_id: int) -> Event:
        return self.lookup(event_id) or EMPTY_EVENT

    def list_events(self, start: int = 0, limit: int = 100) -> list[tuple[int, Event]]:
        end = min(self._next_event_id, start + max(0, limit))
        return [(i, self._events[i]) for i in range(max(0, start), end) if i in self._events]
