"""Calendar store interface and an in-memory implementation.

The sync orchestrator and conflict detector only talk to CalendarStore. The
Google implementation lives in flowdeck.integrations.google_calendar.
"""

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Dict, List, Optional

from flowdeck.engine.errors import CalendarAccessError, CalendarWriteError
from flowdeck.models.calendar_event import CalendarEvent

logger = logging.getLogger(__name__)

CalendarChangeListener = Callable[[], None]


class CalendarStore(ABC):
    """External, independently mutable calendar."""

    # Stores that cannot push changes are polled by the coordinator.
    requires_polling = False

    def __init__(self):
        self._change_listeners: List[CalendarChangeListener] = []

    @property
    def has_access(self) -> bool:
        return True

    def add_change_listener(self, listener: CalendarChangeListener) -> None:
        self._change_listeners.append(listener)

    def remove_change_listener(self, listener: CalendarChangeListener) -> None:
        if listener in self._change_listeners:
            self._change_listeners.remove(listener)

    def notify_changed(self) -> None:
        for listener in list(self._change_listeners):
            try:
                listener()
            except Exception as e:
                logger.error(f"Calendar change listener failed: {type(e).__name__}: {str(e)}")

    def poll_for_changes(self, now: Optional[datetime] = None) -> bool:
        """Notify listeners if the calendar changed since the last poll."""
        return False

    @abstractmethod
    def fetch_events(self, start: datetime, end: datetime) -> List[CalendarEvent]:
        """Events intersecting [start, end), in provider order."""

    @abstractmethod
    def create_event(
        self,
        title: str,
        start: datetime,
        end: datetime,
        notes: Optional[str] = None,
        calendar_id: Optional[str] = None,
    ) -> CalendarEvent:
        ...

    @abstractmethod
    def update_event(self, event: CalendarEvent) -> CalendarEvent:
        ...

    @abstractmethod
    def delete_event(self, event: CalendarEvent) -> None:
        ...

    @abstractmethod
    def find_by_id(self, event_id: str) -> Optional[CalendarEvent]:
        ...

    @abstractmethod
    def find_by_external_id(self, external_id: str) -> Optional[CalendarEvent]:
        ...


class InMemoryCalendarStore(CalendarStore):
    """Dict-backed calendar used for local runs and tests.

    Events keep their insertion order, which is the fetch order.
    """

    def __init__(self, events: Optional[List[CalendarEvent]] = None, has_access: bool = True):
        super().__init__()
        self._events: Dict[str, CalendarEvent] = {}
        self._access = has_access
        self._lock = threading.RLock()
        self.write_count = 0
        for event in events or []:
            self._events[event.event_id] = event

    @property
    def has_access(self) -> bool:
        return self._access

    def set_access(self, granted: bool) -> None:
        self._access = granted

    def _require_access(self) -> None:
        if not self._access:
            raise CalendarAccessError("Calendar access not granted")

    @property
    def events(self) -> List[CalendarEvent]:
        with self._lock:
            return list(self._events.values())

    def fetch_events(self, start: datetime, end: datetime) -> List[CalendarEvent]:
        self._require_access()
        with self._lock:
            return [e for e in self._events.values() if e.start < end and e.end > start]

    def create_event(
        self,
        title: str,
        start: datetime,
        end: datetime,
        notes: Optional[str] = None,
        calendar_id: Optional[str] = None,
    ) -> CalendarEvent:
        self._require_access()
        if end <= start:
            raise CalendarWriteError(f"Event end {end.isoformat()} is not after start {start.isoformat()}")
        event = CalendarEvent(
            event_id=str(uuid.uuid4()),
            external_id=str(uuid.uuid4()),
            title=title,
            notes=notes,
            start=start,
            end=end,
            calendar_id=calendar_id,
        )
        with self._lock:
            self._events[event.event_id] = event
            self.write_count += 1
        self.notify_changed()
        return event

    def update_event(self, event: CalendarEvent) -> CalendarEvent:
        self._require_access()
        with self._lock:
            if event.event_id not in self._events:
                raise CalendarWriteError(f"Event {event.event_id} not found")
            self._events[event.event_id] = event
            self.write_count += 1
        self.notify_changed()
        return event

    def delete_event(self, event: CalendarEvent) -> None:
        self._require_access()
        with self._lock:
            if self._events.pop(event.event_id, None) is None:
                raise CalendarWriteError(f"Event {event.event_id} not found")
            self.write_count += 1
        self.notify_changed()

    def find_by_id(self, event_id: str) -> Optional[CalendarEvent]:
        self._require_access()
        with self._lock:
            return self._events.get(event_id)

    def find_by_external_id(self, external_id: str) -> Optional[CalendarEvent]:
        self._require_access()
        with self._lock:
            for event in self._events.values():
                if event.external_id == external_id:
                    return event
        return None

    def reassign_event_id(self, event_id: str) -> CalendarEvent:
        """Give an event a fresh id while keeping its external id, as providers sometimes do."""
        with self._lock:
            event = self._events.pop(event_id)
            moved = event.model_copy(update={"event_id": str(uuid.uuid4())})
            self._events[moved.event_id] = moved
        self.notify_changed()
        return moved
