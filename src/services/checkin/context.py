import logging
from typing import List, Optional

from src.core.models import EventStat
from src.services.checkin.guard import ScanGuard

logger = logging.getLogger(__name__)


class ContextLockedError(Exception):
    pass


class EventContext:
    """Binds the gate to a single event. Nothing can be scanned until an event is selected."""

    def __init__(self, guard: ScanGuard):
        self.guard = guard
        self.events: List[EventStat] = []
        self.active_event_id: Optional[int] = None

    def set_events(self, events: List[EventStat]):
        self.events = list(events)
        # Keep the binding only if the event still exists
        if self.active_event_id is not None and self.get(self.active_event_id) is None:
            logger.warning(f"Active event {self.active_event_id} no longer listed, unbinding")
            self.active_event_id = None

    def get(self, event_id: Optional[int]) -> Optional[EventStat]:
        for e in self.events:
            if e.event_id == event_id:
                return e
        return None

    @property
    def active_event(self) -> Optional[EventStat]:
        return self.get(self.active_event_id)

    @property
    def active_event_name(self) -> Optional[str]:
        event = self.active_event
        return event.event_name if event else None

    @property
    def is_bound(self) -> bool:
        return self.active_event_id is not None

    @property
    def can_change(self) -> bool:
        return not self.guard.held

    def select(self, event_id: int) -> EventStat:
        if not self.can_change:
            raise ContextLockedError("Finish the current verification before switching events.")

        event = self.get(event_id)
        if event is None:
            raise ValueError(f"Unknown event {event_id}")

        self.active_event_id = event.event_id
        logger.info(f"Gate bound to event {event.event_id} ({event.event_name})")
        return event

    def clear(self):
        if self.active_event_id is not None:
            logger.info(f"Gate unbound from event {self.active_event_id}")
        self.active_event_id = None
