"""
Typed change-event channel.

Transports (the SSE subscription, or a test) emit ChangeEvents; consumers
such as the reconciler register handlers filtered by table and event type.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List

from schemas import ChangeEvent, ChangeEventType

logger = logging.getLogger(__name__)

WILDCARD = "*"

Handler = Callable[[ChangeEvent], None]


@dataclass
class _Registration:
    handler: Handler
    table: str
    event: str

    def matches(self, event: ChangeEvent) -> bool:
        if self.table != WILDCARD and self.table != event.table:
            return False
        return self.event == WILDCARD or self.event == event.event_type.value


class EventChannel:
    def __init__(self):
        self._registrations: List[_Registration] = []

    def subscribe(self, handler: Handler, *, table: str = WILDCARD, event: str = WILDCARD) -> Callable[[], None]:
        """Register handler; returns a function that removes it again."""
        if event != WILDCARD:
            event = ChangeEventType(event).value
        registration = _Registration(handler, table, event)
        self._registrations.append(registration)

        def unsubscribe() -> None:
            if registration in self._registrations:
                self._registrations.remove(registration)

        return unsubscribe

    def emit(self, event: ChangeEvent) -> None:
        """Deliver an event to every matching handler, in registration order."""
        for registration in list(self._registrations):
            if not registration.matches(event):
                continue
            try:
                registration.handler(event)
            except Exception:
                # Remaining handlers still receive the event
                logger.exception(f"Change handler failed for {event.event_type.value} on {event.table}")

    @property
    def handler_count(self) -> int:
        return len(self._registrations)
