"""
Realtime change notifications.

Write endpoints publish INSERT/UPDATE/DELETE events after their commit;
every connected client holds a subscription (an asyncio queue) filtered by
table and event type, drained by the Server-Sent Events endpoint in main.py.

Sync endpoints run in FastAPI's threadpool, so publish() hands events to
each subscriber's own event loop with call_soon_threadsafe.
"""

import asyncio
import json
import logging
import threading
from typing import Any, AsyncIterator, Dict, List, Optional

from schemas import ChangeEvent, ChangeEventType

logger = logging.getLogger(__name__)

WILDCARD = "*"

# Subscribers that stop reading get dropped once this many events pile up
MAX_PENDING_EVENTS = 1000


class Subscription:
    def __init__(self, table: str, event: str, loop: asyncio.AbstractEventLoop):
        self.table = table
        self.event = event
        self.loop = loop
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=MAX_PENDING_EVENTS)
        self.closed = False

    def matches(self, event: ChangeEvent) -> bool:
        if self.table != event.table:
            return False
        return self.event == WILDCARD or self.event == event.event_type.value

    def _offer(self, event: ChangeEvent) -> None:
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(f"Dropping slow realtime subscriber on table {self.table}")
            self.closed = True


class ChangeBroadcaster:
    """Fan-out of change events to live subscriptions."""

    def __init__(self):
        self._subscriptions: List[Subscription] = []
        self._lock = threading.Lock()

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def subscribe(self, table: str, event: str = WILDCARD) -> Subscription:
        """Register a subscription on the calling coroutine's event loop."""
        if event != WILDCARD:
            event = ChangeEventType(event).value
        subscription = Subscription(table, event, asyncio.get_running_loop())
        with self._lock:
            self._subscriptions.append(subscription)
        logger.info(f"Realtime subscriber added: table={table}, event={event}")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.closed = True
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)
        logger.info(f"Realtime subscriber removed: table={subscription.table}")

    def publish(self, event: ChangeEvent) -> None:
        with self._lock:
            targets = [s for s in self._subscriptions if not s.closed and s.matches(event)]
        logger.debug(f"Publishing {event.event_type.value} on {event.table} to {len(targets)} subscriber(s)")
        for subscription in targets:
            try:
                subscription.loop.call_soon_threadsafe(subscription._offer, event)
            except RuntimeError:
                # Loop already closed; the client is gone
                self.unsubscribe(subscription)

    def publish_change(
        self,
        table: str,
        event_type: ChangeEventType,
        new: Optional[Dict[str, Any]] = None,
        old: Optional[Dict[str, Any]] = None,
    ) -> ChangeEvent:
        event = ChangeEvent(table=table, event_type=event_type, new=new, old=old)
        self.publish(event)
        return event


def encode_sse(event: ChangeEvent) -> str:
    """Serialize one change event as a Server-Sent Events frame."""
    return f"event: change\ndata: {event.model_dump_json()}\n\n"


def encode_status(status: str) -> str:
    return f"event: status\ndata: {json.dumps({'status': status})}\n\n"


async def stream_events(
    broadcaster: ChangeBroadcaster,
    subscription: Subscription,
    is_disconnected,
    keepalive_seconds: float = 15.0,
) -> AsyncIterator[str]:
    """
    Yield SSE frames for a subscription until the client disconnects.

    Emits a SUBSCRIBED status frame first and a comment line as keepalive
    whenever no event arrived within keepalive_seconds.
    """
    try:
        yield encode_status("SUBSCRIBED")
        while not subscription.closed:
            try:
                event = await asyncio.wait_for(subscription.queue.get(), timeout=keepalive_seconds)
            except asyncio.TimeoutError:
                if await is_disconnected():
                    break
                yield ": keepalive\n\n"
                continue
            yield encode_sse(event)
    finally:
        broadcaster.unsubscribe(subscription)
