"""
Folds remote change events into the local task collection.

- INSERT: skipped when the id is already present (our own optimistic
  insert echoing back), otherwise prepended.
- UPDATE: the remote row replaces the local one wholesale; a row we have
  never seen is inserted.
- DELETE: removes the row if present; deleting twice is harmless.
"""

import logging
from typing import Callable, List, Optional

from pydantic import ValidationError

from schemas import ChangeEvent, ChangeEventType, Todo
from sync.collection import TodoCollection, prepend, remove, upsert
from sync.events import EventChannel

logger = logging.getLogger(__name__)

StatusListener = Callable[[bool], None]


class RealtimeReconciler:
    def __init__(self, collection: TodoCollection, channel: EventChannel, table: str = "todos"):
        self.collection = collection
        self.channel = channel
        self.table = table
        self.connected = False
        self._status_listeners: List[StatusListener] = []
        self._unsubscribe: Optional[Callable[[], None]] = None

    def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.channel.subscribe(self.handle, table=self.table)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.set_connected(False)

    def handle(self, event: ChangeEvent) -> None:
        if event.event_type == ChangeEventType.DELETE:
            todo_id = event.record_id
            if todo_id:
                self.collection.apply(remove(todo_id))
                logger.debug(f"Remote delete applied: {todo_id}")
            return

        try:
            record = Todo.model_validate(event.new or {})
        except ValidationError as e:
            logger.warning(f"Ignoring malformed {event.event_type.value} event on {event.table}: {e}")
            return

        if event.event_type == ChangeEventType.INSERT:
            if record.id in self.collection:
                logger.debug(f"Remote insert already present locally: {record.id}")
                return
            self.collection.apply(prepend(record))
            logger.debug(f"Remote insert applied: {record.id}")
        else:
            self.collection.apply(upsert(record))
            logger.debug(f"Remote update applied: {record.id}")

    def set_connected(self, connected: bool) -> None:
        if connected == self.connected:
            return
        self.connected = connected
        logger.info(f"Realtime {'connected' if connected else 'disconnected'} ({self.table})")
        for listener in list(self._status_listeners):
            listener(connected)

    def add_status_listener(self, listener: StatusListener) -> Callable[[], None]:
        self._status_listeners.append(listener)

        def remove_listener() -> None:
            if listener in self._status_listeners:
                self._status_listeners.remove(listener)

        return remove_listener
