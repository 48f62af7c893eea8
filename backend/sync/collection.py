"""
In-memory task collection shared by the mutation engine and the realtime
reconciler.

All changes go through apply(transform), where a transform is a pure
function of the collection as it is *now*. Optimistic writes, their
rollbacks and remote events can then interleave without one overwriting
another from a stale snapshot.
"""

import logging
from typing import Any, Callable, Dict, Iterator, List, Optional

from schemas import Todo

logger = logging.getLogger(__name__)

Transform = Callable[[List[Todo]], List[Todo]]
Listener = Callable[[List[Todo]], None]


class TodoCollection:
    def __init__(self, todos: Optional[List[Todo]] = None):
        self._todos: List[Todo] = list(todos or [])
        self._listeners: List[Listener] = []

    @property
    def todos(self) -> List[Todo]:
        return list(self._todos)

    def __len__(self) -> int:
        return len(self._todos)

    def __iter__(self) -> Iterator[Todo]:
        return iter(list(self._todos))

    def __contains__(self, todo_id: object) -> bool:
        return any(todo.id == todo_id for todo in self._todos)

    def get(self, todo_id: str) -> Optional[Todo]:
        for todo in self._todos:
            if todo.id == todo_id:
                return todo
        return None

    def index_of(self, todo_id: str) -> Optional[int]:
        for index, todo in enumerate(self._todos):
            if todo.id == todo_id:
                return index
        return None

    def apply(self, transform: Transform) -> None:
        self._todos = list(transform(list(self._todos)))
        for listener in list(self._listeners):
            listener(self.todos)

    def replace_all(self, todos: List[Todo]) -> None:
        self.apply(lambda _: list(todos))

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Call listener with the new contents after every change. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove


# Transforms

def prepend(todo: Todo) -> Transform:
    """Insert at the front unless a task with the same id is already there."""
    def transform(todos: List[Todo]) -> List[Todo]:
        if any(existing.id == todo.id for existing in todos):
            return todos
        return [todo] + todos
    return transform


def remove(todo_id: str) -> Transform:
    def transform(todos: List[Todo]) -> List[Todo]:
        return [todo for todo in todos if todo.id != todo_id]
    return transform


def upsert(todo: Todo) -> Transform:
    """Replace the task with the same id wholesale, or prepend it when absent."""
    def transform(todos: List[Todo]) -> List[Todo]:
        if not any(existing.id == todo.id for existing in todos):
            return [todo] + todos
        return [todo if existing.id == todo.id else existing for existing in todos]
    return transform


def patch(todo_id: str, fields: Dict[str, Any]) -> Transform:
    """Overwrite some fields of one task; a missing task is left missing."""
    def transform(todos: List[Todo]) -> List[Todo]:
        return [
            todo.model_copy(update=fields) if todo.id == todo_id else todo
            for todo in todos
        ]
    return transform


def restore(todo: Todo, index: int) -> Transform:
    """Put a removed task back near its old position, unless it has reappeared."""
    def transform(todos: List[Todo]) -> List[Todo]:
        if any(existing.id == todo.id for existing in todos):
            return todos
        position = min(max(index, 0), len(todos))
        return todos[:position] + [todo] + todos[position:]
    return transform
