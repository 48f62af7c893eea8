"""
Optimistic mutation engine.

Every task mutation goes through one primitive, apply():

1. apply the forward transform to the local collection right away;
2. start the persistence call in the background and hand back its task;
3. if the store rejects it, apply the inverse transform to the collection
   as it is at that moment, log and record the failure (no retry);
4. on success run the optional follow-up and nothing else.

The forward/inverse transforms only touch the fields a mutation changes,
so a rollback never clobbers a concurrent remote update to other fields.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set

from schemas import (
    RecurrencePattern,
    SmartParseResult,
    Subtask,
    Template,
    Todo,
    TodoPriority,
    TodoStatus,
    new_id as default_new_id,
)
from sync.collection import TodoCollection, Transform, patch, prepend, remove, restore
from sync.factory import duplicate_todo, todo_from_parse, todo_from_template
from sync.recurrence import next_occurrence
from sync.store import StoreError, TodoStore
from time_utils import local_today, utc_now

logger = logging.getLogger(__name__)

Persist = Callable[[], Awaitable[Any]]


@dataclass
class MutationFailure:
    label: str
    error: str
    todo_id: Optional[str] = None
    status_code: Optional[int] = None
    at: datetime = field(default_factory=utc_now)


class OptimisticMutationEngine:
    """
    Applies task mutations locally first and persists them in the background.

    Mutation methods must be called from a running event loop. They return
    the asyncio.Task of the persistence call; awaiting it is optional and
    yields True on success, False after a rollback.
    """

    def __init__(
        self,
        collection: TodoCollection,
        store: TodoStore,
        *,
        current_user: str,
        on_celebrate: Optional[Callable[[Todo], None]] = None,
        today: Callable[[], date] = local_today,
        clock: Callable[[], datetime] = utc_now,
        new_id: Callable[[], str] = default_new_id,
    ):
        self.collection = collection
        self.store = store
        self.current_user = current_user
        self.on_celebrate = on_celebrate
        self.today = today
        self.clock = clock
        self.new_id = new_id
        self.failures: List[MutationFailure] = []
        self._pending: Set[asyncio.Task] = set()

    # ============== Core primitive ==============

    def apply(
        self,
        label: str,
        forward: Transform,
        inverse: Transform,
        persist: Persist,
        on_success: Optional[Callable[[Any], None]] = None,
        todo_id: Optional[str] = None,
    ) -> asyncio.Task:
        loop = asyncio.get_running_loop()
        self.collection.apply(forward)
        task = loop.create_task(self._settle(label, inverse, persist, on_success, todo_id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _settle(
        self,
        label: str,
        inverse: Transform,
        persist: Persist,
        on_success: Optional[Callable[[Any], None]],
        todo_id: Optional[str],
    ) -> bool:
        try:
            result = await persist()
        except StoreError as e:
            self.collection.apply(inverse)
            logger.error(f"{label} failed for todo {todo_id}; local change rolled back: {e}")
            self.failures.append(MutationFailure(
                label=label, error=str(e), todo_id=todo_id, status_code=e.status_code,
            ))
            return False
        except Exception as e:
            self.collection.apply(inverse)
            logger.exception(f"{label} failed unexpectedly for todo {todo_id}; local change rolled back")
            self.failures.append(MutationFailure(label=label, error=str(e), todo_id=todo_id))
            return False

        logger.debug(f"{label} persisted for todo {todo_id}")
        if on_success is not None:
            on_success(result)
        return True

    async def wait_idle(self) -> None:
        """Wait for every in-flight persistence call, including follow-ups they start."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def load(self) -> bool:
        """Replace the collection with the store's current contents."""
        try:
            todos = await self.store.list_todos()
        except StoreError as e:
            logger.error(f"Failed to load todos: {e}")
            return False
        self.collection.replace_all(todos)
        logger.info(f"Loaded {len(todos)} todos")
        return True

    # ============== Helpers ==============

    def _require(self, todo_id: str) -> Todo:
        todo = self.collection.get(todo_id)
        if todo is None:
            logger.warning(f"Ignoring mutation for unknown todo {todo_id}")
            raise KeyError(todo_id)
        return todo

    def _update_fields(
        self,
        label: str,
        todo_id: str,
        fields: Dict[str, Any],
        on_success: Optional[Callable[[Any], None]] = None,
    ) -> asyncio.Task:
        current = self._require(todo_id)
        local_fields = dict(fields, updated_at=self.clock(), updated_by=self.current_user)
        previous = {name: getattr(current, name) for name in local_fields}
        return self.apply(
            label,
            patch(todo_id, local_fields),
            patch(todo_id, previous),
            lambda: self.store.update(todo_id, fields),
            on_success=on_success,
            todo_id=todo_id,
        )

    def _completion_change(self, label: str, current: Todo, updated: Todo) -> asyncio.Task:
        fields = {"completed": updated.completed, "status": updated.status}
        on_success = None
        if updated.completed and not current.completed:
            if self.on_celebrate is not None:
                self.on_celebrate(current)
            if current.recurrence is not None:
                on_success = lambda _result: self._roll_forward(current)
        return self._update_fields(label, current.id, fields, on_success)

    def _roll_forward(self, completed: Todo) -> None:
        follow_up = next_occurrence(
            completed,
            today=self.today(),
            new_id=self.new_id,
            now=self.clock(),
            created_by=self.current_user,
        )
        if follow_up is None:
            return
        logger.info(f"Creating next {completed.recurrence.value} occurrence of {completed.id} due {follow_up.due_date}")
        self.create(follow_up)

    # ============== Mutations ==============

    def create(self, todo: Todo) -> asyncio.Task:
        if todo.id in self.collection:
            raise ValueError(f"Todo {todo.id} already exists")
        return self.apply(
            "create",
            prepend(todo),
            remove(todo.id),
            lambda: self.store.insert(todo),
            todo_id=todo.id,
        )

    def toggle_complete(self, todo_id: str, completed: Optional[bool] = None) -> asyncio.Task:
        """Set (or flip, when completed is None) the completion flag."""
        current = self._require(todo_id)
        target = (not current.completed) if completed is None else completed
        return self._completion_change("toggle_complete", current, current.with_completed(target))

    def change_status(self, todo_id: str, status: TodoStatus) -> asyncio.Task:
        current = self._require(todo_id)
        return self._completion_change("change_status", current, current.with_status(status))

    def assign(self, todo_id: str, assignee: Optional[str]) -> asyncio.Task:
        return self._update_fields("assign", todo_id, {"assigned_to": assignee or None})

    def set_due_date(self, todo_id: str, due_date: Optional[date]) -> asyncio.Task:
        return self._update_fields("set_due_date", todo_id, {"due_date": due_date})

    def set_priority(self, todo_id: str, priority: TodoPriority) -> asyncio.Task:
        return self._update_fields("set_priority", todo_id, {"priority": TodoPriority(priority)})

    def update_notes(self, todo_id: str, notes: Optional[str]) -> asyncio.Task:
        return self._update_fields("update_notes", todo_id, {"notes": notes or None})

    def set_recurrence(self, todo_id: str, recurrence: Optional[RecurrencePattern]) -> asyncio.Task:
        if recurrence in (None, "", RecurrencePattern.none):
            value = None
        else:
            value = RecurrencePattern(recurrence)
        return self._update_fields("set_recurrence", todo_id, {"recurrence": value})

    def update_subtasks(self, todo_id: str, subtasks: List[Subtask]) -> asyncio.Task:
        return self._update_fields("update_subtasks", todo_id, {"subtasks": list(subtasks)})

    def delete(self, todo_id: str) -> asyncio.Task:
        current = self._require(todo_id)
        index = self.collection.index_of(todo_id)
        return self.apply(
            "delete",
            remove(todo_id),
            restore(current, index),
            lambda: self.store.delete(todo_id),
            todo_id=todo_id,
        )

    def duplicate(self, todo_id: str) -> asyncio.Task:
        current = self._require(todo_id)
        copy = duplicate_todo(current, created_by=self.current_user, new_id=self.new_id, now=self.clock())
        return self.create(copy)

    def create_from_template(
        self,
        template: Template,
        *,
        due_date: Optional[date] = None,
        assigned_to: Optional[str] = None,
    ) -> asyncio.Task:
        todo = todo_from_template(
            template,
            created_by=self.current_user,
            due_date=due_date,
            assigned_to=assigned_to,
            new_id=self.new_id,
            now=self.clock(),
        )
        return self.create(todo)

    def create_from_parse(
        self,
        result: SmartParseResult,
        *,
        selected_subtasks: Optional[Iterable[int]] = None,
    ) -> asyncio.Task:
        todo = todo_from_parse(
            result,
            created_by=self.current_user,
            selected_subtasks=selected_subtasks,
            new_id=self.new_id,
            now=self.clock(),
        )
        return self.create(todo)
