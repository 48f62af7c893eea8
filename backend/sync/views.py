"""
Derived task views: search, quick filters, sorting, kanban grouping and
the stats header. Everything here is a pure function of its inputs.
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional

from schemas import Todo, TodoPriority, TodoStatus
from time_utils import ensure_aware, is_due_today, is_overdue, local_today


class QuickFilter(str, Enum):
    all = "all"
    my_tasks = "my_tasks"
    due_today = "due_today"
    overdue = "overdue"
    urgent = "urgent"


class SortOption(str, Enum):
    created = "created"
    due_date = "due_date"
    priority = "priority"
    alphabetical = "alphabetical"
    custom = "custom"


PRIORITY_RANK = {
    TodoPriority.urgent: 0,
    TodoPriority.high: 1,
    TodoPriority.medium: 2,
    TodoPriority.low: 3,
}

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def matches_query(todo: Todo, query: str) -> bool:
    query = query.strip().casefold()
    if not query:
        return True
    fields = (todo.text, todo.created_by, todo.assigned_to, todo.notes)
    return any(query in value.casefold() for value in fields if value)


def matches_filter(
    todo: Todo,
    quick_filter: QuickFilter,
    current_user: Optional[str],
    today: date,
) -> bool:
    quick_filter = QuickFilter(quick_filter)
    if quick_filter == QuickFilter.my_tasks:
        return current_user is not None and current_user in (todo.assigned_to, todo.created_by)
    if quick_filter == QuickFilter.due_today:
        return is_due_today(todo.due_date, todo.completed, today)
    if quick_filter == QuickFilter.overdue:
        return is_overdue(todo.due_date, todo.completed, today)
    if quick_filter == QuickFilter.urgent:
        return todo.priority == TodoPriority.urgent and not todo.completed
    return True


def sort_todos(todos: Iterable[Todo], sort: SortOption) -> List[Todo]:
    todos = list(todos)
    sort = SortOption(sort)
    if sort == SortOption.created:
        return sorted(todos, key=lambda t: ensure_aware(t.created_at) or _EPOCH, reverse=True)
    if sort == SortOption.due_date:
        return sorted(todos, key=lambda t: (t.due_date is None, t.due_date or date.min))
    if sort == SortOption.priority:
        return sorted(todos, key=lambda t: PRIORITY_RANK[t.priority])
    if sort == SortOption.alphabetical:
        return sorted(todos, key=lambda t: (t.text.casefold(), t.text.swapcase()))
    return todos


def derive_view(
    todos: Iterable[Todo],
    *,
    query: str = "",
    quick_filter: QuickFilter = QuickFilter.all,
    sort: SortOption = SortOption.created,
    show_completed: bool = False,
    current_user: Optional[str] = None,
    today: Optional[date] = None,
) -> List[Todo]:
    """
    Ordered list of tasks to display.

    Completed tasks are hidden unless show_completed is set. Ties keep the
    collection order, so the result is deterministic for a given input.
    """
    today = today or local_today()
    visible = [
        todo for todo in todos
        if (show_completed or not todo.completed)
        and matches_query(todo, query)
        and matches_filter(todo, quick_filter, current_user, today)
    ]
    return sort_todos(visible, sort)


def group_by_status(todos: Iterable[Todo]) -> Dict[TodoStatus, List[Todo]]:
    """Kanban columns, in board order, each keeping the input order."""
    columns: Dict[TodoStatus, List[Todo]] = {status: [] for status in TodoStatus}
    for todo in todos:
        columns[todo.status].append(todo)
    return columns


@dataclass(frozen=True)
class TodoSummary:
    total: int
    completed: int
    overdue: int
    due_today: int

    @property
    def open(self) -> int:
        return self.total - self.completed


def summarize(todos: Iterable[Todo], today: Optional[date] = None) -> TodoSummary:
    today = today or local_today()
    todos = list(todos)
    return TodoSummary(
        total=len(todos),
        completed=sum(1 for t in todos if t.completed),
        overdue=sum(1 for t in todos if is_overdue(t.due_date, t.completed, today)),
        due_today=sum(1 for t in todos if is_due_today(t.due_date, t.completed, today)),
    )
