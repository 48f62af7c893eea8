"""
Builders for new tasks.

Every task gets its id on the client, before any network call, so the
realtime echo of the insert can be recognised and skipped.
"""

from datetime import date, datetime
from typing import Callable, Iterable, List, Optional

from schemas import (
    TODO_TEXT_MAX_LENGTH,
    RecurrencePattern,
    SmartParseResult,
    Subtask,
    Template,
    Todo,
    TodoPriority,
    new_id as default_new_id,
)
from time_utils import utc_now

COPY_SUFFIX = " (copy)"


def new_todo(
    text: str,
    *,
    created_by: str,
    priority: TodoPriority = TodoPriority.medium,
    due_date: Optional[date] = None,
    assigned_to: Optional[str] = None,
    notes: Optional[str] = None,
    recurrence: Optional[RecurrencePattern] = None,
    subtasks: Optional[List[Subtask]] = None,
    todo_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Todo:
    """
    Build an open task.

    Raises:
        ValueError: if the text is blank after stripping
    """
    text = text.strip()
    if not text:
        raise ValueError("Task text cannot be empty")
    return Todo(
        id=todo_id or default_new_id(),
        text=text[:TODO_TEXT_MAX_LENGTH],
        priority=priority,
        due_date=due_date,
        assigned_to=assigned_to,
        created_by=created_by,
        notes=notes,
        recurrence=recurrence,
        subtasks=subtasks or [],
        created_at=now or utc_now(),
    )


def duplicate_todo(
    todo: Todo,
    *,
    created_by: str,
    new_id: Callable[[], str] = default_new_id,
    now: Optional[datetime] = None,
) -> Todo:
    """Copy a task as a new open task with a "(copy)" suffix and fresh ids."""
    text = todo.text[: TODO_TEXT_MAX_LENGTH - len(COPY_SUFFIX)] + COPY_SUFFIX
    return Todo(
        id=new_id(),
        text=text,
        priority=todo.priority,
        due_date=todo.due_date,
        assigned_to=todo.assigned_to,
        created_by=created_by,
        notes=todo.notes,
        recurrence=todo.recurrence,
        subtasks=[
            subtask.model_copy(update={"id": new_id(), "completed": False})
            for subtask in todo.subtasks
        ],
        created_at=now or utc_now(),
    )


def todo_from_template(
    template: Template,
    *,
    created_by: str,
    due_date: Optional[date] = None,
    assigned_to: Optional[str] = None,
    new_id: Callable[[], str] = default_new_id,
    todo_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Todo:
    subtasks = [
        Subtask(
            id=new_id(),
            text=item.text,
            priority=item.priority,
            estimated_minutes=item.estimated_minutes,
        )
        for item in template.subtasks
    ]
    return new_todo(
        template.name,
        created_by=created_by,
        priority=template.default_priority,
        due_date=due_date,
        assigned_to=assigned_to or template.default_assigned_to,
        notes=template.description,
        subtasks=subtasks,
        todo_id=todo_id or new_id(),
        now=now,
    )


def todo_from_parse(
    result: SmartParseResult,
    *,
    created_by: str,
    selected_subtasks: Optional[Iterable[int]] = None,
    new_id: Callable[[], str] = default_new_id,
    now: Optional[datetime] = None,
) -> Todo:
    """
    Turn a confirmed AI parse into a task.

    selected_subtasks holds the indexes the user kept; None keeps them all.
    """
    keep = None if selected_subtasks is None else set(selected_subtasks)
    subtasks = [
        Subtask(
            id=new_id(),
            text=parsed.text,
            priority=parsed.priority,
            estimated_minutes=parsed.estimated_minutes,
        )
        for index, parsed in enumerate(result.subtasks)
        if keep is None or index in keep
    ]
    main = result.main_task
    due_date = date.fromisoformat(main.due_date) if main.due_date else None
    return new_todo(
        main.text,
        created_by=created_by,
        priority=main.priority,
        due_date=due_date,
        assigned_to=main.assigned_to or None,
        subtasks=subtasks,
        todo_id=new_id(),
        now=now,
    )
