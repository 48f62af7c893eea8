"""
Recurring task roll-forward.

Completing a recurring task produces a fresh follow-up task whose due date
moves forward by the recurrence interval. This module only computes the
follow-up; the mutation engine decides when to create it.
"""

from datetime import date, datetime, timedelta
from typing import Callable, Optional

from schemas import RecurrencePattern, Subtask, Todo, new_id as default_new_id
from time_utils import add_months, local_today, utc_now


def advance_due_date(base: date, pattern: RecurrencePattern) -> date:
    pattern = RecurrencePattern(pattern)
    if pattern == RecurrencePattern.daily:
        return base + timedelta(days=1)
    if pattern == RecurrencePattern.weekly:
        return base + timedelta(days=7)
    if pattern == RecurrencePattern.monthly:
        return add_months(base, 1)
    raise ValueError(f"Pattern {pattern.value!r} does not recur")


def next_occurrence(
    todo: Todo,
    *,
    today: Optional[date] = None,
    new_id: Callable[[], str] = default_new_id,
    now: Optional[datetime] = None,
    created_by: Optional[str] = None,
) -> Optional[Todo]:
    """
    Build the follow-up for a completed recurring task.

    The due date advances from the original due date, or from today when
    the task had none. The follow-up starts open with fresh ids for itself
    and its subtasks, which are copied unchecked.

    Returns:
        The follow-up task, or None when the task does not recur
    """
    if todo.recurrence is None or todo.recurrence == RecurrencePattern.none:
        return None

    base = todo.due_date or today or local_today()
    subtasks = [
        Subtask(
            id=new_id(),
            text=subtask.text,
            completed=False,
            priority=subtask.priority,
            estimated_minutes=subtask.estimated_minutes,
        )
        for subtask in todo.subtasks
    ]
    return Todo(
        id=new_id(),
        text=todo.text,
        priority=todo.priority,
        due_date=advance_due_date(base, todo.recurrence),
        assigned_to=todo.assigned_to,
        created_by=created_by or todo.created_by,
        notes=todo.notes,
        recurrence=todo.recurrence,
        subtasks=subtasks,
        created_at=now or utc_now(),
    )
