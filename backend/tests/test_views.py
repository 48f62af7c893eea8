"""
Tests for the derived task views and the stats header.
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from schemas import Todo, TodoStatus
from sync.views import (
    QuickFilter,
    SortOption,
    derive_view,
    group_by_status,
    matches_query,
    sort_todos,
    summarize,
)

TODAY = date(2024, 1, 15)
BASE = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)


def make_todo(text: str, minutes: int = 0, **fields) -> Todo:
    defaults = {
        "id": text,
        "text": text,
        "created_by": "Alice",
        "created_at": BASE + timedelta(minutes=minutes),
    }
    defaults.update(fields)
    return Todo(**defaults)


def texts(todos):
    return [todo.text for todo in todos]


def test_sort_by_due_date_puts_undated_last():
    todos = [
        make_todo("B", due_date=date(2024, 1, 10)),
        make_todo("A"),
        make_todo("C", due_date=date(2024, 1, 5)),
    ]

    assert texts(sort_todos(todos, SortOption.due_date)) == ["C", "B", "A"]


def test_sort_by_created_newest_first():
    todos = [make_todo("old", 0), make_todo("newest", 20), make_todo("middle", 10)]

    assert texts(sort_todos(todos, "created")) == ["newest", "middle", "old"]


def test_sort_by_priority_keeps_ties_in_order():
    todos = [
        make_todo("low", priority="low"),
        make_todo("high-1", priority="high"),
        make_todo("urgent", priority="urgent"),
        make_todo("high-2", priority="high"),
    ]

    assert texts(sort_todos(todos, SortOption.priority)) == ["urgent", "high-1", "high-2", "low"]


def test_sort_alphabetical_ignores_case():
    todos = [make_todo("banana"), make_todo("Apple"), make_todo("cherry")]

    assert texts(sort_todos(todos, SortOption.alphabetical)) == ["Apple", "banana", "cherry"]


def test_sort_alphabetical_puts_lowercase_first_on_ties():
    todos = [make_todo("Apple"), make_todo("apple")]

    assert texts(sort_todos(todos, SortOption.alphabetical)) == ["apple", "Apple"]


def test_custom_sort_keeps_collection_order():
    todos = [make_todo("z"), make_todo("a"), make_todo("m")]

    assert texts(sort_todos(todos, SortOption.custom)) == ["z", "a", "m"]


def test_matches_query_searches_text_people_and_notes():
    todo = make_todo("Quarterly report", assigned_to="Sefra", notes="Include churn numbers")

    assert matches_query(todo, "REPORT")
    assert matches_query(todo, "sefra")
    assert matches_query(todo, "churn")
    assert matches_query(todo, "alice")
    assert matches_query(todo, "   ")
    assert not matches_query(todo, "invoice")


@pytest.mark.parametrize("quick_filter,expected", [
    (QuickFilter.all, ["mine", "theirs", "late", "today", "urgent"]),
    (QuickFilter.my_tasks, ["mine", "late", "today", "urgent"]),
    (QuickFilter.due_today, ["today"]),
    (QuickFilter.overdue, ["late"]),
    (QuickFilter.urgent, ["urgent"]),
])
def test_quick_filters(quick_filter, expected):
    todos = [
        make_todo("mine", assigned_to="Bob", created_by="Carol"),
        make_todo("theirs", created_by="Carol"),
        make_todo("late", created_by="Bob", due_date=date(2024, 1, 10)),
        make_todo("today", created_by="Bob", due_date=TODAY),
        make_todo("urgent", created_by="Bob", priority="urgent"),
        make_todo("done-late", created_by="Bob", due_date=date(2024, 1, 1), completed=True, status="done"),
    ]

    view = derive_view(
        todos,
        quick_filter=quick_filter,
        sort=SortOption.custom,
        current_user="Bob",
        today=TODAY,
    )

    assert texts(view) == expected


def test_show_completed_includes_done_tasks():
    todos = [make_todo("open"), make_todo("done", completed=True, status="done")]

    assert texts(derive_view(todos, sort="custom", today=TODAY)) == ["open"]
    assert texts(derive_view(todos, sort="custom", show_completed=True, today=TODAY)) == ["open", "done"]


def test_derive_view_combines_search_and_sort():
    todos = [
        make_todo("Send invoice", 0, due_date=date(2024, 1, 20)),
        make_todo("Call John", 5),
        make_todo("Invoice follow-up", 10, due_date=date(2024, 1, 16)),
    ]

    view = derive_view(todos, query="invoice", sort=SortOption.due_date, today=TODAY)

    assert texts(view) == ["Invoice follow-up", "Send invoice"]


def test_group_by_status_has_every_column():
    todos = [
        make_todo("a", status="in_progress"),
        make_todo("b"),
        make_todo("c", status="in_progress"),
    ]

    columns = group_by_status(todos)

    assert list(columns) == [TodoStatus.todo, TodoStatus.in_progress, TodoStatus.done]
    assert texts(columns[TodoStatus.in_progress]) == ["a", "c"]
    assert texts(columns[TodoStatus.todo]) == ["b"]
    assert columns[TodoStatus.done] == []


def test_summarize():
    todos = [
        make_todo("late", due_date=date(2024, 1, 10)),
        make_todo("today", due_date=TODAY),
        make_todo("done-late", due_date=date(2024, 1, 1), completed=True, status="done"),
        make_todo("later", due_date=date(2024, 2, 1)),
    ]

    summary = summarize(todos, today=TODAY)

    assert summary.total == 4
    assert summary.completed == 1
    assert summary.open == 3
    assert summary.overdue == 1
    assert summary.due_today == 1
