"""
Tests for the /api/todos store surface: creation with client ids, partial
updates with the completion lockstep, activity logging and change events.
"""

import logging
from datetime import date

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

import models
from fakes import RecordingBroadcaster

logger = logging.getLogger(__name__)


def create(client: TestClient, headers, **fields):
    payload = {"text": "Call John about the proposal", **fields}
    response = client.post("/api/todos", json=payload, headers=headers)
    assert response.status_code == 201, response.json()
    return response.json()


def activity_actions(db: Session, todo_id: str):
    entries = db.query(models.ActivityLog).filter(models.ActivityLog.todo_id == todo_id).all()
    return [entry.action for entry in entries]


# ============== Create ==============


def test_create_todo_honors_client_id(client: TestClient, auth_headers, broadcaster: RecordingBroadcaster):
    body = create(client, auth_headers, id="local-1", priority="high", due_date="2024-02-01")

    assert body["id"] == "local-1"
    assert body["created_by"] == "Alice"
    assert body["status"] == "todo"
    assert body["completed"] is False
    assert body["priority"] == "high"
    assert body["due_date"] == "2024-02-01"
    assert [e.event_type.value for e in broadcaster.events] == ["INSERT"]
    assert broadcaster.events[0].new["id"] == "local-1"
    logger.info("✓ Client-supplied id kept and INSERT published")


def test_create_todo_generates_id(client: TestClient, auth_headers):
    body = create(client, auth_headers)
    assert len(body["id"]) == 36


def test_create_duplicate_id_conflicts(client: TestClient, auth_headers):
    create(client, auth_headers, id="dup")
    response = client.post("/api/todos", json={"id": "dup", "text": "Again"}, headers=auth_headers)

    assert response.status_code == 409
    assert response.json()["success"] is False


def test_create_strips_text_and_rejects_blank(client: TestClient, auth_headers):
    body = create(client, auth_headers, text="  Send invoice  ")
    blank = client.post("/api/todos", json={"text": "   "}, headers=auth_headers)
    too_long = client.post("/api/todos", json={"text": "x" * 501}, headers=auth_headers)

    assert body["text"] == "Send invoice"
    assert blank.status_code == 400
    assert blank.json()["success"] is False
    assert too_long.status_code == 400


def test_create_with_unknown_assignee_is_rejected(client: TestClient, auth_headers):
    response = client.post("/api/todos", json={"text": "Review", "assigned_to": "Nobody"}, headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["error"] == "Unknown user: Nobody"


def test_create_completed_sets_done_status(client: TestClient, auth_headers, bob):
    body = create(client, auth_headers, completed=True, assigned_to="Bob")

    assert body["status"] == "done"
    assert body["completed"] is True
    assert body["assigned_to"] == "Bob"


def test_create_status_wins_over_completed(client: TestClient, auth_headers):
    body = create(client, auth_headers, completed=True, status="in_progress")

    assert body["status"] == "in_progress"
    assert body["completed"] is False


def test_create_normalizes_none_recurrence(client: TestClient, auth_headers):
    body = create(client, auth_headers, recurrence="none")
    assert body["recurrence"] is None


def test_todos_require_authentication(client: TestClient):
    response = client.get("/api/todos")

    assert response.status_code == 401
    assert response.json()["success"] is False


def test_list_todos_newest_first(client: TestClient, auth_headers):
    create(client, auth_headers, id="old", text="Old", created_at="2024-01-01T09:00:00Z")
    create(client, auth_headers, id="new", text="New", created_at="2024-01-02T09:00:00Z")

    response = client.get("/api/todos", headers=auth_headers)

    assert [todo["id"] for todo in response.json()] == ["new", "old"]


# ============== Update ==============


def test_patch_completed_sets_status_done(client: TestClient, auth_headers, test_db: Session):
    create(client, auth_headers, id="t1")

    response = client.patch("/api/todos/t1", json={"completed": True}, headers=auth_headers)

    assert response.status_code == 200, response.json()
    assert response.json()["status"] == "done"
    assert response.json()["completed"] is True
    assert "task_completed" in activity_actions(test_db, "t1")


def test_patch_uncomplete_done_task_returns_to_todo(client: TestClient, auth_headers, test_db: Session):
    create(client, auth_headers, id="t1", status="done")

    response = client.patch("/api/todos/t1", json={"completed": False}, headers=auth_headers)

    assert response.json()["status"] == "todo"
    assert response.json()["completed"] is False
    assert "task_reopened" in activity_actions(test_db, "t1")


def test_patch_status_keeps_completed_in_lockstep(client: TestClient, auth_headers):
    create(client, auth_headers, id="t1")

    done = client.patch("/api/todos/t1", json={"status": "done"}, headers=auth_headers).json()
    in_progress = client.patch("/api/todos/t1", json={"status": "in_progress"}, headers=auth_headers).json()

    assert done["completed"] is True
    assert in_progress["completed"] is False
    assert in_progress["status"] == "in_progress"


def test_patch_only_touches_given_fields(client: TestClient, auth_headers, bob, test_db: Session):
    create(client, auth_headers, id="t1", notes="Bring the slides", due_date="2024-02-01")

    response = client.patch(
        "/api/todos/t1",
        json={"assigned_to": "Bob", "priority": "urgent"},
        headers=auth_headers,
    )

    body = response.json()
    assert body["assigned_to"] == "Bob"
    assert body["priority"] == "urgent"
    assert body["notes"] == "Bring the slides"
    assert body["due_date"] == "2024-02-01"
    assert body["updated_by"] == "Alice"
    actions = activity_actions(test_db, "t1")
    assert "assigned_to_changed" in actions
    assert "priority_changed" in actions
    assert "notes_updated" not in actions


def test_patch_null_clears_nullable_fields(client: TestClient, auth_headers):
    create(client, auth_headers, id="t1", due_date="2024-02-01", recurrence="weekly")

    body = client.patch(
        "/api/todos/t1",
        json={"due_date": None, "recurrence": "none"},
        headers=auth_headers,
    ).json()

    assert body["due_date"] is None
    assert body["recurrence"] is None


def test_patch_rejects_null_status(client: TestClient, auth_headers):
    create(client, auth_headers, id="t1")

    response = client.patch("/api/todos/t1", json={"status": None}, headers=auth_headers)

    assert response.status_code == 400


def test_patch_cannot_change_creator(client: TestClient, auth_headers, bob_headers):
    create(client, auth_headers, id="t1")

    body = client.patch("/api/todos/t1", json={"created_by": "Bob", "text": "Edited"}, headers=bob_headers).json()

    assert body["created_by"] == "Alice"
    assert body["text"] == "Edited"
    assert body["updated_by"] == "Bob"


def test_patch_subtasks_logs_subtask_activity(client: TestClient, auth_headers, test_db: Session):
    create(client, auth_headers, id="t1", subtasks=[
        {"id": "s1", "text": "Draft"},
        {"id": "s2", "text": "Review"},
    ])

    client.patch("/api/todos/t1", json={"subtasks": [
        {"id": "s1", "text": "Draft", "completed": True},
        {"id": "s3", "text": "Send"},
    ]}, headers=auth_headers)

    actions = activity_actions(test_db, "t1")
    assert "subtask_completed" in actions
    assert "subtask_added" in actions
    assert "subtask_deleted" in actions


def test_patch_publishes_update_with_old_record(client: TestClient, auth_headers, broadcaster: RecordingBroadcaster):
    create(client, auth_headers, id="t1", priority="low")

    client.patch("/api/todos/t1", json={"priority": "high"}, headers=auth_headers)

    event = broadcaster.events[-1]
    assert event.event_type.value == "UPDATE"
    assert event.old["priority"] == "low"
    assert event.new["priority"] == "high"


def test_patch_missing_todo_is_404(client: TestClient, auth_headers):
    response = client.patch("/api/todos/nope", json={"priority": "high"}, headers=auth_headers)
    assert response.status_code == 404


# ============== Delete ==============


def test_delete_is_idempotent(client: TestClient, auth_headers, broadcaster: RecordingBroadcaster, test_db: Session):
    create(client, auth_headers, id="t1")

    first = client.delete("/api/todos/t1", headers=auth_headers)
    second = client.delete("/api/todos/t1", headers=auth_headers)

    assert first.status_code == 204
    assert second.status_code == 204
    assert client.get("/api/todos/t1", headers=auth_headers).status_code == 404
    assert [e.event_type.value for e in broadcaster.events] == ["INSERT", "DELETE"]
    assert broadcaster.events[-1].old["id"] == "t1"
    assert "task_deleted" in activity_actions(test_db, "t1")


def test_health(client: TestClient):
    assert client.get("/health").json() == {"status": "ok"}
