"""
Tests for the AI task-entry endpoints and the validation of model replies.

The language model and speech service are replaced by fakes on app.state.
"""

import json
import logging

import pytest
from fastapi.testclient import TestClient

from ai.llm import AIServiceError, extract_json
from ai.parsing import (
    clamp_minutes,
    clean_assignee,
    clean_due_date,
    coerce_priority,
    is_complex_text,
    validate_smart_parse,
)
from fakes import FakeLLM, FakeTranscriber

logger = logging.getLogger(__name__)

MESSY_REPLY = {
    "mainTask": {
        "text": "Complete meeting action items " + "x" * 300,
        "priority": "ASAP",
        "dueDate": "next friday",
        "assignedTo": "Zed",
    },
    "subtasks": [
        {"text": "Update budget", "priority": "high", "estimatedMinutes": 1},
        {"text": "Send proposal", "priority": "bogus", "estimatedMinutes": 999},
        {"text": "", "priority": "low"},
        {"text": "Call marketing", "estimatedMinutes": "soon"},
        {"text": "Four"},
        {"text": "Five"},
        {"text": "Six"},
        {"text": "Seven"},
    ],
    "summary": "s" * 400,
    "wasComplex": False,
}


# ============== Reply validation ==============


def test_is_complex_text():
    assert is_complex_text("call john tmrw") is False
    assert is_complex_text("line one\nline two") is True
    assert is_complex_text("- buy milk") is True
    assert is_complex_text("need to 1) update 2) send") is True
    assert is_complex_text(" ".join(["word"] * 16)) is True
    assert is_complex_text(" ".join(["word"] * 15)) is False


def test_clamp_minutes():
    assert clamp_minutes(1) == 5
    assert clamp_minutes(999) == 480
    assert clamp_minutes(42.4) == 42
    assert clamp_minutes(True) is None
    assert clamp_minutes("30") is None
    assert clamp_minutes(None) is None
    assert clamp_minutes(float("nan")) is None
    assert clamp_minutes(float("inf")) is None


def test_coerce_priority_defaults_to_medium():
    assert coerce_priority("urgent").value == "urgent"
    assert coerce_priority("URGENT").value == "medium"
    assert coerce_priority(None).value == "medium"


def test_clean_due_date_and_assignee():
    assert clean_due_date("2024-01-19") == "2024-01-19"
    assert clean_due_date("2024-02-30") == ""
    assert clean_due_date("tomorrow") == ""
    assert clean_assignee("sefra", ["Derrick", "Sefra"]) == "Sefra"
    assert clean_assignee("Zed", ["Derrick", "Sefra"]) == ""
    assert clean_assignee("Sefra", []) == ""


def test_validate_smart_parse_caps_and_coerces():
    original = "Meeting notes: need to 1) update the budget 2) send the proposal"
    result = validate_smart_parse(MESSY_REPLY, original, ["Derrick"])

    assert len(result.main_task.text) == 200
    assert result.main_task.priority.value == "medium"
    assert result.main_task.due_date == ""
    assert result.main_task.assigned_to == ""
    # Only the first six entries count and the empty one is dropped
    assert [s.text for s in result.subtasks] == ["Update budget", "Send proposal", "Call marketing", "Four", "Five"]
    assert result.subtasks[0].estimated_minutes == 5
    assert result.subtasks[1].estimated_minutes == 480
    assert result.subtasks[1].priority.value == "medium"
    assert result.subtasks[2].estimated_minutes is None
    assert len(result.summary) == 300
    assert result.was_complex is True
    logger.info("✓ Model reply coerced into safe shape")


def test_validate_smart_parse_falls_back_to_input_text():
    result = validate_smart_parse({}, "call john", [])

    assert result.main_task.text == "call john"
    assert result.subtasks == []
    assert result.was_complex is False


def test_extract_json_handles_fences_and_chatter():
    assert extract_json('```json\n{"a": 1}\n```') == {"a": 1}
    assert extract_json('Here you go: {"a": {"b": 2}} hope that helps') == {"a": {"b": 2}}
    with pytest.raises(AIServiceError):
        extract_json("no json here")
    with pytest.raises(AIServiceError):
        extract_json("{not valid}")


# ============== Smart parse ==============


def test_smart_parse_endpoint(client: TestClient, auth_headers, fake_llm: FakeLLM):
    fake_llm.queue(MESSY_REPLY)

    response = client.post(
        "/api/ai/smart-parse",
        json={"text": "call john tmrw about the proposal", "users": ["Derrick", "Sefra"]},
        headers=auth_headers,
    )

    assert response.status_code == 200, response.json()
    body = response.json()
    assert body["success"] is True
    result = body["result"]
    assert set(result) == {"mainTask", "subtasks", "summary", "wasComplex"}
    assert result["mainTask"]["priority"] == "medium"
    assert result["subtasks"][0]["estimatedMinutes"] == 5
    assert "Derrick, Sefra" in fake_llm.calls[0]["content"]
    assert "call john tmrw about the proposal" in fake_llm.calls[0]["content"]


def test_smart_parse_requires_text(client: TestClient, auth_headers, fake_llm: FakeLLM):
    response = client.post("/api/ai/smart-parse", json={"text": "   "}, headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["error"] == "Text is required"
    assert fake_llm.calls == []


def test_smart_parse_upstream_failure_is_500(client: TestClient, auth_headers, fake_llm: FakeLLM):
    fake_llm.error = AIServiceError("API error: 529")

    response = client.post("/api/ai/smart-parse", json={"text": "call john"}, headers=auth_headers)

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Failed to parse content", "details": "API error: 529"}


def test_smart_parse_unparsable_reply_is_500(client: TestClient, auth_headers, fake_llm: FakeLLM):
    fake_llm.queue("Sorry, I can't help with that.")

    response = client.post("/api/ai/smart-parse", json={"text": "call john"}, headers=auth_headers)

    assert response.status_code == 500
    assert response.json()["details"] == "Failed to parse AI response"


def test_smart_parse_non_finite_minutes_are_dropped(client: TestClient, auth_headers, fake_llm: FakeLLM):
    fake_llm.queue(
        '{"mainTask": {"text": "Write report", "priority": "high"},'
        ' "subtasks": [{"text": "Draft", "estimatedMinutes": NaN}, {"text": "Review", "estimatedMinutes": Infinity}],'
        ' "summary": "Report", "wasComplex": true}'
    )

    response = client.post("/api/ai/smart-parse", json={"text": "write the report"}, headers=auth_headers)

    assert response.status_code == 200, response.text
    subtasks = response.json()["result"]["subtasks"]
    assert [s["estimatedMinutes"] for s in subtasks] == [None, None]


def test_ai_endpoints_require_login(client: TestClient):
    response = client.post("/api/ai/smart-parse", json={"text": "call john"})
    assert response.status_code == 401


# ============== File parse ==============


def test_parse_pdf_sends_document_block(client: TestClient, auth_headers, fake_llm: FakeLLM):
    fake_llm.queue({
        "documentSummary": "Invoice from supplier",
        "extractedText": "Amount due 400",
        "mainTask": {"text": "Pay supplier invoice", "priority": "high", "dueDate": "2024-02-01", "assignedTo": "Bob"},
        "subtasks": [{"text": "Check amount", "priority": "medium", "estimatedMinutes": 10}],
    })

    response = client.post(
        "/api/ai/parse-file",
        files={"file": ("invoice.pdf", b"%PDF-1.4 fake", "application/pdf")},
        data={"users": json.dumps(["Bob"])},
        headers=auth_headers,
    )

    assert response.status_code == 200, response.json()
    result = response.json()["result"]
    assert result["documentSummary"] == "Invoice from supplier"
    assert result["mainTask"]["assignedTo"] == "Bob"
    assert result["mainTask"]["dueDate"] == "2024-02-01"
    assert result["subtasks"][0]["text"] == "Check amount"

    content = fake_llm.calls[0]["content"]
    assert content[0]["type"] == "document"
    assert content[0]["source"]["media_type"] == "application/pdf"
    assert content[1]["type"] == "text"
    assert fake_llm.calls[0]["max_tokens"] == 2000


def test_parse_image_uses_image_block(client: TestClient, auth_headers, fake_llm: FakeLLM):
    fake_llm.queue({"mainTask": {"text": "Fix sign"}, "subtasks": []})

    response = client.post(
        "/api/ai/parse-file",
        files={"file": ("photo.png", b"\x89PNG fake", "image/png")},
        headers=auth_headers,
    )

    assert response.status_code == 200, response.json()
    block = fake_llm.calls[0]["content"][0]
    assert block["type"] == "image"
    assert block["source"]["media_type"] == "image/png"


def test_parse_file_rejects_other_types(client: TestClient, auth_headers, fake_llm: FakeLLM):
    response = client.post(
        "/api/ai/parse-file",
        files={"file": ("notes.txt", b"hello", "text/plain")},
        headers=auth_headers,
    )

    assert response.status_code == 400
    assert response.json()["error"] == "File must be a PDF or image"
    assert fake_llm.calls == []


def test_parse_file_rejects_bad_users_field(client: TestClient, auth_headers):
    response = client.post(
        "/api/ai/parse-file",
        files={"file": ("invoice.pdf", b"%PDF", "application/pdf")},
        data={"users": "Bob"},
        headers=auth_headers,
    )
    assert response.status_code == 400


# ============== Transcribe ==============


def test_transcribe_returns_text(client: TestClient, auth_headers, fake_transcriber: FakeTranscriber, fake_llm: FakeLLM):
    fake_transcriber.text = "remind bob to send the deck friday"

    response = client.post(
        "/api/ai/transcribe",
        files={"audio": ("clip.webm", b"fake-audio", "audio/webm")},
        headers=auth_headers,
    )

    assert response.status_code == 200, response.json()
    assert response.json() == {"success": True, "text": "remind bob to send the deck friday"}
    assert fake_transcriber.calls[0]["content_type"] == "audio/webm"
    assert fake_llm.calls == []


def test_transcribe_and_parse(client: TestClient, auth_headers, fake_transcriber: FakeTranscriber, fake_llm: FakeLLM):
    fake_transcriber.text = "send the deck"
    fake_llm.queue({"mainTask": {"text": "Send the deck", "priority": "high"}, "subtasks": [], "summary": "Deck"})

    response = client.post(
        "/api/ai/transcribe",
        files={"audio": ("clip.webm", b"fake-audio", "audio/webm")},
        data={"parse": "true"},
        headers=auth_headers,
    )

    assert response.status_code == 200, response.json()
    assert response.json()["result"]["mainTask"]["text"] == "Send the deck"
    assert response.json()["result"]["mainTask"]["priority"] == "high"


def test_transcribe_with_no_speech_is_400(client: TestClient, auth_headers, fake_transcriber: FakeTranscriber):
    fake_transcriber.text = ""

    response = client.post(
        "/api/ai/transcribe",
        files={"audio": ("clip.webm", b"fake-audio", "audio/webm")},
        headers=auth_headers,
    )

    assert response.status_code == 400
    assert response.json()["error"] == "No speech detected"


def test_transcribe_rejects_non_audio(client: TestClient, auth_headers):
    response = client.post(
        "/api/ai/transcribe",
        files={"audio": ("doc.pdf", b"%PDF", "application/pdf")},
        headers=auth_headers,
    )
    assert response.status_code == 400


# ============== Enhance ==============


def test_enhance_task(client: TestClient, auth_headers, fake_llm: FakeLLM):
    fake_llm.queue({
        "text": "Call John about the proposal",
        "priority": "urgent",
        "dueDate": "",
        "assignedTo": "",
        "wasEnhanced": True,
    })

    response = client.post("/api/ai/enhance-task", json={"text": "call john re proposal asap"}, headers=auth_headers)

    assert response.status_code == 200, response.json()
    enhanced = response.json()["enhanced"]
    assert enhanced == {
        "text": "Call John about the proposal",
        "priority": "urgent",
        "dueDate": "",
        "assignedTo": "",
        "wasEnhanced": True,
    }


def test_enhance_task_unchanged_text_is_not_enhanced(client: TestClient, auth_headers, fake_llm: FakeLLM):
    fake_llm.queue({"text": "Call John", "wasEnhanced": True})

    response = client.post("/api/ai/enhance-task", json={"text": "Call John"}, headers=auth_headers)

    assert response.json()["enhanced"]["wasEnhanced"] is False
