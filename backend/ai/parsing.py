"""
Validation of language-model replies.

Model output is untrusted: every field is coerced into the shape the
clients expect, and anything that cannot be coerced falls back to a safe
default instead of failing the request.
"""

import logging
import math
import re
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from schemas import (
    EnhancedTask,
    FileParseResult,
    ParsedMainTask,
    ParsedSubtask,
    SmartParseResult,
    TodoPriority,
)

logger = logging.getLogger(__name__)

MAIN_TEXT_MAX_LENGTH = 200
SUBTASK_TEXT_MAX_LENGTH = 200
SUMMARY_MAX_LENGTH = 300
EXTRACTED_TEXT_MAX_LENGTH = 500
MAX_SUBTASKS = 6
MIN_ESTIMATED_MINUTES = 5
MAX_ESTIMATED_MINUTES = 480
COMPLEX_WORD_COUNT = 15

_BULLET_RE = re.compile(r"[-•*]\s")
_NUMBERED_RE = re.compile(r"\d+[.)]\s")


def is_complex_text(text: str) -> bool:
    """Heuristic: long, multi-line, bulleted or numbered input is worth breaking down."""
    return (
        len(text.split()) > COMPLEX_WORD_COUNT
        or "\n" in text
        or bool(_BULLET_RE.search(text))
        or bool(_NUMBERED_RE.search(text))
    )


def coerce_priority(value: Any) -> TodoPriority:
    try:
        return TodoPriority(value)
    except ValueError:
        return TodoPriority.medium


def clamp_minutes(value: Any) -> Optional[int]:
    # bool is an int subclass; the model sometimes answers true/false
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return int(min(max(round(value), MIN_ESTIMATED_MINUTES), MAX_ESTIMATED_MINUTES))


def clean_due_date(value: Any) -> str:
    """Keep a YYYY-MM-DD date, drop anything else."""
    if not isinstance(value, str) or not value.strip():
        return ""
    try:
        return date.fromisoformat(value.strip()[:10]).isoformat()
    except ValueError:
        logger.debug(f"Dropping malformed due date from AI: {value!r}")
        return ""


def clean_assignee(value: Any, users: Iterable[str]) -> str:
    """Map the suggested assignee onto a known user name, or drop it."""
    if not isinstance(value, str) or not value.strip():
        return ""
    wanted = value.strip()
    for name in users:
        if name == wanted:
            return name
    for name in users:
        if name.casefold() == wanted.casefold():
            return name
    logger.debug(f"Dropping unknown assignee from AI: {wanted!r}")
    return ""


def _text(value: Any, max_length: int) -> str:
    if value is None:
        return ""
    return str(value).strip()[:max_length]


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def validate_subtasks(raw: Any) -> List[ParsedSubtask]:
    if not isinstance(raw, list):
        return []
    subtasks = []
    for item in raw[:MAX_SUBTASKS]:
        item = _as_dict(item)
        text = _text(item.get("text"), SUBTASK_TEXT_MAX_LENGTH)
        if not text:
            continue
        subtasks.append(ParsedSubtask(
            text=text,
            priority=coerce_priority(item.get("priority")),
            estimated_minutes=clamp_minutes(item.get("estimatedMinutes")),
        ))
    return subtasks


def validate_main_task(raw: Any, fallback_text: str, users: List[str]) -> ParsedMainTask:
    raw = _as_dict(raw)
    return ParsedMainTask(
        text=_text(raw.get("text") or fallback_text, MAIN_TEXT_MAX_LENGTH),
        priority=coerce_priority(raw.get("priority")),
        due_date=clean_due_date(raw.get("dueDate")),
        assigned_to=clean_assignee(raw.get("assignedTo"), users),
    )


def validate_smart_parse(raw: Dict[str, Any], original_text: str, users: List[str]) -> SmartParseResult:
    """Coerce a smart-parse reply; wasComplex is OR-ed with the local heuristic."""
    return SmartParseResult(
        main_task=validate_main_task(raw.get("mainTask"), original_text, users),
        subtasks=validate_subtasks(raw.get("subtasks")),
        summary=_text(raw.get("summary"), SUMMARY_MAX_LENGTH),
        was_complex=bool(raw.get("wasComplex")) or is_complex_text(original_text),
    )


def validate_file_parse(raw: Dict[str, Any], users: List[str]) -> FileParseResult:
    subtasks = validate_subtasks(raw.get("subtasks"))
    return FileParseResult(
        main_task=validate_main_task(raw.get("mainTask"), "", users),
        subtasks=subtasks,
        summary=_text(raw.get("summary"), SUMMARY_MAX_LENGTH),
        was_complex=bool(subtasks),
        document_summary=_text(raw.get("documentSummary"), SUMMARY_MAX_LENGTH),
        extracted_text=_text(raw.get("extractedText"), EXTRACTED_TEXT_MAX_LENGTH),
    )


def validate_enhanced_task(raw: Dict[str, Any], original_text: str, users: List[str]) -> EnhancedTask:
    text = _text(raw.get("text") or original_text, MAIN_TEXT_MAX_LENGTH)
    return EnhancedTask(
        text=text,
        priority=coerce_priority(raw.get("priority")),
        due_date=clean_due_date(raw.get("dueDate")),
        assigned_to=clean_assignee(raw.get("assignedTo"), users),
        was_enhanced=bool(raw.get("wasEnhanced")) and text != original_text.strip(),
    )
