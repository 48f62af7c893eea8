"""
AI task-entry endpoints.

- Smart parse: free text to a main task plus optional subtasks
- File parse: PDF or image to a task via the model's document/vision input
- Transcribe: recorded audio to text, optionally parsed straight away
- Enhance: tidy up a single task title

The language model and speech services are reached through adapters held
on app.state so tests can swap in fakes.
"""

import base64
import json
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool

from config import MAX_UPLOAD_SIZE
from models import User
from schemas import EnhancedTask, FileParseResult, SmartParseRequest, SmartParseResult
from auth.dependencies import get_current_user
from ai.llm import LLMAdapter, extract_json
from ai.parsing import validate_enhanced_task, validate_file_parse, validate_smart_parse
from ai.prompts import enhance_prompt, file_parse_prompt, smart_parse_prompt
from ai.transcribe import Transcriber
from time_utils import local_today

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai", tags=["ai"])

IMAGE_MEDIA_TYPES = {"image/jpeg", "image/png", "image/gif", "image/webp"}
AUDIO_CONTAINER_TYPES = {"video/webm", "video/mp4", "application/octet-stream"}
CHUNK_SIZE = 1024 * 1024


def get_llm(request: Request) -> LLMAdapter:
    return request.app.state.llm


def get_transcriber(request: Request) -> Transcriber:
    return request.app.state.transcriber


def parse_users_field(users: Optional[str]) -> List[str]:
    """Decode the JSON list of team member names sent alongside multipart uploads."""
    if not users:
        return []
    try:
        decoded = json.loads(users)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="users must be a JSON list of names")
    if not isinstance(decoded, list):
        raise HTTPException(status_code=400, detail="users must be a JSON list of names")
    return [str(name) for name in decoded if str(name).strip()]


async def read_upload(file: UploadFile) -> bytes:
    """Read an upload in chunks, failing fast once it exceeds MAX_UPLOAD_SIZE."""
    chunks = []
    total_size = 0
    while True:
        chunk = await file.read(CHUNK_SIZE)
        if not chunk:
            break
        total_size += len(chunk)
        if total_size > MAX_UPLOAD_SIZE:
            raise HTTPException(
                status_code=413,
                detail=f"File too large. Maximum size: {MAX_UPLOAD_SIZE / (1024*1024):.0f}MB"
            )
        chunks.append(chunk)
    return b"".join(chunks)


def run_smart_parse(llm: LLMAdapter, text: str, users: List[str]) -> SmartParseResult:
    prompt = smart_parse_prompt(text, users, local_today())
    raw = extract_json(llm.complete(prompt, max_tokens=1000))
    return validate_smart_parse(raw, text, users)


@router.post("/smart-parse")
def smart_parse(
    request: SmartParseRequest,
    llm: LLMAdapter = Depends(get_llm),
    current_user: User = Depends(get_current_user),
):
    """Parse free text into a task with optional subtasks."""
    text = request.text.strip()
    if not text:
        raise HTTPException(status_code=400, detail="Text is required")

    logger.debug(f"Smart parse requested by {current_user.name} ({len(text)} chars)")
    result = run_smart_parse(llm, text, request.users)
    logger.info(f"Smart parse produced {len(result.subtasks)} subtask(s), complex={result.was_complex}")
    return {"success": True, "result": result.model_dump(by_alias=True, mode="json")}


@router.post("/parse-file")
async def parse_file(
    file: UploadFile = File(...),
    users: Optional[str] = Form(None),
    llm: LLMAdapter = Depends(get_llm),
    current_user: User = Depends(get_current_user),
):
    """Extract a task from a PDF or image."""
    filename = (file.filename or "").lower()
    content_type = file.content_type or ""
    is_pdf = filename.endswith(".pdf") or content_type == "application/pdf"
    is_image = content_type.startswith("image/")
    if not is_pdf and not is_image:
        raise HTTPException(status_code=400, detail="File must be a PDF or image")

    team = parse_users_field(users)
    data = await read_upload(file)
    if not data:
        raise HTTPException(status_code=400, detail="No file provided")

    logger.debug(f"File parse requested by {current_user.name}: {file.filename} ({len(data)} bytes)")
    encoded = base64.b64encode(data).decode("ascii")
    if is_pdf:
        source_block = {
            "type": "document",
            "source": {"type": "base64", "media_type": "application/pdf", "data": encoded},
        }
    else:
        media_type = content_type if content_type in IMAGE_MEDIA_TYPES else "image/jpeg"
        source_block = {
            "type": "image",
            "source": {"type": "base64", "media_type": media_type, "data": encoded},
        }
    content = [source_block, {"type": "text", "text": file_parse_prompt(is_pdf, team)}]

    reply = await run_in_threadpool(llm.complete, content, max_tokens=2000)
    result: FileParseResult = validate_file_parse(extract_json(reply), team)
    logger.info(f"File parse produced {len(result.subtasks)} subtask(s) from {file.filename}")
    return {"success": True, "result": result.model_dump(by_alias=True, mode="json")}


@router.post("/transcribe")
async def transcribe(
    audio: UploadFile = File(...),
    parse: bool = Form(False),
    users: Optional[str] = Form(None),
    llm: LLMAdapter = Depends(get_llm),
    transcriber: Transcriber = Depends(get_transcriber),
    current_user: User = Depends(get_current_user),
):
    """Transcribe recorded audio; with parse=true also run smart parse on the transcript."""
    content_type = audio.content_type or "application/octet-stream"
    if not content_type.startswith("audio/") and content_type not in AUDIO_CONTAINER_TYPES:
        raise HTTPException(status_code=400, detail="File must be an audio recording")

    team = parse_users_field(users)
    data = await read_upload(audio)
    if not data:
        raise HTTPException(status_code=400, detail="No audio provided")

    logger.debug(f"Transcription requested by {current_user.name}: {len(data)} bytes")
    text = await run_in_threadpool(
        transcriber.transcribe,
        data,
        filename=audio.filename or "recording.webm",
        content_type=content_type,
    )
    if not text:
        raise HTTPException(status_code=400, detail="No speech detected")

    response = {"success": True, "text": text}
    if parse:
        result = await run_in_threadpool(run_smart_parse, llm, text, team)
        response["result"] = result.model_dump(by_alias=True, mode="json")
    logger.info(f"Transcribed {len(text)} chars (parsed={parse})")
    return response


@router.post("/enhance-task")
def enhance_task(
    request: SmartParseRequest,
    llm: LLMAdapter = Depends(get_llm),
    current_user: User = Depends(get_current_user),
):
    """Rewrite one task title into a clearer, actionable form."""
    text = request.text.strip()
    if not text:
        raise HTTPException(status_code=400, detail="Text is required")

    prompt = enhance_prompt(text, request.users, local_today())
    enhanced: EnhancedTask = validate_enhanced_task(
        extract_json(llm.complete(prompt, max_tokens=500)), text, request.users
    )
    logger.info(f"Task enhanced for {current_user.name}: changed={enhanced.was_enhanced}")
    return {"success": True, "enhanced": enhanced.model_dump(by_alias=True, mode="json")}
