"""
Language-model adapter used by the task parsing endpoints.

The service only needs one capability: send a user message (plain text or
a list of content blocks such as a base64 PDF) and get text back. The
AnthropicMessagesAdapter talks to the Messages REST API with httpx; tests
swap in a fake through app.state.llm.
"""

import json
import logging
import re
from typing import Any, Dict, List, Protocol, Union

import httpx

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"

Content = Union[str, List[Dict[str, Any]]]


class AIServiceError(Exception):
    """The language model or speech service failed or returned garbage."""


class LLMAdapter(Protocol):
    """Interface for single-turn completions."""

    def complete(self, content: Content, *, max_tokens: int = 1000) -> str: ...


class AnthropicMessagesAdapter:
    """Small adapter over the Anthropic Messages REST API."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        base_url: str = "https://api.anthropic.com",
        timeout_s: float = 60.0,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s

    def complete(self, content: Content, *, max_tokens: int = 1000) -> str:
        if not self.api_key:
            raise AIServiceError("ANTHROPIC_API_KEY is not configured")

        payload = {
            "model": self.model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": content}],
        }
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }
        logger.debug(f"LLM request model={self.model} max_tokens={max_tokens}")
        try:
            with httpx.Client(base_url=self.base_url, timeout=self.timeout_s) as client:
                response = client.post("/v1/messages", json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"LLM request failed: {e}")
            raise AIServiceError(f"Request failed: {e}") from e

        if response.status_code >= 400:
            logger.error(f"LLM API error {response.status_code}: {response.text[:500]}")
            raise AIServiceError(f"API error: {response.status_code}")

        try:
            data = response.json()
        except json.JSONDecodeError as e:
            raise AIServiceError("Invalid JSON response from API") from e

        text = "".join(
            block.get("text", "")
            for block in data.get("content", [])
            if block.get("type") == "text"
        )
        if not text:
            raise AIServiceError("No text response from AI")
        return text


_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$")
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def extract_json(text: str) -> Dict[str, Any]:
    """
    Pull the JSON object out of a model reply.

    Tolerates markdown code fences and chatter around the object.

    Raises:
        AIServiceError: if no JSON object can be decoded
    """
    cleaned = _FENCE_RE.sub("", text.strip())
    match = _OBJECT_RE.search(cleaned)
    if not match:
        logger.error(f"Failed to parse AI response: {text[:200]}")
        raise AIServiceError("Failed to parse AI response")
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        logger.error(f"AI response is not valid JSON: {e}")
        raise AIServiceError("Failed to parse AI response") from e
    if not isinstance(parsed, dict):
        raise AIServiceError("Failed to parse AI response")
    return parsed
