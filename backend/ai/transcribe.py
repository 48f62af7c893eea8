"""
Speech-to-text for voice-entered tasks.
"""

import logging
from typing import Optional, Protocol

import openai
from openai import OpenAI

from ai.llm import AIServiceError

logger = logging.getLogger(__name__)


class Transcriber(Protocol):
    def transcribe(self, audio: bytes, *, filename: str, content_type: str) -> str: ...


class OpenAITranscriber:
    """Whisper transcription through the OpenAI SDK."""

    def __init__(self, *, api_key: str, model: str = "whisper-1", timeout_s: float = 60.0):
        self.api_key = api_key
        self.model = model
        self.timeout_s = timeout_s
        self._client: Optional[OpenAI] = None

    def _get_client(self) -> OpenAI:
        if self._client is None:
            if not self.api_key:
                raise AIServiceError("OPENAI_API_KEY is not configured")
            self._client = OpenAI(api_key=self.api_key, timeout=self.timeout_s, max_retries=0)
        return self._client

    def transcribe(self, audio: bytes, *, filename: str, content_type: str) -> str:
        client = self._get_client()
        logger.debug(f"Transcribing {len(audio)} bytes ({content_type}) with {self.model}")
        try:
            result = client.audio.transcriptions.create(
                model=self.model,
                file=(filename, audio, content_type),
            )
        except openai.OpenAIError as e:
            logger.error(f"Transcription failed: {e}")
            raise AIServiceError(f"Transcription failed: {e}") from e
        return (result.text or "").strip()
