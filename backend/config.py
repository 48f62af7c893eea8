"""
Application configuration loaded from environment variables.

Every value is read once at import time with a safe default. Out-of-range
or unparsable values fall back to the default and log a warning instead of
failing startup. JWT settings live in auth/security.py next to the code
that uses them.
"""

import logging
import os
from typing import List

logger = logging.getLogger(__name__)


def _int_setting(name: str, default: int, minimum: int, maximum: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"⚠️  Invalid {name} value in environment. Using default of {default}.")
        return default
    if value < minimum or value > maximum:
        logger.warning(
            f"⚠️  {name}={value} is outside safe range ({minimum}-{maximum}). "
            f"Using default of {default}."
        )
        return default
    return value


def _float_setting(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"⚠️  Invalid {name} value in environment. Using default of {default}.")
        return default


def _list_setting(name: str, default: List[str]) -> List[str]:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return list(default)
    return [part.strip() for part in raw.split(",") if part.strip()]


ENVIRONMENT = os.environ.get("ENVIRONMENT", "development")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# Server
SERVER_HOST = os.environ.get("HOST", "0.0.0.0")
SERVER_PORT = _int_setting("PORT", 8000, 1, 65535)

# Database
DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./todos.db")

# CORS origins for browser clients
CORS_ORIGINS = _list_setting(
    "CORS_ORIGINS",
    [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
)

# PIN lockout policy
LOCKOUT_MAX_ATTEMPTS = _int_setting("LOCKOUT_MAX_ATTEMPTS", 3, 1, 20)
LOCKOUT_SECONDS = _int_setting("LOCKOUT_SECONDS", 30, 1, 3600)

# Users allowed to read the activity feed (empty = every signed-in user)
ACTIVITY_FEED_USERS = _list_setting("ACTIVITY_FEED_USERS", [])

# Language model (task parsing)
ANTHROPIC_API_KEY = os.environ.get("ANTHROPIC_API_KEY", "")
ANTHROPIC_MODEL = os.environ.get("ANTHROPIC_MODEL", "claude-sonnet-4-20250514")
ANTHROPIC_BASE_URL = os.environ.get("ANTHROPIC_BASE_URL", "https://api.anthropic.com")
AI_TIMEOUT_SECONDS = _float_setting("AI_TIMEOUT_SECONDS", 60.0)

# Speech-to-text
OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY", "")
TRANSCRIBE_MODEL = os.environ.get("TRANSCRIBE_MODEL", "whisper-1")

# Upload limits for AI file parsing and transcription
MAX_UPLOAD_SIZE = 20 * 1024 * 1024  # 20MB

if not ANTHROPIC_API_KEY:
    logger.warning("⚠️  ANTHROPIC_API_KEY not set. AI parsing endpoints will return 500.")
