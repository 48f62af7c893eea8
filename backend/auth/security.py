"""
Security utilities for PIN hashing and JWT session tokens.

This module provides cryptographic functions for:
- PIN hashing using Argon2id (memory-hard, GPU-resistant)
- PIN format validation
- JWT access token creation and verification (session identity)
"""

import logging
import os
import secrets
from datetime import timedelta
from typing import Optional, Dict, Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from time_utils import utc_now

logger = logging.getLogger(__name__)

PIN_LENGTH = 4


def is_production_like() -> bool:
    """
    Check if the current environment is production-like (production or staging).

    Returns:
        True if ENVIRONMENT is "production" or "staging", False otherwise
    """
    env = os.environ.get("ENVIRONMENT", "development").lower()
    return env in ("production", "staging")


# PIN hashing configuration using Argon2id
# A 4-digit PIN has a tiny keyspace, so a slow memory-hard hash matters more than usual
pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")

# JWT configuration
SECRET_KEY = os.environ.get("JWT_SECRET_KEY")
if not SECRET_KEY:
    # CRITICAL: In production, this MUST be set via environment variable
    if is_production_like():
        raise ValueError(
            "JWT_SECRET_KEY environment variable is required in production. "
            "Generate a secure key with: python -c 'import secrets; print(secrets.token_urlsafe(32))'"
        )
    else:
        SECRET_KEY = "dev-insecure-key-" + secrets.token_urlsafe(32)
        logger.warning(
            "⚠️  JWT_SECRET_KEY not set! Using temporary development key. "
            "This is INSECURE for production. Set JWT_SECRET_KEY environment variable."
        )

ALGORITHM = os.environ.get("JWT_ALGORITHM", "HS256")

# Sessions last a working day by default; PIN login is meant to be quick to repeat
try:
    ACCESS_TOKEN_EXPIRE_MINUTES = int(os.environ.get("ACCESS_TOKEN_EXPIRE_MINUTES", "720"))
    if ACCESS_TOKEN_EXPIRE_MINUTES < 1 or ACCESS_TOKEN_EXPIRE_MINUTES > 10080:  # 1 min to 7 days
        logger.warning(
            f"⚠️  ACCESS_TOKEN_EXPIRE_MINUTES={ACCESS_TOKEN_EXPIRE_MINUTES} is outside safe range (1-10080). "
            "Using default of 720 minutes."
        )
        ACCESS_TOKEN_EXPIRE_MINUTES = 720
except ValueError:
    logger.warning(
        "⚠️  Invalid ACCESS_TOKEN_EXPIRE_MINUTES value in environment. Using default of 720 minutes."
    )
    ACCESS_TOKEN_EXPIRE_MINUTES = 720

SUPPORTED_ALGORITHMS = ["HS256", "HS384", "HS512"]
if ALGORITHM not in SUPPORTED_ALGORITHMS:
    logger.warning(
        f"⚠️  Unsupported JWT_ALGORITHM={ALGORITHM}. Using HS256. "
        f"Supported: {', '.join(SUPPORTED_ALGORITHMS)}"
    )
    ALGORITHM = "HS256"


def is_valid_pin(pin: Any) -> bool:
    """
    Check that a PIN is exactly four ASCII digits.

    Example:
        >>> is_valid_pin("1234")
        True
        >>> is_valid_pin("12a4")
        False
    """
    return (
        isinstance(pin, str)
        and len(pin) == PIN_LENGTH
        and all(ch in "0123456789" for ch in pin)
    )


def hash_pin(pin: str) -> str:
    """
    Hash a PIN using Argon2id.

    Args:
        pin: Four-digit PIN string

    Returns:
        Hashed PIN string

    Raises:
        ValueError: if the PIN is not exactly four digits

    Example:
        >>> hashed = hash_pin("1234")
        >>> verify_pin("1234", hashed)
        True
    """
    if not is_valid_pin(pin):
        raise ValueError("PIN must be exactly 4 digits")
    logger.debug("Hashing PIN")
    return pwd_context.hash(pin)


def verify_pin(pin: str, pin_hash: Optional[str]) -> bool:
    """
    Verify a PIN against its stored hash.

    Malformed PINs and missing or unreadable hashes verify as False
    rather than raising.
    """
    if not is_valid_pin(pin) or not pin_hash:
        return False
    try:
        is_valid = pwd_context.verify(pin, pin_hash)
    except (ValueError, TypeError) as e:
        logger.info(f"PIN hash could not be verified: {e}")
        return False
    logger.debug(f"PIN verification result: {is_valid}")
    return is_valid


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token.

    Args:
        data: Payload data to encode in the token (typically includes sub, name, role)
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string

    Example:
        >>> token = create_access_token({"sub": "3f0c...", "name": "Derrick"})
    """
    to_encode = data.copy()
    expire = utc_now() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire, "type": "access"})

    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    logger.debug(f"Access token created for sub={data.get('sub')}, expires at: {expire}")
    return encoded_jwt


def verify_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Verify and decode a JWT token.

    Returns:
        Decoded token payload if valid, None otherwise
    """
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        logger.debug(f"Token verified successfully for user: {payload.get('sub')}")
        return payload
    except JWTError as e:
        logger.info(f"JWT verification failed: {str(e)}")
        return None
