"""
Authentication API endpoints.

This module provides REST API endpoints for:
- Listing users for the login picker
- Registration with a name and a 4-digit PIN
- PIN login with failed-attempt lockout
- Session lookup and welcome-back bookkeeping
"""

import logging
import random
from datetime import date, datetime, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

import schemas
from database import get_db
from models import User, UserRole
from auth.dependencies import get_current_user, get_lockout_table
from auth.lockout import LockoutTable
from auth.security import create_access_token, hash_pin, is_valid_pin, verify_pin
from time_utils import hours_since, local_today, utc_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

USER_COLORS = [
    "#0033A0", "#72B5E8", "#C9A227", "#10b981",
    "#f59e0b", "#8b5cf6", "#ec4899", "#ef4444",
]

WELCOME_INTERVAL_HOURS = 4


# Request/Response schemas
class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    pin: str
    confirm_pin: Optional[str] = None


class LoginRequest(BaseModel):
    user_id: str
    pin: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: schemas.UserProfile
    show_welcome: bool = False


class LockoutResponse(BaseModel):
    locked: bool
    remaining_seconds: int = 0
    attempts_remaining: int


def should_show_welcome(user: User, now: Optional[datetime] = None) -> bool:
    """
    Decide whether the welcome-back summary is due for a user.

    It is shown when the previous login was at least four hours ago and
    it has not already been shown within the last four hours.
    """
    since_login = hours_since(user.last_login, now)
    if since_login is None or since_login < WELCOME_INTERVAL_HOURS:
        return False
    since_shown = hours_since(user.welcome_shown_at, now)
    if since_shown is not None and since_shown < WELCOME_INTERVAL_HOURS:
        return False
    return True


def update_login_streak(user: User, today: Optional[date] = None) -> None:
    """Extend the daily login streak, or restart it after a missed day."""
    today = today or local_today()
    last = user.streak_last_date
    if last == today:
        return
    if last == today - timedelta(days=1):
        user.streak_count = (user.streak_count or 0) + 1
    else:
        user.streak_count = 1
    user.streak_last_date = today


def _issue_token(user: User) -> str:
    return create_access_token({"sub": user.id, "name": user.name, "role": user.role})


@router.get("/users", response_model=List[schemas.UserPublic])
def list_users(db: Session = Depends(get_db)):
    """List users for the login screen (no secrets)."""
    users = db.query(User).order_by(User.name).all()
    logger.debug(f"Listing {len(users)} users for login picker")
    return users


@router.post("/register", response_model=LoginResponse, status_code=status.HTTP_201_CREATED)
def register(request: RegisterRequest, db: Session = Depends(get_db)):
    """
    Register a new user and sign them in.

    Raises:
        HTTPException: 400 on blank name, malformed PIN or mismatched confirmation;
        409 if the name is already taken
    """
    name = request.name.strip()
    logger.info(f"Registration attempt for name: {name}")

    if not name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Enter your name")
    if not is_valid_pin(request.pin):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Enter a 4-digit PIN")
    if request.confirm_pin is not None and request.confirm_pin != request.pin:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="PINs don't match")

    if db.query(User).filter(User.name == name).first():
        logger.info(f"Registration failed: name already taken: {name}")
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Name taken")

    # First account on a fresh install becomes the admin
    role = UserRole.admin.value if db.query(User).count() == 0 else UserRole.member.value
    user = User(
        name=name,
        pin_hash=hash_pin(request.pin),
        color=random.choice(USER_COLORS),
        role=role,
        last_login=utc_now(),
    )
    update_login_streak(user)
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info(f"Registration race lost for name: {name}")
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Name taken")
    db.refresh(user)

    logger.info(f"User registered successfully: {user.name} (ID: {user.id})")
    return {"access_token": _issue_token(user), "user": user, "show_welcome": False}


@router.post("/login", response_model=LoginResponse)
def login(
    request: LoginRequest,
    db: Session = Depends(get_db),
    lockouts: LockoutTable = Depends(get_lockout_table),
):
    """
    Sign in with a user id and PIN.

    Raises:
        HTTPException: 400 malformed PIN (not counted); 429 while locked out
        (not counted); 404 unknown user (not counted); 401 wrong PIN;
        429 when the wrong PIN triggered the lockout
    """
    logger.info(f"Login attempt for user: {request.user_id}")

    if not is_valid_pin(request.pin):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Enter a 4-digit PIN")

    lock = lockouts.is_locked_out(request.user_id)
    if lock.locked:
        logger.info(f"Login rejected: user {request.user_id} locked for {lock.remaining_seconds}s")
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Locked. Wait {lock.remaining_seconds}s",
            headers={"Retry-After": str(lock.remaining_seconds)},
        )

    user = db.query(User).filter(User.id == request.user_id).first()
    if not user:
        logger.info(f"Login failed: user not found: {request.user_id}")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    if not verify_pin(request.pin, user.pin_hash):
        attempt = lockouts.increment_lockout(user.id)
        if attempt.locked_until is not None:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=f"Too many attempts. Wait {lockouts.lockout_seconds} seconds.",
                headers={"Retry-After": str(lockouts.lockout_seconds)},
            )
        remaining = lockouts.attempts_remaining(user.id)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Wrong PIN. {remaining} left.",
        )

    lockouts.clear_lockout(user.id)

    # Decide on the welcome-back summary before last_login moves
    show_welcome = should_show_welcome(user)
    user.last_login = utc_now()
    update_login_streak(user)
    db.commit()
    db.refresh(user)

    logger.info(f"User logged in successfully: {user.name} (ID: {user.id})")
    return {"access_token": _issue_token(user), "user": user, "show_welcome": show_welcome}


@router.get("/lockout/{user_id}", response_model=LockoutResponse)
def lockout_status(user_id: str, lockouts: LockoutTable = Depends(get_lockout_table)):
    """Lockout countdown for the login screen, which polls this every second."""
    lock = lockouts.is_locked_out(user_id)
    return {
        "locked": lock.locked,
        "remaining_seconds": lock.remaining_seconds,
        "attempts_remaining": lockouts.attempts_remaining(user_id),
    }


@router.get("/me", response_model=schemas.UserProfile)
def me(current_user: User = Depends(get_current_user)):
    return current_user


@router.post("/welcome-shown", response_model=schemas.UserProfile)
def mark_welcome_shown(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Record that the welcome-back summary was displayed."""
    current_user.welcome_shown_at = utc_now()
    db.commit()
    db.refresh(current_user)
    return current_user
