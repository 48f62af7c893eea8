"""
Failed-PIN lockout tracking.

Each user moves through Idle -> Attempting -> LockedOut -> Idle:

- every wrong PIN increments the attempt counter;
- reaching max_attempts locks the user for lockout_seconds;
- once the lock expires the entry is dropped (attempts back to zero);
- a correct PIN clears the entry from any non-locked state.

State lives in a LockoutTable instance held on app.state, never in module
globals, so tests can build a fresh table with a fake clock. It is not
persisted.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from time_utils import utc_now

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_LOCKOUT_SECONDS = 30


@dataclass
class LockoutState:
    attempts: int = 0
    locked_until: Optional[datetime] = None


@dataclass(frozen=True)
class LockoutStatus:
    locked: bool
    remaining_seconds: int = 0


@dataclass(frozen=True)
class LockoutAttempt:
    attempts: int
    locked_until: Optional[datetime] = None


class LockoutTable:
    """Per-user failed attempt counters keyed by user id."""

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        lockout_seconds: int = DEFAULT_LOCKOUT_SECONDS,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.max_attempts = max_attempts
        self.lockout_seconds = lockout_seconds
        self._clock = clock
        self._states: Dict[str, LockoutState] = {}

    def _expire(self, user_id: str) -> Optional[LockoutState]:
        """Return the live state for a user, dropping it if its lock has run out."""
        state = self._states.get(user_id)
        if state is None:
            return None
        if state.locked_until is not None and self._clock() >= state.locked_until:
            logger.debug(f"Lockout expired for user {user_id}; attempts reset")
            del self._states[user_id]
            return None
        return state

    def is_locked_out(self, user_id: str) -> LockoutStatus:
        state = self._expire(user_id)
        if state is None or state.locked_until is None:
            return LockoutStatus(locked=False)
        remaining = (state.locked_until - self._clock()).total_seconds()
        return LockoutStatus(locked=True, remaining_seconds=max(1, math.ceil(remaining)))

    def increment_lockout(self, user_id: str) -> LockoutAttempt:
        """
        Record one failed attempt.

        Callers must check is_locked_out first; attempts made while locked
        are not counted.
        """
        state = self._expire(user_id)
        if state is None:
            state = LockoutState()
            self._states[user_id] = state
        if state.locked_until is not None:
            return LockoutAttempt(attempts=state.attempts, locked_until=state.locked_until)

        state.attempts += 1
        if state.attempts >= self.max_attempts:
            state.locked_until = self._clock() + timedelta(seconds=self.lockout_seconds)
            logger.warning(f"User {user_id} locked out until {state.locked_until.isoformat()}")
        else:
            logger.info(f"Failed PIN attempt {state.attempts}/{self.max_attempts} for user {user_id}")
        return LockoutAttempt(attempts=state.attempts, locked_until=state.locked_until)

    def clear_lockout(self, user_id: str) -> None:
        self._states.pop(user_id, None)

    def attempts(self, user_id: str) -> int:
        state = self._expire(user_id)
        return state.attempts if state else 0

    def attempts_remaining(self, user_id: str) -> int:
        return max(0, self.max_attempts - self.attempts(user_id))

    def reset(self) -> None:
        self._states.clear()
