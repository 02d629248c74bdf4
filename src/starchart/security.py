"""PIN hashing and failed-attempt lockout for the shared parent PIN."""

from __future__ import annotations

import hashlib
import hmac
import threading
from collections import deque
from datetime import datetime, timedelta
from secrets import token_hex
from typing import Deque, Optional

PIN_HASH_ALGORITHM = "pbkdf2_sha256"
PIN_HASH_ITERATIONS = 120_000


def hash_pin(pin: str, *, salt: Optional[str] = None, iterations: int = PIN_HASH_ITERATIONS) -> str:
    """Return an encoded ``algorithm$iterations$salt$digest`` string for ``pin``."""

    salt = salt or token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", pin.encode("utf-8"), salt.encode("utf-8"), iterations)
    return f"{PIN_HASH_ALGORITHM}${iterations}${salt}${digest.hex()}"


def check_pin(pin: str, encoded: str) -> bool:
    """Compare ``pin`` against a value produced by :func:`hash_pin`."""

    try:
        algorithm, raw_iterations, salt, expected = encoded.split("$", 3)
        iterations = int(raw_iterations)
    except ValueError:
        return False
    if algorithm != PIN_HASH_ALGORITHM:
        return False
    candidate = hash_pin(pin, salt=salt, iterations=iterations).rsplit("$", 1)[1]
    return hmac.compare_digest(candidate, expected)


class PinGate:
    """Track failed PIN attempts for the single household credential."""

    def __init__(self, *, max_attempts: int = 5, lockout_minutes: int = 15) -> None:
        self._max_attempts = max_attempts
        self._lockout_window = timedelta(minutes=lockout_minutes)
        self._failures: Deque[datetime] = deque()
        self._lock = threading.Lock()

    def record_attempt(self, *, success: bool, at: Optional[datetime] = None) -> bool:
        """Record a verification attempt and return whether further attempts are allowed."""

        now = at or datetime.now()
        with self._lock:
            self._prune(now)
            if success:
                self._failures.clear()
                return True
            self._failures.append(now)
            return len(self._failures) < self._max_attempts

    def is_locked(self, *, at: Optional[datetime] = None) -> bool:
        """Return ``True`` while too many failures sit inside the lockout window."""

        now = at or datetime.now()
        with self._lock:
            self._prune(now)
            return len(self._failures) >= self._max_attempts

    def verify(self, pin: Optional[str], encoded: Optional[str], *, at: Optional[datetime] = None) -> bool:
        if not pin or not encoded or self.is_locked(at=at):
            return False
        success = check_pin(pin, encoded)
        self.record_attempt(success=success, at=at)
        return success

    def reset(self) -> None:
        with self._lock:
            self._failures.clear()

    def _prune(self, now: datetime) -> None:
        # Caller holds the lock.
        while self._failures and now - self._failures[0] > self._lockout_window:
            self._failures.popleft()


__all__ = ["PIN_HASH_ALGORITHM", "PinGate", "check_pin", "hash_pin"]
