"""Login Throttle - per-key failed-attempt counter with a fixed lockout window.

Invariants:
    - A key is blocked once it has max_attempts failures inside the window
    - The window starts at the first failure and lasts lockout_seconds
    - Successful login resets the key
    - Stale keys are pruned on every write (bounded memory)

Design Decisions:
    - In-memory per process: single-worker deployment, state lost on restart
      (ADR: same trade-off as the category cache)
    - Injectable clock: tests advance time without sleeping
"""

import math
import time
from collections.abc import Callable
from dataclasses import dataclass

from storefront.core.errors import RateLimitedError


@dataclass
class _Window:
    failures: int
    started_at: float


class LoginThrottle:
    """Counts failed logins per client key."""

    def __init__(
        self,
        max_attempts: int = 5,
        lockout_seconds: int = 900,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_attempts = max_attempts
        self.lockout_seconds = lockout_seconds
        self._clock = clock
        self._windows: dict[str, _Window] = {}

    def _current(self, key: str) -> _Window | None:
        window = self._windows.get(key)
        if window and self._clock() - window.started_at >= self.lockout_seconds:
            del self._windows[key]
            return None
        return window

    def check(self, key: str) -> None:
        """Raise RateLimitedError if key is locked out."""
        window = self._current(key)
        if window and window.failures >= self.max_attempts:
            remaining = self.lockout_seconds - (self._clock() - window.started_at)
            raise RateLimitedError(
                "Too many login attempts. Try again later.",
                retry_after_seconds=max(1, math.ceil(remaining)),
            )

    def record_failure(self, key: str) -> int:
        """Count one failure; returns the failures in the current window."""
        self._prune()
        window = self._current(key)
        if window is None:
            window = _Window(failures=0, started_at=self._clock())
            self._windows[key] = window
        window.failures += 1
        return window.failures

    def reset(self, key: str) -> None:
        self._windows.pop(key, None)

    def clear(self) -> None:
        self._windows.clear()

    def _prune(self) -> None:
        now = self._clock()
        stale = [
            k for k, w in self._windows.items()
            if now - w.started_at >= self.lockout_seconds
        ]
        for key in stale:
            del self._windows[key]
