"""Fixed-window per-user admission control.

State lives in process memory and resets on restart.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from taskrelay.errors import AdmissionDenied

logger = logging.getLogger(__name__)


@dataclass
class RateWindow:
    count: int
    reset_at: float


class RateLimiter:
    """Admit at most `limit` turns per user per `window` seconds."""

    def __init__(
        self,
        limit: int = 30,
        window: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
        cleanup_interval: float = 300.0,
    ) -> None:
        self.limit = limit
        self.window = window
        self.cleanup_interval = cleanup_interval
        self._clock = clock
        self._windows: dict[str, RateWindow] = {}
        self._lock = threading.Lock()
        self._last_cleanup = clock()

    def check(self, user_id: str) -> bool:
        """Count one attempt for `user_id` and report whether it is admitted."""
        now = self._clock()
        with self._lock:
            self._prune(now)
            entry = self._windows.get(user_id)
            if entry is None or now > entry.reset_at:
                self._windows[user_id] = RateWindow(count=1, reset_at=now + self.window)
                return True
            entry.count += 1
            admitted = entry.count <= self.limit

        if not admitted:
            logger.info("Rate limit reached for %s (%d/%d)", user_id, entry.count, self.limit)
        return admitted

    def _prune(self, now: float) -> None:
        """Drop expired windows at most once per `cleanup_interval`. Caller holds the lock."""
        if now - self._last_cleanup < self.cleanup_interval:
            return
        self._last_cleanup = now
        stale = [user_id for user_id, entry in self._windows.items() if now > entry.reset_at]
        for user_id in stale:
            del self._windows[user_id]
        if stale:
            logger.debug("Pruned %d expired rate windows", len(stale))

    def admit(self, user_id: str) -> None:
        """Like check(), but raises AdmissionDenied on rejection."""
        if not self.check(user_id):
            raise AdmissionDenied(user_id, self.retry_after(user_id))

    def retry_after(self, user_id: str) -> float:
        """Seconds until `user_id`'s current window resets (0 if none)."""
        with self._lock:
            entry = self._windows.get(user_id)
        if entry is None:
            return 0.0
        return max(0.0, entry.reset_at - self._clock())

    def window_for(self, user_id: str) -> RateWindow | None:
        with self._lock:
            entry = self._windows.get(user_id)
            return RateWindow(entry.count, entry.reset_at) if entry else None
