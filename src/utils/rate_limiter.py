"""In-process fixed-window rate limiter.

Each key gets a window that opens on its first request. Within the window at
most ``max_requests`` calls are allowed; the first call after the window has
elapsed opens a fresh one. Bursts of up to twice the limit are possible across
a window boundary.

State lives in process memory and is lost on restart. A deployment with more
than one worker process needs a shared counter store instead.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional

from core.exceptions import RateLimitedError
from utils.clock import Clock, SYSTEM_CLOCK

logger = logging.getLogger(__name__)

# Stale windows are dropped when a new key arrives and the table is this large
SWEEP_THRESHOLD = 10000


@dataclass
class RateLimitWindow:
    window_start: float
    count: int


def make_key(actor_id: str, origin: Optional[str]) -> str:
    """Composite limiter key for one actor from one origin."""
    return f"{origin or 'unknown'}:{actor_id}"


class RateLimiter:
    """Thread-safe fixed-window counter keyed by an arbitrary string."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        name: str = "default",
        clock: Clock = SYSTEM_CLOCK,
    ):
        """Initialize RateLimiter.

        Args:
            max_requests: Calls allowed per key within one window.
            window_seconds: Window length in seconds.
            name: Policy name used in log messages.
            clock: Source of monotonic time.
        """
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.name = name
        self._clock = clock
        self._windows: Dict[str, RateLimitWindow] = {}
        self._lock = threading.Lock()

    def _is_stale(self, window: RateLimitWindow, now: float) -> bool:
        return now - window.window_start > self.window_seconds

    def check(self, key: str) -> bool:
        """Count one request for ``key``.

        Returns:
            True if the request is allowed, False if the key is over its limit.
        """
        with self._lock:
            now = self._clock.monotonic()
            window = self._windows.get(key)
            if window is None or self._is_stale(window, now):
                if window is None and len(self._windows) >= SWEEP_THRESHOLD:
                    self._sweep_locked(now)
                self._windows[key] = RateLimitWindow(window_start=now, count=1)
                return True
            if window.count < self.max_requests:
                window.count += 1
                return True
        logger.warning("Rate limit '%s' exceeded for key %s", self.name, key)
        return False

    def enforce(self, key: str) -> None:
        """Count one request for ``key``.

        Raises:
            RateLimitedError: If the key is over its limit.
        """
        if not self.check(key):
            raise RateLimitedError(key)

    def remaining(self, key: str) -> int:
        """Requests still allowed for ``key`` in its current window."""
        with self._lock:
            window = self._windows.get(key)
            if window is None or self._is_stale(window, self._clock.monotonic()):
                return self.max_requests
            return max(self.max_requests - window.count, 0)

    def _sweep_locked(self, now: float) -> List[str]:
        stale = [k for k, w in self._windows.items() if self._is_stale(w, now)]
        for key in stale:
            del self._windows[key]
        return stale

    def sweep(self) -> int:
        """Drop windows that have elapsed.

        Returns:
            Number of windows removed.
        """
        with self._lock:
            stale = self._sweep_locked(self._clock.monotonic())
        if stale:
            logger.debug("Rate limit '%s' swept %d stale windows", self.name, len(stale))
        return len(stale)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()

    def __len__(self) -> int:
        return len(self._windows)
