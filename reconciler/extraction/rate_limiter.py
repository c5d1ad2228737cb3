"""Sliding-window rate limiter for provider calls.

One instance is constructed at startup and injected into every provider
adapter, so adapters sharing a credential share its window. Each credential
key has its own lock; check-and-record is atomic under that lock, so two
callers racing for the last slot cannot both be admitted.
"""

import hashlib
import logging
import threading
import time
from collections import deque
from collections.abc import Callable

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60.0


def credential_key(provider: str, api_key: str) -> str:
    """Stable limiter key for a credential without keeping the secret itself."""
    digest = hashlib.sha256(api_key.encode("utf-8")).hexdigest()[:16]
    return f"{provider}:{digest}"


class RateLimiter:
    """Per-key sliding-window admission control.

    Attributes:
        window_seconds: Length of the sliding window
    """

    def __init__(
        self,
        window_seconds: float = WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize limiter.

        Args:
            window_seconds: Window length (one minute by default)
            clock: Monotonic time source; tests inject a fake
        """
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, deque[float]] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, key: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
                self._windows[key] = deque()
            return lock

    def try_acquire(self, key: str, max_per_window: int) -> bool:
        """Admit one request for key if the window has room.

        Args:
            key: Credential identity
            max_per_window: Requests allowed per window

        Returns:
            True if admitted (and recorded), False if the window is full
        """
        lock = self._lock_for(key)
        with lock:
            now = self._clock()
            window = self._windows[key]
            cutoff = now - self.window_seconds
            while window and window[0] <= cutoff:
                window.popleft()

            if len(window) >= max_per_window:
                logger.debug(f"Rate limit reached for {key}: {len(window)}/{max_per_window}")
                return False

            window.append(now)
            return True

    def remaining(self, key: str, max_per_window: int) -> int:
        """Slots left in the current window for key."""
        lock = self._lock_for(key)
        with lock:
            cutoff = self._clock() - self.window_seconds
            used = sum(1 for stamp in self._windows[key] if stamp > cutoff)
            return max(max_per_window - used, 0)
