"""In-memory sliding window limiter used to throttle credential attempts."""

from __future__ import annotations

import time
from collections import deque
from threading import Lock
from typing import Callable, Deque, DefaultDict, Protocol


class AttemptLimiter(Protocol):
    def allow(self, key: str) -> bool: ...

    def reset(self, key: str) -> None: ...


class SlidingWindowRateLimiter:
    """Thread-safe sliding window limiter keyed by attempt subject."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: int,
        *,
        time_source: Callable[[], float] = time.time,
    ) -> None:
        """Initialise limiter parameters and per-key storage."""
        self._max_requests = max_requests
        self._window = window_seconds
        self._time = time_source
        self._events: DefaultDict[str, Deque[float]] = DefaultDict(deque)
        self._lock = Lock()

    def allow(self, key: str) -> bool:
        """Record an attempt and return ``False`` once the window is full."""
        now = self._time()
        with self._lock:
            attempts = self._events[key]
            while attempts and now - attempts[0] >= self._window:
                attempts.popleft()
            if len(attempts) >= self._max_requests:
                return False
            attempts.append(now)
            return True

    def reset(self, key: str) -> None:
        """Forget recorded attempts, e.g. after a successful login."""
        with self._lock:
            self._events.pop(key, None)
