"""In-memory throttling for credential-bearing auth endpoints."""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import Deque, Dict

from app.core.exceptions import RateLimitExceededError


class InMemoryRateLimiter:
    """Sliding-window counter per key; suitable for a single process only."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._hits: Dict[str, Deque[float]] = {}

    def _prune(self, key: str, window_seconds: int, now: float) -> Deque[float]:
        hits = self._hits.setdefault(key, deque())
        cutoff = now - window_seconds
        while hits and hits[0] < cutoff:
            hits.popleft()
        return hits

    def allow(self, key: str, limit: int, window_seconds: int) -> bool:
        now = time.monotonic()
        with self._lock:
            hits = self._prune(key, window_seconds, now)
            if len(hits) >= limit:
                return False
            hits.append(now)
            return True

    def enforce(self, key: str, per_minute: int, per_hour: int, message: str) -> None:
        """
        Count one attempt against both the minute and hour windows

        Raises:
            RateLimitExceededError: If either window is already full
        """
        if not self.allow(f"{key}:min", per_minute, 60):
            raise RateLimitExceededError(message)
        if not self.allow(f"{key}:hour", per_hour, 3600):
            raise RateLimitExceededError(message)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


rate_limiter = InMemoryRateLimiter()
