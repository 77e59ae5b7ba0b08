from __future__ import annotations

import math
import threading
import time
from collections import deque
from typing import Callable


class SlidingWindowRateLimiter:
    """
    Trailing-window request budget per caller, held in process memory.

    Each limiter owns its limit and window. Callers that went quiet for a
    whole window are dropped on the next sweep, so the key map only holds
    callers seen recently.
    """

    def __init__(self, limit: int, window_seconds: int, clock: Callable[[], float] = time.monotonic) -> None:
        self.limit = max(1, int(limit))
        self.window_seconds = max(1, int(window_seconds))
        self._clock = clock
        self._hits: dict[str, deque[float]] = {}
        self._lock = threading.Lock()
        self._next_sweep = 0.0

    def hit(self, key: str) -> float:
        """Record a request for `key`. Returns 0 when allowed, else seconds until a slot frees up."""
        now = self._clock()
        cutoff = now - self.window_seconds
        with self._lock:
            if now >= self._next_sweep:
                self._sweep(cutoff)
                self._next_sweep = now + self.window_seconds
            hits = self._hits.get(key)
            if hits is None:
                hits = self._hits[key] = deque()
            while hits and hits[0] <= cutoff:
                hits.popleft()
            if len(hits) >= self.limit:
                return max(hits[0] - cutoff, 0.001)
            hits.append(now)
            return 0.0

    def _sweep(self, cutoff: float) -> None:
        idle = [key for key, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
        for key in idle:
            del self._hits[key]

    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._hits)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()
            self._next_sweep = 0.0


def caller_key(payload: dict) -> str:
    """Budget key for an authenticated caller: the cron runner shares one, users get their own."""
    if payload.get('cron'):
        return 'cron'
    return f"user:{payload.get('sub') or 'anonymous'}"


def retry_after_header(seconds: float) -> dict[str, str]:
    return {'Retry-After': str(max(1, math.ceil(seconds)))}
