"""
Sliding-log rate limiting for the public auth endpoints.

Each key (e.g. "signin:ip:1.2.3.4") keeps the timestamps of its recent hits.
A hit is allowed while fewer than max_requests fall inside the window.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List

from ..utils.exceptions import RateLimited


@dataclass
class SlidingLog:
    """Timestamps of accepted hits for one key"""

    max_requests: int
    window_seconds: float
    hits: List[float] = field(default_factory=list)

    def _clean(self, now: float) -> None:
        cutoff = now - self.window_seconds
        self.hits = [ts for ts in self.hits if ts > cutoff]

    def hit(self, now: float) -> bool:
        self._clean(now)
        if len(self.hits) >= self.max_requests:
            return False
        self.hits.append(now)
        return True

    def retry_after(self, now: float) -> int:
        if not self.hits:
            return 0
        return max(1, int(self.hits[0] + self.window_seconds - now) + 1)


class RateLimiter:
    """Thread-safe keyed sliding-log limiter."""

    def __init__(self, enabled: bool = True, clock: Callable[[], float] = time.monotonic):
        self.enabled = enabled
        self._clock = clock
        self._logs: Dict[str, SlidingLog] = {}
        self._lock = threading.Lock()

    def check(self, key: str, max_requests: int, window_seconds: float, message: str) -> None:
        """Record a hit for key; raise RateLimited when over the limit."""
        if not self.enabled:
            return
        now = self._clock()
        with self._lock:
            log = self._logs.get(key)
            if log is None:
                log = SlidingLog(max_requests=max_requests, window_seconds=window_seconds)
                self._logs[key] = log
            if not log.hit(now):
                raise RateLimited(message, retry_after=log.retry_after(now))
            self._prune(now)

    def _prune(self, now: float) -> None:
        # Drop keys whose whole window has passed
        stale = [
            k for k, log in self._logs.items()
            if log.hits and log.hits[-1] <= now - log.window_seconds
        ]
        for k in stale:
            del self._logs[k]

    def reset(self) -> None:
        with self._lock:
            self._logs.clear()
