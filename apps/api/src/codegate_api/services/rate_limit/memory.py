"""Process local sliding window limiter."""

from __future__ import annotations

import math
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict, Tuple

from .base import RateLimitDecision, retry_after_from


class InMemoryRateLimiter:
    """Sliding window limiter backed by per-key deques of millisecond timestamps.

    State lives in this process only. ``purge_stale`` is driven by the rate
    limit janitor worker.
    """

    def __init__(self, *, time_source: Callable[[], float] = time.monotonic) -> None:
        self._time_source = time_source
        self._windows: Dict[str, Tuple[int, Deque[float]]] = {}
        self._blocks: Dict[str, float] = {}
        self._lock = threading.Lock()

    def _now_ms(self) -> float:
        return self._time_source() * 1000

    @staticmethod
    def _key(client_key: str, operation: str) -> str:
        return f"{operation}:{client_key}"

    async def allow(self, client_key: str, operation: str, window_ms: int, max_requests: int) -> RateLimitDecision:
        now = self._now_ms()
        cutoff = now - window_ms
        key = self._key(client_key, operation)

        with self._lock:
            entry = self._windows.get(key)
            bucket: Deque[float] = entry[1] if entry is not None else deque()
            self._windows[key] = (window_ms, bucket)
            while bucket and bucket[0] <= cutoff:
                bucket.popleft()

            if len(bucket) >= max_requests:
                return RateLimitDecision(
                    allowed=False,
                    retry_after_seconds=retry_after_from(bucket[0], window_ms, now),
                )

            bucket.append(now)
            return RateLimitDecision(allowed=True)

    async def block(self, client_key: str, scope: str, seconds: int) -> None:
        with self._lock:
            self._blocks[self._key(client_key, scope)] = self._now_ms() + seconds * 1000

    async def blocked_for(self, client_key: str, scope: str) -> int | None:
        key = self._key(client_key, scope)
        now = self._now_ms()
        with self._lock:
            until = self._blocks.get(key)
            if until is None:
                return None
            if until <= now:
                del self._blocks[key]
                return None
            return max(1, math.ceil((until - now) / 1000))

    def purge_stale(self) -> int:
        """Drop empty windows and lapsed blocks, returning how many keys were removed."""

        now = self._now_ms()
        removed = 0
        with self._lock:
            for key in list(self._windows):
                window_ms, bucket = self._windows[key]
                while bucket and bucket[0] <= now - window_ms:
                    bucket.popleft()
                if not bucket:
                    del self._windows[key]
                    removed += 1
            for key in [key for key, until in self._blocks.items() if until <= now]:
                del self._blocks[key]
                removed += 1
        return removed

    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._windows) + len(self._blocks)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()
            self._blocks.clear()


__all__ = ["InMemoryRateLimiter"]
