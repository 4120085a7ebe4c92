"""Shared rate limiting types."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    retry_after_seconds: int | None = None


@dataclass(frozen=True)
class RateLimitPolicy:
    """Sliding window limit applied per client and target.

    When ``block_seconds`` is set, crossing the threshold blocks the client for
    every target under this policy.
    """

    name: str
    window_ms: int
    max_requests: int
    block_seconds: int | None = None


class RateLimiter(Protocol):
    async def allow(self, client_key: str, operation: str, window_ms: int, max_requests: int) -> RateLimitDecision:
        ...

    async def block(self, client_key: str, scope: str, seconds: int) -> None:
        ...

    async def blocked_for(self, client_key: str, scope: str) -> int | None:
        ...


def retry_after_from(oldest_ms: float, window_ms: int, now_ms: float) -> int:
    return max(1, math.ceil((oldest_ms + window_ms - now_ms) / 1000))


__all__ = ["RateLimitDecision", "RateLimitPolicy", "RateLimiter", "retry_after_from"]
