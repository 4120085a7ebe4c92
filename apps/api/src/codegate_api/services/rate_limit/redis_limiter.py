"""Sliding window limiter shared across instances through Redis."""

from __future__ import annotations

import time
from typing import Callable
from uuid import uuid4

from redis.asyncio import Redis

from codegate_api.core.settings import settings

from .base import RateLimitDecision, retry_after_from


class RedisRateLimiter:
    """Sorted-set windows keyed by client and operation, TTL keys for blocks."""

    def __init__(
        self,
        redis_client: Redis | None = None,
        *,
        prefix: str = "codegate:ratelimit",
        time_source: Callable[[], float] = time.time,
    ) -> None:
        self._redis = redis_client or Redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        self._prefix = prefix
        self._time_source = time_source

    def _window_key(self, client_key: str, operation: str) -> str:
        return f"{self._prefix}:window:{operation}:{client_key}"

    def _block_key(self, client_key: str, scope: str) -> str:
        return f"{self._prefix}:block:{scope}:{client_key}"

    async def allow(self, client_key: str, operation: str, window_ms: int, max_requests: int) -> RateLimitDecision:
        now = self._time_source() * 1000
        key = self._window_key(client_key, operation)
        member = f"{int(now)}-{uuid4().hex[:8]}"

        async with self._redis.pipeline(transaction=True) as pipe:
            _, _, count, oldest, _ = await (
                pipe.zremrangebyscore(key, 0, now - window_ms)
                .zadd(key, {member: now})
                .zcard(key)
                .zrange(key, 0, 0, withscores=True)
                .pexpire(key, window_ms)
                .execute()
            )

        if count > max_requests:
            await self._redis.zrem(key, member)
            oldest_ms = float(oldest[0][1]) if oldest else now
            return RateLimitDecision(
                allowed=False,
                retry_after_seconds=retry_after_from(oldest_ms, window_ms, now),
            )
        return RateLimitDecision(allowed=True)

    async def block(self, client_key: str, scope: str, seconds: int) -> None:
        await self._redis.set(self._block_key(client_key, scope), "1", ex=seconds)

    async def blocked_for(self, client_key: str, scope: str) -> int | None:
        ttl = await self._redis.ttl(self._block_key(client_key, scope))
        if ttl and ttl > 0:
            return int(ttl)
        return None

    async def close(self) -> None:
        await self._redis.aclose()


__all__ = ["RedisRateLimiter"]
