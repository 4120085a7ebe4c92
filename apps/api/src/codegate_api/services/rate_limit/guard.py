"""Policy composition on top of a rate limiter."""

from __future__ import annotations

from functools import lru_cache

from loguru import logger

from codegate_api.core.settings import settings
from codegate_api.observability.activation_codes import get_activation_code_store
from codegate_api.services.activation_codes.errors import RateLimitedError

from .anomaly import AnomalyClassifier
from .base import RateLimiter, RateLimitPolicy
from .memory import InMemoryRateLimiter
from .redis_limiter import RedisRateLimiter

ANTI_ABUSE = "anti-abuse"
BURST = "burst"


def anti_abuse_policy() -> RateLimitPolicy:
    return RateLimitPolicy(
        name=ANTI_ABUSE,
        window_ms=settings.rate_limit_abuse_window_seconds * 1000,
        max_requests=settings.rate_limit_abuse_max_requests,
        block_seconds=settings.rate_limit_abuse_block_seconds,
    )


def burst_policy() -> RateLimitPolicy:
    return RateLimitPolicy(
        name=BURST,
        window_ms=settings.rate_limit_burst_window_ms,
        max_requests=settings.rate_limit_burst_max_requests,
    )


class RateGuard:
    """Applies rate policies for a client and target, raising ``RateLimitedError``."""

    def __init__(self, limiter: RateLimiter, *, classifier: AnomalyClassifier | None = None) -> None:
        self.limiter = limiter
        self.classifier = classifier

    async def ensure_not_blocked(self, policy: RateLimitPolicy, client_key: str) -> None:
        if not policy.block_seconds:
            return
        remaining = await self.limiter.blocked_for(client_key, policy.name)
        if remaining:
            get_activation_code_store().record_rate_limited(policy.name, blocked=False)
            raise RateLimitedError(remaining, reason="Client is temporarily blocked")

    async def check(self, policy: RateLimitPolicy, client_key: str, target: str) -> None:
        store = get_activation_code_store()
        await self.ensure_not_blocked(policy, client_key)

        decision = await self.limiter.allow(
            f"{client_key}:{target}",
            policy.name,
            policy.window_ms,
            policy.max_requests,
        )
        if not decision.allowed:
            retry_after = decision.retry_after_seconds or 1
            blocked = bool(policy.block_seconds)
            if blocked:
                await self.limiter.block(client_key, policy.name, policy.block_seconds)
                retry_after = policy.block_seconds
            store.record_rate_limited(policy.name, blocked=blocked)
            logger.warning(
                "Rate limit exceeded",
                policy=policy.name,
                client=client_key,
                target=target,
                retry_after_seconds=retry_after,
                blocked=blocked,
            )
            raise RateLimitedError(retry_after)

        if self.classifier is not None and policy.block_seconds:
            verdict = self.classifier.observe(f"{client_key}:{target}")
            if verdict is not None:
                store.record_anomaly(verdict.reason)
                logger.warning(
                    "Anomalous request pattern detected",
                    client=client_key,
                    target=target,
                    reason=verdict.reason,
                    confidence=verdict.confidence,
                )


def build_rate_limiter() -> RateLimiter:
    if settings.rate_limit_backend == "redis":
        return RedisRateLimiter()
    return InMemoryRateLimiter()


@lru_cache
def get_rate_guard() -> RateGuard:
    return RateGuard(build_rate_limiter(), classifier=AnomalyClassifier())


__all__ = ["ANTI_ABUSE", "BURST", "RateGuard", "anti_abuse_policy", "build_rate_limiter", "burst_policy", "get_rate_guard"]
