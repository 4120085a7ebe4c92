"""Request throttling for the activation code API."""

from .anomaly import AnomalyClassifier, AnomalyVerdict
from .base import RateLimitDecision, RateLimitPolicy, RateLimiter
from .guard import ANTI_ABUSE, BURST, RateGuard, anti_abuse_policy, build_rate_limiter, burst_policy, get_rate_guard
from .memory import InMemoryRateLimiter
from .redis_limiter import RedisRateLimiter

__all__ = [
    "ANTI_ABUSE",
    "AnomalyClassifier",
    "AnomalyVerdict",
    "BURST",
    "InMemoryRateLimiter",
    "RateGuard",
    "RateLimitDecision",
    "RateLimitPolicy",
    "RateLimiter",
    "RedisRateLimiter",
    "anti_abuse_policy",
    "build_rate_limiter",
    "burst_policy",
    "get_rate_guard",
]
