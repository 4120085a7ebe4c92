"""Rate limit dependencies keyed by the calling client."""

from __future__ import annotations

from typing import Awaitable, Callable

from fastapi import Depends, Request

from codegate_api.api.errors import to_http_exception
from codegate_api.core.settings import settings
from codegate_api.services.activation_codes.errors import RateLimitedError
from codegate_api.services.rate_limit import RateGuard, anti_abuse_policy, burst_policy, get_rate_guard


def client_key(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    for header in ("X-Real-IP", "CF-Connecting-IP"):
        value = (request.headers.get(header) or "").strip()
        if value:
            return value
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def rate_limited(target: str, *, abuse: bool = False) -> Callable[..., Awaitable[None]]:
    """Build a dependency applying the burst policy and optionally anti-abuse.

    An active anti-abuse block is honoured first. Requests the burst policy
    rejects never count toward the anti-abuse window.
    """

    async def dependency(request: Request, guard: RateGuard = Depends(get_rate_guard)) -> None:
        if not settings.rate_limit_enabled:
            return
        client = client_key(request)
        try:
            abuse_policy = anti_abuse_policy() if abuse else None
            if abuse_policy is not None:
                await guard.ensure_not_blocked(abuse_policy, client)
            await guard.check(burst_policy(), client, target)
            if abuse_policy is not None:
                await guard.check(abuse_policy, client, target)
        except RateLimitedError as exc:
            raise to_http_exception(exc) from exc

    return dependency


__all__ = ["client_key", "rate_limited"]
