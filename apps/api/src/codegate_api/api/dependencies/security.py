"""Operator authentication for the management endpoints."""

from __future__ import annotations

import hmac
from dataclasses import dataclass
from typing import Literal

import httpx
from fastapi import Depends, Header
from loguru import logger

from codegate_api.api.errors import to_http_exception
from codegate_api.core.clock import ensure_aware, utcnow
from codegate_api.core.settings import settings
from codegate_api.services.activation_codes.errors import (
    StorageUnavailableError,
    UnauthenticatedError,
    UnauthorizedError,
)


@dataclass(frozen=True)
class CallerIdentity:
    subject: str
    method: Literal["api_key", "bearer", "unconfigured"]


class IdentityIntrospector:
    """Validates bearer tokens against an external identity provider."""

    def __init__(
        self,
        url: str | None = None,
        *,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url if url is not None else settings.identity_introspection_url
        self._timeout = timeout_seconds or settings.identity_introspection_timeout_seconds
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.url)

    async def introspect(self, token: str) -> str:
        """Return the token subject, raising when the provider rejects it."""

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(self.url, data={"token": token})
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as exc:
            logger.warning("Identity provider rejected introspection", status_code=exc.response.status_code)
            raise UnauthenticatedError("Bearer token could not be validated") from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Identity provider unavailable", error=str(exc))
            raise StorageUnavailableError("Identity provider is unavailable; retry the request") from exc

        subject = payload.get("sub") if isinstance(payload, dict) else None
        if not isinstance(payload, dict) or payload.get("active") is not True or not subject:
            raise UnauthenticatedError("Bearer token is not active")
        return str(subject)


def get_identity_introspector() -> IdentityIntrospector:
    return IdentityIntrospector()


def _api_key_valid(presented: str) -> bool:
    if not hmac.compare_digest(presented.encode(), settings.api_key.encode()):
        return False
    expires_at = settings.api_key_expires_at
    if expires_at is not None and utcnow() >= ensure_aware(expires_at):
        logger.warning("Rejected expired operator API key")
        return False
    return True


def _bearer_token(authorization: str) -> str | None:
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def require_operator(
    x_api_key: str = Header("", alias="X-API-Key"),
    authorization: str = Header("", alias="Authorization"),
    introspector: IdentityIntrospector = Depends(get_identity_introspector),
) -> CallerIdentity:
    if not settings.api_key and not introspector.configured:
        return CallerIdentity(subject="unconfigured", method="unconfigured")

    if settings.api_key and x_api_key:
        if _api_key_valid(x_api_key):
            return CallerIdentity(subject="api-key", method="api_key")
        raise to_http_exception(UnauthenticatedError("Invalid or expired API key"))

    token = _bearer_token(authorization)
    if token and introspector.configured:
        try:
            subject = await introspector.introspect(token)
        except (UnauthenticatedError, StorageUnavailableError) as exc:
            raise to_http_exception(exc) from exc
        allowed = settings.identity_allowed_subjects
        if allowed and subject not in allowed:
            raise to_http_exception(UnauthorizedError("Caller is not allowed to manage activation codes"))
        return CallerIdentity(subject=subject, method="bearer")

    raise to_http_exception(UnauthenticatedError("Authentication required"))


__all__ = ["CallerIdentity", "IdentityIntrospector", "get_identity_introspector", "require_operator"]
