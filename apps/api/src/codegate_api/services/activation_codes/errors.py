"""Activation code domain errors.

Every error carries a stable machine readable ``kind`` and a human readable
message. ``details`` holds the caller-safe context (timestamps, retry hints)
that endpoints forward in the response body.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any


class ActivationCodeError(RuntimeError):
    """Base exception for activation code lifecycle failures."""

    kind = "Error"
    status_code = 500
    retryable = False

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def as_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"kind": self.kind, "message": self.message}
        for key, value in self.details.items():
            payload[key] = value.isoformat() if isinstance(value, datetime) else value
        return payload


class InvalidRequestError(ActivationCodeError):
    kind = "InvalidRequest"
    status_code = 400


class CodeNotFoundError(ActivationCodeError):
    kind = "NotFound"
    status_code = 404


class CodeAlreadyUsedError(ActivationCodeError):
    kind = "AlreadyUsed"
    status_code = 400

    def __init__(self, code: str, used_at: datetime | None) -> None:
        super().__init__("Activation code has already been used", used_at=used_at)
        self.code = code
        self.used_at = used_at


class CodeExpiredError(ActivationCodeError):
    kind = "Expired"
    status_code = 400

    def __init__(self, code: str, expires_at: datetime) -> None:
        super().__init__("Activation code has expired", expires_at=expires_at)
        self.code = code
        self.expires_at = expires_at


class RateLimitedError(ActivationCodeError):
    kind = "RateLimited"
    status_code = 429
    retryable = True

    def __init__(self, retry_after_seconds: int, *, reason: str | None = None) -> None:
        super().__init__(
            reason or "Rate limit exceeded. Please try again later.",
            retry_after_seconds=retry_after_seconds,
        )
        self.retry_after_seconds = retry_after_seconds


class UnauthenticatedError(ActivationCodeError):
    kind = "Unauthenticated"
    status_code = 401


class UnauthorizedError(ActivationCodeError):
    kind = "Unauthorized"
    status_code = 403


class StorageUnavailableError(ActivationCodeError):
    kind = "StorageUnavailable"
    status_code = 503
    retryable = True


class CodeConflictError(ActivationCodeError):
    kind = "Conflict"
    status_code = 409
    retryable = True


__all__ = [
    "ActivationCodeError",
    "CodeAlreadyUsedError",
    "CodeConflictError",
    "CodeExpiredError",
    "CodeNotFoundError",
    "InvalidRequestError",
    "RateLimitedError",
    "StorageUnavailableError",
    "UnauthenticatedError",
    "UnauthorizedError",
]
