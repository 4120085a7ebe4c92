"""Translate domain errors into HTTP responses."""

from __future__ import annotations

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from codegate_api.services.activation_codes.errors import ActivationCodeError, RateLimitedError


def to_http_exception(error: ActivationCodeError) -> HTTPException:
    headers: dict[str, str] | None = None
    if isinstance(error, RateLimitedError):
        headers = {"Retry-After": str(error.retry_after_seconds)}
    return HTTPException(status_code=error.status_code, detail=error.as_payload(), headers=headers)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed bodies and parameters as ``InvalidRequest`` rather than 422."""

    errors = [
        {"loc": [str(part) for part in error.get("loc", ())], "message": error.get("msg", "")}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": {"kind": "InvalidRequest", "message": "Request validation failed", "errors": errors}},
    )


__all__ = ["request_validation_handler", "to_http_exception"]
