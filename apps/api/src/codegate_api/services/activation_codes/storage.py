"""Bounded storage calls for the activation code services."""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

from loguru import logger
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from codegate_api.core.settings import settings
from codegate_api.services.activation_codes.errors import StorageUnavailableError

T = TypeVar("T")


async def bounded(
    awaitable: Awaitable[T],
    *,
    operation: str,
    timeout_seconds: float | None = None,
    ambiguous: bool = False,
) -> T:
    """Await a storage call under the configured timeout.

    Timeouts and driver failures become ``StorageUnavailableError``. Integrity
    violations propagate untouched so callers can map them to a conflict.
    """

    timeout = timeout_seconds if timeout_seconds is not None else settings.storage_timeout_seconds
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as exc:
        logger.warning(
            "Activation code storage call timed out",
            operation=operation,
            timeout_seconds=timeout,
            ambiguous=ambiguous,
        )
        message = "Storage did not respond in time; retry the request"
        if ambiguous:
            message = "Storage did not confirm the redemption; look the code up before retrying"
        raise StorageUnavailableError(message, ambiguous=ambiguous) from exc
    except IntegrityError:
        raise
    except SQLAlchemyError as exc:
        logger.exception("Activation code storage call failed", operation=operation, error=str(exc))
        raise StorageUnavailableError(
            "Storage is temporarily unavailable; retry the request",
            ambiguous=ambiguous,
        ) from exc


__all__ = ["bounded"]
