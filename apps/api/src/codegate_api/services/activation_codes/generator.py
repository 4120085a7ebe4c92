"""Activation code generation."""

from __future__ import annotations

import secrets
import string
from datetime import datetime, timedelta
from typing import Any, Callable, Mapping
from uuid import uuid4

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from codegate_api.core.clock import Clock, utcnow
from codegate_api.core.settings import settings
from codegate_api.models.activation_code import ActivationCode
from codegate_api.observability.activation_codes import get_activation_code_store
from codegate_api.services.activation_codes.errors import CodeConflictError, InvalidRequestError
from codegate_api.services.activation_codes.storage import bounded

_BASE36_ALPHABET = string.digits + string.ascii_lowercase

DEFAULT_PRODUCT_INFO: dict[str, Any] = {
    "name": "Default Product",
    "version": "1.0.0",
    "features": ["basic"],
}


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))


def generate_code_value(now: datetime) -> str:
    """Build ``<time>-<random>-<uuid>`` in upper case, e.g. ``MDMNBPJX-3S0P6E-B1360C10``."""

    timestamp = _to_base36(int(now.timestamp() * 1000))
    random_part = "".join(secrets.choice(_BASE36_ALPHABET) for _ in range(6))
    uuid_part = uuid4().hex[:8]
    return f"{timestamp}-{random_part}-{uuid_part}".upper()


def validate_expiration_days(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidRequestError("expiration_days must be an integer", expiration_days=value)
    upper = settings.activation_code_max_expiration_days
    if value < 1 or value > upper:
        raise InvalidRequestError(
            f"expiration_days must be between 1 and {upper}",
            expiration_days=value,
        )
    return value


def _validate_object(name: str, value: object) -> dict[str, Any] | None:
    if value is None:
        return None
    if not isinstance(value, Mapping):
        raise InvalidRequestError(f"{name} must be a JSON object")
    return dict(value)


class ActivationCodeGenerator:
    """Issues new unused activation codes."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        clock: Clock = utcnow,
        code_factory: Callable[[datetime], str] = generate_code_value,
        max_attempts: int | None = None,
    ) -> None:
        self._session = session
        self._clock = clock
        self._code_factory = code_factory
        self._max_attempts = max_attempts or settings.activation_code_generation_attempts

    async def generate(
        self,
        *,
        expiration_days: int | None = None,
        product_info: Mapping[str, Any] | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> ActivationCode:
        """Persist a new unused code expiring ``expiration_days`` from now."""

        days = validate_expiration_days(
            settings.activation_code_default_expiration_days if expiration_days is None else expiration_days
        )
        product = _validate_object("product_info", product_info)
        extra = _validate_object("metadata", metadata)

        for attempt in range(1, self._max_attempts + 1):
            now = self._clock()
            record = ActivationCode(
                code=self._code_factory(now),
                created_at=now,
                expires_at=now + timedelta(days=days),
                is_used=False,
                used_at=None,
                product_info=product if product is not None else dict(DEFAULT_PRODUCT_INFO),
                code_metadata=extra or {},
            )
            self._session.add(record)
            try:
                await bounded(self._session.commit(), operation="generate")
            except IntegrityError:
                await self._session.rollback()
                get_activation_code_store().record_generation_conflict()
                logger.warning("Activation code collided with an existing code", attempt=attempt)
                continue

            get_activation_code_store().record_generated()
            logger.info(
                "Activation code generated",
                code_id=str(record.id),
                code=record.code,
                expiration_days=days,
                attempt=attempt,
            )
            return record

        raise CodeConflictError(
            "Could not allocate a unique activation code; retry the request",
            attempts=self._max_attempts,
        )


__all__ = [
    "ActivationCodeGenerator",
    "DEFAULT_PRODUCT_INFO",
    "generate_code_value",
    "validate_expiration_days",
]
