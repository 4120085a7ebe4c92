"""Single-use redemption of activation codes."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from codegate_api.core.clock import Clock, ensure_aware, utcnow
from codegate_api.core.settings import settings
from codegate_api.models.activation_code import ActivationCode
from codegate_api.observability.activation_codes import get_activation_code_store
from codegate_api.services.activation_codes.errors import (
    ActivationCodeError,
    CodeAlreadyUsedError,
    CodeExpiredError,
    CodeNotFoundError,
    InvalidRequestError,
)
from codegate_api.services.activation_codes.retention import RetentionSweeper, stale_unused_policy
from codegate_api.services.activation_codes.storage import bounded

MAX_CODE_LENGTH = 64
_CODE_PATTERN = re.compile(r"^[A-Z0-9-]+$")


def normalize_code(raw: object) -> str:
    """Trim and upper-case a presented code, rejecting anything malformed."""

    if not isinstance(raw, str):
        raise InvalidRequestError("Activation code is required")
    code = raw.strip().upper()
    if not code:
        raise InvalidRequestError("Activation code is required")
    if len(code) > MAX_CODE_LENGTH:
        raise InvalidRequestError(f"Activation code must be at most {MAX_CODE_LENGTH} characters")
    if not _CODE_PATTERN.match(code):
        raise InvalidRequestError("Activation code contains invalid characters")
    return code


@dataclass(frozen=True)
class RemainingTime:
    days: int
    hours: int
    minutes: int
    total_seconds: int

    @classmethod
    def between(cls, now: datetime, expires_at: datetime) -> "RemainingTime":
        total = max(0, int((expires_at - now).total_seconds()))
        return cls(
            days=total // 86400,
            hours=(total % 86400) // 3600,
            minutes=(total % 3600) // 60,
            total_seconds=total,
        )


@dataclass
class RedemptionResult:
    record: ActivationCode
    redeemed_at: datetime
    remaining: RemainingTime


class RedemptionEngine:
    """Validates and atomically consumes activation codes."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        clock: Clock = utcnow,
        sweep_enabled: bool | None = None,
        sweep_minutes_old: int | None = None,
    ) -> None:
        self._session = session
        self._clock = clock
        self._sweep_enabled = settings.redeem_sweep_enabled if sweep_enabled is None else sweep_enabled
        self._sweep_minutes_old = sweep_minutes_old or settings.redeem_sweep_minutes_old

    async def redeem(self, raw_code: object) -> RedemptionResult:
        store = get_activation_code_store()
        try:
            result = await self._redeem(raw_code)
        except ActivationCodeError as exc:
            store.record_redemption(exc.kind)
            raise
        store.record_redemption("Redeemed")
        return result

    async def _redeem(self, raw_code: object) -> RedemptionResult:
        code = normalize_code(raw_code)

        if self._sweep_enabled:
            await self._sweep_stale(exclude=code)

        record = await self._load(code)
        if record is None:
            logger.info("Activation code redemption rejected", code=code, outcome="NotFound")
            raise CodeNotFoundError("Activation code not found")

        if record.is_used:
            logger.info("Activation code redemption rejected", code=code, outcome="AlreadyUsed")
            raise CodeAlreadyUsedError(code, _aware_or_none(record.used_at))

        now = self._clock()
        expires_at = ensure_aware(record.expires_at)
        if now >= expires_at:
            logger.info("Activation code redemption rejected", code=code, outcome="Expired")
            raise CodeExpiredError(code, expires_at)

        statement = (
            update(ActivationCode)
            .where(
                ActivationCode.id == record.id,
                ActivationCode.is_used.is_(False),
                ActivationCode.expires_at > now,
            )
            .values(is_used=True, used_at=now)
            .returning(ActivationCode.id)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await bounded(self._session.execute(statement), operation="redeem", ambiguous=True)
            won = result.first() is not None
            await bounded(self._session.commit(), operation="redeem", ambiguous=True)
        except Exception:
            await self._session.rollback()
            raise

        if not won:
            return await self._resolve_lost_race(code, record.id)

        await bounded(self._session.refresh(record), operation="redeem:refresh")
        logger.info("Activation code redeemed", code=code, code_id=str(record.id))
        return RedemptionResult(
            record=record,
            redeemed_at=now,
            remaining=RemainingTime.between(now, expires_at),
        )

    async def _sweep_stale(self, *, exclude: str) -> None:
        sweeper = RetentionSweeper(self._session, clock=self._clock)
        try:
            await sweeper.sweep(stale_unused_policy(self._sweep_minutes_old), exclude_codes=[exclude])
        except ActivationCodeError as exc:
            logger.warning("Opportunistic stale sweep failed; continuing redemption", error=exc.message)

    async def _load(self, code: str) -> ActivationCode | None:
        return await bounded(
            self._session.scalar(
                select(ActivationCode)
                .where(ActivationCode.code == code)
                .execution_options(populate_existing=True)
            ),
            operation="redeem:lookup",
        )

    async def _resolve_lost_race(self, code: str, code_id) -> RedemptionResult:
        current = await bounded(
            self._session.scalar(
                select(ActivationCode)
                .where(ActivationCode.id == code_id)
                .execution_options(populate_existing=True)
            ),
            operation="redeem:reread",
        )
        if current is None:
            logger.info("Activation code vanished during redemption", code=code)
            raise CodeNotFoundError("Activation code not found")
        if not current.is_used:
            raise CodeExpiredError(code, ensure_aware(current.expires_at))
        logger.info("Activation code redemption lost a concurrent race", code=code)
        raise CodeAlreadyUsedError(code, _aware_or_none(current.used_at))


def _aware_or_none(value: datetime | None) -> datetime | None:
    return ensure_aware(value) if value is not None else None


__all__ = ["RedemptionEngine", "RedemptionResult", "RemainingTime", "normalize_code"]
