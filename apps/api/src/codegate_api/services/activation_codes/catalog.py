"""Operator facing listing, lookup and deletion of activation codes."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import and_, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from codegate_api.core.clock import Clock, ensure_aware, utcnow
from codegate_api.models.activation_code import ActivationCode, ActivationCodeStatusEnum
from codegate_api.services.activation_codes.errors import CodeNotFoundError, InvalidRequestError
from codegate_api.services.activation_codes.redemption import normalize_code
from codegate_api.services.activation_codes.storage import bounded

MAX_PAGE_SIZE = 100


@dataclass
class Pagination:
    page: int
    limit: int
    total: int
    total_pages: int


@dataclass
class ActivationCodePage:
    items: Sequence[ActivationCode]
    pagination: Pagination


@dataclass
class ActivationCodeDetail:
    record: ActivationCode
    is_expired: bool


def _status_condition(status: ActivationCodeStatusEnum, now: datetime):
    unused = ActivationCode.is_used.is_(False)
    if status == ActivationCodeStatusEnum.USED:
        return ActivationCode.is_used.is_(True)
    if status == ActivationCodeStatusEnum.UNUSED:
        return unused
    if status == ActivationCodeStatusEnum.EXPIRED:
        return and_(unused, ActivationCode.expires_at <= now)
    if status == ActivationCodeStatusEnum.ACTIVE:
        return and_(unused, ActivationCode.expires_at > now)
    return None


class ActivationCodeCatalog:
    def __init__(self, session: AsyncSession, *, clock: Clock = utcnow) -> None:
        self._session = session
        self._clock = clock

    async def list(
        self,
        *,
        status: ActivationCodeStatusEnum = ActivationCodeStatusEnum.ALL,
        page: int = 1,
        limit: int = 10,
    ) -> ActivationCodePage:
        """Return one page of codes, newest first."""

        if page < 1:
            raise InvalidRequestError("page must be at least 1", page=page)
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise InvalidRequestError(f"limit must be between 1 and {MAX_PAGE_SIZE}", limit=limit)

        condition = _status_condition(ActivationCodeStatusEnum(status), self._clock())
        count_stmt = select(func.count()).select_from(ActivationCode)
        list_stmt = select(ActivationCode).order_by(ActivationCode.created_at.desc(), ActivationCode.id)
        if condition is not None:
            count_stmt = count_stmt.where(condition)
            list_stmt = list_stmt.where(condition)

        total = int(await bounded(self._session.scalar(count_stmt), operation="list:count") or 0)
        result = await bounded(
            self._session.execute(list_stmt.offset((page - 1) * limit).limit(limit)),
            operation="list",
        )
        items = list(result.scalars().all())
        return ActivationCodePage(
            items=items,
            pagination=Pagination(
                page=page,
                limit=limit,
                total=total,
                total_pages=math.ceil(total / limit) if total else 0,
            ),
        )

    async def get(self, code_id: UUID) -> ActivationCodeDetail:
        record = await bounded(self._session.get(ActivationCode, code_id), operation="get")
        if record is None:
            raise CodeNotFoundError("Activation code not found", id=str(code_id))
        return self._detail(record)

    async def lookup(self, raw_code: str) -> ActivationCodeDetail:
        code = normalize_code(raw_code)
        record = await bounded(
            self._session.scalar(
                select(ActivationCode)
                .where(ActivationCode.code == code)
                .execution_options(populate_existing=True)
            ),
            operation="lookup",
        )
        if record is None:
            raise CodeNotFoundError("Activation code not found")
        return self._detail(record)

    async def delete(self, code_id: UUID) -> UUID:
        statement = (
            delete(ActivationCode)
            .where(ActivationCode.id == code_id)
            .returning(ActivationCode.id)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await bounded(self._session.execute(statement), operation="delete")
            deleted = result.scalar_one_or_none()
            await bounded(self._session.commit(), operation="delete")
        except Exception:
            await self._session.rollback()
            raise
        if deleted is None:
            raise CodeNotFoundError("Activation code not found", id=str(code_id))
        logger.info("Activation code deleted", code_id=str(code_id))
        return deleted

    def is_expired(self, record: ActivationCode, now: datetime | None = None) -> bool:
        return (now or self._clock()) >= ensure_aware(record.expires_at)

    def _detail(self, record: ActivationCode) -> ActivationCodeDetail:
        return ActivationCodeDetail(record=record, is_expired=self.is_expired(record))


__all__ = ["ActivationCodeCatalog", "ActivationCodeDetail", "ActivationCodePage", "MAX_PAGE_SIZE", "Pagination"]
