"""Retention policies and the sweeper that applies them."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import and_, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from codegate_api.core.clock import Clock, ensure_aware, utcnow
from codegate_api.models.activation_code import ActivationCode
from codegate_api.observability.activation_codes import get_activation_code_store
from codegate_api.services.activation_codes.errors import InvalidRequestError
from codegate_api.services.activation_codes.storage import bounded

STALE_UNUSED = "stale-unused"
EXPIRED_UNUSED = "expired-unused"
EXPIRED = "expired"


@dataclass(frozen=True)
class RetentionPolicy:
    """Deletion rule evaluated against a reference time.

    ``anchor`` selects the timestamp compared against ``now - age``; ``unused_only``
    restricts the rule to codes that were never redeemed.
    """

    name: str
    description: str
    anchor: str
    age: timedelta
    unused_only: bool = True

    def cutoff(self, now: datetime) -> datetime:
        return now - self.age

    def predicate(self, now: datetime) -> ColumnElement[bool]:
        column = getattr(ActivationCode, self.anchor)
        clauses = [column < self.cutoff(now)]
        if self.unused_only:
            clauses.append(ActivationCode.is_used.is_(False))
        return and_(*clauses)


def _bounded_int(name: str, value: int, lower: int, upper: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not lower <= value <= upper:
        raise InvalidRequestError(f"{name} must be between {lower} and {upper}", **{name: value})
    return value


def stale_unused_policy(minutes_old: int = 5) -> RetentionPolicy:
    minutes = _bounded_int("minutes_old", minutes_old, 1, 1440)
    return RetentionPolicy(
        name=STALE_UNUSED,
        description=f"Unused codes created more than {minutes} minutes ago",
        anchor="created_at",
        age=timedelta(minutes=minutes),
    )


def expired_unused_policy(days_old: int = 30) -> RetentionPolicy:
    days = _bounded_int("days_old", days_old, 0, 3650)
    return RetentionPolicy(
        name=EXPIRED_UNUSED,
        description=f"Unused codes that expired more than {days} days ago",
        anchor="expires_at",
        age=timedelta(days=days),
    )


def expired_policy(days_old: int = 0) -> RetentionPolicy:
    days = _bounded_int("days_old", days_old, 0, 3650)
    return RetentionPolicy(
        name=EXPIRED,
        description=f"Codes of any state that expired more than {days} days ago",
        anchor="expires_at",
        age=timedelta(days=days),
        unused_only=False,
    )


@dataclass
class RetainedCode:
    id: UUID
    code: str
    created_at: datetime
    expires_at: datetime
    is_used: bool
    used_at: datetime | None

    @classmethod
    def from_row(cls, row) -> "RetainedCode":
        return cls(
            id=row.id,
            code=row.code,
            created_at=ensure_aware(row.created_at),
            expires_at=ensure_aware(row.expires_at),
            is_used=bool(row.is_used),
            used_at=ensure_aware(row.used_at) if row.used_at is not None else None,
        )


@dataclass
class RetentionPreview:
    policy: str
    cutoff: datetime
    count: int
    items: list[RetainedCode] = field(default_factory=list)


@dataclass
class RetentionSweepResult:
    policy: str
    cutoff: datetime
    deleted_count: int
    deleted_items: list[RetainedCode] = field(default_factory=list)


_ITEM_COLUMNS = (
    ActivationCode.id,
    ActivationCode.code,
    ActivationCode.created_at,
    ActivationCode.expires_at,
    ActivationCode.is_used,
    ActivationCode.used_at,
)


class RetentionSweeper:
    """Previews and applies retention policies."""

    def __init__(self, session: AsyncSession, *, clock: Clock = utcnow, preview_limit: int = 100) -> None:
        self._session = session
        self._clock = clock
        self._preview_limit = preview_limit

    def _where(self, policy: RetentionPolicy, now: datetime, exclude_codes: Iterable[str]) -> ColumnElement[bool]:
        condition = policy.predicate(now)
        excluded = [code for code in exclude_codes if code]
        if excluded:
            condition = and_(condition, ActivationCode.code.notin_(excluded))
        return condition

    async def preview(self, policy: RetentionPolicy) -> RetentionPreview:
        now = self._clock()
        condition = policy.predicate(now)

        count = await bounded(
            self._session.scalar(select(func.count()).select_from(ActivationCode).where(condition)),
            operation=f"preview:{policy.name}",
        )
        result = await bounded(
            self._session.execute(
                select(*_ITEM_COLUMNS)
                .where(condition)
                .order_by(ActivationCode.created_at.asc())
                .limit(self._preview_limit)
            ),
            operation=f"preview:{policy.name}",
        )
        items = [RetainedCode.from_row(row) for row in result]
        return RetentionPreview(policy=policy.name, cutoff=policy.cutoff(now), count=int(count or 0), items=items)

    async def sweep(
        self,
        policy: RetentionPolicy,
        *,
        exclude_codes: Sequence[str] = (),
    ) -> RetentionSweepResult:
        """Delete every row matching ``policy`` in a single statement."""

        now = self._clock()
        statement = (
            delete(ActivationCode)
            .where(self._where(policy, now, exclude_codes))
            .returning(*_ITEM_COLUMNS)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await bounded(self._session.execute(statement), operation=f"sweep:{policy.name}")
            rows = result.all()
            await bounded(self._session.commit(), operation=f"sweep:{policy.name}")
        except Exception:
            await self._session.rollback()
            raise

        deleted = [RetainedCode.from_row(row) for row in rows]
        get_activation_code_store().record_sweep(policy.name, len(deleted))
        if deleted:
            logger.info(
                "Retention sweep removed activation codes",
                policy=policy.name,
                deleted_count=len(deleted),
                cutoff=policy.cutoff(now).isoformat(),
            )
        else:
            logger.debug("Retention sweep found nothing to remove", policy=policy.name)
        return RetentionSweepResult(
            policy=policy.name,
            cutoff=policy.cutoff(now),
            deleted_count=len(deleted),
            deleted_items=deleted,
        )


__all__ = [
    "EXPIRED",
    "EXPIRED_UNUSED",
    "RetainedCode",
    "RetentionPolicy",
    "RetentionPreview",
    "RetentionSweepResult",
    "RetentionSweeper",
    "STALE_UNUSED",
    "expired_policy",
    "expired_unused_policy",
    "stale_unused_policy",
]
