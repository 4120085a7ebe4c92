"""Aggregate counts across all activation codes."""

from __future__ import annotations

from dataclasses import asdict, dataclass

from sqlalchemy import and_, case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from codegate_api.core.clock import Clock, utcnow
from codegate_api.models.activation_code import ActivationCode
from codegate_api.services.activation_codes.storage import bounded


@dataclass(frozen=True)
class ActivationCodeStats:
    total: int
    used: int
    unused: int
    expired: int
    active: int
    usage_rate: float
    expiration_rate: float

    def as_dict(self) -> dict[str, float | int]:
        return asdict(self)


def _rate(part: int, total: int) -> float:
    if total == 0:
        return 0
    return round(part / total * 100, 2)


def _count_when(condition) -> object:
    return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)


class StatsAggregator:
    def __init__(self, session: AsyncSession, *, clock: Clock = utcnow) -> None:
        self._session = session
        self._clock = clock

    async def stats(self) -> ActivationCodeStats:
        now = self._clock()
        unused = ActivationCode.is_used.is_(False)
        statement = select(
            func.count(ActivationCode.id),
            _count_when(ActivationCode.is_used.is_(True)),
            _count_when(unused),
            _count_when(and_(unused, ActivationCode.expires_at <= now)),
            _count_when(and_(unused, ActivationCode.expires_at > now)),
        )
        result = await bounded(self._session.execute(statement), operation="stats")
        total, used, unused_count, expired, active = (int(value or 0) for value in result.one())
        return ActivationCodeStats(
            total=total,
            used=used,
            unused=unused_count,
            expired=expired,
            active=active,
            usage_rate=_rate(used, total),
            expiration_rate=_rate(expired, total),
        )


__all__ = ["ActivationCodeStats", "StatsAggregator"]
