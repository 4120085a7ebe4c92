from datetime import timedelta

import pytest
from sqlalchemy import delete, func, select

from codegate_api.models.activation_code import ActivationCode
from codegate_api.services.activation_codes import (
    InvalidRequestError,
    RetentionSweeper,
    expired_policy,
    expired_unused_policy,
    stale_unused_policy,
)


def _code(label: str, now, *, age: timedelta, lifetime: timedelta, used: bool = False) -> ActivationCode:
    created_at = now - age
    return ActivationCode(
        code=f"{label.upper()}-000000-00000000",
        created_at=created_at,
        expires_at=created_at + lifetime,
        is_used=used,
        used_at=created_at + timedelta(seconds=30) if used else None,
        product_info={},
        code_metadata={"label": label},
    )


async def _seed(session_factory, codes) -> None:
    async with session_factory() as session:
        session.add_all(codes)
        await session.commit()


async def _remaining(session_factory) -> set[str]:
    async with session_factory() as session:
        result = await session.execute(select(ActivationCode.code))
        return {row[0].split("-")[0] for row in result}


def _dataset(now):
    return [
        _code("recent", now, age=timedelta(minutes=2), lifetime=timedelta(days=30)),
        _code("stale", now, age=timedelta(minutes=10), lifetime=timedelta(days=30)),
        _code("redeemed", now, age=timedelta(days=3), lifetime=timedelta(days=30), used=True),
        _code("lapsed", now, age=timedelta(days=40), lifetime=timedelta(days=20)),
        _code("longlapsed", now, age=timedelta(days=90), lifetime=timedelta(days=7)),
        _code("usedlapsed", now, age=timedelta(days=90), lifetime=timedelta(days=7), used=True),
    ]


@pytest.mark.asyncio
async def test_stale_unused_policy_only_removes_old_unredeemed_codes(session_factory, clock) -> None:
    await _seed(
        session_factory,
        [
            _code("old", clock(), age=timedelta(minutes=10), lifetime=timedelta(days=1)),
            _code("young", clock(), age=timedelta(minutes=2), lifetime=timedelta(days=1)),
            _code("oldused", clock(), age=timedelta(minutes=10), lifetime=timedelta(days=1), used=True),
        ],
    )

    async with session_factory() as session:
        result = await RetentionSweeper(session, clock=clock).sweep(stale_unused_policy(5))

    assert result.deleted_count == 1
    assert [item.code for item in result.deleted_items] == ["OLD-000000-00000000"]
    assert result.deleted_items[0].is_used is False
    assert result.cutoff == clock() - timedelta(minutes=5)
    assert await _remaining(session_factory) == {"YOUNG", "OLDUSED"}


@pytest.mark.asyncio
async def test_expired_unused_policy_keeps_recently_expired_and_redeemed(session_factory, clock) -> None:
    await _seed(session_factory, _dataset(clock()))

    async with session_factory() as session:
        result = await RetentionSweeper(session, clock=clock).sweep(expired_unused_policy(30))

    assert {item.code.split("-")[0] for item in result.deleted_items} == {"LONGLAPSED"}
    assert "LAPSED" in await _remaining(session_factory)


@pytest.mark.asyncio
async def test_expired_policy_ignores_redemption_state(session_factory, clock) -> None:
    await _seed(session_factory, _dataset(clock()))

    async with session_factory() as session:
        result = await RetentionSweeper(session, clock=clock).sweep(expired_policy(0))

    assert {item.code.split("-")[0] for item in result.deleted_items} == {"LAPSED", "LONGLAPSED", "USEDLAPSED"}
    assert await _remaining(session_factory) == {"RECENT", "STALE", "REDEEMED"}


@pytest.mark.asyncio
async def test_preview_counts_without_deleting(session_factory, clock) -> None:
    await _seed(session_factory, _dataset(clock()))

    async with session_factory() as session:
        preview = await RetentionSweeper(session, clock=clock).preview(stale_unused_policy(5))

    assert preview.count == 3
    assert {item.code.split("-")[0] for item in preview.items} == {"STALE", "LAPSED", "LONGLAPSED"}
    assert preview.cutoff == clock() - timedelta(minutes=5)
    async with session_factory() as session:
        assert await session.scalar(select(func.count()).select_from(ActivationCode)) == 6


@pytest.mark.asyncio
async def test_sweep_honours_excluded_codes(session_factory, clock) -> None:
    await _seed(session_factory, _dataset(clock()))

    async with session_factory() as session:
        result = await RetentionSweeper(session, clock=clock).sweep(
            stale_unused_policy(5),
            exclude_codes=["STALE-000000-00000000"],
        )

    assert result.deleted_count == 2
    assert "STALE" in await _remaining(session_factory)


@pytest.mark.asyncio
async def test_policies_commute(session_factory, clock) -> None:
    policies = [stale_unused_policy(5), expired_unused_policy(30), expired_policy(10)]
    survivors = []

    for order in (policies, list(reversed(policies))):
        async with session_factory() as session:
            await session.execute(delete(ActivationCode))
            await session.commit()
        await _seed(session_factory, _dataset(clock()))

        async with session_factory() as session:
            sweeper = RetentionSweeper(session, clock=clock)
            for policy in order:
                await sweeper.sweep(policy)
        survivors.append(await _remaining(session_factory))

    assert survivors[0] == survivors[1] == {"RECENT", "REDEEMED"}


@pytest.mark.parametrize(
    "factory, value",
    [
        (stale_unused_policy, 0),
        (stale_unused_policy, 1441),
        (expired_unused_policy, -1),
        (expired_unused_policy, 3651),
        (expired_policy, -5),
    ],
)
def test_policy_parameters_are_bounded(factory, value) -> None:
    with pytest.raises(InvalidRequestError):
        factory(value)


def test_policy_bounds_are_inclusive() -> None:
    assert stale_unused_policy(1).age == timedelta(minutes=1)
    assert stale_unused_policy(1440).age == timedelta(minutes=1440)
    assert expired_unused_policy(0).age == timedelta(0)
    assert expired_unused_policy(3650).age == timedelta(days=3650)
