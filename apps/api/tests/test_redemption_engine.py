import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from codegate_api.models.activation_code import ActivationCode
from codegate_api.observability.activation_codes import get_activation_code_store
from codegate_api.services.activation_codes import (
    ActivationCodeGenerator,
    CodeAlreadyUsedError,
    CodeExpiredError,
    CodeNotFoundError,
    InvalidRequestError,
    RedemptionEngine,
    RemainingTime,
)


async def _issue(session_factory, clock, days: int = 30) -> ActivationCode:
    async with session_factory() as session:
        return await ActivationCodeGenerator(session, clock=clock).generate(expiration_days=days)


@pytest.mark.asyncio
async def test_redeem_marks_code_used_and_reports_remaining_time(session_factory, clock) -> None:
    issued = await _issue(session_factory, clock, days=30)
    clock.advance(seconds=1)

    async with session_factory() as session:
        result = await RedemptionEngine(session, clock=clock).redeem(issued.code)

    assert result.record.is_used is True
    assert result.redeemed_at == clock.now
    assert result.remaining.days == 29
    assert result.remaining.hours == 23
    assert result.remaining.minutes == 59
    assert result.remaining.total_seconds == 30 * 86400 - 1

    async with session_factory() as session:
        stored = await session.get(ActivationCode, issued.id)
        assert stored.is_used is True
        assert stored.used_at is not None


@pytest.mark.asyncio
async def test_redeem_normalizes_presented_code(session_factory, clock) -> None:
    issued = await _issue(session_factory, clock)

    async with session_factory() as session:
        result = await RedemptionEngine(session, clock=clock).redeem(f"  {issued.code.lower()}\n")

    assert result.record.code == issued.code


@pytest.mark.asyncio
async def test_second_redemption_reports_original_use(session_factory, clock) -> None:
    issued = await _issue(session_factory, clock)
    first_use = clock.advance(minutes=1)

    async with session_factory() as session:
        await RedemptionEngine(session, clock=clock).redeem(issued.code)

    clock.advance(minutes=1)
    async with session_factory() as session:
        with pytest.raises(CodeAlreadyUsedError) as excinfo:
            await RedemptionEngine(session, clock=clock).redeem(issued.code)

    assert excinfo.value.used_at == first_use
    assert excinfo.value.as_payload()["used_at"] == first_use.isoformat()


@pytest.mark.asyncio
@pytest.mark.parametrize("raw", ["", "   ", None, "ABC$123", "X" * 65])
async def test_redeem_rejects_malformed_input(session_factory, clock, raw) -> None:
    async with session_factory() as session:
        with pytest.raises(InvalidRequestError):
            await RedemptionEngine(session, clock=clock).redeem(raw)


@pytest.mark.asyncio
async def test_unknown_code_fails_the_same_way_every_time(session_factory, clock) -> None:
    for _ in range(2):
        async with session_factory() as session:
            with pytest.raises(CodeNotFoundError):
                await RedemptionEngine(session, clock=clock).redeem("NOPE-000000-00000000")

    async with session_factory() as session:
        assert await session.scalar(select(func.count()).select_from(ActivationCode)) == 0
    assert get_activation_code_store().snapshot().redemptions == {"NotFound": 2}


@pytest.mark.asyncio
async def test_code_expires_at_its_boundary_and_is_kept(session_factory, clock) -> None:
    issued = await _issue(session_factory, clock, days=1)
    clock.advance(days=1)

    async with session_factory() as session:
        with pytest.raises(CodeExpiredError) as excinfo:
            await RedemptionEngine(session, clock=clock, sweep_enabled=False).redeem(issued.code)

    assert excinfo.value.expires_at == issued.expires_at
    async with session_factory() as session:
        stored = await session.get(ActivationCode, issued.id)
        assert stored is not None
        assert stored.is_used is False


@pytest.mark.asyncio
async def test_code_redeemable_one_second_before_expiry(session_factory, clock) -> None:
    issued = await _issue(session_factory, clock, days=1)
    clock.advance(days=1, seconds=-1)

    async with session_factory() as session:
        result = await RedemptionEngine(session, clock=clock).redeem(issued.code)

    assert result.remaining == RemainingTime(days=0, hours=0, minutes=0, total_seconds=1)


@pytest.mark.asyncio
async def test_expired_code_is_rejected_even_with_sweep_enabled(session_factory, clock) -> None:
    issued = await _issue(session_factory, clock, days=1)
    clock.advance(days=1, minutes=1)

    async with session_factory() as session:
        with pytest.raises(CodeExpiredError):
            await RedemptionEngine(session, clock=clock, sweep_enabled=True).redeem(issued.code)


@pytest.mark.asyncio
async def test_redemption_sweeps_other_stale_codes(session_factory, clock) -> None:
    stale = await _issue(session_factory, clock)
    clock.advance(minutes=10)
    fresh = await _issue(session_factory, clock)

    async with session_factory() as session:
        result = await RedemptionEngine(session, clock=clock, sweep_minutes_old=5).redeem(fresh.code)

    assert result.record.id == fresh.id
    async with session_factory() as session:
        assert await session.get(ActivationCode, stale.id) is None
    assert get_activation_code_store().snapshot().sweeps == {"stale-unused:runs": 1, "stale-unused:deleted": 1}


@pytest.mark.asyncio
async def test_presented_code_survives_the_opportunistic_sweep(session_factory, clock) -> None:
    issued = await _issue(session_factory, clock)
    clock.advance(minutes=10)

    async with session_factory() as session:
        result = await RedemptionEngine(session, clock=clock, sweep_minutes_old=5).redeem(issued.code)

    assert result.record.is_used is True


@pytest.mark.asyncio
async def test_concurrent_redemptions_have_exactly_one_winner(file_session_factory, clock) -> None:
    issued = await _issue(file_session_factory, clock)
    contenders = 8

    async def attempt():
        async with file_session_factory() as session:
            engine = RedemptionEngine(session, clock=clock, sweep_enabled=False)
            return await engine.redeem(issued.code)

    outcomes = await asyncio.gather(*(attempt() for _ in range(contenders)), return_exceptions=True)

    winners = [outcome for outcome in outcomes if not isinstance(outcome, Exception)]
    losers = [outcome for outcome in outcomes if isinstance(outcome, Exception)]
    assert len(winners) == 1
    assert len(losers) == contenders - 1
    assert all(isinstance(loser, CodeAlreadyUsedError) for loser in losers)

    async with file_session_factory() as session:
        stored = await session.get(ActivationCode, issued.id)
        assert stored.is_used is True
        assert stored.used_at is not None

    snapshot = get_activation_code_store().snapshot()
    assert snapshot.redemptions == {"Redeemed": 1, "AlreadyUsed": contenders - 1}
