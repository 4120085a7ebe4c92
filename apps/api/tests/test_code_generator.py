import asyncio
import re
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from codegate_api.models.activation_code import ActivationCode
from codegate_api.observability.activation_codes import get_activation_code_store
from codegate_api.services.activation_codes import (
    ActivationCodeGenerator,
    CodeConflictError,
    InvalidRequestError,
    generate_code_value,
)
from codegate_api.services.activation_codes.generator import DEFAULT_PRODUCT_INFO

CODE_PATTERN = re.compile(r"^[0-9A-Z]+-[0-9A-Z]{6}-[0-9A-F]{8}$")


def test_generated_values_follow_the_token_layout(clock) -> None:
    values = {generate_code_value(clock()) for _ in range(50)}

    assert len(values) == 50
    for value in values:
        assert CODE_PATTERN.match(value), value
        assert value == value.upper()


@pytest.mark.asyncio
async def test_generate_persists_unused_code(session_factory, clock) -> None:
    async with session_factory() as session:
        record = await ActivationCodeGenerator(session, clock=clock).generate(expiration_days=30)

    assert CODE_PATTERN.match(record.code)
    assert record.is_used is False
    assert record.used_at is None
    assert record.created_at == clock.now
    assert record.expires_at - record.created_at == timedelta(days=30)
    assert record.product_info == DEFAULT_PRODUCT_INFO
    assert record.code_metadata == {}
    assert get_activation_code_store().snapshot().generation == {"generated": 1}


@pytest.mark.asyncio
async def test_generate_keeps_caller_payloads(session_factory, clock) -> None:
    async with session_factory() as session:
        record = await ActivationCodeGenerator(session, clock=clock).generate(
            expiration_days=7,
            product_info={"name": "Pro", "version": "2.1.0", "features": ["sync"]},
            metadata={"batch": "spring"},
        )

    async with session_factory() as session:
        stored = await session.get(ActivationCode, record.id)
        assert stored.product_info["name"] == "Pro"
        assert stored.code_metadata == {"batch": "spring"}


@pytest.mark.asyncio
async def test_generate_defaults_to_configured_lifetime(session_factory, clock) -> None:
    async with session_factory() as session:
        record = await ActivationCodeGenerator(session, clock=clock).generate()

    assert record.expires_at - record.created_at == timedelta(days=365)


@pytest.mark.asyncio
@pytest.mark.parametrize("days", [0, -1, 3651, True, "30", 1.5])
async def test_generate_rejects_invalid_expiration(session_factory, clock, days) -> None:
    async with session_factory() as session:
        with pytest.raises(InvalidRequestError):
            await ActivationCodeGenerator(session, clock=clock).generate(expiration_days=days)

        count = await session.scalar(select(func.count()).select_from(ActivationCode))
        assert count == 0


@pytest.mark.asyncio
async def test_generate_rejects_non_object_payloads(session_factory, clock) -> None:
    async with session_factory() as session:
        with pytest.raises(InvalidRequestError):
            await ActivationCodeGenerator(session, clock=clock).generate(metadata=["not", "an", "object"])


@pytest.mark.asyncio
async def test_generate_retries_after_collision(session_factory, clock) -> None:
    async with session_factory() as session:
        session.add(
            ActivationCode(
                code="TAKEN-000000-00000000",
                created_at=clock(),
                expires_at=clock() + timedelta(days=1),
                product_info={},
                code_metadata={},
            )
        )
        await session.commit()

    candidates = iter(["TAKEN-000000-00000000", "FRESH-000000-00000000"])

    async with session_factory() as session:
        generator = ActivationCodeGenerator(session, clock=clock, code_factory=lambda now: next(candidates))
        record = await generator.generate(expiration_days=1)

    assert record.code == "FRESH-000000-00000000"
    snapshot = get_activation_code_store().snapshot()
    assert snapshot.generation == {"generated": 1, "conflicts": 1}


@pytest.mark.asyncio
async def test_generate_gives_up_after_repeated_collisions(session_factory, clock) -> None:
    async with session_factory() as session:
        session.add(
            ActivationCode(
                code="TAKEN-000000-00000000",
                created_at=clock(),
                expires_at=clock() + timedelta(days=1),
                product_info={},
                code_metadata={},
            )
        )
        await session.commit()

    async with session_factory() as session:
        generator = ActivationCodeGenerator(
            session,
            clock=clock,
            code_factory=lambda now: "TAKEN-000000-00000000",
            max_attempts=3,
        )
        with pytest.raises(CodeConflictError) as excinfo:
            await generator.generate(expiration_days=1)

    assert excinfo.value.status_code == 409
    assert excinfo.value.retryable is True
    assert get_activation_code_store().snapshot().generation == {"conflicts": 3}


@pytest.mark.asyncio
async def test_concurrent_generation_yields_distinct_codes(file_session_factory, clock) -> None:
    issuers = 12

    async def issue():
        async with file_session_factory() as session:
            record = await ActivationCodeGenerator(session, clock=clock).generate(expiration_days=30)
            return record.code

    issued = await asyncio.gather(*(issue() for _ in range(issuers)))

    assert len(set(issued)) == issuers
    async with file_session_factory() as session:
        stored = (await session.execute(select(ActivationCode.code))).scalars().all()
    assert sorted(stored) == sorted(issued)
    assert get_activation_code_store().snapshot().generation["generated"] == issuers
