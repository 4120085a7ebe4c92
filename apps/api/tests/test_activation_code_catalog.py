from datetime import timedelta
from uuid import uuid4

import pytest

from codegate_api.models.activation_code import ActivationCode, ActivationCodeStatusEnum
from codegate_api.services.activation_codes import (
    ActivationCodeCatalog,
    CodeNotFoundError,
    InvalidRequestError,
)


async def _seed(session_factory, clock) -> dict[str, ActivationCode]:
    now = clock()
    records = {
        "used": ActivationCode(
            code="USED-000000-00000000",
            created_at=now - timedelta(minutes=3),
            expires_at=now + timedelta(days=1),
            is_used=True,
            used_at=now - timedelta(minutes=1),
            product_info={},
            code_metadata={},
        ),
        "expired": ActivationCode(
            code="EXPIRED-000000-00000000",
            created_at=now - timedelta(minutes=2),
            expires_at=now - timedelta(seconds=1),
            product_info={},
            code_metadata={},
        ),
        "active": ActivationCode(
            code="ACTIVE-000000-00000000",
            created_at=now - timedelta(minutes=1),
            expires_at=now + timedelta(days=1),
            product_info={},
            code_metadata={},
        ),
    }
    async with session_factory() as session:
        session.add_all(records.values())
        await session.commit()
    return records


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status, expected",
    [
        (ActivationCodeStatusEnum.ALL, ["ACTIVE", "EXPIRED", "USED"]),
        (ActivationCodeStatusEnum.USED, ["USED"]),
        (ActivationCodeStatusEnum.UNUSED, ["ACTIVE", "EXPIRED"]),
        (ActivationCodeStatusEnum.EXPIRED, ["EXPIRED"]),
        (ActivationCodeStatusEnum.ACTIVE, ["ACTIVE"]),
    ],
)
async def test_list_filters_by_status_newest_first(session_factory, clock, status, expected) -> None:
    await _seed(session_factory, clock)

    async with session_factory() as session:
        page = await ActivationCodeCatalog(session, clock=clock).list(status=status)

    assert [record.code.split("-")[0] for record in page.items] == expected
    assert page.pagination.total == len(expected)


@pytest.mark.asyncio
async def test_list_paginates(session_factory, clock) -> None:
    await _seed(session_factory, clock)

    async with session_factory() as session:
        page = await ActivationCodeCatalog(session, clock=clock).list(page=2, limit=2)

    assert [record.code for record in page.items] == ["USED-000000-00000000"]
    assert page.pagination.page == 2
    assert page.pagination.limit == 2
    assert page.pagination.total == 3
    assert page.pagination.total_pages == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("page, limit", [(0, 10), (1, 0), (1, 101)])
async def test_list_rejects_out_of_range_paging(session_factory, clock, page, limit) -> None:
    async with session_factory() as session:
        with pytest.raises(InvalidRequestError):
            await ActivationCodeCatalog(session, clock=clock).list(page=page, limit=limit)


@pytest.mark.asyncio
async def test_get_and_lookup_report_expiry(session_factory, clock) -> None:
    records = await _seed(session_factory, clock)

    async with session_factory() as session:
        catalog = ActivationCodeCatalog(session, clock=clock)
        expired = await catalog.get(records["expired"].id)
        active = await catalog.lookup(" active-000000-00000000 ")

    assert expired.is_expired is True
    assert active.is_expired is False
    assert active.record.id == records["active"].id


@pytest.mark.asyncio
async def test_missing_codes_raise_not_found(session_factory, clock) -> None:
    async with session_factory() as session:
        catalog = ActivationCodeCatalog(session, clock=clock)
        with pytest.raises(CodeNotFoundError):
            await catalog.get(uuid4())
        with pytest.raises(CodeNotFoundError):
            await catalog.lookup("MISSING-000000-00000000")
        with pytest.raises(CodeNotFoundError):
            await catalog.delete(uuid4())


@pytest.mark.asyncio
async def test_delete_removes_code(session_factory, clock) -> None:
    records = await _seed(session_factory, clock)

    async with session_factory() as session:
        deleted = await ActivationCodeCatalog(session, clock=clock).delete(records["used"].id)

    assert deleted == records["used"].id
    async with session_factory() as session:
        with pytest.raises(CodeNotFoundError):
            await ActivationCodeCatalog(session, clock=clock).get(records["used"].id)
