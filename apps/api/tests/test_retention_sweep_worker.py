from datetime import timedelta

import pytest
from sqlalchemy import select

from codegate_api.models.activation_code import ActivationCode, RetentionSweepRun
from codegate_api.services.activation_codes import RetentionPolicy, stale_unused_policy
from codegate_api.workers import RetentionSweepWorker


@pytest.mark.asyncio
async def test_worker_records_completed_runs(session_factory, clock) -> None:
    now = clock()
    async with session_factory() as session:
        session.add_all(
            [
                ActivationCode(
                    code="STALE-000000-00000000",
                    created_at=now - timedelta(minutes=30),
                    expires_at=now + timedelta(days=1),
                    product_info={},
                    code_metadata={},
                ),
                ActivationCode(
                    code="LAPSED-000000-00000000",
                    created_at=now - timedelta(days=100),
                    expires_at=now - timedelta(days=60),
                    product_info={},
                    code_metadata={},
                ),
            ]
        )
        await session.commit()

    worker = RetentionSweepWorker(session_factory, interval_seconds=1, trigger_label="unit-default", clock=clock)
    summary = await worker.run_once(triggered_by="unit-test")

    assert summary == {"stale-unused": 2, "expired-unused": 0}

    async with session_factory() as session:
        runs = (await session.execute(RetentionSweepRun.__table__.select())).fetchall()
        assert {row.policy for row in runs} == {"stale-unused", "expired-unused"}
        for row in runs:
            assert row.status == "completed"
            assert row.triggered_by == "unit-test"
            assert row.completed_at is not None
            assert row.metadata["triggered_by"] == "unit-test"
        counts = {row.policy: row.deleted_count for row in runs}
        assert counts == {"stale-unused": 2, "expired-unused": 0}

        audit = {row.policy: row.metadata["deleted_codes"] for row in runs}
        assert audit["expired-unused"] == []
        assert {entry["code"] for entry in audit["stale-unused"]} == {
            "STALE-000000-00000000",
            "LAPSED-000000-00000000",
        }
        stale_entry = next(entry for entry in audit["stale-unused"] if entry["code"] == "STALE-000000-00000000")
        assert stale_entry["is_used"] is False
        assert stale_entry["created_at"] == (now - timedelta(minutes=30)).isoformat()
        assert set(stale_entry) == {"id", "code", "created_at", "expires_at", "is_used"}

        remaining = (await session.execute(select(ActivationCode))).scalars().all()
        assert remaining == []


@pytest.mark.asyncio
async def test_worker_records_failed_runs(session_factory, clock) -> None:
    broken = RetentionPolicy(
        name="broken",
        description="references a column that does not exist",
        anchor="missing_column",
        age=timedelta(minutes=1),
    )
    worker = RetentionSweepWorker(session_factory, policy_factory=lambda: [broken], clock=clock)

    with pytest.raises(AttributeError):
        await worker.run_once()

    async with session_factory() as session:
        run = (await session.execute(select(RetentionSweepRun))).scalar_one()
        assert run.status == "failed"
        assert run.triggered_by == "scheduler"
        assert "missing_column" in run.error_message
        assert run.metadata_json["error"]


@pytest.mark.asyncio
async def test_worker_start_and_stop(session_factory, clock) -> None:
    worker = RetentionSweepWorker(
        session_factory,
        policy_factory=lambda: [stale_unused_policy(5)],
        interval_seconds=3600,
        clock=clock,
    )

    worker.start()
    assert worker.is_running is True
    await worker.stop()
    assert worker.is_running is False
