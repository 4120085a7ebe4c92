"""Worker wiring for periodic activation code retention sweeps."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Dict, Sequence

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from codegate_api.core.clock import Clock, utcnow
from codegate_api.core.settings import settings
from codegate_api.models.activation_code import RetentionSweepRun
from codegate_api.observability.tracing import get_tracer
from codegate_api.services.activation_codes.retention import (
    RetainedCode,
    RetentionPolicy,
    RetentionSweeper,
    expired_unused_policy,
    stale_unused_policy,
)

SessionFactory = Callable[[], Awaitable[AsyncSession]] | Callable[[], AsyncSession]
PolicyFactory = Callable[[], Sequence[RetentionPolicy]]


def default_policies() -> list[RetentionPolicy]:
    return [
        stale_unused_policy(settings.retention_unused_minutes_old),
        expired_unused_policy(settings.retention_expired_days_old),
    ]


class RetentionSweepWorker:
    """Periodically deletes stale and long-expired unused activation codes."""

    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        policy_factory: PolicyFactory | None = None,
        interval_seconds: int | None = None,
        trigger_label: str | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._policy_factory = policy_factory or default_policies
        self.interval_seconds = interval_seconds or settings.retention_sweep_interval_seconds
        self._trigger_label = trigger_label or settings.retention_sweep_trigger_label
        self._clock = clock
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self.is_running: bool = False

    def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop())
        self.is_running = True
        logger.info("Retention sweep worker started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if not self._task:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        self.is_running = False
        logger.info("Retention sweep worker stopped")

    async def run_once(self, *, triggered_by: str | None = None) -> Dict[str, int]:
        """Apply every configured policy, recording one audit row per policy."""

        trigger = triggered_by or self._trigger_label
        summary: Dict[str, int] = {}
        for policy in self._policy_factory():
            summary[policy.name] = await self._sweep_policy(policy, trigger)
        return summary

    async def _sweep_policy(self, policy: RetentionPolicy, trigger: str) -> int:
        session = await self._ensure_session()
        async with session as managed_session:
            run = RetentionSweepRun(
                policy=policy.name,
                triggered_by=trigger,
                status="running",
                deleted_count=0,
                started_at=self._clock(),
            )
            managed_session.add(run)
            await managed_session.commit()
            await managed_session.refresh(run)
            run_id = str(run.id)

            with get_tracer().start_as_current_span(
                "retention.sweep",
                attributes={"retention.policy": policy.name, "retention.trigger": trigger},
            ):
                try:
                    result = await RetentionSweeper(managed_session, clock=self._clock).sweep(policy)
                except Exception as exc:
                    await managed_session.rollback()
                    run.status = "failed"
                    run.completed_at = self._clock()
                    run.error_message = str(exc)
                    run.metadata_json = self._build_run_metadata(policy, trigger, error=str(exc))
                    managed_session.add(run)
                    await managed_session.commit()
                    logger.exception(
                        "Retention sweep failed",
                        run_id=run_id,
                        policy=policy.name,
                        error=str(exc),
                    )
                    raise

            run.status = "completed"
            run.completed_at = self._clock()
            run.deleted_count = result.deleted_count
            run.metadata_json = self._build_run_metadata(
                policy,
                trigger,
                cutoff=result.cutoff.isoformat(),
                deleted_items=result.deleted_items,
            )
            managed_session.add(run)
            await managed_session.commit()
            logger.info(
                "Retention sweep completed",
                run_id=run_id,
                policy=policy.name,
                deleted_count=result.deleted_count,
                trigger=trigger,
            )
            return result.deleted_count

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception as exc:  # pragma: no cover - keeps the loop alive
                logger.exception("Retention sweep iteration failed", error=str(exc))
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue

    async def _ensure_session(self) -> AsyncSession:
        maybe_session = self._session_factory()
        if isinstance(maybe_session, AsyncSession):
            return maybe_session
        return await maybe_session

    @staticmethod
    def _build_run_metadata(
        policy: RetentionPolicy,
        trigger: str,
        *,
        cutoff: str | None = None,
        error: str | None = None,
        deleted_items: Sequence[RetainedCode] | None = None,
    ) -> Dict[str, object | None]:
        metadata: Dict[str, object | None] = {
            "policy": policy.name,
            "description": policy.description,
            "triggered_by": trigger,
        }
        if cutoff:
            metadata["cutoff"] = cutoff
        if error:
            metadata["error"] = error
        if deleted_items is not None:
            metadata["deleted_codes"] = [
                {
                    "id": str(item.id),
                    "code": item.code,
                    "created_at": item.created_at.isoformat(),
                    "expires_at": item.expires_at.isoformat(),
                    "is_used": item.is_used,
                }
                for item in deleted_items
            ]
        return metadata


__all__ = ["RetentionSweepWorker", "default_policies"]
