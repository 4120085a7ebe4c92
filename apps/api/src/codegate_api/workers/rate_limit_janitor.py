"""Periodic purge of idle process-local rate limit state."""

from __future__ import annotations

import asyncio

from loguru import logger

from codegate_api.core.settings import settings
from codegate_api.services.rate_limit import AnomalyClassifier, InMemoryRateLimiter, RateLimiter


class RateLimitJanitor:
    """Purges idle limiter windows and anomaly history held in this process.

    Shared limiter backends expire their own keys, so only the classifier is
    purged for them.
    """

    def __init__(
        self,
        limiter: RateLimiter,
        *,
        classifier: AnomalyClassifier | None = None,
        interval_seconds: int | None = None,
        stale_after_seconds: int | None = None,
    ) -> None:
        self._limiter = limiter
        self._classifier = classifier
        self.interval_seconds = interval_seconds or settings.rate_limit_janitor_interval_seconds
        self._stale_after_seconds = stale_after_seconds or settings.rate_limit_stale_after_seconds
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self.is_running: bool = False

    def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop())
        self.is_running = True
        logger.info("Rate limit janitor started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if not self._task:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        self.is_running = False
        logger.info("Rate limit janitor stopped")

    def run_once(self) -> int:
        purged = 0
        if isinstance(self._limiter, InMemoryRateLimiter):
            purged += self._limiter.purge_stale()
        if self._classifier is not None:
            purged += self._classifier.purge_stale(self._stale_after_seconds)
        if purged:
            logger.debug("Purged idle rate limit state", purged=purged)
        return purged

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                self.run_once()


__all__ = ["RateLimitJanitor"]
