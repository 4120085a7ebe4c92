"""Run activation code retention sweeps once.

Intended usage: schedule via cron when the in-process sweep worker is
disabled, or run by hand before a maintenance window.

Example:
    python tooling/scripts/run_retention_sweep.py --trigger cron --unused-minutes 10
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from loguru import logger


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Execute activation code retention sweeps once")
    parser.add_argument(
        "--trigger",
        default="manual",
        help="Label recorded in the sweep audit rows to describe the invocation source.",
    )
    parser.add_argument(
        "--unused-minutes",
        type=int,
        default=None,
        help="Override the age after which never-redeemed codes are considered stale.",
    )
    parser.add_argument(
        "--expired-days",
        type=int,
        default=None,
        help="Override how long unused codes are kept after they expire.",
    )
    parser.add_argument(
        "--include-used",
        action="store_true",
        help="Also delete redeemed codes that expired more than --expired-days ago.",
    )
    return parser.parse_args()


async def _run(
    trigger: str,
    unused_minutes: int | None,
    expired_days: int | None,
    include_used: bool,
) -> dict[str, int]:
    repo_root = Path(__file__).resolve().parents[2]
    api_src = repo_root / "apps" / "api" / "src"
    if str(api_src) not in sys.path:
        sys.path.insert(0, str(api_src))

    from codegate_api.core.settings import settings  # type: ignore import-position
    from codegate_api.db.session import async_session  # type: ignore import-position
    from codegate_api.services.activation_codes import (  # type: ignore import-position
        expired_policy,
        expired_unused_policy,
        stale_unused_policy,
    )
    from codegate_api.workers import RetentionSweepWorker  # type: ignore import-position

    minutes = unused_minutes if unused_minutes is not None else settings.retention_unused_minutes_old
    days = expired_days if expired_days is not None else settings.retention_expired_days_old

    def policies():
        selected = [stale_unused_policy(minutes), expired_unused_policy(days)]
        if include_used:
            selected.append(expired_policy(days))
        return selected

    worker = RetentionSweepWorker(
        async_session,  # type: ignore[arg-type]
        policy_factory=policies,
        trigger_label=settings.retention_sweep_trigger_label,
    )
    return await worker.run_once(triggered_by=trigger)


def main() -> int:
    args = parse_args()
    summary = asyncio.run(_run(args.trigger, args.unused_minutes, args.expired_days, args.include_used))
    logger.success(
        "Retention sweep run completed",
        deleted=summary,
        total_deleted=sum(summary.values()),
        trigger=args.trigger,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
