from __future__ import annotations

from typing import Dict, Literal

from fastapi import APIRouter, Depends, Request
from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from codegate_api.core.settings import settings
from codegate_api.db.session import get_session
from codegate_api.services.activation_codes.errors import StorageUnavailableError
from codegate_api.services.activation_codes.storage import bounded


router = APIRouter()


class ComponentStatus(BaseModel):
    status: Literal["ready", "starting", "disabled", "error"]
    detail: str | None = Field(default=None, description="Human readable status detail")


class ReadinessPayload(BaseModel):
    status: Literal["ready", "degraded", "error"]
    components: Dict[str, ComponentStatus]


@router.get("/healthz", summary="Service health check")
async def service_health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz", summary="Service readiness", response_model=ReadinessPayload)
async def service_readiness(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> ReadinessPayload:
    components: Dict[str, ComponentStatus] = {}
    status: Literal["ready", "degraded", "error"] = "ready"

    try:
        await bounded(session.execute(text("SELECT 1")), operation="readiness")
    except (StorageUnavailableError, SQLAlchemyError) as exc:
        logger.warning("Readiness database probe failed", error=str(exc))
        components["database"] = ComponentStatus(status="error", detail="Database unreachable")
        status = "error"
    else:
        components["database"] = ComponentStatus(status="ready")

    sweeper = getattr(request.app.state, "retention_sweep_worker", None)
    if settings.retention_sweep_worker_enabled and sweeper is not None:
        running = bool(getattr(sweeper, "is_running", False))
        detail = None if running else "Retention sweep worker not running"
        if not running and status == "ready":
            status = "degraded"
        components["retention_sweeper"] = ComponentStatus(status="ready" if running else "starting", detail=detail)
    else:
        components["retention_sweeper"] = ComponentStatus(
            status="disabled",
            detail="Retention sweep worker disabled via settings",
        )

    janitor = getattr(request.app.state, "rate_limit_janitor", None)
    if janitor is not None:
        running = bool(getattr(janitor, "is_running", False))
        if not running and status == "ready":
            status = "degraded"
        components["rate_limit_janitor"] = ComponentStatus(
            status="ready" if running else "starting",
            detail=None if running else "Rate limit janitor not running",
        )
    else:
        components["rate_limit_janitor"] = ComponentStatus(
            status="disabled",
            detail=f"Not required for the {settings.rate_limit_backend} rate limit backend",
        )

    return ReadinessPayload(status=status, components=components)
