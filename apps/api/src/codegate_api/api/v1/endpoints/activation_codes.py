"""Activation code issuance, redemption and retention endpoints."""

from __future__ import annotations

from dataclasses import asdict
from typing import Callable
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from codegate_api.api.dependencies.rate_limit import rate_limited
from codegate_api.api.dependencies.security import CallerIdentity, require_operator
from codegate_api.api.errors import to_http_exception
from codegate_api.core.clock import Clock, utcnow
from codegate_api.core.settings import settings
from codegate_api.db.session import get_session
from codegate_api.models.activation_code import ActivationCodeStatusEnum
from codegate_api.schemas.activation_code import (
    ActivationCodeCreate,
    ActivationCodeListResponse,
    ActivationCodeRedemption,
    ActivationCodeResponse,
    ActivationCodeStatsResponse,
    ActivationCodeVerify,
    PaginationResponse,
    RemainingTimeResponse,
    RetainedCodeResponse,
    RetentionPreviewResponse,
    RetentionSweepResponse,
)
from codegate_api.services.activation_codes import (
    ActivationCodeCatalog,
    ActivationCodeError,
    ActivationCodeGenerator,
    RedemptionEngine,
    RetentionPolicy,
    RetentionSweeper,
    StatsAggregator,
    expired_policy,
    expired_unused_policy,
    stale_unused_policy,
)

router = APIRouter(prefix="/activation-codes", tags=["Activation Codes"])


def get_clock() -> Clock:
    return utcnow


@router.post(
    "",
    response_model=ActivationCodeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Generate an activation code",
    dependencies=[Depends(rate_limited("generate", abuse=True))],
)
async def create_activation_code(
    payload: ActivationCodeCreate,
    caller: CallerIdentity = Depends(require_operator),
    db: AsyncSession = Depends(get_session),
    clock: Clock = Depends(get_clock),
) -> ActivationCodeResponse:
    generator = ActivationCodeGenerator(db, clock=clock)
    try:
        record = await generator.generate(
            expiration_days=payload.expiration_days,
            product_info=payload.product_info,
            metadata=payload.metadata,
        )
    except ActivationCodeError as exc:
        raise to_http_exception(exc) from exc
    logger.info("Operator issued activation code", actor=caller.subject, code_id=str(record.id))
    return ActivationCodeResponse.from_record(record, is_expired=False)


@router.get(
    "",
    response_model=ActivationCodeListResponse,
    summary="List activation codes",
    dependencies=[Depends(require_operator), Depends(rate_limited("list"))],
)
async def list_activation_codes(
    status_filter: ActivationCodeStatusEnum = Query(ActivationCodeStatusEnum.ALL, alias="status"),
    page: int = Query(1),
    limit: int = Query(10),
    db: AsyncSession = Depends(get_session),
    clock: Clock = Depends(get_clock),
) -> ActivationCodeListResponse:
    catalog = ActivationCodeCatalog(db, clock=clock)
    try:
        result = await catalog.list(status=status_filter, page=page, limit=limit)
    except ActivationCodeError as exc:
        raise to_http_exception(exc) from exc
    now = clock()
    return ActivationCodeListResponse(
        items=[
            ActivationCodeResponse.from_record(record, is_expired=catalog.is_expired(record, now))
            for record in result.items
        ],
        pagination=PaginationResponse(**asdict(result.pagination)),
    )


@router.post(
    "/verify",
    response_model=ActivationCodeRedemption,
    summary="Redeem an activation code",
    dependencies=[Depends(rate_limited("verify", abuse=True))],
)
async def verify_activation_code(
    payload: ActivationCodeVerify,
    db: AsyncSession = Depends(get_session),
    clock: Clock = Depends(get_clock),
) -> ActivationCodeRedemption:
    engine = RedemptionEngine(db, clock=clock)
    try:
        result = await engine.redeem(payload.code)
    except ActivationCodeError as exc:
        raise to_http_exception(exc) from exc

    response = ActivationCodeResponse.from_record(result.record, is_expired=False)
    return ActivationCodeRedemption(
        **response.model_dump(),
        remaining_time=RemainingTimeResponse(**asdict(result.remaining)),
    )


@router.get(
    "/stats",
    response_model=ActivationCodeStatsResponse,
    summary="Activation code statistics",
    dependencies=[Depends(rate_limited("stats"))],
)
async def activation_code_stats(
    db: AsyncSession = Depends(get_session),
    clock: Clock = Depends(get_clock),
) -> ActivationCodeStatsResponse:
    try:
        stats = await StatsAggregator(db, clock=clock).stats()
    except ActivationCodeError as exc:
        raise to_http_exception(exc) from exc
    return ActivationCodeStatsResponse(**stats.as_dict())


@router.get(
    "/lookup/{code}",
    response_model=ActivationCodeResponse,
    summary="Look up an activation code by its token",
    dependencies=[Depends(require_operator), Depends(rate_limited("lookup"))],
)
async def lookup_activation_code(
    code: str,
    db: AsyncSession = Depends(get_session),
    clock: Clock = Depends(get_clock),
) -> ActivationCodeResponse:
    try:
        detail = await ActivationCodeCatalog(db, clock=clock).lookup(code)
    except ActivationCodeError as exc:
        raise to_http_exception(exc) from exc
    return ActivationCodeResponse.from_record(detail.record, is_expired=detail.is_expired)


async def _preview(db: AsyncSession, clock: Clock, policy_factory: Callable[[], RetentionPolicy]) -> RetentionPreviewResponse:
    try:
        policy = policy_factory()
        preview = await RetentionSweeper(db, clock=clock).preview(policy)
    except ActivationCodeError as exc:
        raise to_http_exception(exc) from exc
    return RetentionPreviewResponse(
        policy=preview.policy,
        description=policy.description,
        cutoff=preview.cutoff,
        count=preview.count,
        items=[RetainedCodeResponse(**asdict(item)) for item in preview.items],
    )


async def _sweep(
    db: AsyncSession,
    clock: Clock,
    policy_factory: Callable[[], RetentionPolicy],
    caller: CallerIdentity,
) -> RetentionSweepResponse:
    try:
        result = await RetentionSweeper(db, clock=clock).sweep(policy_factory())
    except ActivationCodeError as exc:
        raise to_http_exception(exc) from exc
    logger.info(
        "Operator triggered retention sweep",
        actor=caller.subject,
        policy=result.policy,
        deleted_count=result.deleted_count,
    )
    return RetentionSweepResponse(
        policy=result.policy,
        cutoff=result.cutoff,
        deleted_count=result.deleted_count,
        deleted_items=[RetainedCodeResponse(**asdict(item)) for item in result.deleted_items],
    )


@router.get(
    "/cleanup/unused",
    response_model=RetentionPreviewResponse,
    summary="Preview stale unused codes",
    dependencies=[Depends(require_operator), Depends(rate_limited("cleanup-unused"))],
)
async def preview_stale_unused(
    minutes_old: int = Query(settings.retention_unused_minutes_old),
    db: AsyncSession = Depends(get_session),
    clock: Clock = Depends(get_clock),
) -> RetentionPreviewResponse:
    return await _preview(db, clock, lambda: stale_unused_policy(minutes_old))


@router.post(
    "/cleanup/unused",
    response_model=RetentionSweepResponse,
    summary="Delete stale unused codes",
    dependencies=[Depends(rate_limited("cleanup-unused"))],
)
async def sweep_stale_unused(
    minutes_old: int = Query(settings.retention_unused_minutes_old),
    caller: CallerIdentity = Depends(require_operator),
    db: AsyncSession = Depends(get_session),
    clock: Clock = Depends(get_clock),
) -> RetentionSweepResponse:
    return await _sweep(db, clock, lambda: stale_unused_policy(minutes_old), caller)


@router.get(
    "/cleanup/expired-unused",
    response_model=RetentionPreviewResponse,
    summary="Preview unused codes past expiry",
    dependencies=[Depends(require_operator), Depends(rate_limited("cleanup-expired-unused"))],
)
async def preview_expired_unused(
    days_old: int = Query(settings.retention_expired_days_old),
    db: AsyncSession = Depends(get_session),
    clock: Clock = Depends(get_clock),
) -> RetentionPreviewResponse:
    return await _preview(db, clock, lambda: expired_unused_policy(days_old))


@router.post(
    "/cleanup/expired-unused",
    response_model=RetentionSweepResponse,
    summary="Delete unused codes past expiry",
    dependencies=[Depends(rate_limited("cleanup-expired-unused"))],
)
async def sweep_expired_unused(
    days_old: int = Query(settings.retention_expired_days_old),
    caller: CallerIdentity = Depends(require_operator),
    db: AsyncSession = Depends(get_session),
    clock: Clock = Depends(get_clock),
) -> RetentionSweepResponse:
    return await _sweep(db, clock, lambda: expired_unused_policy(days_old), caller)


@router.get(
    "/cleanup/expired",
    response_model=RetentionPreviewResponse,
    summary="Preview expired codes of any state",
    dependencies=[Depends(require_operator), Depends(rate_limited("cleanup-expired"))],
)
async def preview_expired(
    days_old: int = Query(0),
    db: AsyncSession = Depends(get_session),
    clock: Clock = Depends(get_clock),
) -> RetentionPreviewResponse:
    return await _preview(db, clock, lambda: expired_policy(days_old))


@router.post(
    "/cleanup/expired",
    response_model=RetentionSweepResponse,
    summary="Delete expired codes of any state",
    dependencies=[Depends(rate_limited("cleanup-expired"))],
)
async def sweep_expired(
    days_old: int = Query(0),
    caller: CallerIdentity = Depends(require_operator),
    db: AsyncSession = Depends(get_session),
    clock: Clock = Depends(get_clock),
) -> RetentionSweepResponse:
    return await _sweep(db, clock, lambda: expired_policy(days_old), caller)


@router.get(
    "/{code_id}",
    response_model=ActivationCodeResponse,
    summary="Activation code detail",
    dependencies=[Depends(require_operator), Depends(rate_limited("detail"))],
)
async def get_activation_code(
    code_id: UUID,
    db: AsyncSession = Depends(get_session),
    clock: Clock = Depends(get_clock),
) -> ActivationCodeResponse:
    try:
        detail = await ActivationCodeCatalog(db, clock=clock).get(code_id)
    except ActivationCodeError as exc:
        raise to_http_exception(exc) from exc
    return ActivationCodeResponse.from_record(detail.record, is_expired=detail.is_expired)


@router.delete(
    "/{code_id}",
    summary="Delete an activation code",
    dependencies=[Depends(rate_limited("delete"))],
)
async def delete_activation_code(
    code_id: UUID,
    caller: CallerIdentity = Depends(require_operator),
    db: AsyncSession = Depends(get_session),
    clock: Clock = Depends(get_clock),
) -> dict[str, object]:
    try:
        deleted = await ActivationCodeCatalog(db, clock=clock).delete(code_id)
    except ActivationCodeError as exc:
        raise to_http_exception(exc) from exc
    logger.info("Operator deleted activation code", actor=caller.subject, code_id=str(deleted))
    return {"id": str(deleted), "deleted": True}
