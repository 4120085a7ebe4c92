from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from loguru import logger

from codegate_api.core.settings import settings
from codegate_api.db.session import async_session
from .api.errors import request_validation_handler
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing
from .services.rate_limit import InMemoryRateLimiter, get_rate_guard
from .workers import RateLimitJanitor, RetentionSweepWorker


APP_VERSION = "0.1.0"
SERVICE_NAME = "codegate-api"


def _session_factory():
    return async_session()


@asynccontextmanager
async def lifespan(app: FastAPI):
    sweep_worker = RetentionSweepWorker(
        session_factory=_session_factory,
        interval_seconds=settings.retention_sweep_interval_seconds,
        trigger_label=settings.retention_sweep_trigger_label,
    )
    app.state.retention_sweep_worker = sweep_worker

    sweep_enabled = settings.retention_sweep_worker_enabled
    if sweep_enabled:
        sweep_worker.start()
        logger.info(
            "Retention sweep worker enabled",
            interval_seconds=sweep_worker.interval_seconds,
            unused_minutes_old=settings.retention_unused_minutes_old,
            expired_days_old=settings.retention_expired_days_old,
        )
    else:
        logger.info(
            "Retention sweep worker disabled",
            reason="retention_sweep_worker_enabled is false",
        )

    guard = get_rate_guard()
    janitor: RateLimitJanitor | None = None
    tracks_local_state = isinstance(guard.limiter, InMemoryRateLimiter) or guard.classifier is not None
    if settings.rate_limit_enabled and tracks_local_state:
        janitor = RateLimitJanitor(guard.limiter, classifier=guard.classifier)
        janitor.start()
    else:
        logger.info(
            "Rate limit janitor not started",
            backend=settings.rate_limit_backend,
            rate_limit_enabled=settings.rate_limit_enabled,
        )
    app.state.rate_limit_janitor = janitor

    try:
        yield
    finally:
        if sweep_enabled and sweep_worker.is_running:
            await sweep_worker.stop()
        if janitor is not None and janitor.is_running:
            await janitor.stop()


def create_app() -> FastAPI:
    """Application factory for the activation code service."""
    configure_logging(
        service_name=SERVICE_NAME,
        environment=settings.environment,
        version=APP_VERSION,
    )

    app = FastAPI(
        title="Codegate Activation API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    if settings.tracing_enabled:
        configure_tracing(
            app,
            service_name=SERVICE_NAME,
            service_version=APP_VERSION,
            environment=settings.environment,
        )

    app.include_router(api_router)

    return app
