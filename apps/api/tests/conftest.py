import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_asyncio


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()
os.environ.setdefault("TRACING_ENABLED", "false")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

from codegate_api import models  # noqa: E402,F401
from codegate_api.app import create_app  # noqa: E402
from codegate_api.core.settings import settings  # noqa: E402
from codegate_api.db.base import Base  # noqa: E402
from codegate_api.db.session import get_session  # noqa: E402
from codegate_api.observability.activation_codes import get_activation_code_store  # noqa: E402
from codegate_api.services.rate_limit import get_rate_guard  # noqa: E402


class MutableClock:
    """Deterministic UTC clock that tests advance by hand."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


@pytest.fixture(autouse=True)
def isolated_state(monkeypatch):
    monkeypatch.setattr(settings, "rate_limit_enabled", False)
    monkeypatch.setattr(settings, "api_key", "")
    monkeypatch.setattr(settings, "api_key_expires_at", None)
    monkeypatch.setattr(settings, "identity_introspection_url", None)
    get_activation_code_store().reset()
    get_rate_guard.cache_clear()
    yield
    get_activation_code_store().reset()
    get_rate_guard.cache_clear()


@pytest.fixture
def clock():
    return MutableClock(datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc))


async def _build_factory(url: str):
    engine = create_async_engine(url, future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return engine, async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def session_factory():
    engine, factory = await _build_factory("sqlite+aiosqlite:///:memory:")
    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """Separate connections per session, needed when sessions race each other."""

    engine, factory = await _build_factory(f"sqlite+aiosqlite:///{tmp_path / 'codes.db'}")
    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def app_with_db(session_factory):
    app = create_app()

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    try:
        yield app, session_factory
    finally:
        app.dependency_overrides.clear()
