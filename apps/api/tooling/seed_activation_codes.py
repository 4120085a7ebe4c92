"""Seed development activation codes covering every lifecycle state."""

from __future__ import annotations

import asyncio
import os
from datetime import datetime, timedelta, timezone
from typing import TypedDict

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from codegate_api.core.settings import settings
from codegate_api.db.base import Base
from codegate_api.models.activation_code import ActivationCode
from codegate_api.services.activation_codes.generator import DEFAULT_PRODUCT_INFO, generate_code_value


class SeedCode(TypedDict):
    label: str
    age: timedelta
    lifetime: timedelta
    used: bool


DEV_CODES: list[SeedCode] = [
    {"label": "active", "age": timedelta(minutes=1), "lifetime": timedelta(days=365), "used": False},
    {"label": "redeemed", "age": timedelta(days=2), "lifetime": timedelta(days=30), "used": True},
    {"label": "expired", "age": timedelta(days=10), "lifetime": timedelta(days=1), "used": False},
    {"label": "long-expired", "age": timedelta(days=90), "lifetime": timedelta(days=7), "used": False},
]


async def seed_codes(session: AsyncSession, *, copies: int = 1) -> list[ActivationCode]:
    now = datetime.now(timezone.utc)
    created: list[ActivationCode] = []
    for template in DEV_CODES:
        for _ in range(copies):
            created_at = now - template["age"]
            record = ActivationCode(
                code=generate_code_value(created_at),
                created_at=created_at,
                expires_at=created_at + template["lifetime"],
                is_used=template["used"],
                used_at=created_at + timedelta(hours=1) if template["used"] else None,
                product_info=dict(DEFAULT_PRODUCT_INFO),
                code_metadata={"seed": template["label"]},
            )
            session.add(record)
            created.append(record)
    await session.commit()
    return created


async def main() -> None:
    engine = create_async_engine(settings.database_url, future=True)
    session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        if settings.database_url.startswith("sqlite"):
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        async with session_factory() as session:
            records = await seed_codes(session, copies=int(os.getenv("SEED_ACTIVATION_CODE_COPIES", "1")))
        for record in records:
            print(f"{record.code_metadata['seed']:>13}  {record.code}")
        print("Development activation codes ready ✅")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
