"""Activation code and retention audit models."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, JSON, String, Text, false, func
from sqlalchemy.dialects.postgresql import JSONB, UUID

from codegate_api.db.base import Base


class ActivationCodeStatusEnum(str, Enum):
    ALL = "all"
    USED = "used"
    UNUSED = "unused"
    EXPIRED = "expired"
    ACTIVE = "active"


class ActivationCode(Base):
    """Single-use token unlocking a product until redeemed."""

    __tablename__ = "activation_codes"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    code = Column(String(length=64), nullable=False, unique=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    is_used = Column(Boolean, nullable=False, default=False, server_default=false())
    used_at = Column(DateTime(timezone=True), nullable=True)
    product_info = Column(JSONB().with_variant(JSON(), "sqlite"), nullable=False, default=dict)
    code_metadata = Column("metadata", JSONB().with_variant(JSON(), "sqlite"), nullable=False, default=dict)

    __table_args__ = (
        Index("ix_activation_codes_unused_created", "is_used", "created_at"),
        Index("ix_activation_codes_unused_expires", "is_used", "expires_at"),
    )


class RetentionSweepRun(Base):
    """Durable log for background and triggered retention sweeps."""

    __tablename__ = "retention_sweep_runs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    policy = Column(String(length=32), nullable=False)
    triggered_by = Column(String(length=64), nullable=False, server_default="scheduler")
    status = Column(String(length=16), nullable=False, server_default="running")
    deleted_count = Column(Integer, nullable=False, server_default="0")
    error_message = Column(Text, nullable=True)
    metadata_json = Column("metadata", JSON, nullable=True)
    started_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)


__all__ = ["ActivationCode", "ActivationCodeStatusEnum", "RetentionSweepRun"]
