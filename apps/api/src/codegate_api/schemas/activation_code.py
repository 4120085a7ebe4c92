from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from codegate_api.core.clock import ensure_aware
from codegate_api.models.activation_code import ActivationCode


class ActivationCodeCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    expiration_days: int | None = Field(None, alias="expirationDays")
    product_info: dict[str, Any] | None = Field(None, alias="productInfo")
    metadata: dict[str, Any] | None = None


class ActivationCodeVerify(BaseModel):
    code: str


class ActivationCodeResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: UUID
    code: str
    created_at: datetime = Field(..., alias="createdAt")
    expires_at: datetime = Field(..., alias="expiresAt")
    is_used: bool = Field(..., alias="isUsed")
    used_at: datetime | None = Field(None, alias="usedAt")
    is_expired: bool = Field(False, alias="isExpired")
    product_info: dict[str, Any] = Field(default_factory=dict, alias="productInfo")
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        alias="metadata",
        validation_alias=AliasChoices("code_metadata", "metadata"),
    )

    @classmethod
    def from_record(cls, record: ActivationCode, *, is_expired: bool) -> "ActivationCodeResponse":
        return cls(
            id=record.id,
            code=record.code,
            created_at=ensure_aware(record.created_at),
            expires_at=ensure_aware(record.expires_at),
            is_used=record.is_used,
            used_at=ensure_aware(record.used_at) if record.used_at is not None else None,
            is_expired=is_expired,
            product_info=record.product_info or {},
            metadata=record.code_metadata or {},
        )


class RemainingTimeResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    days: int
    hours: int
    minutes: int
    total_seconds: int = Field(..., alias="totalSeconds")


class ActivationCodeRedemption(ActivationCodeResponse):
    remaining_time: RemainingTimeResponse = Field(..., alias="remainingTime")


class PaginationResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    page: int
    limit: int
    total: int
    total_pages: int = Field(..., alias="totalPages")


class ActivationCodeListResponse(BaseModel):
    items: list[ActivationCodeResponse]
    pagination: PaginationResponse


class ActivationCodeStatsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    total: int
    used: int
    unused: int
    expired: int
    active: int
    usage_rate: float = Field(..., alias="usageRate")
    expiration_rate: float = Field(..., alias="expirationRate")


class RetainedCodeResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: UUID
    code: str
    created_at: datetime = Field(..., alias="createdAt")
    expires_at: datetime = Field(..., alias="expiresAt")
    is_used: bool = Field(..., alias="isUsed")
    used_at: datetime | None = Field(None, alias="usedAt")


class RetentionPreviewResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    policy: str
    description: str
    cutoff: datetime
    count: int
    items: list[RetainedCodeResponse]


class RetentionSweepResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    policy: str
    cutoff: datetime
    deleted_count: int = Field(..., alias="deletedCount")
    deleted_items: list[RetainedCodeResponse] = Field(..., alias="deletedItems")
