"""Activation code lifecycle services."""

from .catalog import ActivationCodeCatalog, ActivationCodeDetail, ActivationCodePage, Pagination
from .errors import (
    ActivationCodeError,
    CodeAlreadyUsedError,
    CodeConflictError,
    CodeExpiredError,
    CodeNotFoundError,
    InvalidRequestError,
    RateLimitedError,
    StorageUnavailableError,
    UnauthenticatedError,
    UnauthorizedError,
)
from .generator import ActivationCodeGenerator, generate_code_value
from .redemption import RedemptionEngine, RedemptionResult, RemainingTime, normalize_code
from .retention import (
    RetainedCode,
    RetentionPolicy,
    RetentionPreview,
    RetentionSweepResult,
    RetentionSweeper,
    expired_policy,
    expired_unused_policy,
    stale_unused_policy,
)
from .stats import ActivationCodeStats, StatsAggregator

__all__ = [
    "ActivationCodeCatalog",
    "ActivationCodeDetail",
    "ActivationCodeError",
    "ActivationCodeGenerator",
    "ActivationCodePage",
    "ActivationCodeStats",
    "CodeAlreadyUsedError",
    "CodeConflictError",
    "CodeExpiredError",
    "CodeNotFoundError",
    "InvalidRequestError",
    "Pagination",
    "RateLimitedError",
    "RedemptionEngine",
    "RedemptionResult",
    "RemainingTime",
    "RetainedCode",
    "RetentionPolicy",
    "RetentionPreview",
    "RetentionSweepResult",
    "RetentionSweeper",
    "StatsAggregator",
    "StorageUnavailableError",
    "UnauthenticatedError",
    "UnauthorizedError",
    "expired_policy",
    "expired_unused_policy",
    "generate_code_value",
    "normalize_code",
    "stale_unused_policy",
]
