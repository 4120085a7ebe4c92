"""SQLAlchemy models package."""

from .activation_code import ActivationCode, ActivationCodeStatusEnum, RetentionSweepRun  # noqa: F401
