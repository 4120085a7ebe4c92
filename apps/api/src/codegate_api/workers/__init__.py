from .rate_limit_janitor import RateLimitJanitor
from .retention_sweeper import RetentionSweepWorker

__all__ = ["RateLimitJanitor", "RetentionSweepWorker"]
