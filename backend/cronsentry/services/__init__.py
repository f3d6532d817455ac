"""Services for schedule evaluation, probing, sweeping, and alerting."""
from .checker import ProbeExecutor
from .pinger import PingService
from .scheduler import SchedulerService
from .alerter import AlerterService
from .rate_limiter import InMemoryRateLimiter

__all__ = ["ProbeExecutor", "PingService", "SchedulerService", "AlerterService", "InMemoryRateLimiter"]
