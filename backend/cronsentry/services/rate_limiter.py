"""Per-key fixed-window rate limiting for inbound pings.

Process-local and advisory: several app instances each count on their own.
Swap in another ``RateLimiter`` (e.g. backed by a shared store) through the
``get_rate_limiter`` dependency.
"""
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Protocol, Tuple

from ..config import settings


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: float  # Epoch seconds when the current window ends


class RateLimiter(Protocol):
    def hit(self, key: str) -> RateLimitResult:
        ...


class InMemoryRateLimiter:
    """Fixed window counter per key, guarded by a lock."""

    def __init__(
        self,
        limit: int,
        window_seconds: float,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock or time.time
        self._windows: Dict[str, Tuple[float, int]] = {}
        self._lock = threading.Lock()
        self._last_prune = 0.0

    def hit(self, key: str) -> RateLimitResult:
        now = self._clock()
        with self._lock:
            self._prune(now)
            started, count = self._windows.get(key, (now, 0))
            if now - started >= self.window_seconds:
                started, count = now, 0

            reset_at = started + self.window_seconds
            if count >= self.limit:
                return RateLimitResult(allowed=False, remaining=0, reset_at=reset_at)

            count += 1
            self._windows[key] = (started, count)
            return RateLimitResult(allowed=True, remaining=self.limit - count, reset_at=reset_at)

    def _prune(self, now: float) -> None:
        # At most once per window, drop keys whose window has ended
        if now - self._last_prune < self.window_seconds:
            return
        self._last_prune = now
        expired = [
            key for key, (started, _) in self._windows.items()
            if now - started >= self.window_seconds
        ]
        for key in expired:
            del self._windows[key]

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)


# Global instance
ping_rate_limiter = InMemoryRateLimiter(
    limit=settings.ping_rate_limit,
    window_seconds=settings.ping_rate_window_seconds,
)


def get_rate_limiter() -> RateLimiter:
    """Dependency returning the limiter used by the ping routes."""
    return ping_rate_limiter
