"""Fixed-window rate limiting per caller and endpoint bucket.

In-memory like the job store: one process, one event loop, no lock.
"""
import logging
import math
import time
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)

TILES_BUCKET = "tiles-generate"
PLAYGROUND_BUCKET = "playground-generate"
CASE_STUDY_BUCKET = "case-study-generate"
SYMBOLS_BUCKET = "symbol-generator-dwg"


@dataclass
class RateLimitResult:
    success: bool
    limit: int
    remaining: int
    reset_at: float  # clock seconds when the window resets

    def headers(self, now: float) -> dict[str, str]:
        reset_in = max(0, math.ceil(self.reset_at - now))
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(reset_in),
        }
        if not self.success:
            headers["Retry-After"] = str(reset_in)
        return headers


class RateLimiter:
    """``check(identity, bucket)`` counts one request against ``identity:bucket``."""

    def __init__(
        self,
        limits: dict[str, int],
        window_seconds: float = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.limits = limits
        self.window_seconds = window_seconds
        self.clock = clock
        self._windows: dict[str, tuple[int, float]] = {}

    def check(self, identity: str, bucket: str) -> RateLimitResult:
        if bucket not in self.limits:
            raise KeyError(f"No rate limit configured for bucket '{bucket}'")
        limit = self.limits[bucket]
        now = self.clock()
        self._purge(now)

        key = f"{identity}:{bucket}"
        count, reset_at = self._windows.get(key, (0, now + self.window_seconds))
        if count >= limit:
            logger.warning(f"Rate limit hit for {key} ({limit}/{self.window_seconds:.0f}s)")
            return RateLimitResult(False, limit, 0, reset_at)
        count += 1
        self._windows[key] = (count, reset_at)
        return RateLimitResult(True, limit, limit - count, reset_at)

    def _purge(self, now: float) -> None:
        expired = [key for key, (_, reset_at) in self._windows.items() if reset_at <= now]
        for key in expired:
            del self._windows[key]
