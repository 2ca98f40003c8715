"""In-process token bucket rate limiter.

Best-effort and single-process: buckets live in this process's memory only
and are not coordinated across server instances. The limiter is an explicit
object owned by the application (constructed in `create_app`, swept by a task
started in the lifespan) so it can later be replaced by a shared store
without touching call sites.
"""

import asyncio
import logging
import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_IDLE_TTL_MS = 10 * 60 * 1000
DEFAULT_SWEEP_INTERVAL_S = 60.0


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


@dataclass
class RateLimitBucket:
    tokens: float
    last_refill: float


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int


class TokenBucketRateLimiter:
    """Token buckets keyed by strings such as ``"likes:<actor id>"``."""

    def __init__(
        self,
        idle_ttl_ms: float = DEFAULT_IDLE_TTL_MS,
        sweep_interval_s: float = DEFAULT_SWEEP_INTERVAL_S,
        clock: Callable[[], float] = _monotonic_ms,
    ) -> None:
        self.idle_ttl_ms = idle_ttl_ms
        self.sweep_interval_s = sweep_interval_s
        self._clock = clock
        self._buckets: dict[str, RateLimitBucket] = {}
        # consume() is synchronous and may be reached from worker threads
        self._lock = threading.Lock()
        self._sweeper: asyncio.Task | None = None
        logger.info(
            "RateLimiter initialized: idle_ttl=%dms, sweep every %.0fs",
            idle_ttl_ms, sweep_interval_s,
        )

    def __len__(self) -> int:
        return len(self._buckets)

    def consume(self, key: str, capacity: int, window_ms: float) -> RateLimitDecision:
        """Take one token from `key`'s bucket.

        Tokens refill proportionally to elapsed time (`capacity` per
        `window_ms`), rounded down. A denial leaves the bucket untouched.
        """
        if capacity <= 0 or window_ms <= 0:
            raise ValueError("capacity and window_ms must be positive")

        with self._lock:
            now = self._clock()
            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = RateLimitBucket(tokens=capacity, last_refill=now)
                self._buckets[key] = bucket

            elapsed = now - bucket.last_refill
            if elapsed > 0:
                refill = math.floor(elapsed / window_ms * capacity)
                if refill > 0:
                    bucket.tokens = min(capacity, bucket.tokens + refill)
                    bucket.last_refill = now

            if bucket.tokens > 0:
                bucket.tokens -= 1
                return RateLimitDecision(allowed=True, remaining=int(bucket.tokens))

        logger.debug("Rate limit exceeded for %s", key)
        return RateLimitDecision(allowed=False, remaining=0)

    def sweep(self) -> int:
        """Drop buckets idle for longer than the TTL; returns how many went."""
        with self._lock:
            now = self._clock()
            stale = [
                key for key, bucket in self._buckets.items()
                if now - bucket.last_refill > self.idle_ttl_ms
            ]
            for key in stale:
                del self._buckets[key]
        if stale:
            logger.debug("Swept %d idle rate limit buckets", len(stale))
        return len(stale)

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()

    # ── Background sweep ───────────────────────────

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_s)
            self.sweep()

    def start(self) -> None:
        """Start the periodic sweep on the running event loop."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_forever(), name="rate-limit-sweeper")

    async def stop(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None
