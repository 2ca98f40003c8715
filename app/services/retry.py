"""Retry-with-backoff policy shared by every source adapter."""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from app.domain.errors import RetryExhaustedError, SourceError, SourceThrottledError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Exponential backoff with jitter.

    Attributes:
        max_attempts:  Total attempts, including the first one.
        base_delay:    Delay in seconds after the first failure.
        max_delay:     Upper bound for the un-jittered delay.
        jitter_factor: Fraction (0..1) of the delay added or removed at random.
        retry_on:      Exception types treated as transient.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter_factor: float = 0.5
    retry_on: tuple[type[BaseException], ...] = (SourceError,)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be non-negative")
        if not 0 <= self.jitter_factor <= 1:
            raise ValueError("jitter_factor must be between 0 and 1")

    def backoff_delay(self, attempt: int) -> float:
        """Un-jittered delay after the given (1-based) failed attempt."""
        return min(self.max_delay, self.base_delay * 2 ** (attempt - 1))

    def jittered_delay(self, attempt: int, rand: Callable[[], float] = random.random) -> float:
        delay = self.backoff_delay(attempt)
        # rand() in [0, 1) maps to a perturbation in [-delay*jitter, +delay*jitter)
        jitter = delay * self.jitter_factor * (2 * rand() - 1)
        return max(0.0, delay + jitter)

    async def run(
        self,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        label: str | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rand: Callable[[], float] = random.random,
        **kwargs: Any,
    ) -> T:
        """Call `func` until it succeeds or the attempt budget is spent.

        Attempts are sequential; each one replaces the previous result.
        Exceptions outside `retry_on` propagate immediately.

        Raises:
            RetryExhaustedError: after `max_attempts` consecutive failures.
        """
        name = label or getattr(func, "__qualname__", repr(func))
        last_error: BaseException | None = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                return await func(*args, **kwargs)
            except self.retry_on as exc:
                last_error = exc
                reason = "throttled" if isinstance(exc, SourceThrottledError) else "failed"
                if attempt == self.max_attempts:
                    logger.error("%s %s on final attempt %d: %s", name, reason, attempt, exc)
                    break
                delay = self.jittered_delay(attempt, rand)
                logger.warning(
                    "%s %s on attempt %d/%d: %s. Retrying in %.2fs",
                    name, reason, attempt, self.max_attempts, exc, delay,
                )
                await sleep(delay)

        raise RetryExhaustedError(self.max_attempts, last_error)
