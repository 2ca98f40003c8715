"""Client-side refill controller for the swipe queue.

Runs on the presentation process's event loop. All coordination happens
through one RefillState object; there is no parallel execution, so no locks.
"""

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

from app.config import settings

logger = logging.getLogger(__name__)

REFILL_THRESHOLD = 3
RETRY_DELAY_S = 3.0
FETCH_TIMEOUT_S = 10.0


class RefillPhase(str, enum.Enum):
    IDLE = "idle"
    REFILLING = "refilling"
    COOLING_DOWN = "cooling_down"


@dataclass
class RefillState:
    phase: RefillPhase = RefillPhase.IDLE
    # set when a refill has been requested for the current low-depth episode
    requested: bool = False
    last_error: BaseException | None = None

    @property
    def in_flight(self) -> bool:
        return self.phase is RefillPhase.REFILLING

    @property
    def retry_armed(self) -> bool:
        return self.phase is RefillPhase.COOLING_DOWN


def should_refill(state: RefillState, depth: int, threshold: int) -> bool:
    return depth <= threshold and state.phase is RefillPhase.IDLE and not state.requested


class RefillController:
    """Keeps a queue supplied by fetching more items when it runs low.

    At most one fetch is outstanding. A failed fetch (including a timeout or
    an empty answer) arms a cooldown timer; no new fetch starts until it
    fires, so failures never turn into a retry storm.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[Sequence[Any]]],
        on_refill: Callable[[list[Any]], None],
        queue_depth: Callable[[], int],
        threshold: int = REFILL_THRESHOLD,
        cooldown: float = RETRY_DELAY_S,
        fetch_timeout: float = FETCH_TIMEOUT_S,
    ) -> None:
        self._fetch = fetch
        self._on_refill = on_refill
        self._queue_depth = queue_depth
        self.threshold = threshold
        self.cooldown = cooldown
        self.fetch_timeout = fetch_timeout
        self.state = RefillState()
        self._task: asyncio.Task | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._closed = False

    @classmethod
    def from_settings(
        cls,
        fetch: Callable[[], Awaitable[Sequence[Any]]],
        on_refill: Callable[[list[Any]], None],
        queue_depth: Callable[[], int],
    ) -> "RefillController":
        """Controller tuned by the REFILL_* settings."""
        return cls(
            fetch,
            on_refill,
            queue_depth,
            threshold=settings.refill_threshold,
            cooldown=settings.refill_cooldown_s,
            fetch_timeout=settings.refill_fetch_timeout_s,
        )

    @property
    def phase(self) -> RefillPhase:
        return self.state.phase

    @property
    def last_error(self) -> BaseException | None:
        return self.state.last_error

    def observe(self, depth: int) -> None:
        """Feed the current queue depth; call on every depth change."""
        if self._closed:
            return
        if depth > self.threshold:
            # a later drop must trigger a fresh attempt
            self.state.requested = False
            return
        if should_refill(self.state, depth, self.threshold):
            self.state.requested = True
            self.state.phase = RefillPhase.REFILLING
            self.state.last_error = None
            self._task = asyncio.get_running_loop().create_task(self._refill())

    async def _refill(self) -> None:
        try:
            items = list(await asyncio.wait_for(self._fetch(), timeout=self.fetch_timeout))
            if not items:
                raise LookupError("refill returned no tracks")
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._fail(exc)
            return

        self.state = RefillState()
        logger.info("Refilled %d tracks", len(items))
        self._on_refill(items)
        self.observe(self._queue_depth())

    def _fail(self, exc: BaseException) -> None:
        if isinstance(exc, asyncio.TimeoutError):
            logger.error("Refill timed out after %.1fs", self.fetch_timeout)
        else:
            logger.error("Failed to refill tracks: %s", exc)
        self.state.phase = RefillPhase.COOLING_DOWN
        self.state.last_error = exc
        if not self._closed:
            self._timer = asyncio.get_running_loop().call_later(self.cooldown, self._cooldown_elapsed)

    def _cooldown_elapsed(self) -> None:
        self._timer = None
        self.state = RefillState()
        self.observe(self._queue_depth())

    async def close(self) -> None:
        """Cancel the pending timer and any in-flight fetch."""
        self._closed = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
