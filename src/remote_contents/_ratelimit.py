"""Adaptive request spacing."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

log = logging.getLogger(__name__)

BACKOFF_FACTOR = 1.5
RECOVERY_FACTOR = 0.95


class RateLimiter:
    """Enforces a minimum gap between request starts and adapts it to server pressure.

    Throttling (HTTP 429) and transport failures, timeouts included, widen the gap by ``1.5x`` up to
    ``max_delay_ms``; every success narrows it by ``0.95x`` down to
    ``min_delay_ms``. Only request *initiation* is serialized; callers that
    do not await completion may still have several requests in flight.

    :param initial_delay_ms: Starting gap.
    :param min_delay_ms: Lower bound of the gap.
    :param max_delay_ms: Upper bound of the gap.
    :param clock: Monotonic clock in seconds.
    :param sleep: Coroutine used to wait.
    """

    def __init__(
        self,
        initial_delay_ms: float = 100,
        *,
        min_delay_ms: float = 50,
        max_delay_ms: float = 5000,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if min_delay_ms > max_delay_ms:
            raise ValueError(f"min_delay_ms ({min_delay_ms}) exceeds max_delay_ms ({max_delay_ms})")
        self._min = min_delay_ms
        self._max = max_delay_ms
        self._delay = min(max(initial_delay_ms, min_delay_ms), max_delay_ms)
        self._clock = clock
        self._sleep = sleep
        self._last_request_at: float | None = None
        self._lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"RateLimiter(current_delay_ms={self._delay:.1f}, bounds=[{self._min}, {self._max}])"

    @property
    def current_delay_ms(self) -> float:
        return self._delay

    @property
    def last_request_at(self) -> float | None:
        return self._last_request_at

    async def await_slot(self) -> None:
        """Suspend until at least ``current_delay_ms`` has passed since the previous slot."""
        async with self._lock:
            if self._last_request_at is not None:
                elapsed_ms = (self._clock() - self._last_request_at) * 1000
                if elapsed_ms < self._delay:
                    await self._sleep((self._delay - elapsed_ms) / 1000)
            self._last_request_at = self._clock()

    def record_outcome(self, success: bool, *, throttled: bool = False) -> None:
        """Adapt the gap after a request finished.

        :param success: The request completed with a 2xx status.
        :param throttled: The server signalled throttling or the request never got an answer.
        """
        if throttled:
            previous = self._delay
            self._delay = min(self._delay * BACKOFF_FACTOR, self._max)
            if self._delay != previous:
                log.debug("Backing off: request delay %.1fms -> %.1fms", previous, self._delay)
        elif success:
            self._delay = max(self._delay * RECOVERY_FACTOR, self._min)
