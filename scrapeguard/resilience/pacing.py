"""Human-like pacing between requests to the hostile target.

Consecutive attempts are spaced by ``base_delay_ms`` plus random jitter,
clamped to ``max_delay_ms``. Once ``max_requests_per_window`` requests have
been issued inside the rolling window, the next one waits
``burst_delay_ms`` instead.

Slots are reserved under a lock and the wait happens outside it, so
concurrent tasks queue up behind each other without holding the lock
while asleep.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any

from scrapeguard.errors import TaskTimeoutError

logger = logging.getLogger(__name__)


class RequestPacer:
    """Reserves request slots spaced by delay, jitter and burst limits.

    Args:
        base_delay_ms: Minimum spacing between consecutive requests.
        max_delay_ms: Upper bound for spacing (base + jitter).
        jitter_ms: Random extra spacing in ``[0, jitter_ms]``.
        max_requests_per_window: Requests allowed per window before bursting.
        window_seconds: Length of the rolling window.
        burst_delay_ms: Spacing applied once the window is full.
    """

    def __init__(
        self,
        base_delay_ms: float = 8000,
        max_delay_ms: float = 30000,
        jitter_ms: float = 2000,
        max_requests_per_window: int = 10,
        window_seconds: float = 3600,
        burst_delay_ms: float = 60000,
        *,
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self._base_delay_ms = base_delay_ms
        self._max_delay_ms = max_delay_ms
        self._jitter_ms = jitter_ms
        self._max_requests = max_requests_per_window
        self._window_seconds = window_seconds
        self._burst_delay_ms = burst_delay_ms
        self._clock = clock
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._issued: deque[float] = deque()
        self._last_slot: float | None = None
        self._bursts = 0
        self._lock = asyncio.Lock()

    def _now(self) -> float:
        if self._clock is not None:
            return self._clock()
        return asyncio.get_running_loop().time()

    def _spacing_ms(self, slot_time: float) -> float:
        while self._issued and slot_time - self._issued[0] >= self._window_seconds:
            self._issued.popleft()

        if len(self._issued) >= self._max_requests:
            self._bursts += 1
            return self._burst_delay_ms

        jitter = self._rng.uniform(0, self._jitter_ms) if self._jitter_ms > 0 else 0.0
        return min(self._base_delay_ms + jitter, self._max_delay_ms)

    async def acquire(self, deadline: float | None = None) -> float:
        """Wait for the next request slot; return the seconds waited.

        Raises ``TaskTimeoutError`` without waiting (and without consuming
        the slot) when the slot would fall after *deadline*.
        """
        async with self._lock:
            now = self._now()
            slot = now
            if self._last_slot is not None:
                slot = max(now, self._last_slot + self._spacing_ms(now) / 1000.0)

            if deadline is not None and slot > deadline:
                raise TaskTimeoutError(
                    f"Next request slot is {slot - now:.1f}s away, past the task deadline"
                )

            self._last_slot = slot
            self._issued.append(slot)

        wait = slot - now
        if wait > 0:
            logger.debug("Pacing request by %.0fms", wait * 1000)
            await self._sleep(wait)
        return wait

    def get_stats(self) -> dict:
        return {
            "requests_in_window": len(self._issued),
            "max_requests_per_window": self._max_requests,
            "bursts": self._bursts,
        }
