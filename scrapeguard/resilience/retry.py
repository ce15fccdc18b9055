"""Bounded retry with exponential backoff and jitter.

The controller re-runs an operation that returns an ``Outcome``. Only
failures whose kind is retryable (network, timeout, extraction) are
retried; anything else is handed straight back so the caller can apply
its own policy (e.g. waiting out a block cooldown).

Delay before attempt ``n`` (n > 1)::

    base_delay_ms * multiplier ** (n - 2) + uniform(0, jitter_ms)
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from scrapeguard.errors import ErrorKind
from scrapeguard.models.outcome import Outcome

logger = logging.getLogger(__name__)

Operation = Callable[[int], Awaitable[Outcome[Any]]]


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget and backoff shape."""

    max_attempts: int = 3
    base_delay_ms: float = 1000
    multiplier: float = 2.0
    jitter_ms: float = 250
    max_extraction_attempts: int = 2  # page rendered but data missing

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    def backoff_ms(self, attempt: int) -> float:
        """Deterministic part of the delay before *attempt* (1-based)."""
        if attempt <= 1:
            return 0.0
        return self.base_delay_ms * self.multiplier ** (attempt - 2)


class RetryController:
    """Runs operations under a ``RetryPolicy``.

    ``sleep``, ``clock`` and ``rng`` are injectable so tests can observe the
    delays without waiting for them.
    """

    def __init__(
        self,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._sleep = sleep
        self._clock = clock
        self._rng = rng or random.Random()

    def _now(self) -> float:
        if self._clock is not None:
            return self._clock()
        return asyncio.get_running_loop().time()

    def delay_ms(self, policy: RetryPolicy, attempt: int) -> float:
        jitter = self._rng.uniform(0, policy.jitter_ms) if policy.jitter_ms > 0 else 0.0
        return policy.backoff_ms(attempt) + jitter

    async def run(
        self,
        operation: Operation,
        policy: RetryPolicy,
        *,
        deadline: float | None = None,
    ) -> Outcome[Any]:
        """Invoke *operation* until it succeeds or the policy gives up.

        *operation* receives the 1-based attempt number. Exceptions it raises
        are classified into failure kinds. The returned failure carries the
        number of attempts made. *deadline* is compared with the controller
        clock; a backoff that would overrun it ends the run with a timeout.
        """
        extraction_failures = 0
        attempt = 0
        result: Outcome[Any] = Outcome.failed(ErrorKind.TIMEOUT, "No attempt made", attempts=0)

        while attempt < policy.max_attempts:
            attempt += 1

            if attempt > 1:
                delay = self.delay_ms(policy, attempt)
                if deadline is not None and self._now() + delay / 1000.0 >= deadline:
                    message = (
                        f"Deadline exceeded before attempt {attempt} "
                        f"(last error: {result.failure.message if result.failure else 'n/a'})"
                    )
                    return Outcome.failed(ErrorKind.TIMEOUT, message, attempts=attempt - 1)
                logger.info(
                    "Retrying in %.0fms (attempt %d/%d)",
                    delay,
                    attempt,
                    policy.max_attempts,
                    extra={"attempt": attempt},
                )
                await self._sleep(delay / 1000.0)

            try:
                result = await operation(attempt)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                result = Outcome.from_exception(exc)

            if result.ok:
                return result

            failure = result.failure
            assert failure is not None
            result = Outcome(failure=failure.with_attempts(attempt))

            if not failure.retryable:
                logger.debug("Not retrying %s failure", failure.kind.value)
                return result

            if failure.kind is ErrorKind.EXTRACTION:
                extraction_failures += 1
                if extraction_failures >= policy.max_extraction_attempts:
                    logger.debug("Extraction retry budget spent after %d attempts", attempt)
                    return result

        return result
