"""Bounded pool of reusable browser execution contexts.

At most ``capacity`` contexts are active at once. Work beyond that waits
in strict FIFO order for a slot; every wait is bounded by a timeout.

Context lifecycle
-----------------
1. ``acquire(timeout)``: take an idle context, or create one while under
   capacity, or queue for the next released slot.
2. The holder runs exactly one task with it.
3. ``release(context, discard=...)``: reset and return it to the idle
   list, or close it when it is unusable, discarded, or past its task
   limit. A closed context is replaced lazily by the next acquire.

``submit`` wraps the whole cycle and always releases, including on
failure, timeout and cancellation.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, TypeVar
from uuid import uuid4

from scrapeguard.errors import ErrorKind, PoolExhaustedError
from scrapeguard.models.outcome import Outcome

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ExecutionContext:
    """One unit of browser capacity handed out by the pool."""

    handle: Any  # engine object (e.g. a Playwright browser)
    id: str = field(default_factory=lambda: str(uuid4()))
    tasks_processed: int = 0
    usable: bool = True
    created_at: float = field(default_factory=time.monotonic)

    def needs_recycling(self, max_tasks: int) -> bool:
        """Return ``True`` if this context should be replaced."""
        return self.tasks_processed >= max_tasks


class ContextFactory(Protocol):
    """Creates and disposes execution contexts for the pool."""

    async def create(self) -> ExecutionContext: ...

    async def reset(self, context: ExecutionContext) -> None: ...

    async def destroy(self, context: ExecutionContext) -> None: ...

    async def close(self) -> None: ...


class ExecutionPool:
    """FIFO-fair bounded pool of execution contexts.

    Args:
        factory: Creates, resets and destroys contexts.
        capacity: Maximum concurrently active contexts.
        task_limit: Contexts are recycled after this many tasks.
    """

    def __init__(
        self,
        factory: ContextFactory,
        capacity: int = 2,
        *,
        task_limit: int = 100,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._factory = factory
        self._capacity = capacity
        self._task_limit = task_limit
        self._idle: deque[ExecutionContext] = deque()
        self._waiters: deque[asyncio.Future[None]] = deque()
        self._active = 0  # slots granted, whether or not a context exists yet
        self._created = 0
        self._discarded = 0
        self._tasks_processed = 0
        self._timeouts = 0
        self._closed = False

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def active(self) -> int:
        return self._active

    # ------------------------------------------------------------------
    # Slots
    # ------------------------------------------------------------------

    async def _acquire_slot(self, timeout: float | None) -> None:
        if self._active < self._capacity and not self._waiters:
            self._active += 1
            return

        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await asyncio.wait_for(asyncio.shield(waiter), timeout=timeout)
        except (asyncio.TimeoutError, asyncio.CancelledError) as exc:
            if waiter.done() and not waiter.cancelled():
                # Slot was handed over as we gave up; pass it on.
                self._release_slot()
            else:
                waiter.cancel()
                try:
                    self._waiters.remove(waiter)
                except ValueError:
                    pass
            if isinstance(exc, asyncio.CancelledError):
                if self._closed and waiter.cancelled():
                    raise PoolExhaustedError("Execution pool is shut down") from None
                raise
            self._timeouts += 1
            raise PoolExhaustedError(
                f"No execution context available within {timeout}s",
                waiting=len(self._waiters),
            ) from None

    def _release_slot(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)  # slot transfers, _active unchanged
                return
        self._active -= 1

    # ------------------------------------------------------------------
    # acquire / release
    # ------------------------------------------------------------------

    async def acquire(self, timeout: float | None = 10.0) -> ExecutionContext:
        """Return a context, waiting FIFO up to *timeout* seconds.

        Raises :class:`PoolExhaustedError` if no slot frees up in time.
        """
        if self._closed:
            raise PoolExhaustedError("Execution pool is shut down")

        await self._acquire_slot(timeout)

        if self._idle:
            context = self._idle.popleft()
            logger.debug("Reusing execution context %s", context.id)
            return context

        try:
            context = await self._factory.create()
        except BaseException:
            self._release_slot()
            raise
        self._created += 1
        logger.debug("Created execution context %s", context.id)
        return context

    async def release(self, context: ExecutionContext, *, discard: bool = False) -> None:
        """Return *context* to the pool, or destroy it if it is spent."""
        try:
            context.tasks_processed += 1
            self._tasks_processed += 1

            keep = (
                not discard
                and not self._closed
                and context.usable
                and not context.needs_recycling(self._task_limit)
            )

            if keep:
                try:
                    await self._factory.reset(context)
                except Exception:
                    logger.warning(
                        "Failed to reset context %s, discarding", context.id, exc_info=True
                    )
                    keep = False

            if keep:
                self._idle.append(context)
            else:
                await self._destroy(context)
        finally:
            self._release_slot()

    async def _destroy(self, context: ExecutionContext) -> None:
        self._discarded += 1
        try:
            await self._factory.destroy(context)
        except Exception:
            logger.debug("Error closing context %s (may already be closed)", context.id, exc_info=True)

    # ------------------------------------------------------------------
    # submit
    # ------------------------------------------------------------------

    async def submit(
        self,
        task: Callable[[ExecutionContext], Awaitable[T]],
        *,
        timeout: float | None = None,
        acquire_timeout: float | None = 10.0,
    ) -> Outcome[T]:
        """Run *task* with a pooled context and return its outcome.

        *acquire_timeout* bounds the wait for a slot; *timeout* bounds the
        task itself. A context whose task timed out or failed at the engine
        level is discarded rather than reused.
        """
        try:
            context = await self.acquire(acquire_timeout)
        except PoolExhaustedError as exc:
            return Outcome.failed(ErrorKind.RESOURCE_EXHAUSTED, exc.message)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("Failed to create execution context: %s", exc)
            return Outcome.failed(ErrorKind.RESOURCE_EXHAUSTED, f"Context launch failed: {exc}")

        discard = False
        try:
            value = await asyncio.wait_for(task(context), timeout=timeout)
            return Outcome.success(value)
        except asyncio.TimeoutError:
            discard = True
            return Outcome.failed(ErrorKind.TIMEOUT, f"Task exceeded {timeout}s")
        except asyncio.CancelledError:
            discard = True
            raise
        except Exception as exc:
            outcome: Outcome[T] = Outcome.from_exception(exc)
            discard = outcome.failure is not None and outcome.failure.kind in (
                ErrorKind.NETWORK,
                ErrorKind.TIMEOUT,
            )
            return outcome
        finally:
            await self.release(context, discard=discard)

    # ------------------------------------------------------------------
    # shutdown / stats
    # ------------------------------------------------------------------

    async def shutdown(self) -> None:
        """Close idle contexts and the factory. Held contexts close on release."""
        self._closed = True
        while self._waiters:
            self._waiters.popleft().cancel()
        while self._idle:
            await self._destroy(self._idle.popleft())
        await self._factory.close()
        logger.info("Execution pool shut down")

    def get_stats(self) -> dict:
        """Return pool statistics for the status endpoint."""
        return {
            "capacity": self._capacity,
            "active": self._active,
            "idle": len(self._idle),
            "waiting": sum(1 for w in self._waiters if not w.done()),
            "created": self._created,
            "discarded": self._discarded,
            "tasks_processed": self._tasks_processed,
            "acquire_timeouts": self._timeouts,
        }
