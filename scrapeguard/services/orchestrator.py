"""Extraction orchestrator. Drives one task through the resilience pipeline.

Per task::

    Queued → CacheCheck → Acquiring → Executing → Classifying
           → (Retrying → Acquiring ... | Completed | Failed)

- CacheCheck: a fresh cached payload is returned immediately.
- Acquiring: wait out any active block cooldown and the pacing slot, pick
  a proxy (or none), make sure a browsing session exists.
- Executing: run the extraction callback on a pooled execution context
  under a hard timeout.
- Classifying: run the block detector on the raw outcome and map it to
  success, a retryable failure, or a block.

Retryable failures go back through the retry controller's backoff. A block
escalates the cooldown and ends the controller's run; the orchestrator then
schedules the next attempt after the cooldown while the attempt budget and
the deadline allow. Every ``extract`` call ends with exactly one terminal
``ExtractionResult``.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import Any

from scrapeguard.browser.engine import PlaywrightContextFactory
from scrapeguard.browser.fingerprint import ProfileRandomizer
from scrapeguard.browser.pool import ContextFactory, ExecutionContext, ExecutionPool
from scrapeguard.cache.result_cache import ResultCache, cache_key
from scrapeguard.config.proxies import load_proxy_configs
from scrapeguard.config.settings import ScrapeGuardSettings
from scrapeguard.errors import ErrorKind, NoHealthyProxiesError, TaskTimeoutError, ValidationError
from scrapeguard.models.outcome import Failure, Outcome
from scrapeguard.models.tasks import ExtractionResult, ExtractionTask, PageSnapshot, TaskState
from scrapeguard.proxy.manager import ProxyManager
from scrapeguard.resilience.anti_block import AntiBlockDetector, Verdict
from scrapeguard.resilience.pacing import RequestPacer
from scrapeguard.resilience.retry import RetryController, RetryPolicy
from scrapeguard.services.monitor import ExtractionMonitor
from scrapeguard.session.store import Cookie, Session, SessionStore
from scrapeguard.validators.target import normalize_target

logger = logging.getLogger(__name__)

ExtractionCallback = Callable[[ExecutionContext, ExtractionTask], Awaitable[PageSnapshot]]


class ExtractionOrchestrator:
    """Composes cache, proxies, pool, detector, retry and sessions per task.

    Every collaborator is injected so each test can build fresh state.
    ``callback`` is the site-specific extraction: it receives a pooled
    context and the task (with ``proxy`` and ``session`` set) and returns a
    :class:`PageSnapshot`.
    """

    def __init__(
        self,
        *,
        settings: ScrapeGuardSettings,
        callback: ExtractionCallback,
        pool: ExecutionPool,
        proxy_manager: ProxyManager,
        cache: ResultCache,
        detector: AntiBlockDetector,
        session_store: SessionStore,
        retry_controller: RetryController | None = None,
        pacer: RequestPacer | None = None,
        monitor: ExtractionMonitor | None = None,
        randomizer: ProfileRandomizer | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._callback = callback
        self._pool = pool
        self._proxy_manager = proxy_manager
        self._cache = cache
        self._detector = detector
        self._session_store = session_store
        self._retry = retry_controller or RetryController(sleep=sleep)
        self._pacer = pacer
        self._monitor = monitor or ExtractionMonitor()
        self._randomizer = randomizer or ProfileRandomizer()
        self._sleep = sleep
        self._session: Session | None = None
        self._inflight: dict[str, asyncio.Future[ExtractionResult]] = {}
        self._policy = RetryPolicy(
            max_attempts=settings.retry_max_attempts,
            base_delay_ms=settings.retry_base_delay_ms,
            multiplier=settings.retry_multiplier,
            jitter_ms=settings.retry_jitter_ms,
            max_extraction_attempts=settings.max_extraction_attempts,
        )

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_settings(
        cls,
        settings: ScrapeGuardSettings,
        callback: ExtractionCallback,
        *,
        context_factory: ContextFactory | None = None,
    ) -> ExtractionOrchestrator:
        """Wire every collaborator from one settings object."""
        proxy_configs = list(settings.proxies)
        if settings.proxy_config_path:
            proxy_configs.extend(load_proxy_configs(settings.proxy_config_path))

        proxy_manager = ProxyManager(
            quarantine_seconds=settings.proxy_quarantine_seconds,
            rotation_interval_seconds=settings.proxy_rotation_interval_seconds,
            sticky=settings.proxy_sticky,
        )
        proxy_manager.load(proxy_configs)

        factory = context_factory or PlaywrightContextFactory(
            headless=settings.headless,
            ws_endpoint=settings.browser_ws_endpoint,
        )

        return cls(
            settings=settings,
            callback=callback,
            pool=ExecutionPool(
                factory,
                settings.pool_capacity,
                task_limit=settings.context_task_limit,
            ),
            proxy_manager=proxy_manager,
            cache=ResultCache(
                max_entries=settings.cache_max_entries,
                default_ttl_seconds=settings.cache_ttl_seconds,
            ),
            detector=AntiBlockDetector(
                initial_cooldown_ms=settings.cooldown_min_ms,
                max_cooldown_ms=settings.cooldown_max_ms,
                backoff_multiplier=settings.backoff_multiplier,
                block_phrases=settings.block_phrases,
                challenge_url_patterns=settings.challenge_url_patterns,
                block_status_codes=settings.block_status_codes,
                min_content_length=settings.min_content_length,
                base_delay_ms=settings.base_delay_ms,
            ),
            session_store=SessionStore(
                settings.session_path,
                timeout_ms=settings.session_duration_ms,
                refresh_fraction=settings.session_refresh_fraction,
            ),
            pacer=RequestPacer(
                base_delay_ms=settings.base_delay_ms,
                max_delay_ms=settings.max_delay_ms,
                jitter_ms=settings.jitter_ms,
                max_requests_per_window=settings.max_requests_per_window,
                window_seconds=settings.rotation_window_seconds,
                burst_delay_ms=settings.burst_delay_ms,
            ),
        )

    @property
    def settings(self) -> ScrapeGuardSettings:
        return self._settings

    @property
    def cache(self) -> ResultCache:
        return self._cache

    @property
    def proxy_manager(self) -> ProxyManager:
        return self._proxy_manager

    @property
    def detector(self) -> AntiBlockDetector:
        return self._detector

    @property
    def pool(self) -> ExecutionPool:
        return self._pool

    async def start(self, *, probe_proxies: bool = False) -> None:
        """Restore the persisted session and optionally probe every proxy."""
        self._session = self._session_store.load()
        if self._session is not None:
            logger.info(
                "Restored browsing session %s (%d cookies)",
                self._session.id,
                len(self._session.cookies),
            )
        if probe_proxies and self._proxy_manager.has_proxies:
            await self._proxy_manager.probe_all()
        logger.info(
            "Orchestrator started (pool capacity %d, %d proxies)",
            self._pool.capacity,
            self._proxy_manager.get_stats()["total"],
        )

    async def shutdown(self) -> None:
        await self._pool.shutdown()
        logger.info("Orchestrator shut down")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def extract(self, target: str, auxiliary: str | None = None) -> ExtractionResult:
        """Extract *target* (optionally paired with *auxiliary*).

        Never raises for extraction failures: the result carries either the
        payload or a single terminal failure.
        """
        loop = asyncio.get_running_loop()
        started = loop.time()

        try:
            target_key = normalize_target(target)
            auxiliary_key = normalize_target(auxiliary) if auxiliary else None
        except ValidationError as exc:
            result = ExtractionResult(
                target_key=str(target),
                failure=Failure(ErrorKind.VALIDATION, exc.message, attempts=0),
            )
            return self._finish(result, started)

        task = ExtractionTask(
            id=str(uuid.uuid4()),
            target_key=target_key,
            auxiliary_key=auxiliary_key,
            deadline=started + self._settings.total_timeout_ms / 1000.0,
            navigation_timeout_ms=self._settings.navigation_timeout_ms,
        )
        key = cache_key(target_key, auxiliary_key)

        task.transition(TaskState.CACHE_CHECK)
        cached = self._cache.get(key)
        if cached is not None:
            task.transition(TaskState.COMPLETED)
            result = ExtractionResult(target_key=target_key, payload=cached, served_from_cache=True)
            return self._finish(result, started)

        if not self._settings.coalesce_inflight:
            return self._finish(await self._run(task, key), started)

        leader = self._inflight.get(key)
        if leader is not None:
            await asyncio.wait({leader})
            if not leader.cancelled():
                logger.debug("Joined in-flight extraction", extra={"target_key": target_key})
                return self._finish(replace(leader.result()), started)

        future: asyncio.Future[ExtractionResult] = loop.create_future()
        self._inflight[key] = future
        try:
            result = await self._run(task, key)
            future.set_result(result)
        except asyncio.CancelledError:
            future.cancel()
            raise
        except BaseException as exc:
            future.set_exception(exc)
            # mark retrieved; followers re-raise it through result()
            future.exception()
            raise
        finally:
            if self._inflight.get(key) is future:
                del self._inflight[key]

        return self._finish(result, started)

    def get_stats(self) -> dict:
        """Reporting surface: cache, proxies, anti-block, pool, session."""
        stats = {
            "cache": self._cache.get_stats(),
            "proxies": self._proxy_manager.get_stats(),
            "anti_block": self._detector.generate_report(),
            "pool": self._pool.get_stats(),
            "session": self._session_store.get_stats(),
            "requests": self._monitor.get_stats(),
            "in_flight": len(self._inflight),
        }
        if self._pacer is not None:
            stats["pacing"] = self._pacer.get_stats()
        return stats

    # ------------------------------------------------------------------
    # Task lifecycle
    # ------------------------------------------------------------------

    async def _run(self, task: ExtractionTask, key: str) -> ExtractionResult:
        budget = self._policy.max_attempts
        outcome: Outcome[Any] = Outcome.failed(ErrorKind.TIMEOUT, "No attempt made", attempts=0)

        while task.attempt < budget:
            attempts_before = task.attempt
            policy = replace(self._policy, max_attempts=budget - task.attempt)
            outcome = await self._retry.run(
                lambda _n: self._attempt(task),
                policy,
                deadline=task.deadline,
            )
            if outcome.ok:
                break

            failure = outcome.failure
            assert failure is not None
            if failure.kind is not ErrorKind.BLOCK_DETECTED:
                break
            if task.attempt == attempts_before or self._cooldown_outlasts_deadline(task):
                logger.warning(
                    "Block cooldown of %.0fms outlasts the task deadline; giving up",
                    self._detector.cooldown_remaining_ms(),
                    extra={"target_key": task.target_key, "attempt": task.attempt},
                )
                break
            if task.attempt < budget:
                logger.info(
                    "Blocked; next attempt after %.0fms cooldown",
                    self._detector.cooldown_remaining_ms(),
                    extra={"target_key": task.target_key, "attempt": task.attempt},
                )

        if outcome.ok:
            payload = outcome.value
            self._cache.put(key, payload, self._settings.cache_ttl_seconds)
            task.transition(TaskState.COMPLETED)
            return ExtractionResult(
                target_key=task.target_key,
                payload=payload,
                attempts=task.attempt,
            )

        task.transition(TaskState.FAILED)
        failure = outcome.failure
        assert failure is not None
        return ExtractionResult(
            target_key=task.target_key,
            failure=failure.with_attempts(task.attempt),
            attempts=task.attempt,
        )

    async def _attempt(self, task: ExtractionTask) -> Outcome[dict[str, Any]]:
        loop = asyncio.get_running_loop()
        if task.attempt > 0:
            task.transition(TaskState.RETRYING)
        task.transition(TaskState.ACQUIRING)

        # a cooldown nothing can outwait ends the task without using an attempt
        cooldown_ms = self._detector.cooldown_remaining_ms()
        if self._cooldown_outlasts_deadline(task):
            return Outcome.failed(
                ErrorKind.BLOCK_DETECTED,
                f"Target in block cooldown for {cooldown_ms:.0f}ms, beyond the task deadline",
            )
        task.attempt += 1

        if cooldown_ms > 0:
            logger.info(
                "Waiting out block cooldown",
                extra={"target_key": task.target_key, "cooldown_ms": round(cooldown_ms)},
            )
            await self._sleep(cooldown_ms / 1000.0)

        if self._pacer is not None:
            try:
                await self._pacer.acquire(task.deadline)
            except TaskTimeoutError as exc:
                return Outcome.failed(ErrorKind.TIMEOUT, exc.message)

        proxy = self._proxy_manager.next()
        if proxy is None and self._settings.require_proxy:
            return Outcome.failed(ErrorKind.RESOURCE_EXHAUSTED, NoHealthyProxiesError.message)

        task.proxy = proxy
        task.session = self._current_session()

        remaining = task.deadline - loop.time()
        if remaining <= 0:
            task.proxy = None
            return Outcome.failed(ErrorKind.TIMEOUT, "Task deadline exceeded before execution")

        async def run(context: ExecutionContext) -> tuple[PageSnapshot, float]:
            began = loop.time()
            snapshot = await self._callback(context, task)
            return snapshot, (loop.time() - began) * 1000.0

        task.transition(TaskState.EXECUTING)
        try:
            outcome = await self._pool.submit(
                run,
                timeout=min(self._settings.extraction_timeout_ms / 1000.0, remaining),
                acquire_timeout=remaining,
            )
            task.transition(TaskState.CLASSIFYING)
            return self._classify(task, outcome)
        finally:
            task.proxy = None

    def _cooldown_outlasts_deadline(self, task: ExtractionTask) -> bool:
        cooldown_ms = self._detector.cooldown_remaining_ms()
        if cooldown_ms <= 0:
            return False
        return asyncio.get_running_loop().time() + cooldown_ms / 1000.0 >= task.deadline

    def _classify(
        self,
        task: ExtractionTask,
        outcome: Outcome[tuple[PageSnapshot, float]],
    ) -> Outcome[dict[str, Any]]:
        proxy = task.proxy
        log_extra = {
            "target_key": task.target_key,
            "attempt": task.attempt,
            "proxy_id": proxy.id if proxy else None,
        }

        if not outcome.ok:
            failure = outcome.failure
            assert failure is not None
            if proxy is not None and failure.kind in (ErrorKind.NETWORK, ErrorKind.TIMEOUT):
                self._proxy_manager.record_failure(proxy.id)
            logger.warning(
                "Attempt failed: %s",
                failure.message,
                extra={**log_extra, "error_kind": failure.kind},
            )
            return Outcome(failure=failure)

        assert outcome.value is not None
        snapshot, latency_ms = outcome.value
        classification = self._detector.classify(
            snapshot.content, snapshot.final_url, snapshot.status_code
        )

        if classification.blocked:
            self._detector.record_block()
            if proxy is not None:
                self._proxy_manager.record_failure(proxy.id)
            reasons = "; ".join(classification.reasons)
            logger.warning(
                "Block detected (%s severity): %s",
                classification.severity,
                reasons,
                extra={**log_extra, "error_kind": ErrorKind.BLOCK_DETECTED},
            )
            return Outcome.failed(ErrorKind.BLOCK_DETECTED, f"Blocked: {reasons}")

        if classification.verdict is Verdict.SUSPICIOUS:
            logger.warning(
                "Suspicious response: %s", ", ".join(classification.reasons), extra=log_extra
            )

        if not snapshot.payload:
            return Outcome.failed(ErrorKind.EXTRACTION, "Page loaded but expected data was missing")

        if snapshot.cookies and task.session is not None:
            self._persist_session(task.session, snapshot)

        streak = self._detector.record_success()
        if (
            self._settings.antiblock_auto_reset
            and self._detector.state.consecutive_block_count > 0
            and streak >= self._settings.antiblock_reset_after_successes
        ):
            self._detector.reset()

        if proxy is not None:
            self._proxy_manager.record_success(proxy.id, latency_ms)

        return Outcome.success(snapshot.payload)

    def _finish(self, result: ExtractionResult, started: float) -> ExtractionResult:
        result.timing_ms = round((asyncio.get_running_loop().time() - started) * 1000.0, 1)
        self._monitor.record(
            result.target_key,
            result.timing_ms,
            result.ok,
            error_kind=result.error_kind,
            served_from_cache=result.served_from_cache,
        )

        extra = {
            "target_key": result.target_key,
            "attempt": result.attempts,
            "duration_ms": result.timing_ms,
            "served_from_cache": result.served_from_cache,
        }
        if result.ok:
            logger.info("Extraction completed", extra=extra)
        else:
            assert result.failure is not None
            logger.error(
                "Extraction failed: %s",
                result.failure.message,
                extra={**extra, "error_kind": result.failure.kind},
            )
        return result

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def _current_session(self) -> Session:
        session = self._session or self._session_store.load()
        if session is None or self._session_store.needs_refresh(session):
            session = self._session_store.new_session(user_agent=self._randomizer.user_agent())
            logger.info("Starting new browsing session %s", session.id)
            self._save_session(session)
        self._session = session
        return session

    def _persist_session(self, session: Session, snapshot: PageSnapshot) -> None:
        cookies: list[Cookie] = []
        for raw in snapshot.cookies or []:
            try:
                cookies.append(raw if isinstance(raw, Cookie) else Cookie.model_validate(raw))
            except ValueError as exc:
                logger.warning("Skipping unusable cookie for session %s: %s", session.id, exc)
        if not cookies:
            return

        updated = session.with_cookies(cookies, url=snapshot.final_url or None)
        if self._session is None or self._session.id == session.id:
            self._session = updated
        self._save_session(updated)

    def _save_session(self, session: Session) -> None:
        try:
            self._session_store.save(session)
        except (OSError, ValueError) as exc:
            logger.error("Failed to persist session %s: %s", session.id, exc)
