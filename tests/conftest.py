"""Shared fixtures and test doubles for the scrapeguard test suite."""

from __future__ import annotations

import os
from typing import Any

import pytest

from scrapeguard.browser.pool import ExecutionContext, ExecutionPool
from scrapeguard.cache.result_cache import ResultCache
from scrapeguard.config.proxies import ProxyConfig
from scrapeguard.config.settings import ScrapeGuardSettings
from scrapeguard.proxy.manager import ProxyManager
from scrapeguard.resilience.anti_block import AntiBlockDetector
from scrapeguard.session.store import SessionStore


# ---------------------------------------------------------------------------
# Keep the developer's environment out of ScrapeGuardSettings
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in list(os.environ):
        if key.startswith("SCRAPEGUARD_"):
            monkeypatch.delenv(key)


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------

class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeContextFactory:
    """Context factory that hands out plain objects instead of browsers."""

    def __init__(self, fail_create: bool = False) -> None:
        self.fail_create = fail_create
        self.created: list[ExecutionContext] = []
        self.reset_calls = 0
        self.destroyed: list[ExecutionContext] = []
        self.closed = False

    async def create(self) -> ExecutionContext:
        if self.fail_create:
            raise RuntimeError("browser failed to launch")
        context = ExecutionContext(handle=object())
        self.created.append(context)
        return context

    async def reset(self, context: ExecutionContext) -> None:
        self.reset_calls += 1

    async def destroy(self, context: ExecutionContext) -> None:
        self.destroyed.append(context)

    async def close(self) -> None:
        self.closed = True


class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    def __init__(self, clock: FakeClock | None = None) -> None:
        self.calls: list[float] = []
        self._clock = clock

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self._clock is not None:
            self._clock.advance(seconds)


# ---------------------------------------------------------------------------
# Settings fixture
# ---------------------------------------------------------------------------

@pytest.fixture
def settings(tmp_path: Any) -> ScrapeGuardSettings:
    """Settings with every delay shrunk to keep tests fast."""
    return ScrapeGuardSettings(
        base_delay_ms=0,
        max_delay_ms=0,
        jitter_ms=0,
        burst_delay_ms=0,
        session_path=str(tmp_path / "session.json"),
        cooldown_min_ms=10,
        cooldown_max_ms=20,
        min_content_length=10,
        retry_max_attempts=3,
        retry_base_delay_ms=1,
        retry_jitter_ms=0,
        extraction_timeout_ms=2000,
        total_timeout_ms=10000,
        pool_capacity=2,
        proxies=[ProxyConfig(id="proxy_1", host="proxy1.example.net", port=8080)],
    )


# ---------------------------------------------------------------------------
# Component fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep(clock: FakeClock) -> RecordingSleep:
    """Sleep that returns immediately and advances the fake clock."""
    return RecordingSleep(clock)


@pytest.fixture
def context_factory() -> FakeContextFactory:
    return FakeContextFactory()


@pytest.fixture
def pool(context_factory: FakeContextFactory) -> ExecutionPool:
    return ExecutionPool(context_factory, capacity=2, task_limit=100)


@pytest.fixture
def cache(clock: FakeClock) -> ResultCache:
    return ResultCache(max_entries=3, default_ttl_seconds=60, clock=clock)


@pytest.fixture
def proxy_manager(clock: FakeClock) -> ProxyManager:
    pm = ProxyManager(quarantine_seconds=60, rotation_interval_seconds=600, clock=clock)
    pm.load(
        [
            ProxyConfig(id="p1", host="p1.example.net", port=8080),
            ProxyConfig(id="p2", host="p2.example.net", port=8080),
            ProxyConfig(id="p3", host="p3.example.net", port=8080),
        ]
    )
    return pm


@pytest.fixture
def detector(clock: FakeClock) -> AntiBlockDetector:
    return AntiBlockDetector(
        initial_cooldown_ms=5000,
        max_cooldown_ms=20000,
        backoff_multiplier=2.0,
        block_phrases=["security check", "captcha"],
        challenge_url_patterns=["/checkpoint/", "/authwall/"],
        min_content_length=50,
        clock=clock,
    )


@pytest.fixture
def session_store(tmp_path: Any) -> SessionStore:
    return SessionStore(tmp_path / "session.json", timeout_ms=60_000, refresh_fraction=0.8)

