"""Proxy rotation manager with quarantine and periodic rotation.

Proxies are loaded from ``ProxyConfig`` records. Selection walks the list
from a rotation cursor, skipping proxies whose quarantine has not yet
expired. Quarantine is lifted purely by comparing ``quarantined_until``
with the clock at selection time; nothing is scheduled in the background.

Independently of failures, the cursor advances once every
``rotation_interval_seconds`` so a single egress path is never reused
indefinitely. In sticky mode that is the only way the cursor moves besides
skipping quarantined entries; otherwise every selection advances it.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable

import httpx

from scrapeguard.config.proxies import ProxyConfig
from scrapeguard.proxy.types import Proxy

logger = logging.getLogger(__name__)

DEFAULT_PROBE_URL = "https://www.linkedin.com"


class ProxyManager:
    """Manages the egress proxy list with rotation and health tracking."""

    def __init__(
        self,
        quarantine_seconds: float = 30 * 60,
        rotation_interval_seconds: float = 10 * 60,
        *,
        sticky: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._proxies: list[Proxy] = []
        self._by_id: dict[str, Proxy] = {}
        self._cursor: int = 0
        self._quarantine_seconds = quarantine_seconds
        self._rotation_interval = rotation_interval_seconds
        self._sticky = sticky
        self._clock = clock
        self._last_rotation = clock()
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    def load(self, configs: Iterable[ProxyConfig]) -> None:
        """Replace the proxy list. Proxies without an id get ``proxy_<n>``."""
        with self._lock:
            self._proxies = []
            self._by_id = {}
            self._cursor = 0
            self._last_rotation = self._clock()

            for config in configs:
                proxy_id = config.id or f"proxy_{len(self._proxies)}"
                if proxy_id in self._by_id:
                    logger.warning("Duplicate proxy id %s, skipping", proxy_id)
                    continue
                proxy = Proxy(
                    id=proxy_id,
                    host=config.host,
                    port=config.port,
                    protocol=config.protocol,
                    username=config.username,
                    password=config.password,
                )
                self._proxies.append(proxy)
                self._by_id[proxy_id] = proxy

        logger.info("Proxy manager loaded %d proxies", len(self._proxies))

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def next(self) -> Proxy | None:
        """Return the next selectable proxy, or ``None`` to run proxy-less.

        ``None`` is returned when no proxies are configured or a full cycle
        finds every proxy quarantined; a quarantined proxy is never handed out.
        """
        with self._lock:
            if not self._proxies:
                return None

            pool_size = len(self._proxies)
            now = self._clock()

            if now - self._last_rotation > self._rotation_interval:
                self._cursor = (self._cursor + 1) % pool_size
                self._last_rotation = now
                logger.info("Rotated to proxy %s", self._proxies[self._cursor].id)

            for offset in range(pool_size):
                index = (self._cursor + offset) % pool_size
                proxy = self._proxies[index]

                if proxy.is_quarantined(now):
                    continue

                if proxy.quarantined_until is not None:
                    proxy.quarantined_until = None
                    logger.info("Proxy %s released from quarantine", proxy.id)

                self._cursor = index if self._sticky else (index + 1) % pool_size
                proxy.last_used_at = now
                return proxy

        logger.warning("All %d proxies quarantined, running without proxy", pool_size)
        return None

    def get(self, proxy_id: str) -> Proxy | None:
        return self._by_id.get(proxy_id)

    # ------------------------------------------------------------------
    # Health tracking
    # ------------------------------------------------------------------

    def record_success(self, proxy_id: str, latency_ms: float) -> None:
        """Count a success, fold *latency_ms* into the mean, lift quarantine."""
        with self._lock:
            proxy = self._by_id.get(proxy_id)
            if proxy is None:
                return
            proxy.success_count += 1
            proxy.avg_latency_ms += (latency_ms - proxy.avg_latency_ms) / proxy.success_count
            if proxy.quarantined_until is not None:
                proxy.quarantined_until = None
                logger.info("Proxy %s released from quarantine after success", proxy_id)

    def record_failure(self, proxy_id: str) -> None:
        """Count a failure and quarantine the proxy for the quarantine window."""
        with self._lock:
            proxy = self._by_id.get(proxy_id)
            if proxy is None:
                return
            proxy.failure_count += 1
            proxy.quarantined_until = self._clock() + self._quarantine_seconds
        logger.warning(
            "Proxy %s quarantined for %ss (failures: %d)",
            proxy_id,
            self._quarantine_seconds,
            proxy.failure_count,
        )

    @property
    def has_proxies(self) -> bool:
        return bool(self._proxies)

    def healthy_count(self) -> int:
        now = self._clock()
        return sum(1 for p in self._proxies if not p.is_quarantined(now))

    # ------------------------------------------------------------------
    # Explicit probing
    # ------------------------------------------------------------------

    async def probe(
        self,
        proxy_id: str,
        url: str = DEFAULT_PROBE_URL,
        timeout_seconds: float = 30.0,
    ) -> bool:
        """Issue one request through the proxy and record the result."""
        proxy = self._by_id.get(proxy_id)
        if proxy is None:
            raise KeyError(proxy_id)

        started = time.perf_counter()
        try:
            async with httpx.AsyncClient(
                proxy=proxy.url,
                timeout=httpx.Timeout(timeout_seconds),
            ) as client:
                response = await client.head(url)
        except httpx.HTTPError as exc:
            logger.info("Probe failed for proxy %s: %s", proxy.server, exc)
            self.record_failure(proxy_id)
            return False

        if response.status_code >= 500:
            logger.info("Probe through %s returned %d", proxy.server, response.status_code)
            self.record_failure(proxy_id)
            return False

        self.record_success(proxy_id, (time.perf_counter() - started) * 1000.0)
        return True

    async def probe_all(self, url: str = DEFAULT_PROBE_URL) -> dict[str, bool]:
        """Probe every proxy sequentially."""
        return {p.id: await self.probe(p.id, url) for p in list(self._proxies)}

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def get_stats(self) -> dict:
        """Return per-proxy statistics for the status endpoint."""
        with self._lock:
            now = self._clock()
            per_proxy = [
                {
                    "id": p.id,
                    "server": p.server,
                    "success_count": p.success_count,
                    "failure_count": p.failure_count,
                    "avg_latency_ms": round(p.avg_latency_ms, 1),
                    "last_used_at": p.last_used_at,
                    "quarantined": p.is_quarantined(now),
                    "quarantine_remaining_seconds": (
                        round(p.quarantined_until - now, 1)
                        if p.is_quarantined(now)
                        else 0.0
                    ),
                }
                for p in self._proxies
            ]
            current = self._proxies[self._cursor].id if self._proxies else None

        quarantined = sum(1 for p in per_proxy if p["quarantined"])
        return {
            "total": len(per_proxy),
            "healthy": len(per_proxy) - quarantined,
            "quarantined": quarantined,
            "current": current,
            "proxies": per_proxy,
        }
