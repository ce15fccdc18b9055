"""Rolling request log for operational reporting."""

from __future__ import annotations

import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

from scrapeguard.errors import ErrorKind


@dataclass(frozen=True)
class RequestRecord:
    timestamp: float
    target_key: str
    duration_ms: float
    success: bool
    error_kind: ErrorKind | None = None
    served_from_cache: bool = False


class ExtractionMonitor:
    """Keeps the last ``max_requests`` requests and ``max_errors`` failures."""

    def __init__(
        self,
        max_requests: int = 100,
        max_errors: int = 50,
        recent_window_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._requests: deque[RequestRecord] = deque(maxlen=max_requests)
        self._errors: deque[RequestRecord] = deque(maxlen=max_errors)
        self._window = recent_window_seconds
        self._clock = clock
        self._started = clock()
        self._lock = threading.Lock()

    def record(
        self,
        target_key: str,
        duration_ms: float,
        success: bool,
        error_kind: ErrorKind | None = None,
        served_from_cache: bool = False,
    ) -> None:
        entry = RequestRecord(
            timestamp=self._clock(),
            target_key=target_key,
            duration_ms=duration_ms,
            success=success,
            error_kind=error_kind,
            served_from_cache=served_from_cache,
        )
        with self._lock:
            self._requests.append(entry)
            if not success:
                self._errors.append(entry)

    def get_stats(self) -> dict:
        now = self._clock()
        with self._lock:
            recent = [r for r in self._requests if now - r.timestamp < self._window]
            recent_errors = [r for r in self._errors if now - r.timestamp < self._window]
            total = len(self._requests)

        success_rate = (
            round((len(recent) - len(recent_errors)) / len(recent) * 100, 1) if recent else 0.0
        )
        avg_duration = round(sum(r.duration_ms for r in recent) / len(recent)) if recent else 0

        errors_by_kind: dict[str, int] = {}
        for record in recent_errors:
            kind = record.error_kind.value if record.error_kind else "unknown"
            errors_by_kind[kind] = errors_by_kind.get(kind, 0) + 1

        return {
            "uptime_seconds": round(now - self._started),
            "total_requests": total,
            "recent_requests": len(recent),
            "recent_errors": len(recent_errors),
            "recent_cache_hits": sum(1 for r in recent if r.served_from_cache),
            "success_rate": success_rate,
            "avg_duration_ms": avg_duration,
            "errors_by_kind": errors_by_kind,
        }
