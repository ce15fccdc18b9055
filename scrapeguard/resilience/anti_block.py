"""Block detection and adaptive cooldown.

Classifies the raw outcome of an attempt (content, final URL, HTTP status)
into clear / suspicious / blocked using three independent signal classes:

- lexical: a configured block or challenge phrase appears in the content
- redirect: the final URL matches a challenge, login or auth-wall path
- status: the response status signals throttling or denial (429/403/401)

Unusually small content corroborates a block but never causes one alone;
on its own it only makes an attempt suspicious.

Cooldown state machine (single process-wide instance):

- on block: ``count += 1``, ``last_block_at = now``,
  ``cooldown = min(initial * multiplier ** (count - 1), max)``
- ``is_in_cooldown`` is evaluated lazily as ``now - last_block_at < cooldown``
- the counter is only reset by an explicit ``reset()`` call
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum

logger = logging.getLogger(__name__)


class Verdict(str, Enum):
    """Classifier outcome for one attempt."""

    CLEAR = "clear"
    SUSPICIOUS = "suspicious"
    BLOCKED = "blocked"


@dataclass(frozen=True)
class Classification:
    """Verdict plus the signals that produced it."""

    verdict: Verdict
    reasons: tuple[str, ...] = ()
    severity: str = "none"  # none, low, medium, high

    @property
    def blocked(self) -> bool:
        return self.verdict is Verdict.BLOCKED


@dataclass(frozen=True)
class AntiBlockState:
    """Snapshot of the cooldown counters."""

    consecutive_block_count: int = 0
    last_block_at: float | None = None  # clock() seconds
    current_cooldown_ms: float = 0.0
    success_streak: int = 0


class AntiBlockDetector:
    """Block classifier with exponential cooldown.

    Args:
        initial_cooldown_ms: Cooldown after the first block in a streak.
        max_cooldown_ms: Upper clamp for the cooldown.
        backoff_multiplier: Growth factor per consecutive block.
        block_phrases: Case-insensitive phrases that signal a block page.
        challenge_url_patterns: Substrings of challenge/login/auth-wall URLs.
        block_status_codes: HTTP statuses that signal throttling or denial.
        min_content_length: Content shorter than this is suspicious.
        base_delay_ms: Base for the recommended wait outside cooldown.
        clock: Monotonic time source in seconds.
    """

    def __init__(
        self,
        initial_cooldown_ms: float = 5 * 60 * 1000,
        max_cooldown_ms: float = 60 * 60 * 1000,
        backoff_multiplier: float = 2.0,
        *,
        block_phrases: Iterable[str] = (),
        challenge_url_patterns: Iterable[str] = (),
        block_status_codes: Iterable[int] = (429, 403, 401),
        min_content_length: int = 1000,
        base_delay_ms: float = 8000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._initial_cooldown_ms = initial_cooldown_ms
        self._max_cooldown_ms = max_cooldown_ms
        self._multiplier = backoff_multiplier
        self._phrases = tuple(p.lower() for p in block_phrases if p)
        self._url_patterns = tuple(p.lower() for p in challenge_url_patterns if p)
        self._status_codes = frozenset(block_status_codes)
        self._min_content_length = min_content_length
        self._base_delay_ms = base_delay_ms
        self._clock = clock
        self._state = AntiBlockState(current_cooldown_ms=initial_cooldown_ms)
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def classify(
        self,
        content: str | None,
        final_url: str | None = None,
        status_code: int | None = None,
    ) -> Classification:
        """Classify one raw outcome. Pure; does not touch cooldown state."""
        text = (content or "").lower()
        url = (final_url or "").lower()

        phrase = next((p for p in self._phrases if p in text), None)
        url_pattern = next((p for p in self._url_patterns if p in url), None)
        bad_status = status_code is not None and status_code in self._status_codes
        minimal = len(text) < self._min_content_length

        reasons: list[str] = []
        if phrase:
            reasons.append(f"content signal: {phrase!r}")
        if url_pattern:
            reasons.append(f"challenge redirect: {url_pattern!r}")
        if bad_status:
            reasons.append(f"HTTP {status_code}")

        if reasons:
            if minimal:
                reasons.append("minimal content")
            severity = "high" if (phrase or url_pattern or minimal) else "medium"
            return Classification(Verdict.BLOCKED, tuple(reasons), severity)

        if minimal:
            return Classification(Verdict.SUSPICIOUS, ("minimal content",), "low")

        return Classification(Verdict.CLEAR)

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    def record_block(self) -> float:
        """Apply a block event and return the new cooldown in ms."""
        with self._lock:
            count = self._state.consecutive_block_count + 1
            cooldown = min(
                self._initial_cooldown_ms * self._multiplier ** (count - 1),
                self._max_cooldown_ms,
            )
            self._state = AntiBlockState(
                consecutive_block_count=count,
                last_block_at=self._clock(),
                current_cooldown_ms=cooldown,
                success_streak=0,
            )

        logger.warning(
            "Block detected (count=%d), cooldown %.0fms",
            count,
            cooldown,
            extra={"cooldown_ms": cooldown},
        )
        return cooldown

    def record_success(self) -> int:
        """Register a clear attempt and return the current success streak."""
        with self._lock:
            self._state = replace(self._state, success_streak=self._state.success_streak + 1)
            return self._state.success_streak

    def reset(self) -> None:
        """Clear the block counter and restore the initial cooldown."""
        with self._lock:
            self._state = AntiBlockState(current_cooldown_ms=self._initial_cooldown_ms)
        logger.info("Anti-block state reset")

    @property
    def state(self) -> AntiBlockState:
        return self._state

    # ------------------------------------------------------------------
    # Cooldown queries
    # ------------------------------------------------------------------

    def cooldown_remaining_ms(self) -> float:
        state = self._state
        if state.last_block_at is None:
            return 0.0
        elapsed_ms = (self._clock() - state.last_block_at) * 1000.0
        return max(state.current_cooldown_ms - elapsed_ms, 0.0)

    def is_in_cooldown(self) -> bool:
        return self.cooldown_remaining_ms() > 0.0

    def recommended_wait_ms(self) -> float:
        """Remaining cooldown, or a delay that grows with block history."""
        remaining = self.cooldown_remaining_ms()
        if remaining > 0:
            return remaining
        history_multiplier = min(self._state.consecutive_block_count * 2, 10)
        return self._base_delay_ms * history_multiplier

    @property
    def severity(self) -> str:
        count = self._state.consecutive_block_count
        if count == 0:
            return "none"
        if count <= 2:
            return "low"
        if count <= 5:
            return "medium"
        return "high"

    def recommendations(self) -> list[str]:
        count = self._state.consecutive_block_count
        advice: list[str] = []
        if count > 0:
            advice.append(f"Blocking detected {count} times")
        remaining = self.cooldown_remaining_ms()
        if remaining > 0:
            advice.append(f"In cooldown: wait {int(remaining // 1000) + 1} seconds")
        if count >= 3:
            advice.append("Consider using proxy rotation or a different egress IP")
        if count >= 5:
            advice.append("Consider changing the user agent rotation strategy")
        if count >= 8:
            advice.append("Consider pausing extraction for 24 hours")
        return advice

    def generate_report(self) -> dict:
        """Anti-block report for the status endpoint."""
        state = self._state
        last_block_iso = None
        if state.last_block_at is not None:
            seconds_ago = self._clock() - state.last_block_at
            last_block_iso = datetime.fromtimestamp(
                time.time() - seconds_ago, tz=timezone.utc
            ).isoformat()

        return {
            "block_count": state.consecutive_block_count,
            "last_block_at": last_block_iso,
            "current_cooldown_ms": state.current_cooldown_ms,
            "in_cooldown": self.is_in_cooldown(),
            "cooldown_remaining_ms": round(self.cooldown_remaining_ms(), 1),
            "recommended_wait_ms": round(self.recommended_wait_ms(), 1),
            "success_streak": state.success_streak,
            "severity": self.severity,
            "recommendations": self.recommendations(),
        }
