"""In-memory task state and the result returned to callers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from scrapeguard.errors import ErrorKind, error_for_kind
from scrapeguard.models.outcome import Failure


class TaskState(str, Enum):
    """Lifecycle states of a single extraction task."""

    QUEUED = "queued"
    CACHE_CHECK = "cache_check"
    ACQUIRING = "acquiring"
    EXECUTING = "executing"
    CLASSIFYING = "classifying"
    RETRYING = "retrying"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (TaskState.COMPLETED, TaskState.FAILED)


@dataclass
class PageSnapshot:
    """Raw outcome of one attempt, as reported by the extraction callback.

    ``payload`` holds the extracted fields; ``None`` or empty means the page
    loaded without the expected data. ``cookies`` are persisted to the
    session store when the attempt succeeds.
    """

    content: str = ""
    final_url: str = ""
    status_code: int | None = None
    payload: dict[str, Any] | None = None
    cookies: list[dict[str, Any]] | None = None


@dataclass
class ExtractionTask:
    """State for one ``extract`` call. Discarded when the orchestrator returns."""

    id: str
    target_key: str
    deadline: float  # event-loop time
    auxiliary_key: str | None = None
    navigation_timeout_ms: int = 30000
    attempt: int = 0
    state: TaskState = TaskState.QUEUED
    proxy: Any = None  # scrapeguard.proxy.types.Proxy while an attempt holds one
    session: Any = None  # scrapeguard.session.store.Session
    history: list[TaskState] = field(default_factory=list)

    def transition(self, state: TaskState) -> None:
        """Move to *state*. A terminal task never changes state again."""
        if self.state.terminal:
            raise RuntimeError(
                f"Task {self.id} already terminal ({self.state.value})"
            )
        self.history.append(self.state)
        self.state = state


@dataclass
class ExtractionResult:
    """Terminal result of one ``extract`` call."""

    target_key: str
    payload: dict[str, Any] | None = None
    failure: Failure | None = None
    timing_ms: float = 0.0
    served_from_cache: bool = False
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def error_kind(self) -> ErrorKind | None:
        return self.failure.kind if self.failure else None

    def raise_for_error(self) -> None:
        """Raise the exception matching the failure kind, if any."""
        if self.failure is not None:
            raise error_for_kind(
                self.failure.kind,
                self.failure.message,
                target=self.target_key,
                attempts=self.failure.attempts,
            )
