"""Public models for the extraction core."""

from scrapeguard.models.outcome import Failure, Outcome
from scrapeguard.models.responses import ApiResponse, HealthStatus
from scrapeguard.models.tasks import (
    ExtractionResult,
    ExtractionTask,
    PageSnapshot,
    TaskState,
)

__all__ = [
    "ApiResponse",
    "ExtractionResult",
    "ExtractionTask",
    "Failure",
    "HealthStatus",
    "Outcome",
    "PageSnapshot",
    "TaskState",
]
