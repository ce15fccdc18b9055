"""Resilience components: block detection, retry and request pacing."""

from scrapeguard.resilience.anti_block import (
    AntiBlockDetector,
    AntiBlockState,
    Classification,
    Verdict,
)
from scrapeguard.resilience.pacing import RequestPacer
from scrapeguard.resilience.retry import RetryController, RetryPolicy

__all__ = [
    "AntiBlockDetector",
    "AntiBlockState",
    "Classification",
    "RequestPacer",
    "RetryController",
    "RetryPolicy",
    "Verdict",
]
