"""Error taxonomy for extraction attempts.

Every failure is tagged with an ``ErrorKind``. Whether a failure may be
retried is a property of its kind, not of where it was raised. The
exception hierarchy mirrors the kinds for callers that prefer raising;
``status_code`` is advisory for the HTTP boundary that maps errors.
"""

from __future__ import annotations

import asyncio
from enum import Enum


class ErrorKind(str, Enum):
    """Terminal and transient failure categories."""

    VALIDATION = "validation"
    NETWORK = "network"
    TIMEOUT = "timeout"
    BLOCK_DETECTED = "block_detected"
    EXTRACTION = "extraction"
    RESOURCE_EXHAUSTED = "resource_exhausted"

    @property
    def retryable(self) -> bool:
        """Whether the retry controller may re-run an attempt of this kind."""
        return self in _RETRYABLE_KINDS


_RETRYABLE_KINDS = frozenset(
    {ErrorKind.NETWORK, ErrorKind.TIMEOUT, ErrorKind.EXTRACTION}
)


# ---------------------------------------------------------------------------
# Error hierarchy
# ---------------------------------------------------------------------------


class ScrapeGuardError(Exception):
    """Base error for all extraction failures."""

    kind: ErrorKind = ErrorKind.EXTRACTION
    status_code: int = 500
    message: str = "Extraction failed"

    def __init__(self, message: str | None = None, **kwargs: object) -> None:
        self.message = message or self.__class__.message
        self.details = kwargs
        super().__init__(self.message)


class ValidationError(ScrapeGuardError):
    """Malformed target identity."""

    kind = ErrorKind.VALIDATION
    status_code = 422
    message = "Invalid target"


class NetworkError(ScrapeGuardError):
    """DNS, connect or connection-reset failure."""

    kind = ErrorKind.NETWORK
    status_code = 502
    message = "Network error"


class TaskTimeoutError(ScrapeGuardError):
    """A deadline was exceeded at some suspension point."""

    kind = ErrorKind.TIMEOUT
    status_code = 504
    message = "Extraction timed out"


class BlockDetectedError(ScrapeGuardError):
    """The target answered with a block, challenge or auth wall."""

    kind = ErrorKind.BLOCK_DETECTED
    status_code = 429
    message = "Automated access blocked by target"


class ExtractionError(ScrapeGuardError):
    """The page loaded but the expected data was absent."""

    kind = ErrorKind.EXTRACTION
    status_code = 502
    message = "Expected data not found on page"


class ResourceExhaustedError(ScrapeGuardError):
    """A bounded resource could not be obtained in time."""

    kind = ErrorKind.RESOURCE_EXHAUSTED
    status_code = 503
    message = "Resources exhausted"


class PoolExhaustedError(ResourceExhaustedError):
    """No execution context became available before the deadline."""

    message = "Execution pool exhausted: no context available"


class NoHealthyProxiesError(ResourceExhaustedError):
    """A proxy is mandatory but every proxy is quarantined."""

    message = "No healthy proxies available"


_ERRORS_BY_KIND: dict[ErrorKind, type[ScrapeGuardError]] = {
    ErrorKind.VALIDATION: ValidationError,
    ErrorKind.NETWORK: NetworkError,
    ErrorKind.TIMEOUT: TaskTimeoutError,
    ErrorKind.BLOCK_DETECTED: BlockDetectedError,
    ErrorKind.EXTRACTION: ExtractionError,
    ErrorKind.RESOURCE_EXHAUSTED: ResourceExhaustedError,
}


def error_for_kind(kind: ErrorKind, message: str | None = None, **details: object) -> ScrapeGuardError:
    """Build the exception matching *kind*."""
    return _ERRORS_BY_KIND[kind](message, **details)


def classify_exception(exc: BaseException) -> ErrorKind:
    """Map an exception raised by a callback or the browser engine to a kind.

    Browser engines raise their own error types, so timeouts are recognised
    by class name as well as by the builtin hierarchy, and navigation
    failures by Chromium's ``net::ERR_`` message prefix.
    """
    if isinstance(exc, ScrapeGuardError):
        return exc.kind
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return ErrorKind.TIMEOUT
    if any(cls.__name__ == "TimeoutError" for cls in type(exc).__mro__):
        return ErrorKind.TIMEOUT
    if isinstance(exc, (ConnectionError, OSError)):
        return ErrorKind.NETWORK
    if "net::ERR_" in str(exc):
        return ErrorKind.NETWORK
    return ErrorKind.EXTRACTION
