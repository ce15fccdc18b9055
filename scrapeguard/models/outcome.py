"""Uniform success/failure values passed between components."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Generic, TypeVar

from scrapeguard.errors import ErrorKind, classify_exception

T = TypeVar("T")


@dataclass(frozen=True)
class Failure:
    """A typed failure. ``attempts`` is filled in by the retry controller."""

    kind: ErrorKind
    message: str
    attempts: int = 1

    @property
    def retryable(self) -> bool:
        return self.kind.retryable

    def with_attempts(self, attempts: int) -> Failure:
        return replace(self, attempts=attempts)


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Either a value or a ``Failure``, never both."""

    value: T | None = None
    failure: Failure | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def success(cls, value: T) -> Outcome[T]:
        return cls(value=value)

    @classmethod
    def failed(cls, kind: ErrorKind, message: str, attempts: int = 1) -> Outcome[T]:
        return cls(failure=Failure(kind=kind, message=message, attempts=attempts))

    @classmethod
    def from_exception(cls, exc: BaseException) -> Outcome[T]:
        message = str(exc) or type(exc).__name__
        return cls.failed(classify_exception(exc), message)
