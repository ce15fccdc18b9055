"""Unit tests for the error taxonomy and outcome values."""

import asyncio

import pytest

from scrapeguard.errors import (
    BlockDetectedError,
    ErrorKind,
    ExtractionError,
    NetworkError,
    NoHealthyProxiesError,
    PoolExhaustedError,
    ResourceExhaustedError,
    ScrapeGuardError,
    TaskTimeoutError,
    ValidationError,
    classify_exception,
    error_for_kind,
)
from scrapeguard.models.outcome import Failure, Outcome
from scrapeguard.models.tasks import ExtractionResult, ExtractionTask, TaskState


class TestErrorKind:
    @pytest.mark.parametrize(
        "kind, retryable",
        [
            (ErrorKind.VALIDATION, False),
            (ErrorKind.NETWORK, True),
            (ErrorKind.TIMEOUT, True),
            (ErrorKind.BLOCK_DETECTED, False),
            (ErrorKind.EXTRACTION, True),
            (ErrorKind.RESOURCE_EXHAUSTED, False),
        ],
    )
    def test_retryable(self, kind, retryable):
        assert kind.retryable is retryable


class TestErrorHierarchy:
    def test_default_message(self):
        err = BlockDetectedError()
        assert err.message == "Automated access blocked by target"
        assert err.status_code == 429
        assert err.kind is ErrorKind.BLOCK_DETECTED

    def test_custom_message_and_details(self):
        err = ValidationError("bad url", target="x")
        assert str(err) == "bad url"
        assert err.details == {"target": "x"}
        assert err.status_code == 422

    def test_resource_subclasses(self):
        assert issubclass(PoolExhaustedError, ResourceExhaustedError)
        assert issubclass(NoHealthyProxiesError, ResourceExhaustedError)
        assert PoolExhaustedError().kind is ErrorKind.RESOURCE_EXHAUSTED

    def test_error_for_kind(self):
        err = error_for_kind(ErrorKind.TIMEOUT, "slow", attempts=2)
        assert isinstance(err, TaskTimeoutError)
        assert err.details == {"attempts": 2}


class _EngineTimeoutError(Exception):
    pass


_EngineTimeoutError.__name__ = "TimeoutError"


class TestClassifyException:
    @pytest.mark.parametrize(
        "exc, kind",
        [
            (NetworkError(), ErrorKind.NETWORK),
            (ExtractionError(), ErrorKind.EXTRACTION),
            (asyncio.TimeoutError(), ErrorKind.TIMEOUT),
            (TimeoutError(), ErrorKind.TIMEOUT),
            (_EngineTimeoutError("Timeout 30000ms exceeded"), ErrorKind.TIMEOUT),
            (ConnectionRefusedError(), ErrorKind.NETWORK),
            (Exception("net::ERR_NAME_NOT_RESOLVED at https://x"), ErrorKind.NETWORK),
            (KeyError("name"), ErrorKind.EXTRACTION),
        ],
    )
    def test_mapping(self, exc, kind):
        assert classify_exception(exc) is kind


class TestOutcome:
    def test_success(self):
        outcome = Outcome.success({"a": 1})
        assert outcome.ok
        assert outcome.failure is None

    def test_failed(self):
        outcome = Outcome.failed(ErrorKind.NETWORK, "reset")
        assert not outcome.ok
        assert outcome.failure.retryable is True

    def test_from_exception_uses_type_name_for_empty_message(self):
        outcome = Outcome.from_exception(ConnectionResetError())
        assert outcome.failure.message == "ConnectionResetError"

    def test_with_attempts(self):
        failure = Failure(ErrorKind.TIMEOUT, "slow")
        assert failure.with_attempts(3).attempts == 3
        assert failure.attempts == 1


class TestTaskLifecycle:
    def test_transitions_recorded(self):
        task = ExtractionTask(id="t", target_key="k", deadline=0.0)
        task.transition(TaskState.CACHE_CHECK)
        task.transition(TaskState.COMPLETED)
        assert task.history == [TaskState.QUEUED, TaskState.CACHE_CHECK]

    def test_terminal_state_is_final(self):
        task = ExtractionTask(id="t", target_key="k", deadline=0.0)
        task.transition(TaskState.FAILED)
        with pytest.raises(RuntimeError):
            task.transition(TaskState.RETRYING)


class TestExtractionResult:
    def test_raise_for_error(self):
        result = ExtractionResult(
            target_key="https://example.com/a",
            failure=Failure(ErrorKind.BLOCK_DETECTED, "Blocked: HTTP 429", attempts=3),
        )
        with pytest.raises(BlockDetectedError) as info:
            result.raise_for_error()
        assert info.value.details["attempts"] == 3
        assert isinstance(info.value, ScrapeGuardError)

    def test_raise_for_error_noop_on_success(self):
        ExtractionResult(target_key="k", payload={"a": 1}).raise_for_error()
