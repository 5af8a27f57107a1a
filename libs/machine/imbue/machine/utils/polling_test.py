"""Unit tests for the polling module."""

from threading import Event

import pytest

from imbue.machine.config.data_types import WaitConfig
from imbue.machine.errors import RetryExhaustedError
from imbue.machine.errors import WaitCancelledError
from imbue.machine.primitives import NonNegativeFloat
from imbue.machine.primitives import PositiveInt
from imbue.machine.utils.polling import ReadinessCheck
from imbue.machine.utils.polling import wait_for
from imbue.machine.utils.polling import wait_for_config


class _CountingCheck(ReadinessCheck):
    """Becomes ready on the ready_on-th evaluation (never, if 0)."""

    ready_on: int = 0
    evaluations: int = 0

    def check(self) -> bool:
        self.evaluations += 1
        if self.ready_on and self.evaluations >= self.ready_on:
            return True
        return self.record_failure("not ready on attempt {}", self.evaluations)


def test_wait_for_returns_immediately_when_condition_true() -> None:
    assert wait_for(lambda: True, poll_interval_seconds=0, max_attempts=3) == 1


def test_wait_for_evaluates_exactly_until_condition_becomes_true() -> None:
    check = _CountingCheck(ready_on=4)

    attempts = wait_for(check, poll_interval_seconds=0, max_attempts=10)

    assert attempts == 4
    assert check.evaluations == 4


def test_wait_for_evaluates_max_attempts_times_then_raises() -> None:
    check = _CountingCheck()

    with pytest.raises(RetryExhaustedError) as exc_info:
        wait_for(check, poll_interval_seconds=0, max_attempts=7)

    assert check.evaluations == 7
    assert exc_info.value.attempts == 7


def test_wait_for_reports_last_error_of_readiness_check() -> None:
    check = _CountingCheck()

    with pytest.raises(RetryExhaustedError) as exc_info:
        wait_for(check, poll_interval_seconds=0, max_attempts=2)

    assert exc_info.value.last_error == "not ready on attempt 2"
    assert "Last error: not ready on attempt 2" in str(exc_info.value)


def test_wait_for_with_plain_callable_has_no_last_error() -> None:
    with pytest.raises(RetryExhaustedError) as exc_info:
        wait_for(lambda: False, poll_interval_seconds=0, max_attempts=2)

    assert exc_info.value.last_error is None
    assert str(exc_info.value) == "Too many retries (2 attempts)."


def test_readiness_check_clears_last_error_on_success() -> None:
    check = _CountingCheck(ready_on=2)

    assert check() is False
    assert check.last_error == "not ready on attempt 1"
    assert check() is True
    assert check.last_error is None


def test_wait_for_raises_when_cancelled() -> None:
    cancel_event = Event()
    cancel_event.set()
    check = _CountingCheck()

    with pytest.raises(WaitCancelledError) as exc_info:
        wait_for(check, poll_interval_seconds=10, max_attempts=5, cancel_event=cancel_event)

    assert exc_info.value.attempts == 1
    assert check.evaluations == 1


def test_wait_for_does_not_wait_after_last_attempt() -> None:
    # A set cancel event would abort any sleep, so reaching exhaustion proves no sleep followed the last attempt.
    cancel_event = Event()
    cancel_event.set()

    with pytest.raises(RetryExhaustedError):
        wait_for(lambda: False, poll_interval_seconds=10, max_attempts=1, cancel_event=cancel_event)


def test_wait_for_config_uses_configured_attempt_budget() -> None:
    wait_config = WaitConfig(poll_interval_seconds=NonNegativeFloat(0.0), max_attempts=PositiveInt(3))
    check = _CountingCheck()

    with pytest.raises(RetryExhaustedError):
        wait_for_config(check, wait_config)

    assert check.evaluations == 3
