import time
from abc import ABC
from abc import abstractmethod
from collections.abc import Callable
from threading import Event

from loguru import logger
from pydantic import Field

from imbue.machine.config.data_types import WaitConfig
from imbue.machine.errors import RetryExhaustedError
from imbue.machine.errors import WaitCancelledError
from imbue.machine.models import MutableModel


class ReadinessCheck(MutableModel, ABC):
    """A zero-argument predicate that remembers why it last reported "not ready".

    Checks never raise for expected transient failures: they log the cause, store it in
    last_error, and return False. wait_for() reports last_error if the attempt budget runs out.
    """

    last_error: str | None = Field(default=None, description="Cause of the most recent failed check")

    @abstractmethod
    def check(self) -> bool:
        """Return True once the condition holds."""

    def __call__(self) -> bool:
        is_ready = self.check()
        if is_ready:
            self.last_error = None
        return is_ready

    def record_failure(self, message: str, *args: object) -> bool:
        """Log a failed sub-step at debug level, remember it, and report "not ready"."""
        formatted = message.format(*args)
        logger.debug(formatted)
        self.last_error = formatted
        return False


def wait_for(
    condition: Callable[[], bool],
    poll_interval_seconds: float = 3.0,
    max_attempts: int = 60,
    cancel_event: Event | None = None,
) -> int:
    """Evaluate condition until it returns True, at most max_attempts times.

    Sleeps poll_interval_seconds between evaluations (not after the last one). Returns the
    number of evaluations made. Raises RetryExhaustedError once the budget is consumed, carrying
    the condition's last_error when it is a ReadinessCheck. If cancel_event is set while
    sleeping, raises WaitCancelledError.
    """
    for attempt in range(1, max_attempts + 1):
        if condition():
            return attempt
        if attempt == max_attempts:
            break
        if cancel_event is None:
            time.sleep(poll_interval_seconds)
        elif cancel_event.wait(poll_interval_seconds):
            raise WaitCancelledError(attempt)
    last_error = condition.last_error if isinstance(condition, ReadinessCheck) else None
    raise RetryExhaustedError(max_attempts, last_error)


def wait_for_config(
    condition: Callable[[], bool],
    wait_config: WaitConfig,
    cancel_event: Event | None = None,
) -> int:
    """Like wait_for, with the interval and attempt budget taken from configuration."""
    return wait_for(
        condition,
        poll_interval_seconds=wait_config.poll_interval_seconds,
        max_attempts=wait_config.max_attempts,
        cancel_event=cancel_event,
    )
