"""Polling utilities for cluster waits.

Every wait in the framework (namespace activation, service account
provisioning, namespace deletion, pod readiness) is a synchronous poll with a
deadline. The PollingConfig passed in names what is being waited for; that
name is what a timeout reports.

Functions:
    wait_for_condition: Poll until a condition is true or the deadline passes

Example:
    from e2e_framework.fixtures.polling import PollingConfig, wait_for_condition

    wait_for_condition(
        lambda: namespace_is_gone("e2e-ab12"),
        PollingConfig(timeout=300.0, interval=2.0, description="namespace e2e-ab12 deletion"),
    )
"""

from __future__ import annotations

import time
from collections.abc import Callable

from pydantic import BaseModel, ConfigDict, Field


class PollingConfig(BaseModel):
    """What to wait for and for how long.

    Attributes:
        timeout: Maximum wait time in seconds. Zero checks exactly once.
        interval: Seconds between checks.
        description: Subject of the wait, used in timeout messages.

    Example:
        config = PollingConfig(
            timeout=120.0,
            interval=2.0,
            description="service account default in e2e-ab12",
        )
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    timeout: float = Field(
        default=30.0,
        ge=0.0,
        description="Maximum wait time in seconds",
    )
    interval: float = Field(
        default=2.0,
        ge=0.1,
        description="Poll interval in seconds",
    )
    description: str = Field(
        default="condition",
        min_length=1,
        description="Subject of the wait, used in timeout messages",
    )


class PollingTimeoutError(TimeoutError):
    """Raised when a condition is still false at the deadline.

    Attributes:
        description: What was being waited for.
        timeout: How long we waited.
        attempts: How many times the condition was evaluated.
        last_error: Last retried exception raised by the condition, if any.
    """

    def __init__(
        self,
        config: PollingConfig,
        attempts: int,
        last_error: Exception | None = None,
    ) -> None:
        self.description = config.description
        self.timeout = config.timeout
        self.attempts = attempts
        self.last_error = last_error
        message = (
            f"Timeout waiting for {config.description} after {config.timeout:.1f}s "
            f"({attempts} attempts)"
        )
        if last_error is not None:
            message += f" (last error: {last_error})"
        super().__init__(message)


def wait_for_condition(
    condition: Callable[[], bool],
    config: PollingConfig,
    *,
    retry_on: tuple[type[Exception], ...] = (Exception,),
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], object] = time.sleep,
) -> None:
    """Evaluate ``condition`` until it returns True.

    The condition is always evaluated at least once, and once more after the
    last sleep, so a condition that becomes true right at the deadline is
    still seen.

    Args:
        condition: Callable returning True when the wait is over.
        config: Timeout, interval and description of the wait.
        retry_on: Exception types raised by the condition that count as "not
            yet". Anything else propagates immediately. Pass ``()`` for
            conditions that handle their own errors.
        clock: Monotonic clock.
        sleep: Sleep function.

    Raises:
        PollingTimeoutError: If the condition is not met by the deadline.
    """
    deadline = clock() + config.timeout
    attempts = 0
    last_error: Exception | None = None

    while True:
        attempts += 1
        try:
            if condition():
                return
        except retry_on as e:
            last_error = e

        remaining = deadline - clock()
        if remaining <= 0:
            raise PollingTimeoutError(config, attempts, last_error)
        sleep(min(config.interval, remaining))


# Module exports
__all__ = [
    "PollingConfig",
    "PollingTimeoutError",
    "wait_for_condition",
]
