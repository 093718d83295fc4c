"""
Backoff Executor

Retries a fallible async unit of work with exponentially growing waits,
bounded per wait and in total.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .errors import RecoverableError, RetryExhausted, classify_error

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[Any]]
ClockFn = Callable[[], float]


@dataclass(frozen=True)
class RetryPolicy:
    """Immutable retry configuration passed to the executor per call."""

    max_attempts: int = 3
    initial_delay_seconds: float = 0.5
    backoff_multiplier: float = 2.0
    on_failure_message: str = "Operation failed after multiple retries"
    max_delay_seconds: float = 30.0
    max_elapsed_seconds: Optional[float] = 120.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay_seconds < 0:
            raise ValueError("initial_delay_seconds must be non-negative")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be >= 1")
        if self.max_delay_seconds <= 0:
            raise ValueError("max_delay_seconds must be positive")

    def delay_for(self, retry_index: int) -> float:
        """Wait before retry number ``retry_index`` (0-based), capped at max_delay."""
        delay = self.initial_delay_seconds * (self.backoff_multiplier ** retry_index)
        return min(delay, self.max_delay_seconds)

    def worst_case_seconds(self, attempt_timeout: float) -> float:
        """Upper bound on one call's wall time when each attempt may run ``attempt_timeout``."""
        # Retry-After can stretch a wait up to max_delay
        total = self.max_attempts * attempt_timeout + (self.max_attempts - 1) * self.max_delay_seconds
        if self.max_elapsed_seconds is not None:
            # No wait starts past max_elapsed, so at most one attempt runs beyond it
            total = min(total, self.max_elapsed_seconds + attempt_timeout)
        return total


def is_retryable(error: BaseException) -> bool:
    return classify_error(error).recoverable


class BackoffExecutor:
    """
    Stateless retry wrapper.

    Safe to share between concurrent callers; every call carries its own
    policy and keeps its attempt counter on the stack.
    """

    def __init__(
        self,
        sleep: Optional[SleepFn] = None,
        clock: Optional[ClockFn] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._sleep = sleep or asyncio.sleep
        self._clock = clock or time.monotonic
        self.logger = logger or logging.getLogger(__name__)

    async def execute(
        self,
        work: Callable[[], Awaitable[T]],
        policy: RetryPolicy,
        operation_name: str = "operation",
    ) -> T:
        """
        Run ``work`` until it succeeds or the policy is spent.

        Args:
            work: Zero-argument coroutine factory, invoked once per attempt
            policy: Attempt budget and delay schedule
            operation_name: Name for logging

        Returns:
            The first successful result of ``work``

        Raises:
            RetryExhausted: every attempt failed, or the elapsed budget ran out
            Exception: a non-retryable failure, re-raised unchanged
        """
        started = self._clock()
        attempt = 0

        while True:
            attempt += 1
            try:
                return await work()
            except Exception as exc:
                if not is_retryable(exc):
                    self.logger.error(
                        "%s failed with unrecoverable error on attempt %d: %s",
                        operation_name,
                        attempt,
                        exc,
                    )
                    raise

                remaining = policy.max_attempts - attempt
                if remaining <= 0:
                    self.logger.error(
                        "%s failed after %d attempts: %s", operation_name, attempt, exc
                    )
                    raise RetryExhausted(policy.on_failure_message, exc, attempt) from exc

                delay = self._next_delay(exc, policy, attempt - 1)
                if policy.max_elapsed_seconds is not None:
                    elapsed = self._clock() - started
                    if elapsed + delay > policy.max_elapsed_seconds:
                        self.logger.error(
                            "%s gave up after %d attempts and %.1fs: %s",
                            operation_name,
                            attempt,
                            elapsed,
                            exc,
                        )
                        raise RetryExhausted(policy.on_failure_message, exc, attempt) from exc

                self.logger.warning(
                    "Retrying %s, %d attempts remaining (next in %.2fs): %s",
                    operation_name,
                    remaining,
                    delay,
                    exc,
                )
                await self._sleep(delay)

    def _next_delay(self, error: Exception, policy: RetryPolicy, retry_index: int) -> float:
        delay = policy.delay_for(retry_index)
        if isinstance(error, RecoverableError) and error.retry_after:
            delay = min(max(delay, error.retry_after), policy.max_delay_seconds)
        return delay


_default_executor = BackoffExecutor()


async def retry_with_backoff(
    work: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    operation_name: str = "operation",
) -> T:
    """
    Execute ``work`` with the shared executor.

    Falls back to the retry policy configured in settings.
    """
    if policy is None:
        from ...config import settings

        policy = settings.default_retry_policy()
    return await _default_executor.execute(work, policy, operation_name)
