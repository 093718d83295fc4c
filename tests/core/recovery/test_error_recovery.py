"""
Tests for the Error Recovery System

Tests for error classification and the backoff executor.
"""

import asyncio
import pytest
from unittest.mock import AsyncMock, MagicMock

from portfolio_agent.core.recovery import (
    # Errors
    RecoverableError,
    UnrecoverableError,
    ProviderCallFailed,
    ProviderRateLimitError,
    ProviderAuthError,
    UnsupportedProvider,
    RetryExhausted,
    ChannelClosed,
    classify_error,
    # Executor
    BackoffExecutor,
    RetryPolicy,
    is_retryable,
    retry_with_backoff,
)
from portfolio_agent.core.recovery.errors import ErrorCategory


class FakeSleep:
    """Records requested waits and advances a fake monotonic clock."""

    def __init__(self):
        self.delays = []
        self.now = 0.0

    async def __call__(self, delay):
        self.delays.append(delay)
        self.now += delay

    def clock(self):
        return self.now


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def executor(fake_sleep):
    return BackoffExecutor(sleep=fake_sleep, clock=fake_sleep.clock)


# =============================================================================
# Error Classification Tests
# =============================================================================

class TestErrorClassification:
    """Tests for error classification."""

    def test_recoverable_error_is_recoverable(self):
        error = RecoverableError("Test error")
        assert error.context.recoverable is True

    def test_unrecoverable_error_is_not_recoverable(self):
        error = UnrecoverableError("Test error")
        assert error.context.recoverable is False

    def test_provider_call_failed_is_retryable(self):
        assert is_retryable(ProviderCallFailed("503 from upstream", provider="primary"))

    def test_rate_limit_carries_retry_after(self):
        error = ProviderRateLimitError("slow down", provider="primary", retry_after=7)
        assert error.retry_after == 7
        assert error.category == ErrorCategory.RATE_LIMIT
        assert is_retryable(error)

    def test_auth_error_is_provider_failure_but_not_retryable(self):
        error = ProviderAuthError("bad key", provider="secondary")
        assert isinstance(error, ProviderCallFailed)
        assert is_retryable(error) is False
        assert error.context.category == ErrorCategory.AUTHENTICATION

    def test_unsupported_provider_message(self):
        error = UnsupportedProvider("mystery", available=["primary", "secondary"])
        assert str(error) == "Unsupported AI provider: mystery. Available providers: primary, secondary"
        assert is_retryable(error) is False

    def test_channel_closed_is_unrecoverable(self):
        assert classify_error(ChannelClosed()).category == ErrorCategory.TRANSPORT

    def test_classify_rate_limit_by_message(self):
        context = classify_error(Exception("429 Too Many Requests"))
        assert context.category == ErrorCategory.RATE_LIMIT
        assert context.recoverable is True

    def test_classify_auth_by_message(self):
        context = classify_error(Exception("401 Unauthorized"))
        assert context.category == ErrorCategory.AUTHENTICATION
        assert context.recoverable is False

    def test_classify_network_by_message(self):
        context = classify_error(Exception("Connection refused"))
        assert context.category == ErrorCategory.NETWORK

    def test_classify_timeout_by_message(self):
        context = classify_error(Exception("Request timed out"))
        assert context.category == ErrorCategory.TIMEOUT

    def test_unknown_defaults_to_recoverable(self):
        context = classify_error(Exception("something odd"))
        assert context.category == ErrorCategory.UNKNOWN
        assert context.recoverable is True


# =============================================================================
# Retry Policy Tests
# =============================================================================

class TestRetryPolicy:
    """Tests for the delay schedule."""

    def test_delays_grow_by_multiplier(self):
        policy = RetryPolicy(initial_delay_seconds=0.5, backoff_multiplier=2)
        assert [policy.delay_for(i) for i in range(4)] == [0.5, 1.0, 2.0, 4.0]

    def test_delay_is_capped(self):
        policy = RetryPolicy(initial_delay_seconds=1, backoff_multiplier=10, max_delay_seconds=5)
        assert policy.delay_for(3) == 5

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)

    def test_policy_is_immutable(self):
        policy = RetryPolicy()
        with pytest.raises(AttributeError):
            policy.max_attempts = 10

    def test_worst_case_counts_attempts_and_capped_waits(self):
        policy = RetryPolicy(max_attempts=2, max_delay_seconds=5, max_elapsed_seconds=None)
        assert policy.worst_case_seconds(10) == 25

    def test_worst_case_bounded_by_elapsed_budget(self):
        # 3 x 40s attempts plus two 30s waits, cut off at 120s plus one last attempt
        assert RetryPolicy().worst_case_seconds(40) == 160


# =============================================================================
# Backoff Executor Tests
# =============================================================================

class TestBackoffExecutor:
    """Tests for the backoff executor."""

    @pytest.mark.asyncio
    async def test_success_invoked_once(self, executor, fake_sleep):
        work = AsyncMock(return_value="done")

        result = await executor.execute(work, RetryPolicy(max_attempts=5))

        assert result == "done"
        assert work.call_count == 1
        assert fake_sleep.delays == []

    @pytest.mark.asyncio
    async def test_permanent_failure_invokes_exactly_max_attempts(self, executor):
        work = AsyncMock(side_effect=ProviderCallFailed("upstream down"))

        with pytest.raises(RetryExhausted) as exc_info:
            await executor.execute(work, RetryPolicy(max_attempts=4, initial_delay_seconds=0.01))

        assert work.call_count == 4
        assert exc_info.value.attempts == 4

    @pytest.mark.asyncio
    async def test_waits_half_then_one_second(self, executor, fake_sleep):
        work = AsyncMock(side_effect=ProviderCallFailed("upstream down"))
        policy = RetryPolicy(max_attempts=3, initial_delay_seconds=0.5, backoff_multiplier=2)

        with pytest.raises(RetryExhausted):
            await executor.execute(work, policy)

        assert fake_sleep.delays == [0.5, 1.0]
        assert work.call_count == 3

    @pytest.mark.asyncio
    async def test_exhaustion_wraps_last_error(self, executor):
        last = ProviderCallFailed("third failure")
        work = AsyncMock(side_effect=[ProviderCallFailed("first"), ProviderCallFailed("second"), last])
        policy = RetryPolicy(max_attempts=3, on_failure_message="Failed to generate completion")

        with pytest.raises(RetryExhausted) as exc_info:
            await executor.execute(work, policy)

        error = exc_info.value
        assert error.last_error is last
        assert error.__cause__ is last
        assert "Failed to generate completion" in str(error)
        assert "third failure" in str(error)

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failures(self, executor, fake_sleep):
        work = AsyncMock(side_effect=[ProviderCallFailed("blip"), "ok"])

        result = await executor.execute(work, RetryPolicy(max_attempts=3))

        assert result == "ok"
        assert work.call_count == 2
        assert fake_sleep.delays == [0.5]

    @pytest.mark.asyncio
    async def test_unrecoverable_error_propagates_unwrapped(self, executor):
        work = AsyncMock(side_effect=ProviderAuthError("bad key"))

        with pytest.raises(ProviderAuthError):
            await executor.execute(work, RetryPolicy(max_attempts=5))

        assert work.call_count == 1

    @pytest.mark.asyncio
    async def test_unclassified_errors_are_retried(self, executor):
        work = AsyncMock(side_effect=RuntimeError("weird"))

        with pytest.raises(RetryExhausted):
            await executor.execute(work, RetryPolicy(max_attempts=2))

        assert work.call_count == 2

    @pytest.mark.asyncio
    async def test_retry_after_raises_delay_up_to_cap(self, executor, fake_sleep):
        work = AsyncMock(
            side_effect=[
                ProviderRateLimitError("slow", retry_after=3.0),
                ProviderRateLimitError("slow", retry_after=99.0),
                "ok",
            ]
        )
        policy = RetryPolicy(max_attempts=3, initial_delay_seconds=0.5, max_delay_seconds=10)

        await executor.execute(work, policy)

        assert fake_sleep.delays == [3.0, 10]

    @pytest.mark.asyncio
    async def test_elapsed_budget_stops_early(self, executor, fake_sleep):
        work = AsyncMock(side_effect=ProviderCallFailed("down"))
        policy = RetryPolicy(
            max_attempts=10,
            initial_delay_seconds=1,
            backoff_multiplier=2,
            max_elapsed_seconds=5,
        )

        with pytest.raises(RetryExhausted) as exc_info:
            await executor.execute(work, policy)

        # 1s + 2s fit within 5s; the 4s wait would not
        assert fake_sleep.delays == [1, 2]
        assert exc_info.value.attempts == 3

    @pytest.mark.asyncio
    async def test_logs_each_retry(self, fake_sleep):
        logger = MagicMock()
        executor = BackoffExecutor(sleep=fake_sleep, clock=fake_sleep.clock, logger=logger)
        work = AsyncMock(side_effect=ProviderCallFailed("down"))

        with pytest.raises(RetryExhausted):
            await executor.execute(work, RetryPolicy(max_attempts=3), operation_name="completion")

        assert logger.warning.call_count == 2
        first = logger.warning.call_args_list[0].args
        assert first[1] == "completion"
        assert first[2] == 2

    @pytest.mark.asyncio
    async def test_cancellation_is_not_retried(self):
        started = asyncio.Event()

        async def work():
            started.set()
            await asyncio.sleep(3600)

        executor = BackoffExecutor()
        task = asyncio.create_task(executor.execute(work, RetryPolicy(max_attempts=5)))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_retry_with_backoff_uses_given_policy(self):
        work = AsyncMock(side_effect=[ProviderCallFailed("blip"), 42])

        result = await retry_with_backoff(work, RetryPolicy(max_attempts=2, initial_delay_seconds=0))

        assert result == 42
