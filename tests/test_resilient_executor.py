import asyncio
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest
from pydantic import ValidationError

from src.resilience import (
    ExecutionFailedError,
    FailureKind,
    ResilientExecutor,
    RetryExhaustedError,
    RetryPolicy,
    UpstreamStatusError,
    classify_failure,
)


@pytest.fixture
def sleeps():
    """Records requested backoff delays instead of sleeping"""
    return []


@pytest.fixture
def executor(sleeps):
    async def fake_sleep(delay):
        sleeps.append(delay)

    return ResilientExecutor(sleep=fake_sleep)


@pytest.fixture
def policy():
    return RetryPolicy(max_retries=3, base_delay=1.0, max_delay=10.0, backoff_multiplier=2.0)


def test_backoff_grows_and_is_clamped():
    policy = RetryPolicy(base_delay=1.0, max_delay=10.0, backoff_multiplier=2.0)

    delays = [policy.calculate_delay(n) for n in range(1, 8)]

    assert delays == [1.0, 2.0, 4.0, 8.0, 10.0, 10.0, 10.0]
    assert delays == sorted(delays)
    assert policy.calculate_delay(0) == 0.0


def test_backoff_handles_huge_retry_numbers():
    policy = RetryPolicy(base_delay=1.0, max_delay=5.0, backoff_multiplier=10.0)
    assert policy.calculate_delay(10_000) == 5.0


def test_policy_rejects_max_delay_below_base_delay():
    with pytest.raises(ValidationError):
        RetryPolicy(base_delay=5.0, max_delay=1.0)


def test_policy_defaults():
    policy = RetryPolicy()
    assert policy.max_attempts == 4
    assert policy.retryable_statuses == frozenset({408, 429, 500, 502, 503, 504})


@pytest.mark.asyncio
async def test_success_on_first_attempt_does_not_sleep(executor, policy, sleeps):
    operation = AsyncMock(return_value="ok")

    result = await executor.execute(operation, policy, timeout=1.0)

    assert result == "ok"
    assert operation.await_count == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_retryable_status_is_retried_with_backoff(executor, policy, sleeps):
    operation = AsyncMock(side_effect=[UpstreamStatusError(503), UpstreamStatusError(429), "done"])

    result = await executor.execute(operation, policy, timeout=1.0)

    assert result == "done"
    assert operation.await_count == 3
    assert sleeps == [1.0, 2.0]


@pytest.mark.asyncio
async def test_non_retryable_status_fails_immediately(executor, policy, sleeps):
    operation = AsyncMock(side_effect=UpstreamStatusError(400, "bad request"))

    with pytest.raises(ExecutionFailedError) as exc_info:
        await executor.execute(operation, policy, timeout=1.0)

    error = exc_info.value
    assert not isinstance(error, RetryExhaustedError)
    assert error.kind == FailureKind.HTTP_STATUS
    assert error.status_code == 400
    assert error.attempts == 1
    assert str(error) == "bad request"
    assert operation.await_count == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_unknown_errors_are_not_retried(executor, policy):
    operation = AsyncMock(side_effect=ValueError("malformed response"))

    with pytest.raises(ExecutionFailedError) as exc_info:
        await executor.execute(operation, policy, timeout=1.0)

    assert exc_info.value.kind == FailureKind.UNKNOWN
    assert isinstance(exc_info.value.__cause__, ValueError)
    assert operation.await_count == 1


@pytest.mark.asyncio
async def test_retries_exhausted(executor, sleeps):
    policy = RetryPolicy(max_retries=2, base_delay=0.5, max_delay=10.0)
    operation = AsyncMock(side_effect=UpstreamStatusError(500))

    with pytest.raises(RetryExhaustedError) as exc_info:
        await executor.execute(operation, policy, timeout=1.0)

    error = exc_info.value
    assert error.attempts == 3
    assert error.status_code == 500
    assert isinstance(error.__cause__, UpstreamStatusError)
    assert operation.await_count == 3
    assert sleeps == [0.5, 1.0]


@pytest.mark.asyncio
async def test_zero_retries_runs_once(executor, sleeps):
    policy = RetryPolicy(max_retries=0)
    operation = AsyncMock(side_effect=UpstreamStatusError(503))

    with pytest.raises(RetryExhaustedError) as exc_info:
        await executor.execute(operation, policy, timeout=1.0)

    assert exc_info.value.attempts == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_attempt_timeout_is_classified_and_retried(executor, sleeps):
    policy = RetryPolicy(max_retries=1, base_delay=1.0)
    calls = []

    async def slow_operation():
        calls.append(1)
        await asyncio.sleep(5)

    with pytest.raises(RetryExhaustedError) as exc_info:
        await executor.execute(slow_operation, policy, timeout=0.01)

    assert exc_info.value.kind == FailureKind.TIMEOUT
    assert str(exc_info.value) == "Request timed out"
    assert len(calls) == 2
    assert sleeps == [1.0]


@pytest.mark.asyncio
async def test_network_error_is_retried(executor, policy):
    operation = AsyncMock(side_effect=[aiohttp.ClientConnectionError("reset"), {"ok": True}])

    assert await executor.execute(operation, policy, timeout=1.0) == {"ok": True}
    assert operation.await_count == 2


@pytest.mark.asyncio
async def test_custom_classifier_overrides_retryability(executor, sleeps):
    policy = RetryPolicy(max_retries=2, retryable_classifier=lambda failure: False)
    operation = AsyncMock(side_effect=UpstreamStatusError(503))

    with pytest.raises(ExecutionFailedError) as exc_info:
        await executor.execute(operation, policy, timeout=1.0)

    assert exc_info.value.attempts == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_caller_cancellation_propagates(executor, policy):
    started = asyncio.Event()

    async def operation():
        started.set()
        await asyncio.sleep(5)

    task = asyncio.create_task(executor.execute(operation, policy, timeout=10))
    await started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task


@pytest.mark.parametrize(
    "error,kind,retryable",
    [
        (asyncio.TimeoutError(), FailureKind.TIMEOUT, True),
        (UpstreamStatusError(502), FailureKind.HTTP_STATUS, True),
        (UpstreamStatusError(404), FailureKind.HTTP_STATUS, False),
        (aiohttp.ClientConnectionError(), FailureKind.NETWORK, True),
        (ConnectionResetError(), FailureKind.NETWORK, True),
        (KeyError("candidates"), FailureKind.UNKNOWN, False),
    ],
)
def test_classify_failure(error, kind, retryable):
    failure = classify_failure(error, RetryPolicy())

    assert failure.kind == kind
    assert failure.retryable is retryable
    assert failure.error is error


def test_classify_aiohttp_response_error():
    error = aiohttp.ClientResponseError(request_info=MagicMock(), history=(), status=429)

    failure = classify_failure(error, RetryPolicy())

    assert failure.kind == FailureKind.HTTP_STATUS
    assert failure.status_code == 429
    assert failure.retryable is True


def test_policy_allows_large_retry_budgets():
    policy = RetryPolicy(max_retries=15)

    assert policy.max_attempts == 16
    assert policy.calculate_delay(15) == policy.max_delay
