# src/resilience/executor.py
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

import aiohttp

from .exceptions import (
    ExecutionFailedError,
    FailureKind,
    RetryExhaustedError,
    UpstreamStatusError,
)
from .models import ClassifiedFailure, RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")


def classify_failure(error: BaseException, policy: RetryPolicy) -> ClassifiedFailure:
    """Map an attempt's exception onto a failure kind and decide whether it may be retried."""
    status_code: Optional[int] = None

    if isinstance(error, asyncio.TimeoutError):
        kind, retryable = FailureKind.TIMEOUT, True
    elif isinstance(error, UpstreamStatusError):
        status_code = error.status_code
        kind, retryable = FailureKind.HTTP_STATUS, status_code in policy.retryable_statuses
    elif isinstance(error, aiohttp.ClientResponseError):
        status_code = error.status
        kind, retryable = FailureKind.HTTP_STATUS, status_code in policy.retryable_statuses
    elif isinstance(error, (aiohttp.ClientError, ConnectionError, OSError)):
        kind, retryable = FailureKind.NETWORK, True
    else:
        kind, retryable = FailureKind.UNKNOWN, False

    failure = ClassifiedFailure(kind=kind, retryable=retryable, error=error, status_code=status_code)
    if policy.retryable_classifier is not None:
        failure = ClassifiedFailure(
            kind=kind,
            retryable=bool(policy.retryable_classifier(failure)),
            error=error,
            status_code=status_code,
        )
    return failure


class ResilientExecutor:
    """Runs a single downstream call with a per-attempt timeout and exponential backoff."""

    def __init__(self, sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self._sleep = sleep

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: RetryPolicy,
        timeout: float,
        description: str = "operation",
    ) -> T:
        """
        Execute ``operation`` until it succeeds or the retry budget is spent.

        Args:
            operation: Zero-argument callable returning a fresh awaitable per attempt
            policy: Retry policy controlling attempts, backoff and classification
            timeout: Per-attempt deadline in seconds; expiry cancels the attempt
            description: Label used in log messages

        Returns:
            The operation's result

        Raises:
            ExecutionFailedError: A non-retryable failure occurred
            RetryExhaustedError: All 1 + max_retries attempts failed
        """
        max_attempts = policy.max_attempts
        last_failure: Optional[ClassifiedFailure] = None

        for attempt in range(1, max_attempts + 1):
            if attempt > 1:
                delay = policy.calculate_delay(attempt - 1)
                logger.warning(
                    f"Retrying {description} in {delay:.2f}s "
                    f"(attempt {attempt}/{max_attempts}): {last_failure.error}"
                )
                await self._sleep(delay)

            try:
                return await asyncio.wait_for(operation(), timeout=timeout)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                last_failure = classify_failure(e, policy)

            if not last_failure.retryable:
                logger.error(
                    f"{description} failed with non-retryable {last_failure.kind.value} error "
                    f"on attempt {attempt}: {last_failure.error}"
                )
                raise ExecutionFailedError(
                    _describe(last_failure),
                    kind=last_failure.kind,
                    attempts=attempt,
                    status_code=last_failure.status_code,
                ) from last_failure.error

        logger.error(
            f"{description} failed permanently after {max_attempts} attempts: {last_failure.error}"
        )
        raise RetryExhaustedError(
            _describe(last_failure),
            kind=last_failure.kind,
            attempts=max_attempts,
            status_code=last_failure.status_code,
        ) from last_failure.error


def _describe(failure: ClassifiedFailure) -> str:
    if failure.kind == FailureKind.TIMEOUT:
        return "Request timed out"
    return str(failure.error) or type(failure.error).__name__
