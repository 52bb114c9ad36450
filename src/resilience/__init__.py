from .executor import ResilientExecutor, classify_failure
from .models import RetryPolicy, ClassifiedFailure, DEFAULT_RETRYABLE_STATUSES
from .exceptions import (
    FailureKind,
    UpstreamStatusError,
    ExecutionFailedError,
    RetryExhaustedError,
)

__all__ = [
    'ResilientExecutor',
    'classify_failure',
    'RetryPolicy',
    'ClassifiedFailure',
    'DEFAULT_RETRYABLE_STATUSES',
    'FailureKind',
    'UpstreamStatusError',
    'ExecutionFailedError',
    'RetryExhaustedError',
]

__version__ = '1.0.0'
