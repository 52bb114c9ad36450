# src/resilience/exceptions.py
from enum import Enum
from typing import Optional


class FailureKind(str, Enum):
    NETWORK = "network"
    TIMEOUT = "timeout"
    HTTP_STATUS = "http-status"
    UNKNOWN = "unknown"


class UpstreamStatusError(Exception):
    """Raised by an operation when the downstream service answers with a non-success status"""

    def __init__(self, status_code: int, message: Optional[str] = None):
        self.status_code = status_code
        super().__init__(message or f"Upstream returned HTTP {status_code}")


class ExecutionFailedError(Exception):
    """A downstream call failed and will not be attempted again"""

    def __init__(
        self,
        message: str,
        kind: FailureKind,
        attempts: int,
        status_code: Optional[int] = None,
    ):
        self.kind = kind
        self.attempts = attempts
        self.status_code = status_code
        super().__init__(message)


class RetryExhaustedError(ExecutionFailedError):
    """Every attempt allowed by the retry policy failed with a retryable error"""
    pass
