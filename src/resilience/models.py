# src/resilience/models.py
from dataclasses import dataclass
from typing import Callable, FrozenSet, Optional

from pydantic import BaseModel, Field, model_validator

from .exceptions import FailureKind

DEFAULT_RETRYABLE_STATUSES = frozenset({408, 429, 500, 502, 503, 504})


@dataclass(frozen=True)
class ClassifiedFailure:
    kind: FailureKind
    retryable: bool
    error: BaseException
    status_code: Optional[int] = None


class RetryPolicy(BaseModel):
    max_retries: int = Field(default=3, ge=0)
    base_delay: float = Field(default=1.0, gt=0)
    max_delay: float = Field(default=10.0, gt=0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)
    retryable_statuses: FrozenSet[int] = Field(default=DEFAULT_RETRYABLE_STATUSES)
    retryable_classifier: Optional[Callable[[ClassifiedFailure], bool]] = None

    @model_validator(mode="after")
    def check_delay_bounds(self) -> "RetryPolicy":
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be greater than or equal to base_delay")
        return self

    @property
    def max_attempts(self) -> int:
        return 1 + self.max_retries

    def calculate_delay(self, retry_number: int) -> float:
        """Delay before the given retry (1 = first retry, i.e. the second attempt)."""
        if retry_number < 1:
            return 0.0
        try:
            delay = self.base_delay * (self.backoff_multiplier ** (retry_number - 1))
        except OverflowError:
            return self.max_delay
        return min(delay, self.max_delay)
