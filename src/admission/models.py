# src/admission/models.py
from dataclasses import dataclass
from typing import Dict, Optional

from pydantic import BaseModel, Field, field_validator

DEFAULT_ENDPOINT = "default"


class RateLimitRule(BaseModel):
    max_requests: int = Field(ge=1)
    window_seconds: float = Field(gt=0)


def default_rules() -> Dict[str, RateLimitRule]:
    return {
        "edit-image": RateLimitRule(max_requests=10, window_seconds=60.0),
        "chat": RateLimitRule(max_requests=30, window_seconds=60.0),
        DEFAULT_ENDPOINT: RateLimitRule(max_requests=50, window_seconds=60.0),
    }


class AdmissionConfig(BaseModel):
    rules: Dict[str, RateLimitRule] = Field(default_factory=default_rules)
    sweep_interval_seconds: float = Field(default=300.0, gt=0)

    @field_validator("rules")
    @classmethod
    def require_default_rule(cls, rules: Dict[str, RateLimitRule]) -> Dict[str, RateLimitRule]:
        if DEFAULT_ENDPOINT not in rules:
            raise ValueError(f"rate limit rules must include a '{DEFAULT_ENDPOINT}' entry")
        return rules

    def rule_for(self, endpoint: Optional[str]) -> RateLimitRule:
        return self.rules.get(endpoint or DEFAULT_ENDPOINT, self.rules[DEFAULT_ENDPOINT])


@dataclass
class RateWindow:
    count: int
    reset_at: float  # monotonic seconds


@dataclass(frozen=True)
class AdmissionDecision:
    allowed: bool
    retry_after_seconds: Optional[int] = None

    @classmethod
    def allow(cls) -> "AdmissionDecision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, retry_after_seconds: int) -> "AdmissionDecision":
        return cls(allowed=False, retry_after_seconds=retry_after_seconds)
