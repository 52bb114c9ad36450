# src/config.py
import os
from typing import Mapping, Optional

from pydantic import BaseModel, Field

from src.admission.models import AdmissionConfig, RateLimitRule, default_rules
from src.job_queue.models import SchedulerConfig
from src.resilience.models import RetryPolicy
from src.worker.provider import ProviderConfig


class AppConfig(BaseModel):
    """Every tunable of the service, injectable as a whole or assembled from the environment."""

    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    admission: AdmissionConfig = Field(default_factory=AdmissionConfig)
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    provider_retry: RetryPolicy = Field(default_factory=RetryPolicy)
    wait_timeout_seconds: float = Field(default=300.0, gt=0)
    edit_image_priority: int = 1

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AppConfig":
        env = os.environ if environ is None else environ

        scheduler = SchedulerConfig(
            max_concurrent_jobs=int(env.get("OVERLAY_MAX_CONCURRENT_JOBS", 3)),
            default_max_retries=int(env.get("OVERLAY_JOB_MAX_RETRIES", 3)),
            tick_interval_seconds=float(env.get("OVERLAY_TICK_INTERVAL", 1.0)),
            retention_seconds=float(env.get("OVERLAY_RETENTION_SECONDS", 24 * 60 * 60)),
        )

        rules = default_rules()
        for endpoint in list(rules):
            prefix = "OVERLAY_RATE_" + endpoint.upper().replace("-", "_")
            if f"{prefix}_MAX" in env or f"{prefix}_WINDOW" in env:
                rules[endpoint] = RateLimitRule(
                    max_requests=int(env.get(f"{prefix}_MAX", rules[endpoint].max_requests)),
                    window_seconds=float(env.get(f"{prefix}_WINDOW", rules[endpoint].window_seconds)),
                )

        provider = ProviderConfig(
            api_endpoint=env.get("GEMINI_API_ENDPOINT", ProviderConfig().api_endpoint),
            api_key=env.get("GEMINI_API_KEY") or None,
        )

        return cls(
            scheduler=scheduler,
            admission=AdmissionConfig(rules=rules),
            provider=provider,
            wait_timeout_seconds=float(env.get("OVERLAY_WAIT_TIMEOUT", 300.0)),
        )
