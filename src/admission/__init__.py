from .rate_limiter import AdmissionController, client_key_from_headers
from .models import (
    AdmissionConfig,
    AdmissionDecision,
    RateLimitRule,
    RateWindow,
    DEFAULT_ENDPOINT,
)
from .exceptions import AdmissionError, AdmissionDeniedError

__all__ = [
    'AdmissionController',
    'client_key_from_headers',
    'AdmissionConfig',
    'AdmissionDecision',
    'RateLimitRule',
    'RateWindow',
    'DEFAULT_ENDPOINT',
    'AdmissionError',
    'AdmissionDeniedError',
]

__version__ = '1.0.0'
