# src/api/__init__.py
from .models import (
    EditImageRequest,
    ChatRequest,
    ChatResponse,
    JobSubmittedResponse,
    JobResultResponse,
    JobStatusResponse,
    CancelJobResponse,
    QueueStatsResponse,
)
from .router import router
from .exceptions import (
    RateLimitExceededError,
    JobNotFoundHTTPError,
    JobAccessDeniedError,
    JobWaitTimeoutError,
    JobProcessingError,
    UpstreamServiceError,
)

__all__ = [
    'EditImageRequest',
    'ChatRequest',
    'ChatResponse',
    'JobSubmittedResponse',
    'JobResultResponse',
    'JobStatusResponse',
    'CancelJobResponse',
    'QueueStatsResponse',
    'router',
    'RateLimitExceededError',
    'JobNotFoundHTTPError',
    'JobAccessDeniedError',
    'JobWaitTimeoutError',
    'JobProcessingError',
    'UpstreamServiceError',
]

__version__ = '1.0.0'
