from .models import (
    Job,
    JobType,
    JobStatus,
    JobPayload,
    ImageEditPayload,
    ImageEditContext,
    ChatPayload,
    ChatMessage,
    QueueStats,
    SchedulerConfig,
    CANCELLED_ERROR,
)
from .cancellation import CancellationToken
from .scheduler import JobScheduler
from .exceptions import (
    JobQueueError,
    JobNotFoundError,
    JobTimeoutError,
    JobCancelledError,
    JobFailedError,
    JobValidationError,
    JobRejectedError,
)

__all__ = [
    'Job',
    'JobType',
    'JobStatus',
    'JobPayload',
    'ImageEditPayload',
    'ImageEditContext',
    'ChatPayload',
    'ChatMessage',
    'QueueStats',
    'SchedulerConfig',
    'CANCELLED_ERROR',
    'CancellationToken',
    'JobScheduler',
    'JobQueueError',
    'JobNotFoundError',
    'JobTimeoutError',
    'JobCancelledError',
    'JobFailedError',
    'JobValidationError',
    'JobRejectedError',
]

__version__ = '1.0.0'
