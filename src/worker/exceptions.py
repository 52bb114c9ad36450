# src/worker/exceptions.py
from src.job_queue.exceptions import JobRejectedError


class WorkerError(Exception):
    """Base exception for job handler errors"""
    pass


class HandlerNotFoundError(WorkerError):
    """Raised when no handler is registered for a job type"""
    pass


class InvalidImageError(WorkerError, JobRejectedError):
    """Raised when an image payload cannot be sent to the provider.

    The scheduler fails the job at once instead of retrying it.
    """
    pass
