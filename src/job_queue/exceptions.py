# src/job_queue/exceptions.py
class JobQueueError(Exception):
    """Base exception for job queue operations"""
    pass


class JobNotFoundError(JobQueueError):
    """Raised when a job id is unknown (never submitted or already purged)"""
    pass


class JobTimeoutError(JobQueueError):
    """Raised when waiting for a job outlasts the caller's deadline.

    The job itself keeps running.
    """
    pass


class JobCancelledError(JobQueueError):
    """Raised when the result of a cancelled job is requested"""
    pass


class JobFailedError(JobQueueError):
    """Raised when the result of a failed job is requested"""

    def __init__(self, job_id: str, error: str):
        self.job_id = job_id
        self.error = error
        super().__init__(f"Job {job_id} failed: {error}")


class JobValidationError(JobQueueError):
    """Raised when a submission's payload does not match its job type"""
    pass


class JobRejectedError(JobQueueError):
    """Raised by a handler when retrying the job cannot succeed, e.g. invalid input.

    The job fails on the first attempt regardless of its retry budget.
    """
    pass
