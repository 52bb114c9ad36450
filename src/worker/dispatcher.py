# src/worker/dispatcher.py
import logging
from typing import Any, Awaitable, Callable, Dict, Mapping

from src.job_queue.cancellation import CancellationToken
from src.job_queue.models import JobPayload, JobType
from .exceptions import HandlerNotFoundError

logger = logging.getLogger(__name__)

JobHandler = Callable[[JobPayload, CancellationToken], Awaitable[Any]]


class HandlerRegistry:
    """Maps every job type to the coroutine that executes it.

    Construction fails unless each JobType has a handler, so dispatch
    never meets an unknown type at runtime.
    """

    def __init__(self, handlers: Mapping[JobType, JobHandler]):
        resolved: Dict[JobType, JobHandler] = {JobType(job_type): h for job_type, h in handlers.items()}
        missing = [job_type.value for job_type in JobType if job_type not in resolved]
        if missing:
            raise HandlerNotFoundError(f"No handler registered for job types: {', '.join(missing)}")
        self._handlers = resolved

    def get(self, job_type: JobType) -> JobHandler:
        handler = self._handlers.get(JobType(job_type))
        if handler is None:
            logger.error(f"No handler registered for job type: {job_type}")
            raise HandlerNotFoundError(f"No handler found for job type: {job_type}")
        return handler

    def __contains__(self, job_type: object) -> bool:
        return job_type in self._handlers
