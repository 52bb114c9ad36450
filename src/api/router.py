# src/api/router.py
import logging
from typing import Union

from fastapi import APIRouter, Depends, Header, Request

from .exceptions import (
    JobAccessDeniedError,
    JobNotFoundHTTPError,
    JobProcessingError,
    JobWaitTimeoutError,
    RateLimitExceededError,
    UpstreamServiceError,
)
from .models import (
    CancelJobResponse,
    ChatRequest,
    ChatResponse,
    EditImageRequest,
    JobResultResponse,
    JobStatusResponse,
    JobSubmittedResponse,
    QueueStatsResponse,
)
from src.admission import AdmissionController, AdmissionDeniedError, client_key_from_headers
from src.config import AppConfig
from src.job_queue import (
    CancellationToken,
    Job,
    JobNotFoundError,
    JobScheduler,
    JobStatus,
    JobTimeoutError,
    JobType,
)
from src.resilience import ExecutionFailedError
from src.worker import HandlerRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/overlay")


def get_scheduler(request: Request) -> JobScheduler:
    return request.app.state.scheduler


def get_admission(request: Request) -> AdmissionController:
    return request.app.state.admission


def get_handlers(request: Request) -> HandlerRegistry:
    return request.app.state.handlers


def get_config(request: Request) -> AppConfig:
    return request.app.state.config


def get_client_key(request: Request) -> str:
    return client_key_from_headers(request.headers)


def rate_limited(endpoint: str):
    """Dependency that admits the caller for ``endpoint`` and yields its client key."""

    async def admit_client(
        client_key: str = Depends(get_client_key),
        admission: AdmissionController = Depends(get_admission),
    ) -> str:
        try:
            await admission.enforce(client_key, endpoint)
        except AdmissionDeniedError as e:
            raise RateLimitExceededError(e.retry_after_seconds)
        return client_key

    return admit_client


async def get_owned_job(
    job_id: str,
    client_key: str = Depends(get_client_key),
    scheduler: JobScheduler = Depends(get_scheduler),
) -> Job:
    try:
        job = await scheduler.get_status(job_id)
    except JobNotFoundError:
        raise JobNotFoundHTTPError(job_id)
    if job.owner_id != client_key:
        raise JobAccessDeniedError(job_id)
    return job


@router.post("/edit-image", response_model=Union[JobSubmittedResponse, JobResultResponse])
async def edit_image(
    edit_request: EditImageRequest,
    client_key: str = Depends(rate_limited("edit-image")),
    wait_for_result: bool = Header(default=False, alias="x-wait-for-result"),
    scheduler: JobScheduler = Depends(get_scheduler),
    config: AppConfig = Depends(get_config),
):
    """
    Queue an AI image edit. With ``x-wait-for-result: true`` the request
    blocks until the job finishes or the wait timeout elapses.
    """
    job_id = await scheduler.submit(
        client_key, JobType.IMAGE_EDIT, edit_request.to_payload(), priority=config.edit_image_priority
    )

    if not wait_for_result:
        return JobSubmittedResponse(job_id=job_id, message="Image processing job queued successfully")

    try:
        job = await scheduler.await_completion(job_id, timeout=config.wait_timeout_seconds)
    except JobTimeoutError:
        logger.warning(f"Timed out waiting for job {job_id}")
        raise JobWaitTimeoutError(job_id)

    if job.status == JobStatus.FAILED:
        raise JobProcessingError(job_id, job.error or "AI processing failed")

    return JobResultResponse(
        job_id=job_id,
        status=job.status,
        result=job.result,
        processing_time_ms=job.processing_time_ms,
    )


@router.post("/chat", response_model=ChatResponse)
async def chat(
    chat_request: ChatRequest,
    client_key: str = Depends(rate_limited("chat")),
    handlers: HandlerRegistry = Depends(get_handlers),
):
    """Answer a chat message synchronously, bypassing the job queue."""
    handler = handlers.get(JobType.CHAT)
    try:
        result = await handler(chat_request.to_payload(), CancellationToken(f"inline:{client_key}"))
    except ExecutionFailedError as e:
        logger.error(f"Chat request for {client_key} failed after {e.attempts} attempts: {str(e)}")
        raise UpstreamServiceError(f"Chat processing failed: {str(e)}")
    return ChatResponse(**result)


@router.post("/chat/jobs", response_model=JobSubmittedResponse)
async def submit_chat_job(
    chat_request: ChatRequest,
    client_key: str = Depends(rate_limited("chat")),
    scheduler: JobScheduler = Depends(get_scheduler),
):
    job_id = await scheduler.submit(client_key, JobType.CHAT, chat_request.to_payload())
    return JobSubmittedResponse(job_id=job_id, message="Chat job queued successfully")


@router.get("/jobs/{job_id}", response_model=JobStatusResponse)
async def get_job(job: Job = Depends(get_owned_job)):
    return JobStatusResponse.from_job(job)


@router.delete("/jobs/{job_id}", response_model=CancelJobResponse)
async def cancel_job(
    job: Job = Depends(get_owned_job),
    scheduler: JobScheduler = Depends(get_scheduler),
):
    cancelled = await scheduler.cancel(job.id)
    return CancelJobResponse(
        cancelled=cancelled,
        message=(
            "Job cancelled successfully"
            if cancelled
            else "Job could not be cancelled (already completed or failed)"
        ),
    )


@router.get("/queue-stats", response_model=QueueStatsResponse)
async def queue_stats(
    client_key: str = Depends(get_client_key),
    scheduler: JobScheduler = Depends(get_scheduler),
):
    stats = await scheduler.get_queue_stats()
    jobs = await scheduler.get_jobs_for_owner(client_key)
    return QueueStatsResponse(
        global_stats=stats,
        user_jobs=[JobStatusResponse.from_job(job) for job in jobs],
    )
