# src/job_queue/scheduler.py
import asyncio
import heapq
import itertools
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Tuple

from .cancellation import CancellationToken
from .exceptions import (
    JobNotFoundError,
    JobQueueError,
    JobRejectedError,
    JobTimeoutError,
    JobValidationError,
)
from .models import (
    CANCELLED_ERROR,
    Job,
    JobPayload,
    JobStatus,
    JobType,
    QueueStats,
    SchedulerConfig,
)

if TYPE_CHECKING:
    from src.worker.dispatcher import HandlerRegistry

logger = logging.getLogger(__name__)

SHUTDOWN_ERROR = "scheduler shut down before the job finished"
EMPTY_RESULT_ERROR = "handler returned no result"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobScheduler:
    """In-memory priority job queue with bounded concurrency.

    A fixed-tick loop moves Queued jobs to Processing, highest priority
    first and FIFO within a priority, while fewer than
    ``max_concurrent_jobs`` handlers are running. Failed attempts are
    re-queued until the job's retry budget is spent. Every mutation of the
    job table, pending heap, running set and waiter registry happens under
    one asyncio lock.

    Dispatch only happens on a tick, so a job waits up to one tick interval
    before starting; in exchange, jobs submitted within the same tick are
    ordered purely by priority.
    """

    def __init__(
        self,
        config: SchedulerConfig,
        handlers: "HandlerRegistry",
        clock: Callable[[], datetime] = utcnow,
    ):
        self.config = config
        self.handlers = handlers
        self._clock = clock
        self._jobs: Dict[str, Job] = {}
        self._pending: List[Tuple[int, int, str]] = []  # (-priority, seq, job_id)
        self._sequence = itertools.count()
        self._running: Dict[str, asyncio.Task] = {}
        self._tokens: Dict[str, CancellationToken] = {}
        self._waiters: Dict[str, List[asyncio.Future]] = {}
        self._lock = asyncio.Lock()
        self._loops: List[asyncio.Task] = []
        self.running = False
        logger.info(
            f"JobScheduler initialized (max_concurrent_jobs={config.max_concurrent_jobs}, "
            f"tick={config.tick_interval_seconds:g}s)"
        )

    # ----------------------------- public API ----------------------------- #

    async def submit(
        self,
        owner_id: str,
        job_type: JobType,
        payload: JobPayload,
        priority: int = 0,
    ) -> str:
        """Queue a new job and return its id. The job is not executed inline."""
        job_type = JobType(job_type)
        if payload.type != job_type:
            raise JobValidationError(
                f"Payload of type '{payload.type}' cannot be submitted as a '{job_type.value}' job"
            )

        job_id = f"job_{uuid.uuid4().hex}"
        async with self._lock:
            job = Job(
                id=job_id,
                owner_id=owner_id,
                type=job_type,
                priority=priority,
                created_at=self._clock(),
                payload=payload,
                max_retries=self.config.default_max_retries,
            )
            self._jobs[job_id] = job
            self._push_pending(job)
            queue_size = len(self._pending)

        logger.info(f"Job {job_id} ({job_type.value}, priority {priority}) queued. Queue size: {queue_size}")
        return job_id

    async def get_status(self, job_id: str) -> Job:
        """Return a snapshot of the job."""
        async with self._lock:
            return self._snapshot(self._get_job(job_id))

    async def await_completion(self, job_id: str, timeout: float) -> Job:
        """
        Wait until the job reaches a terminal state.

        Args:
            job_id: Job to wait for
            timeout: Seconds to wait before giving up

        Returns:
            Snapshot of the terminal job

        Raises:
            JobNotFoundError: The job does not exist
            JobTimeoutError: The job was still running when the timeout elapsed;
                the job itself is unaffected
        """
        async with self._lock:
            job = self._get_job(job_id)
            if job.is_terminal:
                return self._snapshot(job)
            waiter = asyncio.get_running_loop().create_future()
            self._waiters.setdefault(job_id, []).append(waiter)

        try:
            return await asyncio.wait_for(waiter, timeout=timeout)
        except asyncio.TimeoutError:
            raise JobTimeoutError(f"Timed out after {timeout:g}s waiting for job {job_id}") from None
        finally:
            self._discard_waiter(job_id, waiter)

    async def cancel(self, job_id: str) -> bool:
        """
        Cancel a queued or processing job.

        A processing job is marked failed immediately and its cancellation
        token is set, but its handler is left to finish on its own; the
        handler's outcome is then discarded.

        Returns:
            False if the job is unknown or already terminal
        """
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.is_terminal:
                return False

            if job.status == JobStatus.QUEUED:
                self._remove_pending(job_id)
            else:
                token = self._tokens.get(job_id)
                if token is not None:
                    token.cancel()

            job.status = JobStatus.FAILED
            job.error = CANCELLED_ERROR
            job.result = None
            job.completed_at = self._clock()
            self._notify_waiters(job)

        logger.info(f"Job {job_id} cancelled")
        return True

    async def get_queue_stats(self) -> QueueStats:
        async with self._lock:
            jobs = list(self._jobs.values())

        counts = {status: 0 for status in JobStatus}
        durations = []
        for job in jobs:
            counts[job.status] += 1
            if job.status == JobStatus.COMPLETED and job.processing_time_ms is not None:
                durations.append(job.processing_time_ms)

        return QueueStats(
            total_jobs=len(jobs),
            queued_jobs=counts[JobStatus.QUEUED],
            processing_jobs=counts[JobStatus.PROCESSING],
            completed_jobs=counts[JobStatus.COMPLETED],
            failed_jobs=counts[JobStatus.FAILED],
            average_processing_time_ms=sum(durations) / len(durations) if durations else 0.0,
        )

    async def get_jobs_for_owner(self, owner_id: str) -> List[Job]:
        """All jobs of an owner, newest first."""
        async with self._lock:
            return [
                self._snapshot(job)
                for job in reversed(self._jobs.values())
                if job.owner_id == owner_id
            ]

    @property
    def processing_count(self) -> int:
        return len(self._running)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    # ----------------------------- scheduling ----------------------------- #

    async def process_next_jobs(self) -> List[str]:
        """Dispatch queued jobs into free slots. Returns the ids started on this tick."""
        started = []
        async with self._lock:
            while len(self._running) < self.config.max_concurrent_jobs and self._pending:
                _, _, job_id = heapq.heappop(self._pending)
                job = self._jobs.get(job_id)
                if job is None or job.status != JobStatus.QUEUED:
                    continue

                job.status = JobStatus.PROCESSING
                job.started_at = self._clock()

                token = CancellationToken(job_id)
                self._tokens[job_id] = token
                handler = self.handlers.get(job.type)
                payload = job.payload.model_copy(deep=True)
                self._running[job_id] = asyncio.create_task(
                    self._run_job(job_id, handler, payload, token),
                    name=f"job-{job_id}",
                )
                started.append(job_id)

        for job_id in started:
            logger.info(f"Processing job {job_id}")
        return started

    async def _run_job(self, job_id: str, handler, payload: JobPayload, token: CancellationToken) -> None:
        try:
            result = await handler(payload, token)
            if result is None:
                raise JobQueueError(EMPTY_RESULT_ERROR)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Job {job_id} attempt failed: {type(e).__name__}: {str(e)}")
            await self._finish_attempt(job_id, error=e)
        else:
            await self._finish_attempt(job_id, result=result)
        finally:
            # Only reached with the slot still held when the task was cancelled
            if self._running.get(job_id) is asyncio.current_task():
                del self._running[job_id]
            if self._tokens.get(job_id) is token:
                del self._tokens[job_id]

    async def _finish_attempt(
        self, job_id: str, result: Any = None, error: Optional[Exception] = None
    ) -> None:
        async with self._lock:
            self._running.pop(job_id, None)
            self._tokens.pop(job_id, None)

            job = self._jobs.get(job_id)
            if job is None or job.status != JobStatus.PROCESSING:
                logger.info(f"Discarding late outcome of job {job_id} (no longer processing)")
                return

            if error is None:
                job.status = JobStatus.COMPLETED
                job.result = result
                job.completed_at = self._clock()
                logger.info(f"Job {job_id} completed successfully")
            elif job.retry_count < job.max_retries and not isinstance(error, JobRejectedError):
                job.retry_count += 1
                job.status = JobStatus.QUEUED
                job.started_at = None
                self._push_pending(job)
                logger.warning(
                    f"Job {job_id} queued for retry {job.retry_count}/{job.max_retries}"
                )
                return
            else:
                job.status = JobStatus.FAILED
                job.error = str(error) or type(error).__name__
                job.completed_at = self._clock()
                logger.error(f"Job {job_id} failed permanently after {job.retry_count} retries")

            self._notify_waiters(job)

    # ----------------------------- retention ----------------------------- #

    async def purge_expired_jobs(self, now: Optional[datetime] = None) -> int:
        """Delete terminal jobs completed more than ``retention_seconds`` ago."""
        cutoff = (now or self._clock()) - timedelta(seconds=self.config.retention_seconds)
        async with self._lock:
            expired = [
                job_id
                for job_id, job in self._jobs.items()
                if job.is_terminal
                and job.completed_at is not None
                and job.completed_at < cutoff
            ]
            for job_id in expired:
                del self._jobs[job_id]

        if expired:
            logger.info(f"Purged {len(expired)} expired jobs")
        return len(expired)

    # ----------------------------- lifecycle ----------------------------- #

    async def start(self) -> None:
        """Start the dispatch and retention loops."""
        if self.running:
            logger.warning("JobScheduler already running")
            return
        self.running = True
        self._loops = [
            asyncio.create_task(self._scheduling_loop(), name="job-scheduler-dispatch"),
            asyncio.create_task(self._cleanup_loop(), name="job-scheduler-cleanup"),
        ]
        logger.info("JobScheduler started")

    async def stop(self) -> None:
        """Stop the loops, give running handlers a grace period, then cancel them."""
        logger.info("Stopping JobScheduler")
        self.running = False

        for loop_task in self._loops:
            loop_task.cancel()
        await asyncio.gather(*self._loops, return_exceptions=True)
        self._loops = []

        in_flight = list(self._running.values())
        if in_flight:
            _, still_running = await asyncio.wait(
                in_flight, timeout=self.config.shutdown_grace_seconds
            )
            for task in still_running:
                task.cancel()
            await asyncio.gather(*still_running, return_exceptions=True)

        async with self._lock:
            for job in self._jobs.values():
                if job.status == JobStatus.PROCESSING:
                    job.status = JobStatus.FAILED
                    job.error = SHUTDOWN_ERROR
                    job.completed_at = self._clock()
                    self._notify_waiters(job)

        logger.info("JobScheduler stopped")

    async def _scheduling_loop(self) -> None:
        while self.running:
            try:
                await self.process_next_jobs()
            except Exception as e:
                logger.error(f"Error in scheduling loop: {str(e)}")
            await asyncio.sleep(self.config.tick_interval_seconds)

    async def _cleanup_loop(self) -> None:
        while self.running:
            await asyncio.sleep(self.config.cleanup_interval_seconds)
            try:
                await self.purge_expired_jobs()
            except Exception as e:
                logger.error(f"Error purging expired jobs: {str(e)}")

    # ----------------------------- internal helpers ----------------------------- #

    def _get_job(self, job_id: str) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        return job

    def _push_pending(self, job: Job) -> None:
        heapq.heappush(self._pending, (-job.priority, next(self._sequence), job.id))

    def _remove_pending(self, job_id: str) -> None:
        self._pending = [entry for entry in self._pending if entry[2] != job_id]
        heapq.heapify(self._pending)

    def _notify_waiters(self, job: Job) -> None:
        for waiter in self._waiters.pop(job.id, []):
            if not waiter.done():
                waiter.set_result(self._snapshot(job))

    def _discard_waiter(self, job_id: str, waiter: asyncio.Future) -> None:
        waiters = self._waiters.get(job_id)
        if not waiters:
            return
        if waiter in waiters:
            waiters.remove(waiter)
        if not waiters:
            del self._waiters[job_id]

    @staticmethod
    def _snapshot(job: Job) -> Job:
        return job.model_copy(deep=True)
