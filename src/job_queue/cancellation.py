# src/job_queue/cancellation.py
import asyncio

from .exceptions import JobCancelledError


class CancellationToken:
    """Cooperative cancellation flag handed to every handler invocation.

    Cancelling a job never interrupts its handler; handlers are expected to
    check the token between expensive steps.
    """

    def __init__(self, job_id: str):
        self.job_id = job_id
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise JobCancelledError(f"Job {self.job_id} was cancelled")

    async def wait(self) -> None:
        await self._event.wait()
