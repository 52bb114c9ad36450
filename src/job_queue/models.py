# src/job_queue/models.py
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from .exceptions import JobCancelledError, JobFailedError, JobQueueError

CANCELLED_ERROR = "cancelled"


class JobType(str, Enum):
    IMAGE_EDIT = "image-edit"
    CHAT = "chat"


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class ImageEditContext(BaseModel):
    property_id: Optional[str] = None
    room_type: Optional[str] = None


class ImageEditPayload(BaseModel):
    type: Literal["image-edit"] = "image-edit"
    image_data: str = Field(min_length=1)
    prompt: str = Field(min_length=1, max_length=500)
    context: Optional[ImageEditContext] = None


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str
    image_context: Optional[str] = None
    suggestions: List[str] = Field(default_factory=list)


class ChatPayload(BaseModel):
    type: Literal["chat"] = "chat"
    message: str = Field(min_length=1, max_length=1000)
    image_context: Optional[str] = None
    conversation_history: List[ChatMessage] = Field(default_factory=list)


JobPayload = Annotated[Union[ImageEditPayload, ChatPayload], Field(discriminator="type")]


class Job(BaseModel):
    id: str
    owner_id: str
    type: JobType
    status: JobStatus = JobStatus.QUEUED
    priority: int = 0
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    payload: JobPayload
    result: Optional[Any] = None
    error: Optional[str] = None
    retry_count: int = 0
    max_retries: int = 3

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def is_cancelled(self) -> bool:
        return self.status == JobStatus.FAILED and self.error == CANCELLED_ERROR

    @property
    def processing_time_ms(self) -> Optional[float]:
        if self.started_at is None or self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds() * 1000

    def unwrap(self) -> Any:
        """Return the result of a completed job, or raise the matching job error."""
        if self.status == JobStatus.COMPLETED:
            return self.result
        if self.is_cancelled:
            raise JobCancelledError(f"Job {self.id} was cancelled")
        if self.status == JobStatus.FAILED:
            raise JobFailedError(self.id, self.error or "Unknown error")
        raise JobQueueError(f"Job {self.id} is still {self.status.value}")

    def to_public_dict(self) -> Dict[str, Any]:
        """Status view: result and error only appear once the job is terminal."""
        data = self.model_dump(
            mode="json",
            include={"id", "type", "status", "priority", "created_at", "started_at",
                     "completed_at", "retry_count"},
        )
        if self.status == JobStatus.COMPLETED:
            data["result"] = self.model_dump(mode="json", include={"result"})["result"]
        elif self.status == JobStatus.FAILED:
            data["error"] = self.error
        return data


class QueueStats(BaseModel):
    total_jobs: int = 0
    queued_jobs: int = 0
    processing_jobs: int = 0
    completed_jobs: int = 0
    failed_jobs: int = 0
    average_processing_time_ms: float = 0.0


class SchedulerConfig(BaseModel):
    max_concurrent_jobs: int = Field(default=3, ge=1)
    default_max_retries: int = Field(default=3, ge=0)
    tick_interval_seconds: float = Field(default=1.0, gt=0)
    cleanup_interval_seconds: float = Field(default=300.0, gt=0)
    retention_seconds: float = Field(default=24 * 60 * 60, gt=0)
    shutdown_grace_seconds: float = Field(default=30.0, ge=0)
