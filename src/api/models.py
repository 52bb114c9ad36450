# src/api/models.py

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from src.job_queue.models import (
    ChatMessage,
    ChatPayload,
    ImageEditContext,
    ImageEditPayload,
    Job,
    JobStatus,
    JobType,
    QueueStats,
)


class EditImageRequest(BaseModel):
    image_data: str = Field(min_length=1)
    prompt: str = Field(min_length=1, max_length=500)
    context: Optional[ImageEditContext] = None

    def to_payload(self) -> ImageEditPayload:
        return ImageEditPayload(image_data=self.image_data, prompt=self.prompt, context=self.context)


class ChatRequest(BaseModel):
    message: str = Field(min_length=1, max_length=1000)
    image_context: Optional[str] = None
    conversation_history: List[ChatMessage] = Field(default_factory=list)

    def to_payload(self) -> ChatPayload:
        return ChatPayload(
            message=self.message,
            image_context=self.image_context,
            conversation_history=self.conversation_history,
        )


class JobSubmittedResponse(BaseModel):
    job_id: str
    status: JobStatus = JobStatus.QUEUED
    message: str


class JobResultResponse(BaseModel):
    job_id: str
    status: JobStatus
    result: Any = None
    processing_time_ms: Optional[float] = None


class JobStatusResponse(BaseModel):
    id: str
    type: JobType
    status: JobStatus
    priority: int
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    retry_count: int = 0
    error: Optional[str] = None
    result: Any = None

    @classmethod
    def from_job(cls, job: Job) -> "JobStatusResponse":
        return cls.model_validate(job.to_public_dict())


class CancelJobResponse(BaseModel):
    cancelled: bool
    message: str


class ChatResponse(BaseModel):
    response: str
    suggestions: List[str] = Field(default_factory=list)


class QueueStatsResponse(BaseModel):
    global_stats: QueueStats
    user_jobs: List[JobStatusResponse] = Field(default_factory=list)
