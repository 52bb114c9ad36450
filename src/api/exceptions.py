# src/api/exceptions.py
from fastapi import HTTPException
from starlette.status import (
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_408_REQUEST_TIMEOUT,
    HTTP_429_TOO_MANY_REQUESTS,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_502_BAD_GATEWAY,
)


class RateLimitExceededError(HTTPException):
    def __init__(self, retry_after_seconds: int):
        super().__init__(
            status_code=HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": "Rate limit exceeded. Please try again later.",
                "retry_after_seconds": retry_after_seconds,
            },
            headers={"Retry-After": str(retry_after_seconds)},
        )


class JobNotFoundHTTPError(HTTPException):
    def __init__(self, job_id: str):
        super().__init__(status_code=HTTP_404_NOT_FOUND, detail=f"Job {job_id} not found")


class JobAccessDeniedError(HTTPException):
    def __init__(self, job_id: str):
        super().__init__(status_code=HTTP_403_FORBIDDEN, detail=f"Access to job {job_id} denied")


class JobWaitTimeoutError(HTTPException):
    def __init__(self, job_id: str):
        super().__init__(
            status_code=HTTP_408_REQUEST_TIMEOUT,
            detail={"error": "Processing timeout", "job_id": job_id},
        )


class JobProcessingError(HTTPException):
    def __init__(self, job_id: str, error: str):
        super().__init__(
            status_code=HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": error, "job_id": job_id},
        )


class UpstreamServiceError(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=HTTP_502_BAD_GATEWAY, detail=detail)
