# src/admission/exceptions.py
class AdmissionError(Exception):
    """Base exception for admission control errors"""
    pass


class AdmissionDeniedError(AdmissionError):
    """Raised when a client has exhausted its request window for an endpoint"""

    def __init__(self, client_key: str, endpoint: str, retry_after_seconds: int):
        self.client_key = client_key
        self.endpoint = endpoint
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            f"Rate limit exceeded for {client_key} on '{endpoint}', "
            f"retry after {retry_after_seconds}s"
        )
