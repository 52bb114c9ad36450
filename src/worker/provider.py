# src/worker/provider.py
import logging
from typing import Any, Dict, List, Optional

import aiohttp
from pydantic import BaseModel, Field

from src.resilience import ResilientExecutor, RetryPolicy, UpstreamStatusError

logger = logging.getLogger(__name__)

MOCK_API_KEY = "mock-api-key"


class ProviderConfig(BaseModel):
    api_endpoint: str = "https://generativelanguage.googleapis.com/v1beta"
    api_key: Optional[str] = None
    text_model: str = "gemini-2.0-flash-exp"
    image_model: str = "imagen-3.0-generate-001"
    image_timeout_seconds: float = Field(default=60.0, gt=0)
    chat_timeout_seconds: float = Field(default=15.0, gt=0)
    mock_delay_seconds: float = Field(default=2.0, ge=0)

    @property
    def mock_mode(self) -> bool:
        return not self.api_key or self.api_key == MOCK_API_KEY


class AIProviderClient:
    """
    Thin aiohttp client for the generative AI provider.

    Every call goes through the ResilientExecutor: each attempt gets its own
    timeout, and transport errors or retryable HTTP statuses are retried
    with exponential backoff.
    """

    def __init__(
        self,
        config: ProviderConfig,
        retry_policy: RetryPolicy,
        executor: Optional[ResilientExecutor] = None,
    ):
        self.config = config
        self.retry_policy = retry_policy
        self.executor = executor or ResilientExecutor()

    @property
    def mock_mode(self) -> bool:
        return self.config.mock_mode

    async def generate_content(
        self,
        parts: List[Dict[str, Any]],
        generation_config: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """Run a text model over the given content parts and return the first candidate's text."""
        body: Dict[str, Any] = {"contents": [{"parts": parts}]}
        if generation_config:
            body["generationConfig"] = generation_config

        url = f"{self.config.api_endpoint}/models/{self.config.text_model}:generateContent"
        result = await self._post_with_retry(
            url, body, timeout or self.config.chat_timeout_seconds, self.config.text_model
        )
        try:
            return result["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            logger.warning(f"{self.config.text_model} returned no text candidate")
            return ""

    async def generate_image(self, prompt: str, aspect_ratio: str = "ASPECT_RATIO_16_9") -> str:
        """Generate an image and return its base64 data."""
        body = {
            "prompt": prompt,
            "sampleCount": 1,
            "aspectRatio": aspect_ratio,
            "safetyFilterLevel": "BLOCK_ONLY_HIGH",
            "personGeneration": "DONT_ALLOW",
        }
        url = f"{self.config.api_endpoint}/models/{self.config.image_model}:generateImage"
        result = await self._post_with_retry(
            url, body, self.config.image_timeout_seconds, self.config.image_model
        )
        try:
            return result["candidates"][0]["image"]["data"]
        except (KeyError, IndexError, TypeError):
            raise ValueError(f"No image generated by {self.config.image_model}")

    async def _post_with_retry(self, url: str, body: Dict[str, Any], timeout: float, model: str) -> Dict[str, Any]:
        async def attempt() -> Dict[str, Any]:
            return await self._post(url, body)

        return await self.executor.execute(
            attempt, self.retry_policy, timeout, description=f"{model} request"
        )

    async def _post(self, url: str, body: Dict[str, Any]) -> Dict[str, Any]:
        headers = {
            "Content-Type": "application/json",
            "x-goog-api-key": self.config.api_key or "",
        }
        async with aiohttp.ClientSession() as session:
            async with session.post(url, json=body, headers=headers) as response:
                if not 200 <= response.status < 300:
                    logger.warning(f"Provider returned non-success status: {response.status}")
                    raise UpstreamStatusError(
                        response.status,
                        f"Provider API error: {response.status} {response.reason}",
                    )
                return await response.json()
