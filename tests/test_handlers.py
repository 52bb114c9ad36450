import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from src.job_queue import (
    CancellationToken,
    ChatMessage,
    ChatPayload,
    ImageEditContext,
    ImageEditPayload,
    JobCancelledError,
    JobRejectedError,
    JobScheduler,
    JobStatus,
    JobType,
    SchedulerConfig,
)
from src.resilience import ResilientExecutor, RetryExhaustedError, RetryPolicy, UpstreamStatusError
from src.worker import (
    AIProviderClient,
    ChatHandler,
    HandlerNotFoundError,
    HandlerRegistry,
    ImageEditHandler,
    InvalidImageError,
    ProviderConfig,
    build_handler_registry,
)

PNG_DATA_URL = "data:image/png;base64,iVBORw0KGgo="


async def no_sleep(delay):
    return None


@pytest.fixture
def mock_client():
    """Client without an API key, so handlers answer locally"""
    return AIProviderClient(ProviderConfig(mock_delay_seconds=0), RetryPolicy())


@pytest.fixture
def live_client():
    """Client that believes it has a provider; HTTP is patched per test"""
    return AIProviderClient(
        ProviderConfig(api_key="test-key"),
        RetryPolicy(max_retries=2),
        executor=ResilientExecutor(sleep=no_sleep),
    )


@pytest.fixture
def token():
    return CancellationToken("job_test")


def text_response(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def test_registry_requires_every_job_type():
    async def handler(payload, token):
        return None

    with pytest.raises(HandlerNotFoundError):
        HandlerRegistry({JobType.CHAT: handler})

    registry = HandlerRegistry({JobType.CHAT: handler, JobType.IMAGE_EDIT: handler})
    assert registry.get(JobType.CHAT) is handler
    assert JobType.IMAGE_EDIT in registry


def test_build_handler_registry(mock_client):
    registry = build_handler_registry(mock_client)

    assert JobType.CHAT in registry
    assert JobType.IMAGE_EDIT in registry


def test_mock_mode_follows_api_key():
    assert ProviderConfig().mock_mode is True
    assert ProviderConfig(api_key="mock-api-key").mock_mode is True
    assert ProviderConfig(api_key="real").mock_mode is False


def test_validate_image_accepts_supported_formats(mock_client):
    handler = ImageEditHandler(mock_client)

    assert handler.validate_image(PNG_DATA_URL) == "image/png"
    assert handler.validate_image("data:image/webp;base64,AAAA") == "image/webp"
    assert handler.validate_image("AAAA") == "image/jpeg"


def test_validate_image_rejects_unsupported_format(mock_client):
    handler = ImageEditHandler(mock_client)

    with pytest.raises(InvalidImageError, match="Unsupported image format"):
        handler.validate_image("data:image/gif;base64,R0lGOD")


def test_validate_image_rejects_oversized_image(mock_client):
    handler = ImageEditHandler(mock_client)
    huge = "data:image/jpeg;base64," + "A" * (28 * 1024 * 1024)

    with pytest.raises(InvalidImageError, match="Image too large"):
        handler.validate_image(huge)


def test_enhance_prompt_uses_room_type():
    payload = ImageEditPayload(
        image_data=PNG_DATA_URL,
        prompt="add a sofa",
        context=ImageEditContext(room_type="living room"),
    )

    prompt = ImageEditHandler.enhance_prompt(payload)

    assert prompt.startswith("For a living room: add a sofa")
    assert "real estate marketing" in prompt


@pytest.mark.asyncio
async def test_image_edit_mock_mode_echoes_image(mock_client, token):
    handler = ImageEditHandler(mock_client)
    payload = ImageEditPayload(image_data=PNG_DATA_URL, prompt="brighten")

    result = await handler.handle(payload, token)

    assert result["edited_image_data"] == PNG_DATA_URL
    assert result["prompt"].startswith("brighten")


@pytest.mark.asyncio
async def test_image_edit_respects_cancellation(mock_client, token):
    handler = ImageEditHandler(mock_client)
    token.cancel()

    with pytest.raises(JobCancelledError):
        await handler.handle(ImageEditPayload(image_data=PNG_DATA_URL, prompt="brighten"), token)


@pytest.mark.asyncio
async def test_image_edit_calls_provider(live_client, token):
    handler = ImageEditHandler(live_client)
    responses = [
        text_response("A small bedroom with a window"),
        {"candidates": [{"image": {"data": "RURJVEVE"}}]},
    ]

    with patch.object(live_client, "_post", AsyncMock(side_effect=responses)) as post:
        result = await handler.handle(ImageEditPayload(image_data=PNG_DATA_URL, prompt="add plants"), token)

    assert result["edited_image_data"] == "data:image/jpeg;base64,RURJVEVE"
    assert post.await_count == 2
    analysis_url, analysis_body = post.await_args_list[0].args
    assert analysis_url.endswith("gemini-2.0-flash-exp:generateContent")
    assert analysis_body["contents"][0]["parts"][1]["inline_data"]["mime_type"] == "image/png"
    image_url, image_body = post.await_args_list[1].args
    assert image_url.endswith("imagen-3.0-generate-001:generateImage")
    assert "A small bedroom with a window" in image_body["prompt"]


@pytest.mark.asyncio
async def test_provider_retries_transient_status(live_client):
    with patch.object(
        live_client, "_post", AsyncMock(side_effect=[UpstreamStatusError(503), text_response("hi")])
    ) as post:
        text = await live_client.generate_content([{"text": "hello"}])

    assert text == "hi"
    assert post.await_count == 2


@pytest.mark.asyncio
async def test_provider_gives_up_after_retry_budget(live_client):
    with patch.object(live_client, "_post", AsyncMock(side_effect=UpstreamStatusError(500))) as post:
        with pytest.raises(RetryExhaustedError):
            await live_client.generate_content([{"text": "hello"}])

    assert post.await_count == 3


@pytest.mark.asyncio
async def test_provider_returns_empty_text_without_candidates(live_client):
    with patch.object(live_client, "_post", AsyncMock(return_value={"candidates": []})):
        assert await live_client.generate_content([{"text": "hello"}]) == ""


@pytest.mark.asyncio
async def test_provider_raises_when_no_image_generated(live_client):
    with patch.object(live_client, "_post", AsyncMock(return_value={})):
        with pytest.raises(ValueError, match="No image generated"):
            await live_client.generate_image("a kitchen")


def test_split_suggestions():
    text = "Try warmer lighting.\nIt makes the room cosy.\n- Add lamp\n- Warm bulbs\n- Open curtains\n- Add rug\n- Paint walls"

    reply = ChatHandler.split_suggestions(text)

    assert reply["response"] == "Try warmer lighting.\nIt makes the room cosy.\n- Paint walls"
    assert reply["suggestions"] == ["Add lamp", "Warm bulbs", "Open curtains", "Add rug"]


def test_build_prompt_keeps_recent_history(mock_client):
    handler = ChatHandler(mock_client)
    history = [ChatMessage(role="user", content=f"message {i}") for i in range(15)]
    payload = ChatPayload(message="what next?", conversation_history=history, image_context="img")

    prompt = handler.build_prompt(payload)

    assert "message 4" not in prompt
    assert "message 5" in prompt
    assert "message 14" in prompt
    assert prompt.endswith("user: what next?")
    assert "selected an image" in prompt


@pytest.mark.asyncio
async def test_chat_mock_mode_matches_topic(mock_client, token):
    handler = ChatHandler(mock_client)

    reply = await handler.handle(ChatPayload(message="How should I fix the LIGHTING?"), token)

    assert "Lighting" in reply["response"]
    assert "Brighten room" in reply["suggestions"]


@pytest.mark.asyncio
async def test_chat_mock_mode_fallback(mock_client, token):
    handler = ChatHandler(mock_client)

    reply = await handler.handle(ChatPayload(message="hi there"), token)

    assert "select an image" in reply["response"]
    assert len(reply["suggestions"]) == 4


@pytest.mark.asyncio
async def test_chat_calls_provider(live_client, token):
    handler = ChatHandler(live_client)

    with patch.object(
        live_client, "_post", AsyncMock(return_value=text_response("Go modern.\n- Declutter\n- Add art"))
    ):
        reply = await handler.handle(ChatPayload(message="style ideas?"), token)

    assert reply == {"response": "Go modern.", "suggestions": ["Declutter", "Add art"]}


@pytest.mark.asyncio
async def test_cancellation_token():
    token = CancellationToken("job_x")
    assert token.cancelled is False
    token.raise_if_cancelled()

    waiter = asyncio.create_task(token.wait())
    token.cancel()
    await asyncio.wait_for(waiter, timeout=1)

    assert token.cancelled is True
    with pytest.raises(JobCancelledError):
        token.raise_if_cancelled()


@pytest.mark.asyncio
async def test_invalid_image_fails_job_without_retries(mock_client):
    registry = build_handler_registry(mock_client)
    scheduler = JobScheduler(SchedulerConfig(default_max_retries=3), registry)
    job_id = await scheduler.submit(
        "ip:1",
        JobType.IMAGE_EDIT,
        ImageEditPayload(image_data="data:image/gif;base64,R0lGOD", prompt="brighten"),
    )

    await scheduler.process_next_jobs()
    job = await scheduler.await_completion(job_id, timeout=1)

    assert isinstance(InvalidImageError("x"), JobRejectedError)
    assert job.status == JobStatus.FAILED
    assert job.retry_count == 0
    assert "Unsupported image format" in job.error
