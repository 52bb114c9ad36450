# src/worker/handlers.py
import asyncio
import logging
import re
from typing import Any, Dict, List

from src.job_queue.cancellation import CancellationToken
from src.job_queue.models import ChatPayload, ImageEditPayload, JobType
from .dispatcher import HandlerRegistry
from .exceptions import InvalidImageError
from .provider import AIProviderClient

logger = logging.getLogger(__name__)

DATA_URL_PATTERN = re.compile(r"^data:([^;]+);base64,(.*)$", re.DOTALL)


class ImageEditHandler:
    """
    Handler for AI image edits.
    Describes the source room with the text model, then asks the image
    model for an edited rendition guided by that description.
    """

    SUPPORTED_FORMATS = ["image/jpeg", "image/png", "image/webp"]
    MAX_IMAGE_BYTES = 20 * 1024 * 1024

    def __init__(self, client: AIProviderClient):
        self.client = client

    def validate_image(self, image_data: str) -> str:
        """Check format and size of a data URL; returns its mime type."""
        match = DATA_URL_PATTERN.match(image_data)
        mime_type = match.group(1) if match else "image/jpeg"
        encoded = match.group(2) if match else image_data

        if mime_type not in self.SUPPORTED_FORMATS:
            raise InvalidImageError(
                f"Unsupported image format: {mime_type}. "
                f"Supported formats: {', '.join(self.SUPPORTED_FORMATS)}"
            )

        approx_size = len(encoded) * 3 / 4
        if approx_size > self.MAX_IMAGE_BYTES:
            raise InvalidImageError(
                f"Image too large: {round(approx_size / 1024 / 1024)}MB. "
                f"Maximum size: {self.MAX_IMAGE_BYTES // 1024 // 1024}MB"
            )
        return mime_type

    @staticmethod
    def enhance_prompt(payload: ImageEditPayload) -> str:
        prompt = payload.prompt
        if payload.context and payload.context.room_type:
            prompt = f"For a {payload.context.room_type}: {prompt}"
        prompt += ". Maintain realistic lighting and proportions. Ensure high quality and professional appearance."
        prompt += " The result should be suitable for real estate marketing and appeal to potential buyers."
        return prompt

    async def handle(self, payload: ImageEditPayload, token: CancellationToken) -> Dict[str, Any]:
        logger.info(f"Processing image edit for job {token.job_id}")

        mime_type = self.validate_image(payload.image_data)
        prompt = self.enhance_prompt(payload)
        token.raise_if_cancelled()

        if self.client.mock_mode:
            await asyncio.sleep(self.client.config.mock_delay_seconds)
            token.raise_if_cancelled()
            return {
                "edited_image_data": payload.image_data,
                "edited_image_url": None,
                "prompt": prompt,
            }

        encoded = payload.image_data.split(",", 1)[-1]
        analysis = await self.client.generate_content(
            [
                {
                    "text": (
                        "Analyze this room image and provide a detailed description focusing on: "
                        "furniture, lighting, colors, style, and spatial layout. "
                        f"User wants to: {prompt}"
                    )
                },
                {"inline_data": {"mime_type": mime_type, "data": encoded}},
            ],
            generation_config={"temperature": 0.4, "topK": 32, "topP": 1, "maxOutputTokens": 1024},
            timeout=self.client.config.image_timeout_seconds,
        )
        token.raise_if_cancelled()

        image_prompt = f"{prompt}\n\nRoom description: {analysis}" if analysis else prompt
        image_b64 = await self.client.generate_image(image_prompt)

        logger.info(f"Image edit completed for job {token.job_id}")
        return {
            "edited_image_data": f"data:image/jpeg;base64,{image_b64}",
            "edited_image_url": None,
            "prompt": prompt,
        }


class ChatHandler:
    """Handler for design-assistant chat turns"""

    MAX_HISTORY = 10
    MAX_SUGGESTIONS = 4

    SYSTEM_PROMPT = (
        "You are an AI assistant specialized in real estate image editing and interior design. "
        "Help users enhance room images for property listings: suggest specific edits, "
        "furniture placement, lighting, color schemes and decor. Keep responses concise and "
        "actionable. End with up to four short suggestions, one per line, each starting with '- '."
    )

    MOCK_TOPICS = [
        (
            ("furniture", "sofa", "chair"),
            "I can help you add furniture to enhance the room's appeal. A modern sofa in neutral "
            "tones or a stylish accent chair creates a cozy seating area.",
            ["Add modern sofa", "Place accent chair", "Add coffee table", "Include throw pillows"],
        ),
        (
            ("lighting", "bright", "dark"),
            "Lighting can dramatically improve a room's appearance in photos. Brighten the overall "
            "exposure and add warm ambient lighting to create a welcoming atmosphere.",
            ["Brighten room", "Add table lamp", "Enhance natural light", "Warm lighting"],
        ),
        (
            ("color", "paint", "wall"),
            "Neutral colors like soft grays, warm whites or beiges make rooms feel larger and let "
            "buyers picture their own belongings in the space.",
            ["Neutral wall colors", "Soft gray paint", "Warm white walls", "Beige accents"],
        ),
        (
            ("style", "modern", "minimalist"),
            "For modern styling, focus on clean lines, minimal clutter and contemporary furnishings.",
            ["Minimalist style", "Modern furniture", "Clean lines", "Declutter space"],
        ),
    ]

    def __init__(self, client: AIProviderClient):
        self.client = client

    def build_prompt(self, payload: ChatPayload) -> str:
        lines = [self.SYSTEM_PROMPT]
        if payload.image_context:
            lines.append("The user has selected an image for editing context.")
        else:
            lines.append("No image is currently selected.")
        for message in payload.conversation_history[-self.MAX_HISTORY:]:
            lines.append(f"{message.role}: {message.content}")
        lines.append(f"user: {payload.message}")
        return "\n".join(lines)

    @classmethod
    def split_suggestions(cls, text: str) -> Dict[str, Any]:
        body: List[str] = []
        suggestions: List[str] = []
        for line in text.strip().splitlines():
            if line.startswith("- ") and len(suggestions) < cls.MAX_SUGGESTIONS:
                suggestions.append(line[2:].strip())
            else:
                body.append(line)
        return {"response": "\n".join(body).strip(), "suggestions": suggestions}

    def mock_reply(self, payload: ChatPayload) -> Dict[str, Any]:
        message = payload.message.lower()
        for keywords, reply, suggestions in self.MOCK_TOPICS:
            if any(keyword in message for keyword in keywords):
                return {"response": reply, "suggestions": list(suggestions)}

        if payload.image_context:
            reply = (
                "I can see you have an image selected. What specific changes would you like to make "
                "to enhance this room for your property listing?"
            )
        else:
            reply = (
                "I'm here to help you enhance room images for real estate listings. Please select "
                "an image first, then let me know what improvements you'd like to make."
            )
        return {
            "response": reply,
            "suggestions": ["Select an image", "Add furniture", "Improve lighting", "Modern styling"],
        }

    async def handle(self, payload: ChatPayload, token: CancellationToken) -> Dict[str, Any]:
        logger.info(f"Processing chat message for job {token.job_id}")
        token.raise_if_cancelled()

        if self.client.mock_mode:
            await asyncio.sleep(self.client.config.mock_delay_seconds / 2)
            return self.mock_reply(payload)

        text = await self.client.generate_content(
            [{"text": self.build_prompt(payload)}],
            generation_config={"temperature": 0.7, "topP": 0.9, "maxOutputTokens": 500},
        )
        return self.split_suggestions(text)


def build_handler_registry(client: AIProviderClient) -> HandlerRegistry:
    """Wire the production handlers for every job type."""
    return HandlerRegistry(
        {
            JobType.IMAGE_EDIT: ImageEditHandler(client).handle,
            JobType.CHAT: ChatHandler(client).handle,
        }
    )
