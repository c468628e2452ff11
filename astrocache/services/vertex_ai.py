"""Vertex AI integration for streamed chart interpretations."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from google import genai

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from astrocache.lib.settings import VertexAISettings

logger = structlog.get_logger()

SYSTEM_INSTRUCTION = (
    "You are an experienced astrologer. Interpret the chart data you are given in clear, "
    "warm language. Refer to the actual placements and aspects, and do not invent positions "
    "that are not in the data."
)


class VertexAIService:
    """Gemini chat streaming through the Google GenAI SDK on Vertex AI."""

    def __init__(self, settings: VertexAISettings, client: genai.Client | None = None) -> None:
        """Initialize the service.

        Args:
            settings: Vertex AI project, location and model settings.
            client: Pre-built GenAI client; built from ``settings`` when omitted.
        """
        self.settings = settings
        self._genai_client = client
        if self._genai_client is None and settings.PROJECT_ID:
            self._genai_client = genai.Client(
                vertexai=True,
                project=settings.PROJECT_ID,
                location=settings.LOCATION,
            )
            logger.info(
                "Vertex AI initialized",
                project=settings.PROJECT_ID,
                location=settings.LOCATION,
            )
        elif self._genai_client is None:
            logger.warning("Vertex AI not initialized: PROJECT_ID not configured")

    @property
    def is_initialized(self) -> bool:
        """Check if Vertex AI is initialized."""
        return self._genai_client is not None

    async def generate_chat_response_stream(
        self,
        messages: list[dict[str, str]],
        model: str | None = None,
    ) -> AsyncGenerator[str, None]:
        """Generate a streaming chat response.

        Args:
            messages: Chat messages with 'role' and 'content'
            model: Optional model override

        Yields:
            Text chunks from the streaming response

        Raises:
            RuntimeError: If Vertex AI is not initialized
            ValueError: If streaming fails
        """
        if self._genai_client is None:
            msg = "Vertex AI not initialized"
            raise RuntimeError(msg)

        model_name = model or self.settings.CHAT_MODEL
        contents = [
            {"role": "user" if message["role"] == "user" else "model", "parts": [{"text": message["content"]}]}
            for message in messages
        ]

        try:
            async for chunk in await self._genai_client.aio.models.generate_content_stream(
                model=model_name,
                contents=contents,
                config=genai.types.GenerateContentConfig(
                    system_instruction=SYSTEM_INSTRUCTION,
                    temperature=self.settings.TEMPERATURE,
                    max_output_tokens=self.settings.MAX_OUTPUT_TOKENS,
                ),
            ):
                if chunk.text:
                    yield chunk.text
        except Exception as e:
            logger.exception(
                "Failed to generate streaming chat response",
                message_count=len(messages),
                model=model_name,
                error=str(e),
            )
            msg = f"Failed to generate streaming chat response: {e}"
            raise ValueError(msg) from e
