import base64
import logging
import re
from datetime import datetime, timezone
from typing import Optional, Type, TypeVar

from pydantic import BaseModel
from google import genai
from google.genai import types

from ..settings import settings

logger = logging.getLogger("fridgemind.ai")

T = TypeVar("T", bound=BaseModel)

_DATA_URL_PREFIX = re.compile(r"^data:(image/[\w.+-]+);base64,")


def decode_image(image: str) -> tuple[bytes, str]:
    """Raw bytes and mime type from a base64 string or data: URL."""
    mime_type = "image/jpeg"
    m = _DATA_URL_PREFIX.match(image)
    if m:
        mime_type = m.group(1)
        image = image[m.end():]
    return base64.b64decode(image), mime_type


class AIClient:
    _instance = None

    def __init__(self):
        self.api_key = settings.gemini_api_key
        self.mode = settings.ai_mode  # "mock" or "gemini"
        self._client: Optional[genai.Client] = None
        self.last_error: Optional[str] = None
        self.last_error_at: Optional[datetime] = None

        if self.mode == "gemini" and self.api_key:
            self._client = genai.Client(api_key=self.api_key)

    @classmethod
    def get_instance(cls):
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def is_available(self) -> bool:
        return self.mode == "gemini" and self._client is not None

    def _record_error(self, e: Exception) -> None:
        self.last_error = f"{e.__class__.__name__}: {str(e)}"
        self.last_error_at = datetime.now(timezone.utc)

    async def generate_structured(
        self,
        prompt: str,
        response_model: Type[T],
        images: Optional[list[str]] = None,
        model: Optional[str] = None,
        system_instruction: Optional[str] = None,
    ) -> Optional[T]:
        """
        Generate structured JSON output using Gemini (Async).
        `images` are base64 strings (optionally data: URLs) sent ahead of the prompt.
        Returns None if AI is disabled/unavailable or fails.
        """
        if not self.is_available():
            logger.warning("AI is not available (mode=%s), skipping generation", self.mode)
            return None

        model_id = model or settings.gemini_model

        try:
            contents: list = []
            for image in images or []:
                data, mime_type = decode_image(image)
                contents.append(types.Part.from_bytes(data=data, mime_type=mime_type))
            contents.append(prompt)

            config = types.GenerateContentConfig(
                response_mime_type="application/json",
                response_schema=response_model,
                system_instruction=system_instruction,
            )

            response = await self._client.aio.models.generate_content(
                model=model_id,
                contents=contents,
                config=config,
            )

            if not response.text:
                logger.warning("Gemini returned empty response")
                return None

            parsed = response.parsed
            if parsed is None:
                parsed = response_model.model_validate_json(response.text)
            return parsed

        except Exception as e:
            self._record_error(e)
            logger.error(f"Gemini generation failed: {e}")
            return None


# Singleton instance access
ai_client = AIClient.get_instance()
