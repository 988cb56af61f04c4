"""
Reflecta API - Gemini AI Service.

Text-generation collaborator used by the coaching pipeline:
`complete(system_prompt, user_prompt) -> raw text`.
"""

import asyncio
import logging
from typing import Optional

from google import genai
from google.genai import types

from settings import settings
from app.utils.errors import GenerationError


logger = logging.getLogger(__name__)


class GeminiService:
    """
    Gemini API service for coaching message generation.

    Each call is bounded by `LLM_TIMEOUT_SECONDS` so one slow user
    cannot hold a processor run open indefinitely. No retries here:
    a failed call fails the attempt and the user is rescheduled.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        """
        Initialize Gemini client.
        """
        self.api_key = api_key or settings.GEMINI_API_KEY
        self.model_name = model_name or settings.GEMINI_MODEL
        self.timeout = timeout or settings.LLM_TIMEOUT_SECONDS
        self.client = genai.Client(api_key=self.api_key) if self.api_key else None

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> str:
        """
        Run one non-streaming completion.

        Args:
            system_prompt: Instructions for the model.
            user_prompt: Per-user content.
            temperature: Sampling temperature.
            max_tokens: Output token cap.

        Returns:
            Raw response text.

        Raises:
            GenerationError: Not configured, timed out, failed or empty.
        """
        if not self.client:
            raise GenerationError("Gemini API key not configured")

        config = types.GenerateContentConfig(
            system_instruction=system_prompt,
            temperature=temperature,
            max_output_tokens=max_tokens,
        )

        try:
            response = await asyncio.wait_for(
                self.client.aio.models.generate_content(
                    model=self.model_name,
                    contents=user_prompt,
                    config=config,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            raise GenerationError(f"Gemini call timed out after {self.timeout:.0f}s")
        except Exception as e:
            logger.error(f"Gemini generation error: {str(e)}")
            raise GenerationError("Gemini generation failed", detail=str(e))

        text = getattr(response, "text", None)
        if not text:
            raise GenerationError("No response text from Gemini")
        return text


_gemini_service: Optional[GeminiService] = None


def get_gemini_service() -> GeminiService:
    """Lazily create the shared Gemini service."""
    global _gemini_service
    if _gemini_service is None:
        _gemini_service = GeminiService()
    return _gemini_service
