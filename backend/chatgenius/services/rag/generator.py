"""
Answer Generator

Thin client over the Anthropic Messages API used by both answer
synthesizers. It takes a fully built prompt and returns the model's text.

Failures (network, API errors, empty responses, missing API key) are raised
as GenerationError and never retried here.
"""

import logging
from typing import Optional

from anthropic import AsyncAnthropic

from chatgenius.core.config import settings
from chatgenius.core.exceptions import GenerationError

logger = logging.getLogger(__name__)


class AnswerGenerator:
    """
    Generative model client.

    Usage:
    ------
    generator = AnswerGenerator()
    text = await generator.complete(prompt)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        client: Optional[AsyncAnthropic] = None,
    ):
        """
        Initialize the generator.

        Args:
            api_key: Anthropic API key (defaults to settings.ANTHROPIC_API_KEY)
            model: Claude model to use (defaults to settings.ANTHROPIC_MODEL)
            max_tokens: Maximum tokens in response
            temperature: Sampling temperature 0-1
            client: Pre-built client (tests)
        """
        self.api_key = api_key or settings.ANTHROPIC_API_KEY
        self.model = model or settings.ANTHROPIC_MODEL
        self.max_tokens = max_tokens or settings.ANTHROPIC_MAX_TOKENS
        self.temperature = settings.ANTHROPIC_TEMPERATURE if temperature is None else temperature

        if client is not None:
            self.client: Optional[AsyncAnthropic] = client
        elif self.api_key:
            self.client = AsyncAnthropic(api_key=self.api_key)
        else:
            logger.warning("ANTHROPIC_API_KEY not set; answer generation is disabled")
            self.client = None

        logger.info(f"AnswerGenerator initialized with model={self.model}, max_tokens={self.max_tokens}")

    async def complete(self, prompt: str, system: Optional[str] = None) -> str:
        """
        Generate a completion for ``prompt``.

        Args:
            prompt: Full user prompt including context
            system: Optional system prompt

        Returns:
            The model's text

        Raises:
            GenerationError: On any provider failure or empty output
        """
        if self.client is None:
            raise GenerationError("Answer generation is not configured (ANTHROPIC_API_KEY missing)")

        request = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            request["system"] = system

        try:
            response = await self.client.messages.create(**request)
        except Exception as e:
            logger.error(f"Error generating response: {e}")
            raise GenerationError(f"Generative model call failed: {e}") from e

        text = "".join(
            block.text for block in response.content if getattr(block, "type", "text") == "text"
        ).strip()
        if not text:
            raise GenerationError("Generative model returned an empty response")

        logger.info(
            f"Generated response: {len(text)} chars, "
            f"{response.usage.input_tokens + response.usage.output_tokens} tokens"
        )
        return text

    async def close(self) -> None:
        if self.client is not None:
            await self.client.close()
