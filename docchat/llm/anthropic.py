"""Anthropic Claude LLM provider implementation."""

import logging
from collections.abc import AsyncIterator
from typing import Any

import anthropic
from pydantic import BaseModel

from docchat.errors import GenerationError
from docchat.llm.base import EmbeddingResult, LLMProvider

logger = logging.getLogger(__name__)


class AnthropicConfig(BaseModel):
    """Configuration for Anthropic provider."""

    api_key: str
    model: str = "claude-3-5-haiku-20241022"
    max_tokens: int = 2000
    temperature: float = 0.3
    timeout: int = 30


class AnthropicProvider(LLMProvider):
    """Anthropic Claude LLM provider implementation.

    Anthropic has no embeddings endpoint; pair it with another provider for
    retrieval (see ``create_embedding_provider``).
    """

    def __init__(self, config: AnthropicConfig | None = None, **kwargs: Any) -> None:
        """Initialize Anthropic provider.

        Args:
            config: Anthropic configuration
            **kwargs: Additional configuration options
        """
        self.config = config or AnthropicConfig(**kwargs)
        self.client = anthropic.AsyncAnthropic(
            api_key=self.config.api_key,
            timeout=self.config.timeout,
        )

    async def generate_embedding(self, text: str) -> EmbeddingResult:
        """Anthropic doesn't provide embeddings.

        Raises:
            NotImplementedError: Always
        """
        raise NotImplementedError(
            "Anthropic doesn't provide embeddings. Configure OpenAI or Ollama for embeddings."
        )

    async def generate_stream(self, system_prompt: str, user_message: str) -> AsyncIterator[str]:
        """Stream a response from Claude.

        Args:
            system_prompt: Instructions and grounding context
            user_message: The user's question

        Yields:
            Text deltas
        """
        try:
            async with self.client.messages.stream(
                model=self.config.model,
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
                system=system_prompt,
                messages=[{"role": "user", "content": user_message}],
            ) as stream:
                async for text in stream.text_stream:
                    yield text
        except anthropic.AnthropicError as e:
            logger.error(f"Anthropic streaming request failed: {e}")
            raise GenerationError(f"Failed to stream response: {e}") from e

    async def health_check(self) -> bool:
        """Check if Anthropic service is accessible.

        Returns:
            True if healthy, False otherwise
        """
        try:
            await self.client.messages.create(
                model=self.config.model,
                max_tokens=10,
                messages=[{"role": "user", "content": "Hi"}],
            )
            return True
        except anthropic.AnthropicError as e:
            logger.warning(f"Anthropic health check failed: {e}")
            return False

    async def aclose(self) -> None:
        await self.client.close()
