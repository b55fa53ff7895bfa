"""OpenAI LLM provider implementation."""

import logging
from collections.abc import AsyncIterator
from typing import Any

import openai
from pydantic import BaseModel

from docchat.errors import GenerationError
from docchat.llm.base import EmbeddingResult, LLMProvider

logger = logging.getLogger(__name__)


class OpenAIConfig(BaseModel):
    """Configuration for OpenAI provider."""

    api_key: str
    model: str = "gpt-4o-mini"
    embedding_model: str = "text-embedding-3-small"
    max_tokens: int = 2000
    temperature: float = 0.3
    timeout: int = 30
    max_retries: int = 3


class OpenAIProvider(LLMProvider):
    """OpenAI LLM provider implementation."""

    def __init__(self, config: OpenAIConfig | None = None, **kwargs: Any) -> None:
        """Initialize OpenAI provider.

        Args:
            config: OpenAI configuration
            **kwargs: Additional configuration options
        """
        self.config = config or OpenAIConfig(**kwargs)
        self.client = openai.AsyncOpenAI(
            api_key=self.config.api_key,
            timeout=self.config.timeout,
            max_retries=self.config.max_retries,
        )

    async def generate_embedding(self, text: str) -> EmbeddingResult:
        """Generate embedding using OpenAI's embedding model.

        Args:
            text: Text to embed

        Returns:
            EmbeddingResult with embedding vector
        """
        try:
            response = await self.client.embeddings.create(
                model=self.config.embedding_model,
                input=text,
            )
        except openai.OpenAIError as e:
            logger.error(f"OpenAI embedding request failed: {e}")
            raise RuntimeError(f"Failed to generate embedding: {e}") from e

        return EmbeddingResult(
            embedding=response.data[0].embedding,
            model=self.config.embedding_model,
            token_count=response.usage.total_tokens,
        )

    def _messages(self, system_prompt: str, user_message: str) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_message},
        ]

    async def generate_stream(self, system_prompt: str, user_message: str) -> AsyncIterator[str]:
        """Stream a response from OpenAI's chat model.

        Args:
            system_prompt: Instructions and grounding context
            user_message: The user's question

        Yields:
            Content deltas
        """
        try:
            stream = await self.client.chat.completions.create(
                model=self.config.model,
                messages=self._messages(system_prompt, user_message),
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
                stream=True,
            )
            async for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    yield delta
        except openai.OpenAIError as e:
            logger.error(f"OpenAI streaming request failed: {e}")
            raise GenerationError(f"Failed to stream response: {e}") from e

    async def health_check(self) -> bool:
        """Check if OpenAI service is accessible.

        Returns:
            True if healthy, False otherwise
        """
        try:
            await self.client.models.list()
            return True
        except openai.OpenAIError as e:
            logger.warning(f"OpenAI health check failed: {e}")
            return False

    async def aclose(self) -> None:
        await self.client.close()
