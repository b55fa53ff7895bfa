"""Ollama LLM provider implementation."""

import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx
from pydantic import BaseModel

from docchat.errors import GenerationError
from docchat.llm.base import EmbeddingResult, LLMProvider

logger = logging.getLogger(__name__)


class OllamaConfig(BaseModel):
    """Configuration for Ollama provider."""

    host: str = "http://localhost:11434"
    model: str = "llama3.2"
    embedding_model: str = "nomic-embed-text"
    timeout: int = 30
    generation_timeout: float = 180.0


class OllamaProvider(LLMProvider):
    """Ollama LLM provider implementation."""

    def __init__(self, config: OllamaConfig | None = None, **kwargs: Any) -> None:
        """Initialize Ollama provider.

        Args:
            config: Ollama configuration
            **kwargs: Additional configuration options
        """
        self.config = config or OllamaConfig(**kwargs)
        self.client = httpx.AsyncClient(
            base_url=self.config.host,
            timeout=self.config.timeout,
        )

    async def generate_embedding(self, text: str) -> EmbeddingResult:
        """Generate embedding using Ollama's embedding model.

        Args:
            text: Text to embed

        Returns:
            EmbeddingResult with embedding vector
        """
        try:
            response = await self.client.post(
                "/api/embed",
                json={
                    "model": self.config.embedding_model,
                    "input": text,
                },
            )
            response.raise_for_status()
        except httpx.RequestError as e:
            logger.error(f"Ollama embedding request failed: {e}")
            raise RuntimeError(f"Failed to generate embedding: {e}") from e
        except httpx.HTTPStatusError as e:
            logger.error(f"Ollama embedding HTTP error: {e}")
            raise RuntimeError(f"Ollama API error: {e}") from e

        data = response.json()
        embeddings = data.get("embeddings") or [[]]
        # Ollama doesn't return token counts for embeddings
        return EmbeddingResult(embedding=embeddings[0], model=self.config.embedding_model)

    def _chat_payload(self, system_prompt: str, user_message: str, stream: bool) -> dict[str, Any]:
        return {
            "model": self.config.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_message},
            ],
            "stream": stream,
        }

    async def generate_stream(self, system_prompt: str, user_message: str) -> AsyncIterator[str]:
        """Stream a response from Ollama's chat endpoint.

        Ollama streams newline-delimited JSON objects, each carrying a
        message fragment, until one arrives with ``done`` set.

        Yields:
            Text fragments
        """
        payload = self._chat_payload(system_prompt, user_message, stream=True)
        try:
            async with self.client.stream(
                "POST", "/api/chat", json=payload, timeout=self.config.generation_timeout
            ) as response:
                response.raise_for_status()
                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    data = json.loads(line)
                    if "error" in data:
                        raise GenerationError(f"Ollama stream error: {data['error']}")
                    fragment = data.get("message", {}).get("content", "")
                    if fragment:
                        yield fragment
                    if data.get("done"):
                        break
        except httpx.HTTPStatusError as e:
            logger.error(f"Ollama streaming HTTP error {e.response.status_code}")
            raise GenerationError(f"Ollama API error: {e}") from e
        except httpx.RequestError as e:
            logger.error(f"Ollama streaming request failed: {e} (host {self.config.host})")
            raise GenerationError(f"Failed to stream response: {e}") from e

    async def health_check(self) -> bool:
        """Check if Ollama service is healthy.

        Returns:
            True if healthy, False otherwise
        """
        try:
            response = await self.client.get("/api/tags")
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.warning(f"Ollama health check failed: {e}")
            return False

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.aclose()
