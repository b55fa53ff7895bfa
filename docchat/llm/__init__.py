"""LLM providers module."""

from docchat.llm.anthropic import AnthropicConfig, AnthropicProvider
from docchat.llm.base import EmbeddingResult, LLMProvider, LLMProviderFactory
from docchat.llm.factory import create_embedding_provider, create_llm_provider
from docchat.llm.ollama import OllamaConfig, OllamaProvider
from docchat.llm.openai import OpenAIConfig, OpenAIProvider

# Register all providers
LLMProviderFactory.register("ollama", OllamaProvider)
LLMProviderFactory.register("openai", OpenAIProvider)
LLMProviderFactory.register("anthropic", AnthropicProvider)

__all__ = [
    "AnthropicConfig",
    "AnthropicProvider",
    "EmbeddingResult",
    "LLMProvider",
    "LLMProviderFactory",
    "OllamaConfig",
    "OllamaProvider",
    "OpenAIConfig",
    "OpenAIProvider",
    "create_embedding_provider",
    "create_llm_provider",
]
