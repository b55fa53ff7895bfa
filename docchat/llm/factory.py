"""Factory for creating LLM providers from configuration."""

from docchat.config import LLMProvider as LLMProviderEnum
from docchat.config import Settings
from docchat.llm.base import LLMProvider, LLMProviderFactory


def create_llm_provider(settings: Settings, provider_name: LLMProviderEnum | None = None) -> LLMProvider:
    """Create LLM provider from configuration.

    Args:
        settings: Application settings
        provider_name: Override provider name, defaults to settings.llm_provider

    Returns:
        Configured LLM provider instance

    Raises:
        ValueError: If provider configuration is invalid
    """
    provider_name = provider_name or settings.llm_provider

    if provider_name == LLMProviderEnum.OLLAMA:
        from docchat.llm.ollama import OllamaConfig

        config = OllamaConfig(
            host=settings.ollama_host,
            model=settings.ollama_model,
            embedding_model=settings.ollama_embedding_model,
        )
        return LLMProviderFactory.create("ollama", config=config)

    elif provider_name == LLMProviderEnum.OPENAI:
        from docchat.llm.openai import OpenAIConfig

        if not settings.openai_api_key:
            raise ValueError("OpenAI API key is required")

        config = OpenAIConfig(api_key=settings.openai_api_key, model=settings.openai_model)
        return LLMProviderFactory.create("openai", config=config)

    elif provider_name == LLMProviderEnum.ANTHROPIC:
        from docchat.llm.anthropic import AnthropicConfig

        if not settings.anthropic_api_key:
            raise ValueError("Anthropic API key is required")

        config = AnthropicConfig(api_key=settings.anthropic_api_key)
        return LLMProviderFactory.create("anthropic", config=config)

    else:
        raise ValueError(f"Unknown LLM provider: {provider_name}")


def create_embedding_provider(settings: Settings) -> LLMProvider:
    """Create LLM provider specifically for embeddings.

    Anthropic doesn't provide embeddings, so when it is selected for
    responses, embeddings come from OpenAI if a key is configured and from
    Ollama otherwise.

    Args:
        settings: Application settings

    Returns:
        Configured LLM provider instance suitable for embeddings
    """
    if settings.llm_provider == LLMProviderEnum.ANTHROPIC:
        if settings.openai_api_key:
            return create_llm_provider(settings, LLMProviderEnum.OPENAI)
        return create_llm_provider(settings, LLMProviderEnum.OLLAMA)

    return create_llm_provider(settings)
