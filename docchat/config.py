"""Configuration management using pydantic-settings."""

from enum import Enum

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMProvider(str, Enum):
    """Supported LLM providers."""

    OLLAMA = "ollama"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


class Environment(str, Enum):
    """Application environments."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class StoreBackend(str, Enum):
    """Backing store for shared counters and cache entries."""

    MEMORY = "memory"
    REDIS = "redis"


class RateLimitSettings(BaseModel):
    """Chat rate limiting."""

    backend: StoreBackend = Field(default=StoreBackend.MEMORY)
    window_seconds: float = Field(default=5 * 60, gt=0)
    max_requests: int = Field(default=30, gt=0)
    exempt_users: list[str] = Field(default_factory=list)
    store_timeout: float = Field(default=0.5, gt=0, description="Seconds before the store is treated as down")
    message: str = Field(
        default="Too many chat requests. Please wait a few minutes before asking another question."
    )


class CacheSettings(BaseModel):
    """Response cache."""

    backend: StoreBackend = Field(default=StoreBackend.MEMORY)
    capacity: int = Field(default=1000, gt=0)
    default_ttl: float = Field(default=5 * 60, gt=0)
    response_ttl: float = Field(default=30 * 60, gt=0)
    history_ttl: float = Field(default=30 * 60, gt=0)
    store_timeout: float = Field(default=0.5, gt=0)
    key_prefix: str = Field(default="docchat")


class RetrievalSettings(BaseModel):
    """Hybrid retrieval fusion parameters.

    The factual weights are a starting calibration for ``basic_factual``
    questions, not a fixed rule.
    """

    semantic_weight: float = Field(default=0.7, ge=0, le=1)
    lexical_weight: float = Field(default=0.3, ge=0, le=1)
    factual_semantic_weight: float = Field(default=0.85, ge=0, le=1)
    factual_lexical_weight: float = Field(default=0.15, ge=0, le=1)
    min_semantic_score: float = Field(default=0.3, ge=0, le=1)
    min_lexical_score: float = Field(default=0.1, ge=0, le=1)
    top_k: int = Field(default=10, gt=0)
    candidate_pool: int = Field(default=20, gt=0, description="Candidates requested from each backend")
    max_per_document: int = Field(default=3, gt=0)
    backend_timeout: float = Field(default=5.0, gt=0)
    collection_name: str = Field(default="documents")


class ClarificationSettings(BaseModel):
    """Thresholds for the clarification decision."""

    low_confidence_threshold: float = Field(default=0.35, ge=0, le=1)
    near_zero_confidence: float = Field(default=0.05, ge=0, le=1)
    max_generic_terms: int = Field(default=3, ge=0)
    rewrite_overlap_threshold: float = Field(default=0.2, ge=0, le=1)


class GenerationSettings(BaseModel):
    """Answer generation and context assembly."""

    history_turns: int = Field(default=3, ge=0)
    context_chunk_limit: int = Field(default=8, gt=0)
    chunks_per_document: int = Field(default=4, gt=0)
    max_sources: int = Field(default=8, gt=0)
    first_token_timeout: float = Field(default=30.0, gt=0)
    token_timeout: float = Field(default=15.0, gt=0)
    persistence_timeout: float = Field(default=5.0, gt=0)
    channel_size: int = Field(default=64, gt=0)


class UsagePricing(BaseModel):
    """Per-request cost estimate constants."""

    llm_per_10k_tokens: float = Field(default=0.005, ge=0)
    op_equiv_tokens: int = Field(default=100, ge=0)
    infrastructure_overhead: float = Field(default=1.10, ge=1)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_nested_delimiter="__",
        extra="ignore",
    )

    # LLM Provider Configuration
    llm_provider: LLMProvider = Field(
        default=LLMProvider.OLLAMA,
        description="LLM provider to use for embeddings and responses",
    )

    # Ollama Configuration
    ollama_host: str = Field(
        default="http://localhost:11434",
        description="Ollama API host URL",
    )
    ollama_model: str = Field(
        default="llama3.2",
        description="Ollama model to use",
    )
    ollama_embedding_model: str = Field(
        default="nomic-embed-text",
        description="Ollama embedding model to use",
    )

    # OpenAI Configuration
    openai_api_key: str | None = Field(
        default=None,
        description="OpenAI API key",
    )
    openai_model: str = Field(default="gpt-4o-mini")

    # Anthropic Configuration
    anthropic_api_key: str | None = Field(
        default=None,
        description="Anthropic API key",
    )

    # ChromaDB Configuration
    chroma_host: str = Field(
        default="localhost",
        description="ChromaDB host",
    )
    chroma_port: int = Field(
        default=8000,
        description="ChromaDB port",
    )

    # Redis Configuration
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis URL for distributed rate limiting and caching",
    )

    rate_limit_exempt_users: str = Field(
        default="",
        description="Comma-separated list of user IDs exempt from rate limiting",
    )

    # Pipeline Configuration
    rate_limit: RateLimitSettings = RateLimitSettings()
    cache: CacheSettings = CacheSettings()
    retrieval: RetrievalSettings = RetrievalSettings()
    clarification: ClarificationSettings = ClarificationSettings()
    generation: GenerationSettings = GenerationSettings()
    usage: UsagePricing = UsagePricing()

    # Application Configuration
    host: str = Field(default="0.0.0.0", description="HTTP bind address")
    port: int = Field(default=3000, description="HTTP port")
    max_question_length: int = Field(
        default=10_000,
        ge=1,
        description="Questions are truncated to this many characters after sanitizing",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment",
    )

    @property
    def chroma_url(self) -> str:
        """Get the full ChromaDB URL."""
        return f"http://{self.chroma_host}:{self.chroma_port}"

    @property
    def exempt_user_ids(self) -> list[str]:
        """Exempt identifiers from both the nested list and the comma-separated variable."""
        from_env = [uid.strip() for uid in self.rate_limit_exempt_users.split(",") if uid.strip()]
        return [*self.rate_limit.exempt_users, *from_env]

    def validate_provider_config(self) -> None:
        """Validate that required API keys are set for the selected provider."""
        if self.llm_provider == LLMProvider.OPENAI and not self.openai_api_key:
            raise ValueError("OpenAI API key is required when using OpenAI provider")
        elif self.llm_provider == LLMProvider.ANTHROPIC and not self.anthropic_api_key:
            raise ValueError("Anthropic API key is required when using Anthropic provider")

    def validate_retrieval_weights(self) -> None:
        """Reject weight pairs that would zero out every fused score."""
        r = self.retrieval
        if r.semantic_weight + r.lexical_weight <= 0:
            raise ValueError("Retrieval weights must not both be zero")
        if r.factual_semantic_weight + r.factual_lexical_weight <= 0:
            raise ValueError("Factual retrieval weights must not both be zero")


def get_settings() -> Settings:
    """Load settings from the environment.

    Called once by the process entry point; components receive the
    settings object explicitly.
    """
    return Settings()
