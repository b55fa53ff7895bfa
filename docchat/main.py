"""Main entry point for the docchat API server."""

import asyncio
import logging
import sys

from dotenv import load_dotenv

from docchat.cache import InMemoryCacheStore, RedisCacheStore, ResponseCache
from docchat.collaborators import HeaderAuthenticator, InMemoryConversationStore, InMemoryDocumentGenerator
from docchat.config import Settings, StoreBackend, get_settings
from docchat.llm.factory import create_embedding_provider, create_llm_provider
from docchat.memory import InMemoryMemoryStore, UserMemoryManager
from docchat.orchestrator import PostProcessor, RequestOrchestrator
from docchat.query import HybridRetriever
from docchat.ratelimit import InMemoryRateLimitStore, RedisRateLimitStore, create_rate_limiters
from docchat.search import ChromaLexicalIndex, ChromaVectorIndex, chroma_health_check, create_chroma_client
from docchat.usage import InMemoryUsageRecorder
from docchat.web_server import WebServer

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def create_server(settings: Settings) -> WebServer:
    """Wire every component from settings.

    Args:
        settings: Application settings

    Returns:
        WebServer ready to start
    """
    if settings.rate_limit.backend == StoreBackend.REDIS:
        rate_limit_store = RedisRateLimitStore.from_url(settings.redis_url)
    else:
        rate_limit_store = InMemoryRateLimitStore()

    rate_limiters = create_rate_limiters(
        rate_limit_store,
        exempt=settings.exempt_user_ids,
        store_timeout=settings.rate_limit.store_timeout,
        overrides={
            "chat": (
                settings.rate_limit.window_seconds,
                settings.rate_limit.max_requests,
                settings.rate_limit.message,
            )
        },
    )

    if settings.cache.backend == StoreBackend.REDIS:
        cache_store = RedisCacheStore.from_url(settings.redis_url, prefix=settings.cache.key_prefix)
    else:
        cache_store = InMemoryCacheStore(capacity=settings.cache.capacity)
    cache = ResponseCache(
        store=cache_store,
        default_ttl=settings.cache.default_ttl,
        store_timeout=settings.cache.store_timeout,
    )

    chroma = create_chroma_client(settings.chroma_host, settings.chroma_port)
    collection = settings.retrieval.collection_name
    embedder = create_embedding_provider(settings)
    generator = create_llm_provider(settings)

    retriever = HybridRetriever(
        embedder=embedder,
        vector_index=ChromaVectorIndex(chroma, collection),
        lexical_index=ChromaLexicalIndex(chroma, collection),
        settings=settings.retrieval,
    )

    conversations = InMemoryConversationStore()
    post_processor = PostProcessor(
        conversations=conversations,
        cache=cache,
        memory=UserMemoryManager(InMemoryMemoryStore(), cache=cache),
        usage_recorder=InMemoryUsageRecorder(),
        pricing=settings.usage,
        response_ttl=settings.cache.response_ttl,
        timeout=settings.generation.persistence_timeout,
    )

    orchestrator = RequestOrchestrator(
        rate_limiter=rate_limiters["chat"],
        conversations=conversations,
        cache=cache,
        retriever=retriever,
        generator=generator,
        post_processor=post_processor,
        settings=settings,
        document_generator=InMemoryDocumentGenerator(),
    )

    return WebServer(
        orchestrator=orchestrator,
        authenticator=HeaderAuthenticator(),
        host=settings.host,
        port=settings.port,
        max_question_length=settings.max_question_length,
        health_checks={
            "llm": generator.health_check,
            "chroma": lambda: chroma_health_check(chroma),
        },
    )


async def main() -> None:
    """Main application entry point."""
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info(f"Starting docchat in {settings.environment.value} mode")
    logger.info(f"Using LLM provider: {settings.llm_provider.value}")

    # Validate configuration
    try:
        settings.validate_provider_config()
        settings.validate_retrieval_weights()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    web_server = create_server(settings)
    web_runner = await web_server.start()

    try:
        await asyncio.Event().wait()
    finally:
        logger.info("Shutting down...")
        await web_server.orchestrator.post_processor.drain()
        await web_server.stop(web_runner)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
