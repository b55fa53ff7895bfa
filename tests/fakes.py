"""Fakes for the pipeline collaborators."""

import asyncio

from docchat.cache import InMemoryCacheStore, ResponseCache
from docchat.collaborators import InMemoryConversationStore, Principal
from docchat.config import Settings
from docchat.llm.base import EmbeddingResult, LLMProvider
from docchat.memory import InMemoryMemoryStore, UserMemoryManager
from docchat.orchestrator import PostProcessor, RequestOrchestrator
from docchat.query.models import QueryRequest, RetrievalCandidate, ScoredChunk
from docchat.query.retriever import HybridRetriever
from docchat.ratelimit import InMemoryRateLimitStore, RateLimiter
from docchat.search.base import LexicalIndex, VectorIndex
from docchat.usage import InMemoryUsageRecorder


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeLLM(LLMProvider):
    """Embeds to a fixed vector and streams a scripted answer."""

    def __init__(self, tokens=("Hello", " world"), error: Exception | None = None, delay: float = 0.0):
        self.tokens = list(tokens)
        self.error = error
        self.delay = delay
        self.embed_calls = 0
        self.stream_calls: list[tuple[str, str]] = []
        self.stream_closed = False

    async def generate_embedding(self, text: str) -> EmbeddingResult:
        self.embed_calls += 1
        return EmbeddingResult(embedding=[0.1, 0.2, 0.3], model="fake-embed")

    async def generate_stream(self, system_prompt: str, user_message: str):
        self.stream_calls.append((system_prompt, user_message))
        try:
            for token in self.tokens:
                if self.delay:
                    await asyncio.sleep(self.delay)
                yield token
            if self.error is not None:
                raise self.error
        finally:
            self.stream_closed = True

    async def health_check(self) -> bool:
        return True


class FakeVectorIndex(VectorIndex):
    def __init__(self, chunks=(), error: Exception | None = None):
        self.chunks = list(chunks)
        self.error = error
        self.calls = 0

    async def query(self, vector, top_k):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.chunks[:top_k]


class FakeLexicalIndex(LexicalIndex):
    def __init__(self, chunks=(), error: Exception | None = None):
        self.chunks = list(chunks)
        self.error = error
        self.calls = 0

    async def search(self, text, top_k):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.chunks[:top_k]


def chunk(
    chunk_id: str,
    score: float,
    document_id: str = "doc-1",
    title: str = "Employee Handbook",
    content: str = "Vacation policy: employees accrue 20 days of paid leave per year.",
) -> ScoredChunk:
    return ScoredChunk(
        id=chunk_id,
        document_id=document_id,
        document_title=title,
        content=content,
        score=score,
    )


def candidate(
    chunk_id: str,
    fused: float,
    document_id: str = "doc-1",
    title: str = "Employee Handbook",
    content: str = "Vacation policy text",
    semantic: float | None = None,
    lexical: float = 0.0,
) -> RetrievalCandidate:
    return RetrievalCandidate(
        id=chunk_id,
        document_id=document_id,
        document_title=title,
        content=content,
        semantic_score=fused if semantic is None else semantic,
        lexical_score=lexical,
        fused_score=fused,
    )




USER = Principal(user_id="user-1")
SESSION = "session-1"
QUESTION = "What is the vacation policy?"
GOOD_SEMANTIC = [chunk("a", 0.9)]
GOOD_LEXICAL = [chunk("a", 0.8)]


class Harness:
    """Wires an orchestrator to in-memory collaborators."""

    def __init__(
        self,
        semantic=GOOD_SEMANTIC,
        lexical=GOOD_LEXICAL,
        llm=None,
        max_requests=30,
        document_generator=None,
        settings=None,
        semantic_error=None,
        lexical_error=None,
    ):
        self.settings = settings or Settings()
        self.conversations = InMemoryConversationStore()
        self.conversations.create_session(USER.user_id, SESSION)
        self.cache = ResponseCache(InMemoryCacheStore())
        self.vector = FakeVectorIndex(semantic, error=semantic_error)
        self.keyword = FakeLexicalIndex(lexical, error=lexical_error)
        self.llm = llm or FakeLLM()
        self.usage = InMemoryUsageRecorder()
        self.post_processor = PostProcessor(
            self.conversations,
            self.cache,
            memory=UserMemoryManager(InMemoryMemoryStore(), self.cache),
            usage_recorder=self.usage,
        )
        self.orchestrator = RequestOrchestrator(
            rate_limiter=RateLimiter(InMemoryRateLimitStore(), window_seconds=300, max_requests=max_requests),
            conversations=self.conversations,
            cache=self.cache,
            retriever=HybridRetriever(FakeLLM(), self.vector, self.keyword, self.settings.retrieval),
            generator=self.llm,
            post_processor=self.post_processor,
            settings=self.settings,
            document_generator=document_generator,
        )

    async def ask(self, question=QUESTION, principal=USER, session_id=SESSION):
        request = await self.orchestrator.admit(question, session_id, principal)
        assert isinstance(request, QueryRequest)
        channel = self.orchestrator.open_stream(request)
        events = [event async for event in channel]
        await self.post_processor.drain()
        return events, channel

    @property
    def turns(self):
        return self.conversations.turns[SESSION]
