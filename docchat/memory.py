"""Long-lived per-user memory aggregates."""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import Counter
from collections.abc import Sequence
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from pydantic import BaseModel, Field

from docchat.cache import CacheHit, CacheNamespace, CacheTTL, ResponseCache
from docchat.query.clarification import STOPWORDS
from docchat.query.lexical import query_terms
from docchat.query.models import QueryIntent, Source

logger = logging.getLogger(__name__)

MAX_TOPICS = 3
MAX_COMMON_QUESTIONS = 10
KEPT_COMMON_QUESTIONS = 5
MAX_SESSION_CONNECTIONS = 50
MAX_SESSION_TOPICS = 50
INITIAL_LEVEL = 0.1
DEFAULT_SATISFACTION = 3


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TopicFamiliarity(BaseModel):
    """How well a user knows a topic."""

    level: float = INITIAL_LEVEL
    interactions: int = 0
    last_asked: datetime = Field(default_factory=_utcnow)
    common_questions: list[str] = Field(default_factory=list)


class SessionConnection(BaseModel):
    """Topics discussed in one session."""

    session_id: str
    related_topics: list[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=_utcnow)


class UserMemory(BaseModel):
    """Aggregated memory for one user."""

    user_id: str
    topic_familiarity: dict[str, TopicFamiliarity] = Field(default_factory=dict)
    intent_counts: dict[str, int] = Field(default_factory=dict)
    session_topics: list[str] = Field(default_factory=list)
    cross_session_connections: list[SessionConnection] = Field(default_factory=list)
    updated_at: datetime = Field(default_factory=_utcnow)


class MemoryStore(ABC):
    """Durable storage for user memory."""

    @abstractmethod
    async def load(self, user_id: str) -> UserMemory | None:
        pass

    @abstractmethod
    async def save(self, memory: UserMemory) -> None:
        pass


class InMemoryMemoryStore(MemoryStore):
    """Dict-backed store for development and tests."""

    def __init__(self) -> None:
        self._memories: dict[str, str] = {}

    async def load(self, user_id: str) -> UserMemory | None:
        raw = self._memories.get(user_id)
        return UserMemory.model_validate_json(raw) if raw else None

    async def save(self, memory: UserMemory) -> None:
        self._memories[memory.user_id] = memory.model_dump_json()


def extract_topics(question: str, answer: str, sources: Sequence[Source]) -> list[str]:
    """Most frequent content terms across the exchange, at most three.

    Ties keep the order of first appearance.
    """
    text = " ".join([question, answer, *(source.title for source in sources)])
    terms = [term for term in query_terms(text) if term not in STOPWORDS]
    counts = Counter(terms)
    first_seen: dict[str, int] = {}
    for position, term in enumerate(terms):
        first_seen.setdefault(term, position)

    ranked = sorted(counts, key=lambda t: (-counts[t], first_seen[t]))
    return ranked[:MAX_TOPICS] or ["general"]


def question_complexity(question: str) -> float:
    """Length-based complexity in [0, 0.5]."""
    return min(len(question) / 200, 1.0) * 0.5


class UserMemoryManager:
    """Updates and serves user memory with read-through caching.

    Updates for the same user are serialized within the process. Across
    processes the last write wins.
    """

    def __init__(self, store: MemoryStore, cache: ResponseCache | None = None) -> None:
        """Initialize memory manager.

        Args:
            store: Durable memory store
            cache: Optional cache for the ``user_memory`` namespace
        """
        self.store = store
        self.cache = cache
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: Counter[str] = Counter()

    async def get(self, user_id: str) -> UserMemory:
        """Return a user's memory, creating an empty one if none exists."""
        if self.cache is not None:
            cached = await self.cache.lookup(CacheNamespace.USER_MEMORY, user_id)
            if isinstance(cached, CacheHit):
                return UserMemory.model_validate(cached.value)

        memory = await self.store.load(user_id) or UserMemory(user_id=user_id)
        await self._cache(memory)
        return memory

    async def update(
        self,
        user_id: str,
        session_id: str,
        question: str,
        answer: str,
        sources: Sequence[Source],
        intent: QueryIntent,
    ) -> UserMemory:
        """Fold one completed exchange into the user's memory.

        Args:
            user_id: Owner of the memory
            session_id: Session the exchange happened in
            question: User question
            answer: Generated answer
            sources: Sources shown with the answer
            intent: Classified intent of the question

        Returns:
            The updated memory
        """
        async with self._user_lock(user_id):
            memory = await self.store.load(user_id) or UserMemory(user_id=user_id)
            topics = extract_topics(question, answer, sources)

            self._update_topics(memory, topics, question)
            memory.intent_counts[intent.value] = memory.intent_counts.get(intent.value, 0) + 1
            self._update_session_topics(memory, topics)
            self._update_connections(memory, session_id, topics)
            memory.updated_at = _utcnow()

            await self.store.save(memory)
            await self._cache(memory)

        logger.info(f"Updated memory for user {user_id}: topics={topics}")
        return memory

    @asynccontextmanager
    async def _user_lock(self, user_id: str):
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        self._lock_users[user_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[user_id] -= 1
            if not self._lock_users[user_id]:
                del self._lock_users[user_id]
                del self._locks[user_id]

    @staticmethod
    def _update_topics(memory: UserMemory, topics: list[str], question: str) -> None:
        bonus = question_complexity(question) * 0.05 + DEFAULT_SATISFACTION / 5 * 0.05
        for topic in topics:
            familiarity = memory.topic_familiarity.setdefault(topic, TopicFamiliarity())
            familiarity.interactions += 1
            familiarity.last_asked = _utcnow()
            familiarity.common_questions.append(question)
            familiarity.level = min(1.0, familiarity.level + bonus)
            if len(familiarity.common_questions) > MAX_COMMON_QUESTIONS:
                familiarity.common_questions = familiarity.common_questions[-KEPT_COMMON_QUESTIONS:]

    @staticmethod
    def _update_session_topics(memory: UserMemory, topics: list[str]) -> None:
        # Most recent last
        kept = [topic for topic in memory.session_topics if topic not in topics]
        memory.session_topics = [*kept, *topics][-MAX_SESSION_TOPICS:]

    @staticmethod
    def _update_connections(memory: UserMemory, session_id: str, topics: list[str]) -> None:
        for connection in memory.cross_session_connections:
            if connection.session_id == session_id:
                connection.related_topics = list(dict.fromkeys([*connection.related_topics, *topics]))
                break
        else:
            memory.cross_session_connections.append(SessionConnection(session_id=session_id, related_topics=topics))

        if len(memory.cross_session_connections) > MAX_SESSION_CONNECTIONS:
            memory.cross_session_connections.sort(key=lambda c: c.timestamp, reverse=True)
            del memory.cross_session_connections[MAX_SESSION_CONNECTIONS:]

    async def _cache(self, memory: UserMemory) -> None:
        if self.cache is not None:
            await self.cache.set(
                CacheNamespace.USER_MEMORY,
                memory.user_id,
                memory.model_dump(mode="json"),
                ttl=CacheTTL.SHORT,
            )
