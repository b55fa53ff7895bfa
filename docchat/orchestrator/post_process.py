"""Best-effort bookkeeping after a response has been streamed."""

import asyncio
import logging
from collections.abc import Coroutine, Sequence
from dataclasses import dataclass
from typing import Any

from docchat.cache import CacheNamespace, ResponseCache
from docchat.collaborators import ConversationStore, TurnRecord
from docchat.config import UsagePricing
from docchat.errors import PersistenceError
from docchat.memory import UserMemoryManager
from docchat.query.models import QueryIntent, QueryRequest, Source
from docchat.usage import UsageRecorder, build_usage_record

logger = logging.getLogger(__name__)

HISTORY_KEY = "recent"


@dataclass(frozen=True)
class CompletedTurn:
    """Everything the post-processing side effects need from one request."""

    request: QueryRequest
    request_id: str
    answer: str
    sources: tuple[Source, ...]
    intent: QueryIntent
    chunk_count: int
    document_count: int
    system_prompt_length: int
    cache_key: str | None = None


def cached_response(turn: CompletedTurn) -> dict[str, Any]:
    """The value stored under ``chat_responses`` for a completed turn."""
    return {
        "answer": turn.answer,
        "sources": [source.to_dict() for source in turn.sources],
        "chunkCount": turn.chunk_count,
        "documentCount": turn.document_count,
    }


class PostProcessor:
    """Runs cache, persistence, memory and usage writes in background tasks.

    A failing write is logged and dropped; it never reaches the client and
    never blocks the other writes.
    """

    def __init__(
        self,
        conversations: ConversationStore,
        cache: ResponseCache,
        memory: UserMemoryManager | None = None,
        usage_recorder: UsageRecorder | None = None,
        pricing: UsagePricing | None = None,
        response_ttl: float = 30 * 60,
        timeout: float = 5.0,
    ) -> None:
        """Initialize post-processor.

        Args:
            conversations: Turn persistence
            cache: Response cache
            memory: Optional user memory manager
            usage_recorder: Optional usage sink
            pricing: Cost estimate constants
            response_ttl: TTL for cached responses
            timeout: Seconds allowed for each side effect
        """
        self.conversations = conversations
        self.cache = cache
        self.memory = memory
        self.usage_recorder = usage_recorder
        self.pricing = pricing or UsagePricing()
        self.response_ttl = response_ttl
        self.timeout = timeout
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def after_completion(self, turn: CompletedTurn) -> None:
        """Schedule every side effect of a completed generation."""
        if turn.cache_key is not None:
            self._spawn("cache response", self._write_cache(turn))
        self._spawn(
            "persist turn",
            self._persist(turn.request, turn.answer, turn.sources, turn.intent, incomplete=False),
        )
        if self.memory is not None:
            self._spawn(
                "update memory",
                self.memory.update(
                    turn.request.user_id,
                    turn.request.session_id,
                    turn.request.question,
                    turn.answer,
                    turn.sources,
                    turn.intent,
                ),
            )
        if self.usage_recorder is not None:
            self._spawn("record usage", self._record_usage(turn))

    def record_exchange(self, request: QueryRequest, answer: str, intent: QueryIntent) -> None:
        """Persist a turn that did not come from generation, e.g. a clarification prompt."""
        self._spawn("persist turn", self._persist(request, answer, (), intent, incomplete=False))

    def persist_incomplete(
        self,
        request: QueryRequest,
        partial_answer: str,
        sources: Sequence[Source],
        intent: QueryIntent,
    ) -> None:
        """Persist an aborted generation. Never cached."""
        self._spawn("persist incomplete turn", self._persist(request, partial_answer, sources, intent, incomplete=True))

    async def drain(self) -> None:
        """Wait for every scheduled side effect to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _spawn(self, name: str, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.create_task(self._run(name, coro))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, name: str, coro: Coroutine[Any, Any, Any]) -> None:
        try:
            await asyncio.wait_for(coro, timeout=self.timeout)
        except Exception as e:
            error = PersistenceError(f"Failed to {name}: {e}")
            logger.error(error.message, exc_info=e)

    async def _write_cache(self, turn: CompletedTurn) -> None:
        stored = await self.cache.set(
            CacheNamespace.CHAT_RESPONSES,
            turn.cache_key,
            cached_response(turn),
            ttl=self.response_ttl,
        )
        if not stored:
            raise PersistenceError("cache store rejected the write")

    async def _persist(
        self,
        request: QueryRequest,
        answer: str,
        sources: Sequence[Source],
        intent: QueryIntent,
        incomplete: bool,
    ) -> None:
        turn_id = await self.conversations.persist_turn(
            TurnRecord(
                user_id=request.user_id,
                session_id=request.session_id,
                question=request.question,
                answer=answer,
                sources=[source.to_dict() for source in sources],
                intent=intent.value,
                incomplete=incomplete,
            )
        )
        await self.cache.clear_namespace(CacheNamespace.history(request.session_id))
        logger.debug(f"Persisted turn {turn_id} for session {request.session_id} (incomplete={incomplete})")

    async def _record_usage(self, turn: CompletedTurn) -> None:
        await self.usage_recorder.record(
            build_usage_record(
                user_id=turn.request.user_id,
                session_id=turn.request.session_id,
                request_id=turn.request_id,
                system_prompt_length=turn.system_prompt_length,
                user_message_length=len(turn.request.question),
                response_length=len(turn.answer),
                pricing=self.pricing,
            )
        )
