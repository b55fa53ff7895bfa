"""Request state machine: admission, then a streamed answer."""

import asyncio
import logging
import uuid
from contextlib import aclosing
from enum import Enum

from docchat.cache import CacheHit, CacheNamespace, ResponseCache, question_cache_key
from docchat.collaborators import ConversationStore, DocumentGenerator, Principal
from docchat.config import Settings
from docchat.errors import GenerationError, RetrievalError
from docchat.llm.base import LLMProvider
from docchat.query.clarification import ClarificationAnalyzer
from docchat.query.context import build_prompt_context
from docchat.query.intent import IntentClassifier
from docchat.query.models import (
    ClarificationDecision,
    ConversationTurn,
    DocumentFormat,
    IntentResult,
    QueryIntent,
    QueryRequest,
    RetrievalCandidate,
    SearchOptions,
    SearchResult,
    Source,
)
from docchat.query.quality import QualityGate
from docchat.query.retriever import HybridRetriever
from docchat.query.rewriter import QueryRewriter, is_follow_up
from docchat.ratelimit import RateLimiter

from .channel import EventChannel
from .events import (
    ChunkEvent,
    CompleteEvent,
    DocumentErrorEvent,
    DocumentEvent,
    ErrorEvent,
    SourcesEvent,
)
from .outcomes import Rejection, RejectionReason
from .post_process import HISTORY_KEY, CompletedTurn, PostProcessor

logger = logging.getLogger(__name__)

FORBIDDEN_MESSAGE = "Session not found"
SEARCH_UNAVAILABLE_MESSAGE = (
    "I couldn't search the documents right now. Please try again in a moment."
)
NO_RESULTS_MESSAGE = (
    "I couldn't find any relevant information in the uploaded documents to answer your question. "
    "You might want to try rephrasing your question or check if relevant documents have been uploaded."
)
GENERATION_FAILED_MESSAGE = "Failed to generate a response. Please try again."
GENERATION_TIMEOUT_MESSAGE = "The response took too long to generate. Please try again."
INTERNAL_ERROR_MESSAGE = "Something went wrong while answering. Please try again."

# Answers to these depend on the prior answer, not just the question text
UNCACHEABLE_INTENTS = frozenset({QueryIntent.TRANSFORM_PRIOR_ARTIFACT, QueryIntent.GENERATE_DOCUMENT})


def search_summary(result: SearchResult) -> str:
    """One-line description of a result set for logs."""
    return f"{len(result.results)} results via {result.search_strategy.value}, confidence={result.confidence:.3f}"


class RequestState(str, Enum):
    RATE_LIMIT_CHECK = "rate_limit_check"
    SESSION_VALIDATE = "session_validate"
    CACHE_LOOKUP = "cache_lookup"
    STREAM_CACHED = "stream_cached"
    INTENT_CLASSIFY = "intent_classify"
    RETRIEVE = "retrieve"
    CLARIFICATION_CHECK = "clarification_check"
    STREAM_CLARIFICATION = "stream_clarification"
    QUALITY_GATE = "quality_gate"
    STREAM_REFUSAL = "stream_refusal"
    CONTEXT_BUILD = "context_build"
    GENERATE_STREAM = "generate_stream"
    POST_PROCESS = "post_process"
    END = "end"


class RequestOrchestrator:
    """Drives one chat request from admission to the last stream event.

    ``admit`` covers rate limiting and session ownership and returns either
    a ``Rejection`` or the admitted ``QueryRequest``. ``open_stream`` runs
    the rest of the pipeline in a producer task and hands back the channel
    the transport reads from.
    """

    def __init__(
        self,
        rate_limiter: RateLimiter,
        conversations: ConversationStore,
        cache: ResponseCache,
        retriever: HybridRetriever,
        generator: LLMProvider,
        post_processor: PostProcessor,
        settings: Settings,
        classifier: IntentClassifier | None = None,
        rewriter: QueryRewriter | None = None,
        clarifier: ClarificationAnalyzer | None = None,
        quality_gate: QualityGate | None = None,
        document_generator: DocumentGenerator | None = None,
    ) -> None:
        self.rate_limiter = rate_limiter
        self.conversations = conversations
        self.cache = cache
        self.retriever = retriever
        self.generator = generator
        self.post_processor = post_processor
        self.settings = settings
        self.classifier = classifier or IntentClassifier()
        self.rewriter = rewriter or QueryRewriter(history_turns=settings.generation.history_turns)
        self.clarifier = clarifier or ClarificationAnalyzer(settings.clarification)
        self.quality_gate = quality_gate or QualityGate()
        self.document_generator = document_generator

    async def admit(self, question: str, session_id: str, principal: Principal) -> Rejection | QueryRequest:
        """Run admission checks and load the session history.

        Args:
            question: User question, already validated as non-empty
            session_id: Conversation the question belongs to
            principal: Authenticated caller

        Returns:
            Rejection when the request must not proceed, else the QueryRequest

        Raises:
            Exception: Session store failures propagate to the transport
        """
        logger.debug(f"Admitting {principal.user_id}: {RequestState.RATE_LIMIT_CHECK.value}")
        limit = await self.rate_limiter.admit(principal.identifier, principal.role)
        if not limit.allowed:
            return Rejection(
                reason=RejectionReason.RATE_LIMITED,
                message=limit.message or self.rate_limiter.message,
                status_code=429,
                reset_at=limit.reset_at,
            )

        logger.debug(f"Admitting {principal.user_id}: {RequestState.SESSION_VALIDATE.value}")
        owns_session = await asyncio.wait_for(
            self.conversations.validate_session(session_id, principal.user_id),
            timeout=self.settings.generation.persistence_timeout,
        )
        if not owns_session:
            logger.info(f"User {principal.user_id} denied access to session {session_id}")
            return Rejection(reason=RejectionReason.FORBIDDEN, message=FORBIDDEN_MESSAGE, status_code=403)

        history = await self._load_history(session_id, principal.user_id)
        return QueryRequest(
            question=question,
            session_id=session_id,
            user_id=principal.user_id,
            conversation_history=tuple(history),
        )

    def open_stream(self, request: QueryRequest) -> EventChannel:
        """Start answering ``request`` and return its event channel."""
        channel = EventChannel(maxsize=self.settings.generation.channel_size)
        request_id = uuid.uuid4().hex
        channel.start(lambda ch: self._produce(request, request_id, ch))
        return channel

    async def _load_history(self, session_id: str, user_id: str) -> list[ConversationTurn]:
        namespace = CacheNamespace.history(session_id)
        cached = await self.cache.lookup(namespace, HISTORY_KEY)
        if isinstance(cached, CacheHit):
            return [ConversationTurn(question=t["question"], answer=t["answer"]) for t in cached.value]

        history = await asyncio.wait_for(
            self.conversations.get_history(session_id, user_id, self.settings.generation.history_turns),
            timeout=self.settings.generation.persistence_timeout,
        )
        if history:
            await self.cache.set(
                namespace,
                HISTORY_KEY,
                [{"question": t.question, "answer": t.answer} for t in history],
                ttl=self.settings.cache.history_ttl,
            )
        return history

    async def _produce(self, request: QueryRequest, request_id: str, channel: EventChannel) -> None:
        try:
            await self._resolve(request, request_id, channel)
        except asyncio.CancelledError:
            logger.info(f"Request {request_id} cancelled")
            raise
        except Exception as e:
            logger.error(f"Request {request_id} failed: {e}", exc_info=True)
            await channel.send(ErrorEvent(message=INTERNAL_ERROR_MESSAGE))
        finally:
            self._enter(channel, request_id, RequestState.END)

    def _enter(self, channel: EventChannel, request_id: str, state: RequestState) -> None:
        channel.states.append(state.value)
        logger.debug(f"Request {request_id} -> {state.value}")

    def _is_cacheable(self, request: QueryRequest) -> bool:
        return not (request.has_history and is_follow_up(request.question))

    async def _resolve(self, request: QueryRequest, request_id: str, channel: EventChannel) -> None:
        self._enter(channel, request_id, RequestState.CACHE_LOOKUP)
        cache_key = None
        if self._is_cacheable(request):
            cache_key = question_cache_key(request.question, request.user_id)
            cached = await self.cache.lookup(CacheNamespace.CHAT_RESPONSES, cache_key)
            if isinstance(cached, CacheHit):
                self._enter(channel, request_id, RequestState.STREAM_CACHED)
                await self._stream_cached(cached.value, channel)
                return

        self._enter(channel, request_id, RequestState.INTENT_CLASSIFY)
        intent = self.classifier.classify(request.question, request.has_history, len(request.last_answer))
        if intent.intent in UNCACHEABLE_INTENTS:
            cache_key = None
        logger.info(f"Request {request_id}: intent={intent.intent.value}")

        self._enter(channel, request_id, RequestState.RETRIEVE)
        rewritten = self.rewriter.rewrite(request.question, request.conversation_history)
        options = SearchOptions(intent=intent.intent)
        try:
            search = await self.retriever.search(rewritten.text, options)
        except RetrievalError as e:
            logger.error(f"Request {request_id}: search unavailable: {e.message}")
            await self._stream_message(channel, SEARCH_UNAVAILABLE_MESSAGE, refusal=True)
            return
        logger.info(f"Request {request_id}: {search_summary(search)}")

        has_prior_artifact = bool(request.last_answer.strip())
        overridable = intent.intent == QueryIntent.TRANSFORM_PRIOR_ARTIFACT and has_prior_artifact

        if not overridable:
            self._enter(channel, request_id, RequestState.CLARIFICATION_CHECK)
            literal_results = None
            if rewritten.was_rewritten:
                literal_results = await self._literal_results(request.question, options, request_id)
            decision = self.clarifier.analyze(
                request.question,
                search.results,
                search.confidence,
                search.search_strategy,
                request.conversation_history,
                rewritten.was_rewritten,
                literal_results,
            )
            if decision.needs_clarification:
                self._enter(channel, request_id, RequestState.STREAM_CLARIFICATION)
                await self._stream_clarification(request, intent, decision, channel)
                return

        self._enter(channel, request_id, RequestState.QUALITY_GATE)
        context = build_prompt_context(
            search.results,
            request.conversation_history,
            chunk_limit=self.settings.generation.context_chunk_limit,
            chunks_per_document=self.settings.generation.chunks_per_document,
            max_sources=self.settings.generation.max_sources,
        )
        assessment = self.quality_gate.evaluate(
            len(context.items), search.confidence, search.top_score, intent.intent, has_prior_artifact
        )
        if assessment.refuse:
            logger.info(
                f"Request {request_id}: refusing, confidence={search.confidence:.3f} "
                f"top_score={search.top_score:.3f} context={len(context.items)}"
            )
            self._enter(channel, request_id, RequestState.STREAM_REFUSAL)
            await self._stream_message(channel, NO_RESULTS_MESSAGE, refusal=True, suggestions=search.suggestions)
            return

        self._enter(channel, request_id, RequestState.CONTEXT_BUILD)
        await channel.send(
            SourcesEvent(
                sources=[source.to_dict() for source in context.sources],
                chunk_count=len(context.items),
                document_count=context.document_count,
            )
        )

        self._enter(channel, request_id, RequestState.GENERATE_STREAM)
        answer = await self._generate(request, request_id, intent, context.system_prompt, context.sources, channel)
        if answer is None:
            return

        if intent.intent == QueryIntent.GENERATE_DOCUMENT and self.document_generator is not None:
            await self._generate_document(request, intent, answer, channel)

        await channel.send(CompleteEvent(content=answer))

        self._enter(channel, request_id, RequestState.POST_PROCESS)
        self.post_processor.after_completion(
            CompletedTurn(
                request=request,
                request_id=request_id,
                answer=answer,
                sources=tuple(context.sources),
                intent=intent.intent,
                chunk_count=len(context.items),
                document_count=context.document_count,
                system_prompt_length=len(context.system_prompt),
                cache_key=cache_key,
            )
        )

    async def _literal_results(
        self, question: str, options: SearchOptions, request_id: str
    ) -> tuple[RetrievalCandidate, ...] | None:
        try:
            literal = await self.retriever.search(question, options)
        except RetrievalError as e:
            logger.warning(f"Request {request_id}: literal search failed: {e.message}")
            return None
        return literal.results

    async def _generate(
        self,
        request: QueryRequest,
        request_id: str,
        intent: IntentResult,
        system_prompt: str,
        sources: list[Source],
        channel: EventChannel,
    ) -> str | None:
        """Stream the answer; returns None when generation failed."""
        parts: list[str] = []
        timeout = self.settings.generation.first_token_timeout
        try:
            async with aclosing(self.generator.generate_stream(system_prompt, request.question)) as stream:
                while True:
                    try:
                        token = await asyncio.wait_for(anext(stream), timeout=timeout)
                    except StopAsyncIteration:
                        break
                    timeout = self.settings.generation.token_timeout
                    if token:
                        parts.append(token)
                        await channel.send(ChunkEvent(content=token))
        except asyncio.CancelledError:
            if parts:
                self.post_processor.persist_incomplete(request, "".join(parts), sources, intent.intent)
            raise
        except asyncio.TimeoutError:
            logger.error(f"Request {request_id}: generation timed out after {len(parts)} chunks")
            await channel.send(ErrorEvent(message=GENERATION_TIMEOUT_MESSAGE))
            return None
        except GenerationError as e:
            logger.error(f"Request {request_id}: generation failed: {e.message}")
            await channel.send(ErrorEvent(message=GENERATION_FAILED_MESSAGE))
            return None

        return "".join(parts)

    async def _generate_document(
        self, request: QueryRequest, intent: IntentResult, answer: str, channel: EventChannel
    ) -> None:
        content = request.last_answer or answer
        document_format = intent.document_format or DocumentFormat.PDF
        try:
            document = await self.document_generator.generate(content, document_format, request.question[:60])
        except Exception as e:
            logger.error(f"Document generation failed: {e}", exc_info=True)
            await channel.send(DocumentErrorEvent(message=f"Failed to generate {document_format.value} document"))
            return
        await channel.send(
            DocumentEvent(url=document.url, filename=document.filename, format=document.format.value)
        )

    async def _stream_cached(self, value: dict, channel: EventChannel) -> None:
        await channel.send(
            SourcesEvent(
                sources=value.get("sources", []),
                chunk_count=value.get("chunkCount", 0),
                document_count=value.get("documentCount", 0),
                cached=True,
            )
        )
        await channel.send(ChunkEvent(content=value["answer"]))
        await channel.send(CompleteEvent(content=value["answer"], cached=True))

    async def _stream_clarification(
        self,
        request: QueryRequest,
        intent: IntentResult,
        decision: ClarificationDecision,
        channel: EventChannel,
    ) -> None:
        logger.info(f"Asking for clarification ({decision.type.value}): {decision.reasoning}")
        await self._stream_message(
            channel,
            decision.message or "",
            clarification=True,
            suggestions=decision.suggested_refinements,
        )
        self.post_processor.record_exchange(request, decision.message or "", intent.intent)

    @staticmethod
    async def _stream_message(
        channel: EventChannel,
        message: str,
        clarification: bool = False,
        refusal: bool = False,
        suggestions=(),
    ) -> None:
        await channel.send(SourcesEvent())
        await channel.send(ChunkEvent(content=message))
        await channel.send(
            CompleteEvent(
                content=message,
                clarification=clarification,
                refusal=refusal,
                suggestions=list(suggestions),
            )
        )
