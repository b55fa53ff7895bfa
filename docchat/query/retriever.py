"""Hybrid semantic + lexical retrieval with score fusion."""

import asyncio
import logging
from typing import TYPE_CHECKING

from docchat.config import RetrievalSettings
from docchat.errors import RetrievalError
from docchat.llm.base import LLMProvider

from .models import (
    QueryIntent,
    RetrievalCandidate,
    ScoredChunk,
    SearchOptions,
    SearchResult,
    SearchStrategy,
)

if TYPE_CHECKING:
    from docchat.search.base import LexicalIndex, VectorIndex

logger = logging.getLogger(__name__)

NO_RESULTS_SUGGESTION = "Try rephrasing your question or using different keywords"
SHORT_QUERY_SUGGESTION = "Try adding more specific terms to your question"
INCOMPLETE_QUESTION_SUGGESTION = "Consider rephrasing as a complete question"


def query_suggestions(query: str) -> list[str]:
    """Hints for improving a query, independent of its results."""
    suggestions = []
    lowered = query.lower()
    if len(query) < 10:
        suggestions.append(SHORT_QUERY_SUGGESTION)
    if "?" not in lowered and ("what" in lowered or "how" in lowered):
        suggestions.append(INCOMPLETE_QUESTION_SUGGESTION)
    return suggestions


def search_confidence(results: list[RetrievalCandidate]) -> float:
    """Confidence from the top fused score and its lead over rank 2.

    A clear winner keeps most of its score; a tie between the top two scales
    it down to 60%. Empty results always give 0.
    """
    if not results:
        return 0.0
    top = results[0].fused_score
    if top <= 0:
        return 0.0
    second = results[1].fused_score if len(results) > 1 else 0.0
    gap = (top - second) / top
    return min(1.0, top * (0.6 + 0.4 * gap))


def diversify(candidates: list[RetrievalCandidate], max_per_document: int) -> list[RetrievalCandidate]:
    """Keep at most ``max_per_document`` chunks from any one document, order preserved."""
    counts: dict[str, int] = {}
    diversified = []
    for candidate in candidates:
        seen = counts.get(candidate.document_id, 0)
        if seen < max_per_document:
            diversified.append(candidate)
            counts[candidate.document_id] = seen + 1
    return diversified


class HybridRetriever:
    """Runs semantic and lexical search concurrently and fuses the rankings."""

    def __init__(
        self,
        embedder: LLMProvider,
        vector_index: "VectorIndex",
        lexical_index: "LexicalIndex",
        settings: RetrievalSettings | None = None,
    ) -> None:
        """Initialize hybrid retriever.

        Args:
            embedder: Provider used to embed the query text
            vector_index: Semantic search backend
            lexical_index: Keyword search backend
            settings: Fusion weights, floors and limits
        """
        self.embedder = embedder
        self.vector_index = vector_index
        self.lexical_index = lexical_index
        self.settings = settings or RetrievalSettings()

    def weights_for(self, intent: QueryIntent) -> tuple[float, float]:
        """(semantic, lexical) weights for an intent."""
        if intent == QueryIntent.BASIC_FACTUAL:
            return self.settings.factual_semantic_weight, self.settings.factual_lexical_weight
        return self.settings.semantic_weight, self.settings.lexical_weight

    async def search(self, query: str, options: SearchOptions | None = None) -> SearchResult:
        """Search both backends and fuse the results.

        Args:
            query: Search text (possibly rewritten)
            options: Intent and optional top-K override

        Returns:
            SearchResult sorted by fused score

        Raises:
            RetrievalError: If both backends fail
        """
        options = options or SearchOptions()
        top_k = options.top_k or self.settings.top_k
        semantic_weight, lexical_weight = self.weights_for(options.intent)

        semantic_outcome, lexical_outcome = await asyncio.gather(
            self._with_timeout(self._semantic_search(query)),
            self._with_timeout(self.lexical_index.search(query, self.settings.candidate_pool)),
            return_exceptions=True,
        )

        semantic_failed = isinstance(semantic_outcome, BaseException)
        lexical_failed = isinstance(lexical_outcome, BaseException)

        if semantic_failed and lexical_failed:
            logger.error(
                f"Both search backends failed for query {query[:50]!r}: "
                f"semantic={semantic_outcome!r}, lexical={lexical_outcome!r}"
            )
            raise RetrievalError("Search is unavailable", causes=[semantic_outcome, lexical_outcome])
        if semantic_failed:
            logger.warning(f"Semantic search failed, using lexical results only: {semantic_outcome!r}")
            semantic_outcome = []
        if lexical_failed:
            logger.warning(f"Lexical search failed, using semantic results only: {lexical_outcome!r}")
            lexical_outcome = []

        semantic_hits = [c for c in semantic_outcome if c.score >= self.settings.min_semantic_score]
        lexical_hits = [c for c in lexical_outcome if c.score >= self.settings.min_lexical_score]

        fused = self._fuse(semantic_hits, lexical_hits, semantic_weight, lexical_weight)
        fused.sort(key=lambda c: (-c.fused_score, c.id))
        results = diversify(fused, self.settings.max_per_document)[:top_k]

        strategy = self._strategy(results, semantic_failed, lexical_failed)
        suggestions = query_suggestions(query)
        if not results:
            suggestions.insert(0, NO_RESULTS_SUGGESTION)

        confidence = search_confidence(results)
        logger.info(
            f"Hybrid search results: {len(semantic_hits)} semantic + {len(lexical_hits)} keyword "
            f"= {len(results)} fused ({strategy.value}, confidence {confidence:.2f})"
        )

        return SearchResult(
            results=tuple(results),
            search_strategy=strategy,
            confidence=confidence,
            suggestions=tuple(suggestions),
            weights=(semantic_weight, lexical_weight),
        )

    async def _semantic_search(self, query: str) -> list[ScoredChunk]:
        embedding = await self.embedder.generate_embedding(query)
        return await self.vector_index.query(embedding.embedding, self.settings.candidate_pool)

    async def _with_timeout(self, coro):
        return await asyncio.wait_for(coro, timeout=self.settings.backend_timeout)

    @staticmethod
    def _fuse(
        semantic_hits: list[ScoredChunk],
        lexical_hits: list[ScoredChunk],
        semantic_weight: float,
        lexical_weight: float,
    ) -> list[RetrievalCandidate]:
        merged: dict[str, dict] = {}
        for chunk, field in [(c, "semantic_score") for c in semantic_hits] + [
            (c, "lexical_score") for c in lexical_hits
        ]:
            entry = merged.setdefault(
                chunk.id,
                {
                    "id": chunk.id,
                    "document_id": chunk.document_id,
                    "document_title": chunk.document_title,
                    "document_author": chunk.document_author,
                    "content": chunk.content,
                    "semantic_score": 0.0,
                    "lexical_score": 0.0,
                },
            )
            # A backend may return the same chunk twice; keep its best score.
            entry[field] = max(entry[field], chunk.score)

        candidates = []
        for entry in merged.values():
            fused_score = semantic_weight * entry["semantic_score"] + lexical_weight * entry["lexical_score"]
            if fused_score <= 0:
                continue
            candidates.append(RetrievalCandidate(fused_score=fused_score, **entry))
        return candidates

    @staticmethod
    def _strategy(
        results: list[RetrievalCandidate],
        semantic_failed: bool,
        lexical_failed: bool,
    ) -> SearchStrategy:
        if results:
            has_semantic = any(c.semantic_score > 0 for c in results)
            has_lexical = any(c.lexical_score > 0 for c in results)
        else:
            has_semantic = not semantic_failed
            has_lexical = not lexical_failed

        if has_semantic and has_lexical:
            return SearchStrategy.HYBRID
        if has_lexical:
            return SearchStrategy.KEYWORD_ONLY
        return SearchStrategy.SEMANTIC_ONLY
