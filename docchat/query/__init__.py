"""Query resolution pipeline module."""

from .clarification import ClarificationAnalyzer
from .context import build_prompt_context
from .intent import IntentClassifier
from .models import (
    ClarificationDecision,
    ClarificationType,
    ConversationTurn,
    IntentResult,
    QualityAssessment,
    QueryIntent,
    QueryRequest,
    RetrievalCandidate,
    ScoredChunk,
    SearchOptions,
    SearchResult,
    SearchStrategy,
    Source,
)
from .quality import QualityGate
from .retriever import HybridRetriever
from .rewriter import QueryRewriter

__all__ = [
    "ClarificationAnalyzer",
    "ClarificationDecision",
    "ClarificationType",
    "ConversationTurn",
    "HybridRetriever",
    "IntentClassifier",
    "IntentResult",
    "QualityAssessment",
    "QualityGate",
    "QueryIntent",
    "QueryRequest",
    "QueryRewriter",
    "RetrievalCandidate",
    "ScoredChunk",
    "SearchOptions",
    "SearchResult",
    "SearchStrategy",
    "Source",
    "build_prompt_context",
]
