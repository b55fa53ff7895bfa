"""Query pipeline models and data structures."""

from dataclasses import dataclass, field
from enum import Enum


class QueryIntent(str, Enum):
    """What the user is asking the pipeline to do."""

    GENERATE_DOCUMENT = "generate_document"
    TRANSFORM_PRIOR_ARTIFACT = "transform_prior_artifact"
    SYNTHESIZE_FROM_DOCS = "synthesize_from_docs"
    BASIC_FACTUAL = "basic_factual"
    RETRIEVE_FROM_DOCS = "retrieve_from_docs"


class DocumentFormat(str, Enum):
    """Artifact formats the user can request."""

    PDF = "pdf"
    PPTX = "pptx"
    XLSX = "xlsx"


class SearchStrategy(str, Enum):
    """Which ranking signals contributed to a result set."""

    SEMANTIC_ONLY = "semantic_only"
    KEYWORD_ONLY = "keyword_only"
    HYBRID = "hybrid"


class MatchType(str, Enum):
    """Which signal found a single candidate."""

    SEMANTIC = "semantic"
    KEYWORD = "keyword"
    HYBRID = "hybrid"


class ClarificationType(str, Enum):
    """Kinds of clarification decision."""

    AMBIGUOUS = "ambiguous"
    NONSENSICAL = "nonsensical"
    LOW_CONFIDENCE = "low_confidence"
    NONE = "none"


@dataclass(frozen=True)
class ConversationTurn:
    """One prior question/answer exchange."""

    question: str
    answer: str


@dataclass(frozen=True)
class QueryRequest:
    """An admitted question, with history ordered newest first."""

    question: str
    session_id: str
    user_id: str
    conversation_history: tuple[ConversationTurn, ...] = ()

    @property
    def has_history(self) -> bool:
        return bool(self.conversation_history)

    @property
    def last_answer(self) -> str:
        """Most recent assistant answer, or an empty string."""
        if not self.conversation_history:
            return ""
        return self.conversation_history[0].answer


@dataclass(frozen=True)
class IntentResult:
    """Classifier output."""

    intent: QueryIntent
    document_format: DocumentFormat | None = None


@dataclass(frozen=True)
class RewrittenQuery:
    """Search text derived from the literal question."""

    text: str
    was_rewritten: bool


@dataclass(frozen=True)
class ScoredChunk:
    """A single hit returned by a search backend."""

    id: str
    document_id: str
    document_title: str
    content: str
    score: float
    document_author: str | None = None


@dataclass(frozen=True)
class RetrievalCandidate:
    """A chunk after fusion of semantic and lexical scores."""

    id: str
    document_id: str
    document_title: str
    content: str
    semantic_score: float = 0.0
    lexical_score: float = 0.0
    fused_score: float = 0.0
    document_author: str | None = None

    @property
    def matched_by(self) -> MatchType:
        if self.semantic_score > 0 and self.lexical_score > 0:
            return MatchType.HYBRID
        if self.lexical_score > 0:
            return MatchType.KEYWORD
        return MatchType.SEMANTIC


@dataclass(frozen=True)
class SearchOptions:
    """Per-call retrieval options."""

    intent: QueryIntent = QueryIntent.RETRIEVE_FROM_DOCS
    top_k: int | None = None


@dataclass(frozen=True)
class SearchResult:
    """Ranked retrieval output.

    ``confidence`` is 0 exactly when ``results`` is empty.
    """

    results: tuple[RetrievalCandidate, ...]
    search_strategy: SearchStrategy
    confidence: float
    suggestions: tuple[str, ...] = ()
    weights: tuple[float, float] = (0.7, 0.3)

    @property
    def top_score(self) -> float:
        return self.results[0].fused_score if self.results else 0.0

    @property
    def is_empty(self) -> bool:
        return not self.results


@dataclass(frozen=True)
class ClarificationDecision:
    """Whether to ask the user to clarify instead of answering."""

    needs_clarification: bool
    type: ClarificationType
    confidence: float
    reasoning: str
    message: str | None = None
    suggested_refinements: tuple[str, ...] = ()

    @classmethod
    def none(cls, confidence: float, reasoning: str) -> "ClarificationDecision":
        return cls(
            needs_clarification=False,
            type=ClarificationType.NONE,
            confidence=confidence,
            reasoning=reasoning,
        )


@dataclass(frozen=True)
class QualityAssessment:
    """Quality gate verdict."""

    is_low: bool
    allow_override: bool

    @property
    def refuse(self) -> bool:
        return self.is_low and not self.allow_override


@dataclass(frozen=True)
class Source:
    """Source metadata shown to the client."""

    title: str
    chunk_id: str
    document_id: str
    author: str | None = None

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "author": self.author,
            "chunkId": self.chunk_id,
            "documentId": self.document_id,
        }


@dataclass(frozen=True)
class ContextItem:
    """A chunk selected for the generation prompt."""

    title: str
    content: str
    author: str | None = None


@dataclass
class PromptContext:
    """Everything the generator needs for one answer."""

    items: list[ContextItem] = field(default_factory=list)
    sources: list[Source] = field(default_factory=list)
    system_prompt: str = ""

    @property
    def document_count(self) -> int:
        return len({item.title for item in self.items})
