"""Clarification decision: when to ask the user instead of answering."""

import logging
import re
from collections.abc import Sequence

from docchat.config import ClarificationSettings

from .lexical import query_terms
from .models import (
    ClarificationDecision,
    ClarificationType,
    ConversationTurn,
    RetrievalCandidate,
    SearchStrategy,
)

logger = logging.getLogger(__name__)

STOPWORDS = frozenset(
    {
        "the", "and", "for", "are", "but", "not", "you", "all", "any", "can", "had", "her", "was",
        "one", "our", "out", "has", "have", "his", "how", "its", "who", "what", "when", "where",
        "why", "which", "this", "that", "these", "those", "with", "from", "they", "them", "their",
        "there", "about", "would", "could", "should", "does", "did", "will", "into", "than",
        "then", "some", "more", "tell", "explain", "describe", "please", "give", "show", "also",
        "just", "like", "want", "know", "get", "use", "used", "been", "being", "your", "yours",
    }
)

# Closings appended to every clarification prompt. They double as the
# markers used to recognise a reply to one of our own prompts.
CLARIFICATION_CLOSINGS = (
    "Which direction interests you most?",
    "What aspect would you like me to focus on?",
    "Which would be most helpful for your situation?",
)

_KEYBOARD_ROWS = (
    re.compile(r"^[qwertyuiop]+$"),
    re.compile(r"^[asdfghjkl]+$"),
    re.compile(r"^[zxcvbnm]+$"),
)
_REPEATED_RUN = re.compile(r"(.)\1{4,}")
_WHOLE_REPEAT = re.compile(r"^(.)\1{3,}$")
_CONSONANT_MASH = re.compile(r"^[bcdfghjklmnpqrstvwxyz]*[aeiou]?[bcdfghjklmnpqrstvwxyz]{3,}[bcdfghjklmnpqrstvwxyz]+$")
_CONSONANT_CLUSTER = re.compile(r"[bcdfghjklmnpqrstvwxyz]{2,}")
_VOWEL = re.compile(r"[aeiou]")
_NON_ALNUM = re.compile(r"[^a-zA-Z0-9\s]")

_SPECIFIC_PATTERNS = (
    re.compile(r"how to\s+\w+", re.IGNORECASE),
    re.compile(r"what is the\s+\w+", re.IGNORECASE),
    re.compile(r"\w+\s+(process|method|steps)", re.IGNORECASE),
    re.compile(r"difference between", re.IGNORECASE),
    re.compile(r"types of\s+\w+", re.IGNORECASE),
)

_REPLY_TERMS = (
    "practical", "step-by-step", "instructions", "how to", "background", "context", "history",
    "overview", "general", "details", "detailed", "examples", "approach", "perspective",
    "aspect", "angle", "focus", "guidance", "application",
)


def pre_filter_reason(question: str) -> str | None:
    """Reason a question is rejected outright, or None if it passes."""
    trimmed = question.strip()
    if len(trimmed) < 2:
        return "too short"
    if len(trimmed) > 1500:
        return "too long"
    if len(_NON_ALNUM.findall(trimmed)) / len(trimmed) > 0.6:
        return "mostly symbols"
    if _REPEATED_RUN.search(trimmed):
        return "repeated characters"
    return None


def is_gibberish(question: str) -> bool:
    """Detect keyboard mashing and vowel-less strings."""
    trimmed = question.strip().lower()
    if len(trimmed) < 3:
        return False

    if len(trimmed) > 4 and not _VOWEL.search(trimmed):
        return True

    if len(trimmed) > 6:
        clusters = len(_CONSONANT_CLUSTER.findall(trimmed))
        vowels = len(_VOWEL.findall(trimmed))
        if clusters >= 2 and vowels <= 1:
            return True

    if any(pattern.match(trimmed) for pattern in _KEYBOARD_ROWS):
        return True
    return bool(_WHOLE_REPEAT.match(trimmed) or _CONSONANT_MASH.match(trimmed))


def content_terms(text: str) -> set[str]:
    return {term for term in query_terms(text) if term not in STOPWORDS}


def top_id_overlap(a: Sequence[RetrievalCandidate], b: Sequence[RetrievalCandidate], k: int = 5) -> float:
    """Jaccard overlap of the top-``k`` candidate ids. Two empty sets overlap fully."""
    ids_a = {c.id for c in a[:k]}
    ids_b = {c.id for c in b[:k]}
    union = ids_a | ids_b
    if not union:
        return 1.0
    return len(ids_a & ids_b) / len(union)


class ClarificationAnalyzer:
    """Decides whether a weak result set warrants a clarifying question.

    Deterministic: identical inputs always produce an identical decision.
    Messages are built from fixed templates around the question and the
    titles of the top documents.
    """

    def __init__(self, settings: ClarificationSettings | None = None) -> None:
        self.settings = settings or ClarificationSettings()

    def analyze(
        self,
        question: str,
        results: Sequence[RetrievalCandidate],
        confidence: float,
        strategy: SearchStrategy,
        history: Sequence[ConversationTurn],
        was_rewritten: bool,
        literal_results: Sequence[RetrievalCandidate] | None = None,
    ) -> ClarificationDecision:
        """Analyze a retrieval outcome.

        Args:
            question: Literal user question
            results: Ranked candidates for the (possibly rewritten) search text
            confidence: Search confidence
            strategy: Which signals produced the results
            history: Prior turns, newest first
            was_rewritten: Whether the search text differs from the question
            literal_results: Results for the literal question, when it was rewritten

        Returns:
            ClarificationDecision
        """
        if confidence >= self.settings.low_confidence_threshold:
            return ClarificationDecision.none(confidence, "Confidence is above the clarification threshold")

        if self._is_reply_to_clarification(question, history):
            return ClarificationDecision.none(confidence, "Question answers a recent clarification prompt")

        rejection = pre_filter_reason(question)
        if rejection or is_gibberish(question):
            return self._nonsensical(question, confidence, f"Question rejected: {rejection or 'gibberish'}")

        if confidence <= self.settings.near_zero_confidence and not history:
            return self._nonsensical(
                question, confidence, f"No relevant content found ({strategy.value}) and no conversation to draw on"
            )

        if was_rewritten and literal_results is not None:
            overlap = top_id_overlap(results, literal_results)
            if overlap < self.settings.rewrite_overlap_threshold:
                return self._ambiguous(
                    question,
                    results,
                    confidence,
                    f"Contextual rewrite changed the results (top-5 overlap {overlap:.2f})",
                    history,
                )

        if self._is_generic(question, history):
            return self._ambiguous(question, results, confidence, "Question is too general to answer reliably", history)

        return self._low_confidence(question, results, confidence)

    def _is_generic(self, question: str, history: Sequence[ConversationTurn]) -> bool:
        terms = content_terms(question)
        if not terms:
            return True

        if history:
            seen: set[str] = set()
            for turn in history:
                seen |= content_terms(turn.question)
            if terms <= seen:
                return True

        is_specific = len(question) > 30 or any(p.search(question) for p in _SPECIFIC_PATTERNS)
        return len(terms) <= self.settings.max_generic_terms and not is_specific

    @staticmethod
    def _is_reply_to_clarification(question: str, history: Sequence[ConversationTurn]) -> bool:
        if not history:
            return False
        last_answer = history[0].answer.lower()
        if not any(closing.lower() in last_answer for closing in CLARIFICATION_CLOSINGS):
            return False

        q = question.lower().strip()
        if any(q == term or q.startswith(term + " ") or q.endswith(" " + term) for term in _REPLY_TERMS):
            return True
        return len(question.split()) <= 3 and len(question) <= 25

    @staticmethod
    def _document_options(results: Sequence[RetrievalCandidate], limit: int = 3) -> list[str]:
        titles: list[str] = []
        for candidate in results:
            if candidate.document_title not in titles:
                titles.append(candidate.document_title)
            if len(titles) == limit:
                break
        return titles

    def _nonsensical(self, question: str, confidence: float, reasoning: str) -> ClarificationDecision:
        logger.info(f"Nonsensical question detected: {question[:50]!r} ({reasoning})")
        message = (
            f'I\'m not sure I understood "{question.strip()}". '
            "Could you rephrase it, or ask about something covered in your documents?"
        )
        return ClarificationDecision(
            needs_clarification=True,
            type=ClarificationType.NONSENSICAL,
            confidence=confidence,
            reasoning=reasoning,
            message=message,
            suggested_refinements=("Use complete words and a full question",),
        )

    def _ambiguous(
        self,
        question: str,
        results: Sequence[RetrievalCandidate],
        confidence: float,
        reasoning: str,
        history: Sequence[ConversationTurn],
    ) -> ClarificationDecision:
        options = self._document_options(results)
        if options:
            listed = "\n".join(f"• {title}" for title in options)
            body = f'Your question "{question.strip()}" could point in a few directions. I found material in:\n{listed}'
            closing = CLARIFICATION_CLOSINGS[0]
        else:
            body = f'Could you tell me a bit more about what you mean by "{question.strip()}"?'
            closing = CLARIFICATION_CLOSINGS[1]

        refinements = [f"Focus on {title}" for title in options]
        if history:
            refinements.append(f"Name the topic directly instead of referring to \"{history[0].question[:60]}\"")

        return ClarificationDecision(
            needs_clarification=True,
            type=ClarificationType.AMBIGUOUS,
            confidence=confidence,
            reasoning=reasoning,
            message=f"{body}\n\n{closing}",
            suggested_refinements=tuple(refinements),
        )

    def _low_confidence(
        self,
        question: str,
        results: Sequence[RetrievalCandidate],
        confidence: float,
    ) -> ClarificationDecision:
        options = self._document_options(results)
        message = (
            f'I found some information related to "{question.strip()}", but I\'m not confident it answers '
            "your question. Could you add more detail about what you're looking for?"
        )
        if options:
            message += "\n\nThe closest matches were: " + ", ".join(options) + "."
        message += f"\n\n{CLARIFICATION_CLOSINGS[2]}"

        return ClarificationDecision(
            needs_clarification=True,
            type=ClarificationType.LOW_CONFIDENCE,
            confidence=confidence,
            reasoning=f"Confidence {confidence:.2f} is below {self.settings.low_confidence_threshold:.2f}",
            message=message,
            suggested_refinements=(
                "Try a more specific question",
                "Include what you already know or what you're trying to accomplish",
            ),
        )
