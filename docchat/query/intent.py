"""Lexical intent classification."""

import re

from .models import DocumentFormat, IntentResult, QueryIntent

# Checked in this order; the first format with a production verb wins.
_FORMAT_PATTERNS: tuple[tuple[DocumentFormat, re.Pattern], ...] = (
    (DocumentFormat.PDF, re.compile(r"\b(pdf|portable document)\b", re.IGNORECASE)),
    (
        DocumentFormat.PPTX,
        re.compile(r"\b(powerpoint|ppt|pptx|presentation|slides?|slideshow)\b", re.IGNORECASE),
    ),
    (
        DocumentFormat.XLSX,
        re.compile(r"\b(excel|xlsx?|spreadsheet|workbook|table)\b", re.IGNORECASE),
    ),
)

_PRODUCTION_VERBS = re.compile(
    r"\b(create|make|generate|give me|export|download|save|produce|write|turn.*into|convert.*to)\b",
    re.IGNORECASE,
)

_TRANSFORM_VERBS = re.compile(
    r"\b(add|create|develop|write|make|generate|expand|elaborate|revise|divide|integrate|turn|"
    r"convert|include|incorporate|design|construct|build)\b",
    re.IGNORECASE,
)
_REFERS_TO_PRIOR = re.compile(r"\b(that|this|the outline|the plan|those|these|it|them)\b", re.IGNORECASE)

_SYNTHESIS_CUES = re.compile(
    r"\b(outline|scope|sequence|syllabus|curriculum|framework|weekly|modules?|lesson plan|"
    r"teaching plan|course design)\b",
    re.IGNORECASE,
)

_FACTUAL_OPENERS = re.compile(
    r"^(what is|what's|who is|who's|define|explain|describe|tell me about)\s",
    re.IGNORECASE,
)

PRIOR_ARTIFACT_MIN_LENGTH = 400
SHORT_IMPERATIVE_MAX_WORDS = 6
FACTUAL_MAX_WORDS = 8


def _word_count(text: str) -> int:
    return len(text.split(" "))


class IntentClassifier:
    """Categorises a question by lexical cues.

    Pure and deterministic: the same inputs always give the same result.
    """

    def classify(self, question: str, has_history: bool, last_answer_length: int) -> IntentResult:
        """Classify a question.

        Args:
            question: Literal user question
            has_history: Whether the session has prior turns
            last_answer_length: Length in characters of the latest answer

        Returns:
            IntentResult with the intent and, for document requests, the format
        """
        q = question.lower()

        if _PRODUCTION_VERBS.search(q):
            for document_format, pattern in _FORMAT_PATTERNS:
                if pattern.search(q):
                    return IntentResult(QueryIntent.GENERATE_DOCUMENT, document_format)

        if has_history and last_answer_length > PRIOR_ARTIFACT_MIN_LENGTH:
            is_short_imperative = (
                _word_count(q) <= SHORT_IMPERATIVE_MAX_WORDS and _TRANSFORM_VERBS.search(q) is not None
            )
            if _REFERS_TO_PRIOR.search(q) or is_short_imperative:
                return IntentResult(QueryIntent.TRANSFORM_PRIOR_ARTIFACT)

        if _SYNTHESIS_CUES.search(q):
            return IntentResult(QueryIntent.SYNTHESIZE_FROM_DOCS)

        if _FACTUAL_OPENERS.search(q) and _word_count(q) <= FACTUAL_MAX_WORDS:
            return IntentResult(QueryIntent.BASIC_FACTUAL)

        return IntentResult(QueryIntent.RETRIEVE_FROM_DOCS)
