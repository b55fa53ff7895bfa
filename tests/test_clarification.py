"""Tests for the clarification decision."""

import pytest

from docchat.query.clarification import (
    CLARIFICATION_CLOSINGS,
    ClarificationAnalyzer,
    is_gibberish,
    pre_filter_reason,
    top_id_overlap,
)
from docchat.query.models import ClarificationType, ConversationTurn, SearchStrategy

from tests.fakes import candidate

RESULTS = (
    candidate("a", 0.3, document_id="doc-1", title="Employee Handbook"),
    candidate("b", 0.25, document_id="doc-2", title="Benefits Guide"),
    candidate("c", 0.2, document_id="doc-1", title="Employee Handbook"),
)
HISTORY = (ConversationTurn(question="How many vacation days do contractors get?", answer="Ten days."),)


@pytest.fixture
def analyzer():
    return ClarificationAnalyzer()


def analyze(analyzer, question, confidence, results=RESULTS, history=(), was_rewritten=False, literal=None):
    return analyzer.analyze(
        question,
        results,
        confidence,
        SearchStrategy.HYBRID,
        history,
        was_rewritten,
        literal,
    )


class TestFilters:
    @pytest.mark.parametrize(
        "question,reason",
        [
            ("?", "too short"),
            ("x" * 1501, "too long"),
            ("!!!???###", "mostly symbols"),
            ("helllllo there", "repeated characters"),
        ],
    )
    def test_pre_filter(self, question, reason):
        assert pre_filter_reason(question) == reason

    def test_pre_filter_passes_normal_question(self):
        assert pre_filter_reason("What is the PTO policy?") is None

    @pytest.mark.parametrize("text", ["asdfgh", "qwerty", "xkcdqz", "zzzz", "bcdfghjk"])
    def test_gibberish(self, text):
        assert is_gibberish(text)

    @pytest.mark.parametrize("text", ["vacation policy", "What is the capital of nowhere?", "leave"])
    def test_not_gibberish(self, text):
        assert not is_gibberish(text)

    def test_top_id_overlap(self):
        assert top_id_overlap([], []) == 1.0
        assert top_id_overlap(RESULTS, RESULTS) == 1.0
        assert top_id_overlap(RESULTS[:2], RESULTS[1:]) == pytest.approx(1 / 3)


class TestClarificationAnalyzer:
    """Test the decision order."""

    def test_confidence_at_threshold_needs_no_clarification(self, analyzer):
        decision = analyze(analyzer, "benefits", 0.35)

        assert not decision.needs_clarification
        assert decision.type == ClarificationType.NONE

    def test_confidence_just_below_threshold(self, analyzer):
        decision = analyze(analyzer, "benefits", 0.3499)

        assert decision.needs_clarification

    def test_unanswerable_question_is_nonsensical(self, analyzer):
        decision = analyze(analyzer, "What is the capital of nowhere?", 0.0, results=())

        assert decision.needs_clarification
        assert decision.type == ClarificationType.NONSENSICAL
        assert "capital of nowhere" in decision.message

    def test_near_zero_with_history_is_not_nonsensical(self, analyzer):
        decision = analyze(analyzer, "What about the parental leave policy for interns?", 0.0, history=HISTORY)

        assert decision.type != ClarificationType.NONSENSICAL

    def test_gibberish_is_nonsensical(self, analyzer):
        decision = analyze(analyzer, "asdfgh", 0.2, history=HISTORY)

        assert decision.type == ClarificationType.NONSENSICAL
        assert "gibberish" in decision.reasoning

    def test_reply_to_clarification_passes(self, analyzer):
        history = (
            ConversationTurn(
                question="benefits",
                answer=f"Your question could point in a few directions.\n\n{CLARIFICATION_CLOSINGS[0]}",
            ),
        )

        assert not analyze(analyzer, "practical", 0.1, history=history).needs_clarification
        assert not analyze(analyzer, "the second one", 0.1, history=history).needs_clarification

    def test_reply_needs_a_clarification_prompt(self, analyzer):
        decision = analyze(analyzer, "practical", 0.1, history=HISTORY)

        assert decision.needs_clarification

    def test_rewrite_that_changes_results_is_ambiguous(self, analyzer):
        literal = tuple(candidate(f"x{i}", 0.2, document_id=f"doc-{i + 5}") for i in range(3))

        decision = analyze(
            analyzer,
            "What about the parental leave policy for interns?",
            0.2,
            history=HISTORY,
            was_rewritten=True,
            literal=literal,
        )

        assert decision.type == ClarificationType.AMBIGUOUS
        assert "overlap 0.00" in decision.reasoning

    def test_rewrite_with_stable_results_is_low_confidence(self, analyzer):
        decision = analyze(
            analyzer,
            "What about the parental leave policy for interns?",
            0.2,
            history=HISTORY,
            was_rewritten=True,
            literal=RESULTS,
        )

        assert decision.type == ClarificationType.LOW_CONFIDENCE

    def test_generic_question_lists_documents(self, analyzer):
        decision = analyze(analyzer, "benefits", 0.2)

        assert decision.type == ClarificationType.AMBIGUOUS
        assert "• Employee Handbook\n• Benefits Guide" in decision.message
        assert decision.message.endswith(CLARIFICATION_CLOSINGS[0])
        assert decision.suggested_refinements == ("Focus on Employee Handbook", "Focus on Benefits Guide")

    def test_generic_question_without_results(self, analyzer):
        decision = analyze(analyzer, "benefits", 0.2, results=())

        assert decision.type == ClarificationType.AMBIGUOUS
        assert decision.message.endswith(CLARIFICATION_CLOSINGS[1])

    def test_question_already_asked_is_generic(self, analyzer):
        decision = analyze(analyzer, "vacation days for contractors?", 0.2, history=HISTORY)

        assert decision.type == ClarificationType.AMBIGUOUS

    def test_specific_question_is_low_confidence(self, analyzer):
        decision = analyze(analyzer, "How many vacation days carry over into next year?", 0.2)

        assert decision.type == ClarificationType.LOW_CONFIDENCE
        assert "The closest matches were: Employee Handbook, Benefits Guide." in decision.message
        assert decision.message.endswith(CLARIFICATION_CLOSINGS[2])

    def test_deterministic(self, analyzer):
        first = analyze(analyzer, "benefits", 0.2, history=HISTORY)
        second = analyze(analyzer, "benefits", 0.2, history=HISTORY)

        assert first == second
