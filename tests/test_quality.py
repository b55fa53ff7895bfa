"""Tests for the quality gate."""

import pytest

from docchat.query.models import QueryIntent
from docchat.query.quality import QualityGate, thresholds_for


@pytest.fixture
def gate():
    return QualityGate()


class TestQualityGate:
    def test_thresholds_by_intent(self):
        assert thresholds_for(QueryIntent.SYNTHESIZE_FROM_DOCS).confidence == 0.35
        assert thresholds_for(QueryIntent.BASIC_FACTUAL).top_score == 0.45
        assert thresholds_for(QueryIntent.RETRIEVE_FROM_DOCS).confidence == 0.70
        assert thresholds_for(QueryIntent.GENERATE_DOCUMENT).top_score == 0.55

    @pytest.mark.parametrize(
        "confidence,top_score,is_low",
        [
            (0.36, 0.1, False),
            (0.34, 0.41, False),
            (0.34, 0.39, True),
        ],
    )
    def test_synthesis_needs_either_signal(self, gate, confidence, top_score, is_low):
        assessment = gate.evaluate(5, confidence, top_score, QueryIntent.SYNTHESIZE_FROM_DOCS, False)

        assert assessment.is_low is is_low

    def test_default_thresholds(self, gate):
        assert gate.evaluate(5, 0.69, 0.54, QueryIntent.RETRIEVE_FROM_DOCS, False).is_low
        assert not gate.evaluate(5, 0.70, 0.54, QueryIntent.RETRIEVE_FROM_DOCS, False).is_low

    def test_near_zero_confidence_is_always_low(self, gate):
        assert gate.evaluate(5, 0.1, 0.9, QueryIntent.BASIC_FACTUAL, False).is_low

    def test_empty_context_is_low(self, gate):
        assert gate.evaluate(0, 0.9, 0.9, QueryIntent.BASIC_FACTUAL, False).is_low

    def test_transform_with_prior_answer_overrides(self, gate):
        assessment = gate.evaluate(0, 0.0, 0.0, QueryIntent.TRANSFORM_PRIOR_ARTIFACT, True)

        assert assessment.is_low
        assert assessment.allow_override
        assert not assessment.refuse

    def test_transform_without_prior_answer_refuses(self, gate):
        assert gate.evaluate(0, 0.0, 0.0, QueryIntent.TRANSFORM_PRIOR_ARTIFACT, False).refuse

    def test_document_request_is_not_overridable(self, gate):
        assessment = gate.evaluate(0, 0.0, 0.0, QueryIntent.GENERATE_DOCUMENT, True)

        assert not assessment.allow_override
        assert assessment.refuse

    def test_good_retrieval_does_not_refuse(self, gate):
        assert not gate.evaluate(3, 0.8, 0.8, QueryIntent.RETRIEVE_FROM_DOCS, False).refuse
