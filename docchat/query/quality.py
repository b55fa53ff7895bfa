"""Final go/no-go check before generation."""

from dataclasses import dataclass

from .models import QualityAssessment, QueryIntent

NEAR_ZERO_CONFIDENCE = 0.1


@dataclass(frozen=True)
class QualityThresholds:
    confidence: float
    top_score: float


_THRESHOLDS = {
    QueryIntent.SYNTHESIZE_FROM_DOCS: QualityThresholds(confidence=0.35, top_score=0.40),
    QueryIntent.BASIC_FACTUAL: QualityThresholds(confidence=0.40, top_score=0.45),
}
_DEFAULT_THRESHOLDS = QualityThresholds(confidence=0.70, top_score=0.55)


def thresholds_for(intent: QueryIntent) -> QualityThresholds:
    return _THRESHOLDS.get(intent, _DEFAULT_THRESHOLDS)


class QualityGate:
    """Decides whether retrieval is good enough to answer from.

    The only override is transforming a non-empty prior answer, which needs
    no retrieval at all.
    """

    def evaluate(
        self,
        context_size: int,
        confidence: float,
        top_score: float,
        intent: QueryIntent,
        has_prior_artifact: bool,
    ) -> QualityAssessment:
        """Evaluate retrieval quality.

        Args:
            context_size: Number of chunks available for the prompt
            confidence: Search confidence
            top_score: Fused score of the best candidate
            intent: Classified intent
            has_prior_artifact: Whether the latest answer is non-empty

        Returns:
            QualityAssessment; ``refuse`` is True when generation must not run
        """
        thresholds = thresholds_for(intent)
        is_low = (
            context_size == 0
            or confidence <= NEAR_ZERO_CONFIDENCE
            or (confidence < thresholds.confidence and top_score < thresholds.top_score)
        )
        allow_override = intent == QueryIntent.TRANSFORM_PRIOR_ARTIFACT and has_prior_artifact
        return QualityAssessment(is_low=is_low, allow_override=allow_override)
