"""
Confidence Evaluator
Deterministic scoring of a generated reply. No external calls.
"""

import logging
from typing import Sequence

from reply_orchestrator.orchestrator.types import (
    ConfidenceResult,
    ConfidenceSignals,
    IntentResult,
    OrchestratorResponse,
    RetrievedKnowledge,
    SuggestedAction,
)

logger = logging.getLogger(__name__)

CONFIDENCE_THRESHOLD = 0.75

INTENT_WEIGHT = 0.15
SELF_REPORTED_WEIGHT = 0.40
COVERAGE_WEIGHT = 0.35

NO_KNOWLEDGE_PENALTY = 0.5
MULTI_SOURCE_BOOST = 1.1


def knowledge_coverage(retrieved_count: int, cited_count: int) -> float:
    """Step function of how many retrieved items the reply cites."""
    if retrieved_count == 0:
        return 0.0
    if cited_count == 0:
        return 0.2
    if cited_count == 1:
        return 0.6
    return min(1.0, 0.6 + 0.1 * cited_count)


def evaluate_confidence(
    intent_result: IntentResult,
    response: OrchestratorResponse,
    knowledge: Sequence[RetrievedKnowledge],
    threshold: float = CONFIDENCE_THRESHOLD
) -> ConfidenceResult:
    """
    Combine intent, self-reported and coverage signals into a final score.

    Args:
        intent_result: Classifier output
        response: Generator output
        knowledge: Items passed to the generator
        threshold: Escalation threshold

    Returns:
        ConfidenceResult with final score in [0, 1], escalation decision
        and the signal breakdown
    """
    retrieved_ids = {k.id for k in knowledge}
    cited = len({kid for kid in response.used_knowledge_ids if kid in retrieved_ids})
    coverage = knowledge_coverage(len(knowledge), cited)

    signals = ConfidenceSignals(
        intent_confidence=intent_result.confidence,
        self_reported_confidence=response.confidence,
        knowledge_coverage=coverage,
        knowledge_item_count=len(knowledge)
    )

    score = (
        INTENT_WEIGHT * signals.intent_confidence
        + SELF_REPORTED_WEIGHT * signals.self_reported_confidence
        + COVERAGE_WEIGHT * coverage
    )

    if not knowledge:
        score *= NO_KNOWLEDGE_PENALTY

    if cited >= 2:
        score = min(1.0, score * MULTI_SOURCE_BOOST)

    # Hard override: clarification always lands below the threshold
    if response.needs_clarification:
        score = min(score, threshold - 0.01)

    score = max(0.0, min(1.0, score))

    should_escalate = (
        score < threshold
        or response.needs_clarification
        or SuggestedAction.ESCALATE_TO_HUMAN in response.suggested_actions
    )

    logger.debug(
        f"Confidence {score:.3f} (intent={signals.intent_confidence:.2f}, "
        f"self={signals.self_reported_confidence:.2f}, coverage={coverage:.2f}, "
        f"items={signals.knowledge_item_count}) escalate={should_escalate}"
    )

    return ConfidenceResult(
        final_confidence=score,
        should_escalate=should_escalate,
        signals=signals
    )
