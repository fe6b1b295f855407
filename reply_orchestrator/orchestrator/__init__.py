"""
Orchestrator Module
Intent classification, knowledge retrieval, grounded response generation,
confidence scoring, escalation and knowledge extraction.

Components:
- Orchestrator (orchestrator.py): composes the pipeline
- IntentClassifier, KnowledgeRetriever, ResponseGenerator
- evaluate_confidence: deterministic scoring
- EscalationManager: clarification ticket lifecycle
- KnowledgeExtractor: learns from seller replies
"""

from reply_orchestrator.orchestrator.errors import (
    BackendError,
    GenerationError,
    InteractionNotFoundError,
    MalformedOutputError,
    OrchestratorError,
    PersistenceError,
    SchemaValidationError,
    ToolArgumentError,
)
from reply_orchestrator.orchestrator.types import (
    ClarificationTicketInput,
    ConversationTurn,
    ExtractedKnowledge,
    Intent,
    IntentResult,
    InteractionBundle,
    KnowledgeType,
    OrchestratorResponse,
    OrchestratorResult,
    ResolutionOutcome,
    RetrievedKnowledge,
    SuggestedAction,
    YesNoIntent,
)

__all__ = [
    # Errors
    "OrchestratorError",
    "GenerationError",
    "BackendError",
    "MalformedOutputError",
    "SchemaValidationError",
    "PersistenceError",
    "InteractionNotFoundError",
    "ToolArgumentError",

    # Types
    "ClarificationTicketInput",
    "ConversationTurn",
    "ExtractedKnowledge",
    "Intent",
    "IntentResult",
    "InteractionBundle",
    "KnowledgeType",
    "OrchestratorResponse",
    "OrchestratorResult",
    "ResolutionOutcome",
    "RetrievedKnowledge",
    "SuggestedAction",
    "YesNoIntent",
]
