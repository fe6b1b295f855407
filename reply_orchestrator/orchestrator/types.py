"""
Orchestrator Types

Structures the LLM produces are pydantic models; the system validates
them before acting on them. Transient in-process values are dataclasses.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from reply_orchestrator.services.base import ToolCall
from reply_orchestrator.storage.models import CustomerRecord, WorkspaceContext


class Intent(str, Enum):
    """Closed set of customer intents."""
    PRODUCT_INQUIRY = "product_inquiry"
    PRICE_CHECK = "price_check"
    DELIVERY_QUESTION = "delivery_question"
    NEGOTIATION = "negotiation"
    ORDER_INTENT = "order_intent"
    APPOINTMENT_REQUEST = "appointment_request"
    CALL_REQUEST = "call_request"
    COMPLAINT = "complaint"
    GREETING = "greeting"
    GRATITUDE = "gratitude"
    UNKNOWN = "unknown"


class SuggestedAction(str, Enum):
    """System-level actions the generator may suggest."""
    ORDER_INTENT = "order_intent"
    APPOINTMENT_REQUEST = "appointment_request"
    CALL_REQUEST = "call_request"
    ESCALATE_TO_HUMAN = "escalate_to_human"
    NO_ACTION = "no_action"


class KnowledgeType(str, Enum):
    """Types of knowledge extracted from free text."""
    PRICING_RULE = "pricing_rule"
    DELIVERY_RULE = "delivery_rule"
    PRODUCT_VARIANT = "product_variant"
    FAQ = "faq"
    NEGOTIATION_RULE = "negotiation_rule"
    POLICY = "policy"
    GENERAL = "general"


class YesNoIntent(str, Enum):
    YES = "yes"
    NO = "no"
    UNKNOWN = "unknown"


class ResolutionOutcome(str, Enum):
    """Result of resolving a clarification ticket."""
    RESOLVED = "resolved"
    ALREADY_RESOLVED = "already_resolved"
    NOT_FOUND = "not_found"


# ===== Conversation =====

@dataclass(frozen=True)
class ConversationTurn:
    """One turn of conversation history."""
    role: Literal["user", "assistant", "system"]
    content: str


# ===== Intent Classification =====

class IntentResult(BaseModel):
    """Classified intent of a customer message."""
    model_config = ConfigDict(frozen=True)

    intent: Intent
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: Optional[str] = None


class YesNoResult(BaseModel):
    intent: YesNoIntent


# ===== Knowledge Retrieval =====

@dataclass(frozen=True)
class RetrievedKnowledge:
    """A knowledge item ranked for the current message."""
    id: str
    name: str
    content: Optional[str]
    category: Optional[str]
    metadata: Dict[str, Any]
    similarity: float
    source_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "content": self.content,
            "category": self.category,
            "metadata": self.metadata,
            "similarity": self.similarity,
            "source_id": self.source_id
        }


# ===== Response Generation =====

class OrchestratorResponse(BaseModel):
    """
    Structured reply produced by the response generator.

    Field aliases are camelCase because the model is prompted with that
    JSON shape.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    reply: str
    intent: Intent
    confidence: float = Field(ge=0.0, le=1.0)
    used_knowledge_ids: List[str] = Field(default_factory=list, alias="usedKnowledgeIds")
    detected_categories: List[str] = Field(default_factory=list, alias="detectedCategories")
    needs_clarification: bool = Field(default=False, alias="needsClarification")
    suggested_actions: List[SuggestedAction] = Field(
        default_factory=lambda: [SuggestedAction.NO_ACTION],
        alias="suggestedActions"
    )
    tool_calls: Optional[List[ToolCall]] = Field(default=None, alias="toolCalls")


# ===== Confidence Evaluation =====

@dataclass(frozen=True)
class ConfidenceSignals:
    """Inputs to the final confidence score."""
    intent_confidence: float
    self_reported_confidence: float
    knowledge_coverage: float
    knowledge_item_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "intent_confidence": self.intent_confidence,
            "self_reported_confidence": self.self_reported_confidence,
            "knowledge_coverage": self.knowledge_coverage,
            "knowledge_item_count": self.knowledge_item_count
        }


@dataclass(frozen=True)
class ConfidenceResult:
    final_confidence: float
    should_escalate: bool
    signals: ConfidenceSignals


# ===== Escalation =====

@dataclass
class ClarificationTicketInput:
    """Payload for opening a clarification ticket."""
    workspace_id: str
    interaction_id: str
    customer_message: str
    detected_intent: Intent
    customer_id: Optional[str] = None
    conversation_context: Optional[Dict[str, Any]] = None


# ===== Knowledge Extraction =====

class ExtractedKnowledgeItem(BaseModel):
    """One knowledge candidate as returned by the extraction call."""
    model_config = ConfigDict(populate_by_name=True)

    type: KnowledgeType
    name: str = Field(min_length=1)
    content: str = Field(min_length=1)
    metadata: Optional[Dict[str, Any]] = Field(default=None, alias="meta")
    confidence: float = Field(ge=0.0, le=1.0)


class KnowledgeExtractionResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    knowledge_items: List[ExtractedKnowledgeItem] = Field(alias="knowledgeItems")


@dataclass
class ExtractedKnowledge:
    """A knowledge candidate that was persisted."""
    type: KnowledgeType
    name: str
    content: str
    confidence: float
    needs_seller_confirmation: bool
    metadata: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "name": self.name,
            "content": self.content,
            "metadata": self.metadata,
            "confidence": self.confidence,
            "needs_seller_confirmation": self.needs_seller_confirmation
        }


# ===== Orchestrator =====

@dataclass
class InteractionBundle:
    """An interaction pre-loaded with its workspace, post and customer."""
    id: str
    workspace_id: str
    content: str
    source_id: Optional[str] = None
    author_id: Optional[str] = None
    workspace: Optional[WorkspaceContext] = None
    post: Optional[Dict[str, Any]] = None
    customer: Optional[CustomerRecord] = None


@dataclass
class OrchestratorResult:
    """Structured outcome of one pipeline run. The caller performs all side effects."""
    reply: str
    intent: Intent
    confidence: float
    used_knowledge_ids: List[str]
    detected_categories: List[str]
    needs_clarification: bool
    should_escalate: bool
    suggested_actions: List[SuggestedAction]
    confidence_signals: ConfidenceSignals
    escalation_question: Optional[str] = None
    tool_calls: Optional[List[ToolCall]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reply": self.reply,
            "intent": self.intent.value,
            "confidence": self.confidence,
            "used_knowledge_ids": self.used_knowledge_ids,
            "detected_categories": self.detected_categories,
            "needs_clarification": self.needs_clarification,
            "should_escalate": self.should_escalate,
            "suggested_actions": [a.value for a in self.suggested_actions],
            "confidence_signals": self.confidence_signals.to_dict(),
            "escalation_question": self.escalation_question,
            "tool_calls": [tc.model_dump() for tc in self.tool_calls] if self.tool_calls else None
        }
