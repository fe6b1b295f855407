"""
Storage Models - Persistent records owned by a single workspace.
"""

from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional
from datetime import datetime
from enum import Enum
import uuid


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class TicketStatus(str, Enum):
    """Status of a clarification ticket. RESOLVED is terminal."""
    PENDING = "pending"
    RESOLVED = "resolved"


class InteractionStatus(str, Enum):
    """Status of a customer interaction."""
    PENDING = "PENDING"
    PROCESSED = "PROCESSED"
    NEEDS_REVIEW = "NEEDS_REVIEW"
    RESOLVED = "RESOLVED"


@dataclass
class WorkspaceContext:
    """Tenant profile used to personalize replies."""
    id: str
    name: Optional[str] = None
    business_name: Optional[str] = None
    industry: Optional[str] = None
    about: Optional[str] = None
    target_audience: Optional[str] = None
    tone_of_voice: Optional[str] = None
    settings: Dict[str, Any] = field(default_factory=dict)
    platform: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.business_name or self.name or "our business"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "business_name": self.business_name,
            "industry": self.industry,
            "about": self.about,
            "target_audience": self.target_audience,
            "tone_of_voice": self.tone_of_voice,
            "settings": self.settings,
            "platform": self.platform
        }


@dataclass
class KnowledgeItem:
    """A knowledge base entry with its embedding."""
    workspace_id: str
    name: str
    content: Optional[str] = None
    category: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    embedding: Optional[List[float]] = None
    is_verified: bool = True
    source_id: Optional[str] = None
    related_item_ids: List[str] = field(default_factory=list)
    expires_at: Optional[datetime] = None
    id: str = field(default_factory=lambda: _new_id("item"))
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: Optional[datetime] = field(default_factory=datetime.now)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or datetime.now()) >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "name": self.name,
            "content": self.content,
            "category": self.category,
            "metadata": self.metadata,
            "is_verified": self.is_verified,
            "source_id": self.source_id,
            "related_item_ids": self.related_item_ids,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None
        }


@dataclass
class CustomerRecord:
    """A customer of a workspace, with the AI pause flag."""
    workspace_id: str
    id: str = field(default_factory=lambda: _new_id("cust"))
    name: Optional[str] = None
    platform_id: Optional[str] = None
    preferences_summary: Optional[str] = None
    ai_paused: bool = False
    ai_paused_at: Optional[datetime] = None
    inbox_meta: Dict[str, Any] = field(default_factory=dict)
    updated_at: datetime = field(default_factory=datetime.now)


@dataclass
class InteractionRecord:
    """
    A single inbound message and the reply sent for it.

    Escalation notifications are stored as interactions too, with
    source_id "escalation" and status NEEDS_REVIEW.
    """
    workspace_id: str
    content: str
    id: str = field(default_factory=lambda: _new_id("int"))
    source_id: Optional[str] = None
    external_id: Optional[str] = None
    author_id: Optional[str] = None
    author_name: Optional[str] = None
    customer_id: Optional[str] = None
    post_id: Optional[str] = None
    response: Optional[str] = None
    status: InteractionStatus = InteractionStatus.PENDING
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)


@dataclass
class ClarificationTicket:
    """
    A question raised to the seller when the AI was not confident.

    Transitions PENDING -> RESOLVED exactly once.
    """
    workspace_id: str
    interaction_id: str
    customer_message: str
    detected_intent: str
    generated_question: str
    customer_id: Optional[str] = None
    seller_reply: Optional[str] = None
    extracted_knowledge: Optional[List[Dict[str, Any]]] = None
    status: TicketStatus = TicketStatus.PENDING
    id: str = field(default_factory=lambda: _new_id("tkt"))
    created_at: datetime = field(default_factory=datetime.now)
    resolved_at: Optional[datetime] = None

    @property
    def is_resolved(self) -> bool:
        return self.status == TicketStatus.RESOLVED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "interaction_id": self.interaction_id,
            "customer_id": self.customer_id,
            "customer_message": self.customer_message,
            "detected_intent": self.detected_intent,
            "generated_question": self.generated_question,
            "seller_reply": self.seller_reply,
            "extracted_knowledge": self.extracted_knowledge,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None
        }


@dataclass
class FeedbackQueueEntry:
    """Legacy review-queue record mirrored from each ticket for the dashboard."""
    workspace_id: str
    interaction_id: str
    content: str
    items_context: str
    status: str = "PENDING"
    id: str = field(default_factory=lambda: _new_id("fbq"))
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class SystemMessage:
    """Proactive message shown to the seller, attributed to the system."""
    workspace_id: str
    content: str
    role: str = "system"
    id: str = field(default_factory=lambda: _new_id("msg"))
    created_at: datetime = field(default_factory=datetime.now)
