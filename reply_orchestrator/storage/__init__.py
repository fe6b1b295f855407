"""Persistence: knowledge store, repository and record models."""

from reply_orchestrator.storage.models import (
    ClarificationTicket,
    CustomerRecord,
    FeedbackQueueEntry,
    InteractionRecord,
    InteractionStatus,
    KnowledgeItem,
    SystemMessage,
    TicketStatus,
    WorkspaceContext,
)
from reply_orchestrator.storage.knowledge_store import InMemoryKnowledgeStore, KnowledgeStore
from reply_orchestrator.storage.repository import InMemoryRepository, Repository

__all__ = [
    "ClarificationTicket",
    "CustomerRecord",
    "FeedbackQueueEntry",
    "InteractionRecord",
    "InteractionStatus",
    "KnowledgeItem",
    "SystemMessage",
    "TicketStatus",
    "WorkspaceContext",
    "InMemoryKnowledgeStore",
    "KnowledgeStore",
    "InMemoryRepository",
    "Repository",
]
