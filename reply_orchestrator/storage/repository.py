"""
Repository
Persistence for workspaces, customers, interactions, clarification tickets
and the seller-facing notification records.

Writes raise PersistenceError on failure; callers let it propagate.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from reply_orchestrator.orchestrator.errors import PersistenceError
from reply_orchestrator.storage.models import (
    ClarificationTicket,
    CustomerRecord,
    FeedbackQueueEntry,
    InteractionRecord,
    InteractionStatus,
    SystemMessage,
    TicketStatus,
    WorkspaceContext,
)

logger = logging.getLogger(__name__)


class Repository(ABC):
    """Abstract persistence contract used by the orchestrator and escalation manager."""

    # ===== Workspaces =====

    @abstractmethod
    async def save_workspace(self, workspace: WorkspaceContext) -> WorkspaceContext:
        pass

    @abstractmethod
    async def get_workspace(self, workspace_id: str) -> Optional[WorkspaceContext]:
        pass

    # ===== Customers =====

    @abstractmethod
    async def save_customer(self, customer: CustomerRecord) -> CustomerRecord:
        pass

    @abstractmethod
    async def get_customer(self, customer_id: str) -> Optional[CustomerRecord]:
        pass

    @abstractmethod
    async def set_customer_paused(self, customer_id: str, paused: bool) -> None:
        """Set or clear the AI pause flag; ai_paused_at is stamped when pausing."""
        pass

    @abstractmethod
    async def refresh_inbox_meta(self, customer_id: str) -> Dict[str, Any]:
        """Recompute the customer's denormalized inbox summary."""
        pass

    # ===== Interactions =====

    @abstractmethod
    async def save_interaction(self, interaction: InteractionRecord) -> InteractionRecord:
        pass

    @abstractmethod
    async def get_interaction(self, interaction_id: str) -> Optional[InteractionRecord]:
        pass

    @abstractmethod
    async def update_interaction(
        self,
        interaction_id: str,
        status: Optional[InteractionStatus] = None,
        metadata: Optional[Dict[str, Any]] = None,
        response: Optional[str] = None
    ) -> InteractionRecord:
        """Update status and reply, merging metadata keys into the existing metadata."""
        pass

    @abstractmethod
    async def list_recent_interactions(
        self,
        workspace_id: str,
        author_id: str,
        exclude_id: str,
        limit: int
    ) -> List[InteractionRecord]:
        """Most recent interactions by an author, newest first."""
        pass

    # ===== Tickets =====

    @abstractmethod
    async def insert_ticket(self, ticket: ClarificationTicket) -> ClarificationTicket:
        pass

    @abstractmethod
    async def get_ticket(self, ticket_id: str) -> Optional[ClarificationTicket]:
        pass

    @abstractmethod
    async def mark_ticket_resolved(
        self,
        ticket_id: str,
        seller_reply: str,
        extracted_knowledge: List[Dict[str, Any]]
    ) -> bool:
        """
        Compare-and-set a ticket from pending to resolved.

        Returns:
            True if this call resolved the ticket, False if it was not pending
        """
        pass

    @abstractmethod
    async def list_tickets(
        self,
        workspace_id: str,
        status: Optional[TicketStatus] = None
    ) -> List[ClarificationTicket]:
        pass

    # ===== Notifications =====

    @abstractmethod
    async def insert_feedback_entry(self, entry: FeedbackQueueEntry) -> FeedbackQueueEntry:
        pass

    @abstractmethod
    async def insert_system_message(self, message: SystemMessage) -> SystemMessage:
        pass


class InMemoryRepository(Repository):
    """Dict-backed repository for tests and single-process deployments."""

    def __init__(self):
        self.workspaces: Dict[str, WorkspaceContext] = {}
        self.customers: Dict[str, CustomerRecord] = {}
        self.interactions: Dict[str, InteractionRecord] = {}
        self.tickets: Dict[str, ClarificationTicket] = {}
        self.feedback_queue: List[FeedbackQueueEntry] = []
        self.system_messages: List[SystemMessage] = []
        self._lock = asyncio.Lock()

    async def save_workspace(self, workspace: WorkspaceContext) -> WorkspaceContext:
        self.workspaces[workspace.id] = workspace
        return workspace

    async def get_workspace(self, workspace_id: str) -> Optional[WorkspaceContext]:
        return self.workspaces.get(workspace_id)

    async def save_customer(self, customer: CustomerRecord) -> CustomerRecord:
        customer.updated_at = datetime.now()
        self.customers[customer.id] = customer
        return customer

    async def get_customer(self, customer_id: str) -> Optional[CustomerRecord]:
        return self.customers.get(customer_id)

    async def set_customer_paused(self, customer_id: str, paused: bool) -> None:
        customer = self.customers.get(customer_id)
        if customer is None:
            raise PersistenceError(
                f"Customer {customer_id} not found",
                context={"customer_id": customer_id}
            )
        now = datetime.now()
        customer.ai_paused = paused
        if paused:
            customer.ai_paused_at = now
        customer.updated_at = now

    async def refresh_inbox_meta(self, customer_id: str) -> Dict[str, Any]:
        customer = self.customers.get(customer_id)
        if customer is None:
            raise PersistenceError(
                f"Customer {customer_id} not found",
                context={"customer_id": customer_id}
            )

        threads = [
            i for i in self.interactions.values()
            if i.workspace_id == customer.workspace_id and i.customer_id == customer_id
        ]
        latest = max(threads, key=lambda i: i.created_at, default=None)
        customer.inbox_meta = {
            "last_message": latest.content[:200] if latest else None,
            "last_message_at": latest.created_at.isoformat() if latest else None,
            "needs_review": sum(1 for i in threads if i.status == InteractionStatus.NEEDS_REVIEW),
            "ai_paused": customer.ai_paused
        }
        return customer.inbox_meta

    async def save_interaction(self, interaction: InteractionRecord) -> InteractionRecord:
        self.interactions[interaction.id] = interaction
        return interaction

    async def get_interaction(self, interaction_id: str) -> Optional[InteractionRecord]:
        return self.interactions.get(interaction_id)

    async def update_interaction(
        self,
        interaction_id: str,
        status: Optional[InteractionStatus] = None,
        metadata: Optional[Dict[str, Any]] = None,
        response: Optional[str] = None
    ) -> InteractionRecord:
        interaction = self.interactions.get(interaction_id)
        if interaction is None:
            raise PersistenceError(
                f"Interaction {interaction_id} not found",
                context={"interaction_id": interaction_id}
            )
        if status is not None:
            interaction.status = status
        if response is not None:
            interaction.response = response
        if metadata:
            interaction.metadata = {**interaction.metadata, **metadata}
        interaction.updated_at = datetime.now()
        return interaction

    async def list_recent_interactions(
        self,
        workspace_id: str,
        author_id: str,
        exclude_id: str,
        limit: int
    ) -> List[InteractionRecord]:
        matching = [
            i for i in self.interactions.values()
            if i.workspace_id == workspace_id
            and i.author_id == author_id
            and i.id != exclude_id
        ]
        matching.sort(key=lambda i: i.created_at, reverse=True)
        return matching[:limit]

    async def insert_ticket(self, ticket: ClarificationTicket) -> ClarificationTicket:
        if ticket.id in self.tickets:
            raise PersistenceError(
                f"Ticket {ticket.id} already exists",
                context={"workspace_id": ticket.workspace_id}
            )
        self.tickets[ticket.id] = ticket
        return ticket

    async def get_ticket(self, ticket_id: str) -> Optional[ClarificationTicket]:
        return self.tickets.get(ticket_id)

    async def mark_ticket_resolved(
        self,
        ticket_id: str,
        seller_reply: str,
        extracted_knowledge: List[Dict[str, Any]]
    ) -> bool:
        async with self._lock:
            ticket = self.tickets.get(ticket_id)
            if ticket is None or ticket.status != TicketStatus.PENDING:
                return False
            ticket.status = TicketStatus.RESOLVED
            ticket.seller_reply = seller_reply
            ticket.extracted_knowledge = list(extracted_knowledge)
            ticket.resolved_at = datetime.now()
            return True

    async def list_tickets(
        self,
        workspace_id: str,
        status: Optional[TicketStatus] = None
    ) -> List[ClarificationTicket]:
        tickets = [
            t for t in self.tickets.values()
            if t.workspace_id == workspace_id and (status is None or t.status == status)
        ]
        return sorted(tickets, key=lambda t: t.created_at)

    async def insert_feedback_entry(self, entry: FeedbackQueueEntry) -> FeedbackQueueEntry:
        self.feedback_queue.append(entry)
        return entry

    async def insert_system_message(self, message: SystemMessage) -> SystemMessage:
        self.system_messages.append(message)
        return message
