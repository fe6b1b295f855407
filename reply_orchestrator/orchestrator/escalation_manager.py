"""
Escalation Manager
Human-in-the-loop lifecycle for replies the AI is not confident about.

A ticket moves pending -> resolved exactly once:
- create_escalation asks the seller a targeted question, records the
  ticket and pauses the customer's conversation
- resolve_escalation records the seller's answer and resumes it
"""

import asyncio
import logging
import time
import weakref
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import BaseModel

from reply_orchestrator.orchestrator.json_output import parse_json_output
from reply_orchestrator.orchestrator.prompts import (
    JSON_ONLY_SYSTEM_PROMPT,
    escalation_notification_text,
    escalation_question_prompt,
    escalation_system_message,
)
from reply_orchestrator.orchestrator.types import (
    ClarificationTicketInput,
    ExtractedKnowledge,
    Intent,
    ResolutionOutcome,
)
from reply_orchestrator.services.base import ChatBackend, ChatParams
from reply_orchestrator.storage.models import (
    ClarificationTicket,
    FeedbackQueueEntry,
    InteractionRecord,
    InteractionStatus,
    SystemMessage,
    TicketStatus,
)
from reply_orchestrator.storage.repository import Repository

logger = logging.getLogger(__name__)

SYSTEM_AUTHOR_ID = "system_architect"
SYSTEM_AUTHOR_NAME = "AI Orchestrator"


class _EscalationQuestion(BaseModel):
    question: Optional[str] = None
    suggestedKnowledgeType: Optional[str] = None


class EscalationManager:
    """
    Creates and resolves clarification tickets.

    Create and resolve for the same customer are serialized with a
    per-customer lock, so a resume can never overtake a pause that has
    not been written yet. The question is generated before the lock is
    taken.
    """

    def __init__(
        self,
        backend: ChatBackend,
        repository: Repository
    ):
        """
        Initialize escalation manager.

        Args:
            backend: Chat backend for question generation
            repository: Ticket, customer and interaction persistence
        """
        self.backend = backend
        self.repository = repository

        # Customer locks to serialize pause/resume
        # Entries disappear once no coroutine holds or awaits the lock
        self._customer_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _get_customer_lock(self, customer_id: Optional[str], interaction_id: str) -> asyncio.Lock:
        """Get or create the lock guarding a customer's conversation state."""
        key = customer_id or f"interaction:{interaction_id}"
        lock = self._customer_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._customer_locks[key] = lock
        return lock

    async def generate_question(
        self,
        customer_message: str,
        detected_intent: Union[Intent, str],
        interaction_id: Optional[str] = None
    ) -> str:
        """Ask the model for a specific question to put to the seller; falls back to a template."""
        intent_value = detected_intent.value if isinstance(detected_intent, Intent) else detected_intent
        preview = customer_message[:100]

        try:
            result = await self.backend.chat(
                ChatParams(
                    system_prompt=JSON_ONLY_SYSTEM_PROMPT,
                    user_message=escalation_question_prompt(customer_message, intent_value),
                    temperature=0.2,
                    max_tokens=300,
                    usage_type="escalation_question"
                ),
                interaction_id=interaction_id
            )
            parsed = parse_json_output(result.content, _EscalationQuestion)
        except Exception as e:
            logger.warning(f"Escalation question generation failed: {e}")
            return f'A customer asked: "{preview}". Can you provide guidance on how to respond?'

        if parsed.question and parsed.question.strip():
            return parsed.question.strip()
        return f'A customer asked: "{preview}". What should we tell them?'

    async def create_escalation(self, ticket_input: ClarificationTicketInput) -> ClarificationTicket:
        """
        Open a clarification ticket and pause the conversation.

        Args:
            ticket_input: Workspace, interaction, customer and message context

        Returns:
            The created ClarificationTicket

        Raises:
            PersistenceError: Any write failed
        """
        intent_value = ticket_input.detected_intent.value if isinstance(
            ticket_input.detected_intent, Intent
        ) else str(ticket_input.detected_intent)

        question = await self.generate_question(
            ticket_input.customer_message,
            intent_value,
            ticket_input.interaction_id
        )

        customer_id = ticket_input.customer_id
        if customer_id:
            customer = await self.repository.get_customer(customer_id)
            if customer is not None and customer.workspace_id != ticket_input.workspace_id:
                logger.warning(
                    f"Customer {customer_id} is not in workspace {ticket_input.workspace_id}, "
                    f"escalating without pausing a conversation"
                )
                customer_id = None

        ticket = ClarificationTicket(
            workspace_id=ticket_input.workspace_id,
            interaction_id=ticket_input.interaction_id,
            customer_id=customer_id,
            customer_message=ticket_input.customer_message,
            detected_intent=intent_value,
            generated_question=question
        )

        async with self._get_customer_lock(ticket.customer_id, ticket.interaction_id):
            await self.repository.insert_ticket(ticket)

            # Legacy review queue read by the dashboard
            await self.repository.insert_feedback_entry(FeedbackQueueEntry(
                workspace_id=ticket.workspace_id,
                interaction_id=ticket.interaction_id,
                content=ticket.customer_message,
                items_context=f"Escalation Question: {question}"
            ))

            if ticket.customer_id:
                await self.repository.set_customer_paused(ticket.customer_id, True)

            notification_meta: Dict[str, Any] = {
                "originalInteractionId": ticket.interaction_id,
                "escalationType": "clarification",
                "detectedIntent": intent_value,
                "ticketId": ticket.id
            }
            if ticket_input.conversation_context:
                notification_meta["conversationContext"] = ticket_input.conversation_context

            await self.repository.save_interaction(InteractionRecord(
                workspace_id=ticket.workspace_id,
                source_id="escalation",
                external_id=f"escalation-{ticket.interaction_id}-{int(time.time() * 1000)}",
                author_id=SYSTEM_AUTHOR_ID,
                author_name=SYSTEM_AUTHOR_NAME,
                content=f'Escalated: "{ticket.customer_message[:200]}"',
                response=escalation_notification_text(ticket.customer_message, intent_value, question),
                status=InteractionStatus.NEEDS_REVIEW,
                metadata=notification_meta
            ))

            await self.repository.insert_system_message(SystemMessage(
                workspace_id=ticket.workspace_id,
                content=escalation_system_message(ticket.customer_message, question)
            ))

        logger.info(
            f"Escalated interaction {ticket.interaction_id} as ticket {ticket.id} "
            f"(intent={intent_value})"
        )
        return ticket

    async def resolve_escalation(
        self,
        ticket_id: str,
        seller_reply: str,
        extracted_knowledge: Sequence[Union[ExtractedKnowledge, Dict[str, Any]]] = ()
    ) -> ResolutionOutcome:
        """
        Record the seller's answer and resume the conversation.

        Resolving a missing or already resolved ticket is a no-op.

        Args:
            ticket_id: Ticket to resolve
            seller_reply: The seller's free-text answer
            extracted_knowledge: Knowledge already extracted from the reply

        Returns:
            ResolutionOutcome
        """
        ticket = await self.repository.get_ticket(ticket_id)
        if ticket is None:
            logger.warning(f"Ticket {ticket_id} not found")
            return ResolutionOutcome.NOT_FOUND

        knowledge = [
            k.to_dict() if isinstance(k, ExtractedKnowledge) else dict(k)
            for k in extracted_knowledge
        ]

        async with self._get_customer_lock(ticket.customer_id, ticket.interaction_id):
            resolved = await self.repository.mark_ticket_resolved(ticket_id, seller_reply, knowledge)
            if not resolved:
                logger.info(f"Ticket {ticket_id} already resolved")
                return ResolutionOutcome.ALREADY_RESOLVED

            if ticket.customer_id:
                await self.repository.set_customer_paused(ticket.customer_id, False)

            if await self.repository.get_interaction(ticket.interaction_id) is not None:
                await self.repository.update_interaction(
                    ticket.interaction_id,
                    status=InteractionStatus.RESOLVED,
                    metadata={"resolved_via": "seller_clarification", "ticket_id": ticket_id}
                )
            else:
                logger.warning(f"Original interaction {ticket.interaction_id} for ticket {ticket_id} not found")

        if ticket.customer_id:
            try:
                await self.repository.refresh_inbox_meta(ticket.customer_id)
            except Exception as e:
                logger.error(f"Inbox refresh failed for customer {ticket.customer_id}: {e}")

        logger.info(f"Resolved ticket {ticket_id} with {len(knowledge)} knowledge item(s)")
        return ResolutionOutcome.RESOLVED

    async def get_pending_tickets(self, workspace_id: str) -> List[ClarificationTicket]:
        """Pending tickets of a workspace, oldest first."""
        return await self.repository.list_tickets(workspace_id, status=TicketStatus.PENDING)
