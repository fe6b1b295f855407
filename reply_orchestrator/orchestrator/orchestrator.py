"""
Reply Orchestrator
Runs one customer message through the pipeline:

    history -> intent -> retrieval -> ambiguity check -> generation -> confidence

orchestrate() has no side effects; the caller decides whether to send the
reply or open an escalation. The escalation and teaching entry points are
exposed here as well so callers only need one object.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Union

from reply_orchestrator.config.settings import Settings
from reply_orchestrator.orchestrator.confidence_evaluator import evaluate_confidence
from reply_orchestrator.orchestrator.errors import InteractionNotFoundError, ToolArgumentError
from reply_orchestrator.orchestrator.escalation_manager import EscalationManager
from reply_orchestrator.orchestrator.intent_classifier import IntentClassifier
from reply_orchestrator.orchestrator.knowledge_extractor import KnowledgeExtractor
from reply_orchestrator.orchestrator.knowledge_retriever import KnowledgeRetriever
from reply_orchestrator.orchestrator.response_generator import ResponseGenerator, apology_response
from reply_orchestrator.orchestrator.tools import CustomerToolCall, validate_tool_call
from reply_orchestrator.orchestrator.types import (
    ClarificationTicketInput,
    ConversationTurn,
    ExtractedKnowledge,
    Intent,
    InteractionBundle,
    OrchestratorResult,
    ResolutionOutcome,
    RetrievedKnowledge,
)
from reply_orchestrator.services.base import ChatBackend, ToolCall
from reply_orchestrator.storage.knowledge_store import KnowledgeStore
from reply_orchestrator.storage.models import ClarificationTicket
from reply_orchestrator.storage.repository import Repository

logger = logging.getLogger(__name__)

SIMULATION_SOURCE_ID = "simulation"
HISTORY_CONTENT_CHARS = 2000

# Intents where two near-identical matches mean we cannot tell which item the customer wants
AMBIGUITY_INTENTS = (Intent.PRODUCT_INQUIRY, Intent.ORDER_INTENT, Intent.PRICE_CHECK)
AMBIGUITY_MARGIN = 0.05


def is_ambiguous(intent: Intent, knowledge: Sequence[RetrievedKnowledge]) -> bool:
    """True when the two best matches are within AMBIGUITY_MARGIN of each other."""
    if intent not in AMBIGUITY_INTENTS or len(knowledge) < 2:
        return False
    return abs(knowledge[0].similarity - knowledge[1].similarity) <= AMBIGUITY_MARGIN


@dataclass
class TeachingResult:
    """Outcome of teaching the system from a seller's reply."""
    outcome: ResolutionOutcome
    knowledge: List[ExtractedKnowledge] = field(default_factory=list)


class Orchestrator:
    """
    Composes the pipeline components around one backend, knowledge store
    and repository.
    """

    def __init__(
        self,
        backend: ChatBackend,
        store: KnowledgeStore,
        repository: Repository,
        settings: Settings
    ):
        """
        Initialize the orchestrator.

        Args:
            backend: Chat/embedding backend
            store: Knowledge store for retrieval and extraction
            repository: Interactions, customers and tickets
            settings: Thresholds and limits
        """
        self.backend = backend
        self.store = store
        self.repository = repository
        self.settings = settings

        self.intent_classifier = IntentClassifier(backend)
        self.retriever = KnowledgeRetriever(backend, store, settings)
        self.generator = ResponseGenerator(backend)
        self.escalations = EscalationManager(backend, repository)
        self.extractor = KnowledgeExtractor(backend, store, settings)

    async def load_interaction(self, interaction_id: str) -> InteractionBundle:
        """
        Load an interaction with its workspace and customer.

        Raises:
            InteractionNotFoundError: Interaction or workspace missing
        """
        interaction = await self.repository.get_interaction(interaction_id)
        if interaction is None:
            raise InteractionNotFoundError(interaction_id)

        workspace = await self.repository.get_workspace(interaction.workspace_id)
        if workspace is None:
            raise InteractionNotFoundError(
                interaction_id,
                cause=LookupError(f"workspace {interaction.workspace_id} not found")
            )

        customer = None
        if interaction.customer_id:
            customer = await self.repository.get_customer(interaction.customer_id)
            if customer is not None and customer.workspace_id != interaction.workspace_id:
                logger.warning(
                    f"Customer {customer.id} of interaction {interaction.id} is not in "
                    f"workspace {interaction.workspace_id}, ignoring it"
                )
                customer = None

        return InteractionBundle(
            id=interaction.id,
            workspace_id=interaction.workspace_id,
            content=interaction.content,
            source_id=interaction.source_id,
            author_id=interaction.author_id,
            workspace=workspace,
            post={"id": interaction.post_id} if interaction.post_id else None,
            customer=customer
        )

    async def fetch_conversation_history(
        self,
        workspace_id: str,
        author_id: Optional[str],
        current_id: str,
        max_turns: Optional[int] = None
    ) -> List[ConversationTurn]:
        """
        Rebuild the chronological conversation with one author.

        Each earlier interaction becomes a user turn and an assistant turn
        ("..." when no reply was sent).
        """
        if not author_id:
            return []

        limit = max_turns if max_turns is not None else self.settings.history_max_turns
        recent = await self.repository.list_recent_interactions(
            workspace_id, author_id, exclude_id=current_id, limit=limit
        )

        history: List[ConversationTurn] = []
        for interaction in reversed(recent):
            history.append(ConversationTurn(
                role="user",
                content=interaction.content[:HISTORY_CONTENT_CHARS]
            ))
            history.append(ConversationTurn(
                role="assistant",
                content=(interaction.response or "...")[:HISTORY_CONTENT_CHARS]
            ))
        return history

    async def orchestrate(self, interaction_or_id: Union[str, InteractionBundle]) -> OrchestratorResult:
        """
        Produce a scored reply for one interaction.

        Args:
            interaction_or_id: Interaction id, or a pre-loaded bundle

        Returns:
            OrchestratorResult; should_escalate tells the caller what to do

        Raises:
            InteractionNotFoundError: Interaction or workspace missing
        """
        if isinstance(interaction_or_id, str):
            interaction = await self.load_interaction(interaction_or_id)
        else:
            interaction = interaction_or_id
            if interaction.workspace is None:
                workspace = await self.repository.get_workspace(interaction.workspace_id)
                if workspace is None:
                    raise InteractionNotFoundError(interaction.id)
                interaction.workspace = workspace
            if interaction.customer is not None and interaction.customer.workspace_id != interaction.workspace_id:
                logger.warning(f"Customer {interaction.customer.id} is not in workspace {interaction.workspace_id}")
                interaction.customer = None

        history = await self.fetch_conversation_history(
            interaction.workspace_id, interaction.author_id, interaction.id
        )

        intent_result = await self.intent_classifier.classify(
            interaction.content, history, interaction_id=interaction.id
        )

        knowledge = await self.retriever.retrieve(
            interaction.workspace_id,
            interaction.content,
            intent_result.intent,
            history=history,
            interaction_id=interaction.id
        )

        ambiguous = is_ambiguous(intent_result.intent, knowledge)
        if ambiguous:
            logger.info(f"Ambiguous matches for interaction {interaction.id}, asking the customer to narrow down")

        response = await self.generator.generate(
            interaction.workspace,
            interaction.content,
            intent_result.intent,
            knowledge,
            history=history,
            interaction_id=interaction.id,
            is_simulation=interaction.source_id == SIMULATION_SOURCE_ID,
            is_ambiguous=ambiguous,
            preferences_summary=interaction.customer.preferences_summary if interaction.customer else None
        )

        if response.tool_calls:
            try:
                self.validate_tool_calls(response.tool_calls)
            except ToolArgumentError as e:
                logger.warning(f"Dropping tool calls for interaction {interaction.id}: {e.message}")
                response = apology_response(intent_result.intent)

        confidence = evaluate_confidence(
            intent_result, response, knowledge, threshold=self.settings.confidence_threshold
        )

        logger.info(
            f"Interaction {interaction.id}: intent={intent_result.intent.value} "
            f"confidence={confidence.final_confidence:.3f} escalate={confidence.should_escalate}"
        )

        return OrchestratorResult(
            reply=response.reply,
            intent=intent_result.intent,
            confidence=confidence.final_confidence,
            used_knowledge_ids=list(response.used_knowledge_ids),
            detected_categories=list(response.detected_categories),
            needs_clarification=response.needs_clarification,
            should_escalate=confidence.should_escalate,
            suggested_actions=list(response.suggested_actions),
            confidence_signals=confidence.signals,
            tool_calls=response.tool_calls
        )

    def validate_tool_calls(self, tool_calls: Optional[Sequence[ToolCall]]) -> List[CustomerToolCall]:
        """Validate model-issued tool calls before the caller executes them."""
        return [validate_tool_call(tc) for tc in tool_calls or []]

    # ===== Escalation =====

    async def create_escalation(self, ticket_input: ClarificationTicketInput) -> ClarificationTicket:
        return await self.escalations.create_escalation(ticket_input)

    async def resolve_escalation(
        self,
        ticket_id: str,
        seller_reply: str,
        extracted_knowledge: Sequence[ExtractedKnowledge] = ()
    ) -> ResolutionOutcome:
        return await self.escalations.resolve_escalation(ticket_id, seller_reply, extracted_knowledge)

    async def get_pending_tickets(self, workspace_id: str) -> List[ClarificationTicket]:
        return await self.escalations.get_pending_tickets(workspace_id)

    async def teach_reply(self, ticket_id: str, seller_reply: str) -> TeachingResult:
        """
        Learn from a seller's answer to a ticket, then resolve it.

        Knowledge is extracted with the ticket's question as context. A
        ticket that is missing or already resolved is not learned from.
        """
        ticket = await self.repository.get_ticket(ticket_id)
        if ticket is None:
            return TeachingResult(outcome=ResolutionOutcome.NOT_FOUND)
        if ticket.is_resolved:
            return TeachingResult(outcome=ResolutionOutcome.ALREADY_RESOLVED)

        knowledge = await self.extractor.extract(
            ticket.workspace_id,
            seller_reply,
            context=ticket.generated_question,
            interaction_id=ticket.interaction_id
        )
        outcome = await self.escalations.resolve_escalation(ticket_id, seller_reply, knowledge)
        return TeachingResult(outcome=outcome, knowledge=knowledge)
