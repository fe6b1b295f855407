"""
Orchestrator API Router
Runs the reply pipeline and exposes the escalation lifecycle.
"""

import logging
from dataclasses import replace

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from reply_orchestrator.api.schemas.requests import CreateEscalationRequest, ProcessRequest, TeachRequest
from reply_orchestrator.api.schemas.responses import (
    ProcessResponse,
    TeachResponse,
    TicketListResponse,
    TicketResponse,
)
from reply_orchestrator.orchestrator.orchestrator import Orchestrator
from reply_orchestrator.orchestrator.types import ClarificationTicketInput, ResolutionOutcome
from reply_orchestrator.storage.models import (
    CustomerRecord,
    InteractionRecord,
    InteractionStatus,
    WorkspaceContext,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orchestrator", tags=["Orchestrator"])


def get_orchestrator(request: Request) -> Orchestrator:
    """Orchestrator built in the app lifespan."""
    return request.app.state.orchestrator


async def _store_inline_interaction(body: ProcessRequest, orchestrator: Orchestrator) -> str:
    repository = orchestrator.repository

    await repository.save_workspace(WorkspaceContext(**body.workspace.model_dump()))

    customer_id = None
    if body.customer is not None:
        existing = await repository.get_customer(body.customer.id)
        if existing is not None and existing.workspace_id != body.workspace.id:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Customer {body.customer.id} belongs to another workspace"
            )
        if existing is None:
            await repository.save_customer(CustomerRecord(
                workspace_id=body.workspace.id,
                id=body.customer.id,
                name=body.customer.name,
                preferences_summary=body.customer.preferences_summary
            ))
        elif body.customer.preferences_summary is not None:
            existing.preferences_summary = body.customer.preferences_summary
            await repository.save_customer(existing)
        customer_id = body.customer.id

    interaction = await repository.save_interaction(InteractionRecord(
        workspace_id=body.workspace.id,
        content=body.content,
        source_id=body.source_id,
        author_id=body.author_id,
        customer_id=customer_id
    ))
    return interaction.id


@router.post("/process", response_model=ProcessResponse)
async def process_message(
    body: ProcessRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator)
) -> ProcessResponse:
    """
    Run the pipeline for one message.

    The reply is recorded on the interaction when it can be sent. When the
    result is escalated and auto_escalate is set, a clarification ticket
    is opened and its question returned.
    """
    interaction_id = body.interaction_id or await _store_inline_interaction(body, orchestrator)

    result = await orchestrator.orchestrate(interaction_id)
    tool_calls = orchestrator.validate_tool_calls(result.tool_calls)

    ticket_id = None
    if result.should_escalate:
        await orchestrator.repository.update_interaction(
            interaction_id, status=InteractionStatus.NEEDS_REVIEW
        )
        if body.auto_escalate:
            interaction = await orchestrator.repository.get_interaction(interaction_id)
            ticket = await orchestrator.create_escalation(ClarificationTicketInput(
                workspace_id=interaction.workspace_id,
                interaction_id=interaction_id,
                customer_message=interaction.content,
                detected_intent=result.intent,
                customer_id=interaction.customer_id,
                conversation_context={
                    "confidence": result.confidence,
                    "draft_reply": result.reply
                }
            ))
            ticket_id = ticket.id
            result = replace(result, escalation_question=ticket.generated_question)
    else:
        await orchestrator.repository.update_interaction(
            interaction_id, status=InteractionStatus.PROCESSED, response=result.reply
        )

    payload = result.to_dict()
    payload["tool_calls"] = [call.model_dump(by_alias=True) for call in tool_calls] or None
    return ProcessResponse(**payload, ticket_id=ticket_id)


@router.post("/escalations", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
async def create_escalation(
    body: CreateEscalationRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator)
) -> TicketResponse:
    """Open a clarification ticket and pause the customer's conversation."""
    ticket = await orchestrator.create_escalation(ClarificationTicketInput(
        workspace_id=body.workspace_id,
        interaction_id=body.interaction_id,
        customer_message=body.customer_message,
        detected_intent=body.detected_intent,
        customer_id=body.customer_id,
        conversation_context=body.conversation_context
    ))
    return TicketResponse(**ticket.to_dict())


@router.get("/escalations", response_model=TicketListResponse)
async def list_pending_escalations(
    workspace_id: str = Query(..., min_length=1),
    orchestrator: Orchestrator = Depends(get_orchestrator)
) -> TicketListResponse:
    """Pending tickets of a workspace, oldest first."""
    tickets = await orchestrator.get_pending_tickets(workspace_id)
    return TicketListResponse(
        tickets=[TicketResponse(**t.to_dict()) for t in tickets],
        count=len(tickets)
    )


@router.post("/escalations/{ticket_id}/teach", response_model=TeachResponse)
async def teach_from_reply(
    ticket_id: str,
    body: TeachRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator)
) -> TeachResponse:
    """Learn from the seller's answer and resume the conversation."""
    result = await orchestrator.teach_reply(ticket_id, body.seller_reply)

    if result.outcome == ResolutionOutcome.NOT_FOUND:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Ticket {ticket_id} not found")

    return TeachResponse(
        ticket_id=ticket_id,
        outcome=result.outcome.value,
        knowledge=[k.to_dict() for k in result.knowledge]
    )
