"""API request and response schemas."""

from reply_orchestrator.api.schemas.requests import (
    CreateEscalationRequest,
    CustomerPayload,
    ProcessRequest,
    TeachRequest,
    WorkspacePayload,
)
from reply_orchestrator.api.schemas.responses import (
    ProcessResponse,
    TeachResponse,
    TicketListResponse,
    TicketResponse,
)

__all__ = [
    "CreateEscalationRequest",
    "CustomerPayload",
    "ProcessRequest",
    "TeachRequest",
    "WorkspacePayload",
    "ProcessResponse",
    "TeachResponse",
    "TicketListResponse",
    "TicketResponse",
]
