"""
API Response Schemas
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class ProcessResponse(BaseModel):
    reply: str
    intent: str
    confidence: float
    used_knowledge_ids: List[str]
    detected_categories: List[str]
    needs_clarification: bool
    should_escalate: bool
    suggested_actions: List[str]
    confidence_signals: Dict[str, Any]
    escalation_question: Optional[str] = None
    tool_calls: Optional[List[Dict[str, Any]]] = None
    ticket_id: Optional[str] = None


class TicketResponse(BaseModel):
    id: str
    workspace_id: str
    interaction_id: str
    customer_id: Optional[str] = None
    customer_message: str
    detected_intent: str
    generated_question: str
    seller_reply: Optional[str] = None
    extracted_knowledge: Optional[List[Dict[str, Any]]] = None
    status: str
    created_at: str
    resolved_at: Optional[str] = None


class TicketListResponse(BaseModel):
    tickets: List[TicketResponse]
    count: int


class TeachResponse(BaseModel):
    ticket_id: str
    outcome: str
    knowledge: List[Dict[str, Any]]
