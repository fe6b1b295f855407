"""
API Request Schemas
Pydantic models for request validation.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, model_validator

from reply_orchestrator.orchestrator.types import Intent


# ==========================================
# Process Schemas
# ==========================================
class WorkspacePayload(BaseModel):
    """Inline tenant profile."""
    id: str = Field(..., min_length=1)
    name: Optional[str] = None
    business_name: Optional[str] = None
    industry: Optional[str] = None
    about: Optional[str] = None
    target_audience: Optional[str] = None
    tone_of_voice: Optional[str] = None
    settings: Dict[str, Any] = Field(default_factory=dict)
    platform: Optional[str] = None


class CustomerPayload(BaseModel):
    """Inline customer profile."""
    id: str = Field(..., min_length=1)
    name: Optional[str] = None
    preferences_summary: Optional[str] = None


class ProcessRequest(BaseModel):
    """
    Run the pipeline for one message.

    Either reference a stored interaction by interaction_id, or send the
    message inline with its workspace.
    """
    interaction_id: Optional[str] = Field(None, description="Stored interaction to process")
    content: Optional[str] = Field(None, min_length=1, max_length=5000, description="Inline customer message")
    workspace: Optional[WorkspacePayload] = None
    customer: Optional[CustomerPayload] = None
    source_id: Optional[str] = Field(None, description='"simulation" when the owner is testing the bot')
    author_id: Optional[str] = None
    auto_escalate: bool = Field(False, description="Open a clarification ticket when the reply is escalated")

    @model_validator(mode="after")
    def check_target(self) -> "ProcessRequest":
        if self.interaction_id is None and (self.content is None or self.workspace is None):
            raise ValueError("either interaction_id or content with workspace is required")
        return self

    model_config = {
        "json_schema_extra": {
            "example": {
                "content": "How much is the red dress?",
                "workspace": {"id": "ws_1", "business_name": "Nadia Boutique"},
                "author_id": "ig_12345"
            }
        }
    }


# ==========================================
# Escalation Schemas
# ==========================================
class CreateEscalationRequest(BaseModel):
    """Open a clarification ticket."""
    workspace_id: str = Field(..., min_length=1)
    interaction_id: str = Field(..., min_length=1)
    customer_message: str = Field(..., min_length=1)
    detected_intent: Intent = Intent.UNKNOWN
    customer_id: Optional[str] = None
    conversation_context: Optional[Dict[str, Any]] = None


class TeachRequest(BaseModel):
    """Seller's answer to a clarification ticket."""
    seller_reply: str = Field(..., min_length=1, max_length=5000)
