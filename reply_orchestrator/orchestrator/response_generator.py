"""
Response Generator
Produces a knowledge-grounded, schema-validated reply or a native tool
call. Falls back to a plain-text reply and finally a static apology, so
it always returns a well-formed OrchestratorResponse.
"""

import logging
import re
from typing import List, Optional, Sequence

from reply_orchestrator.orchestrator.errors import BackendError, GenerationError
from reply_orchestrator.orchestrator.json_output import parse_json_output
from reply_orchestrator.orchestrator.prompts import (
    RESPONSE_SYSTEM_PROMPT,
    fallback_response_prompt,
    response_generation_prompt,
)
from reply_orchestrator.orchestrator.tools import CUSTOMER_TOOL_DEFINITIONS
from reply_orchestrator.orchestrator.types import (
    ConversationTurn,
    Intent,
    OrchestratorResponse,
    RetrievedKnowledge,
    SuggestedAction,
)
from reply_orchestrator.services.base import ChatBackend, ChatParams
from reply_orchestrator.storage.models import WorkspaceContext

logger = logging.getLogger(__name__)

TOOL_CALL_PLACEHOLDER = "Executing dynamic order task..."
APOLOGY_REPLY = "I'm sorry, I need to check with our team on this. We'll get back to you shortly!"

_FUNCTION_MARKUP_RE = re.compile(r"<function[^>]*>.*?</function>", re.IGNORECASE | re.DOTALL)


def filter_knowledge_ids(ids: Sequence[str], knowledge: Sequence[RetrievedKnowledge]) -> List[str]:
    """Keep only ids that were retrieved, preserving order and dropping duplicates."""
    valid = {k.id for k in knowledge}
    seen = set()
    filtered = []
    for knowledge_id in ids:
        if knowledge_id in valid and knowledge_id not in seen:
            seen.add(knowledge_id)
            filtered.append(knowledge_id)
    return filtered


def apology_response(intent: Intent) -> OrchestratorResponse:
    """Last-resort reply handed to a human."""
    return OrchestratorResponse(
        reply=APOLOGY_REPLY,
        intent=intent,
        confidence=0.0,
        used_knowledge_ids=[],
        needs_clarification=True,
        suggested_actions=[SuggestedAction.ESCALATE_TO_HUMAN]
    )


class ResponseGenerator:
    """Generates customer replies grounded in retrieved knowledge."""

    def __init__(self, backend: ChatBackend):
        self.backend = backend

    async def generate(
        self,
        workspace: WorkspaceContext,
        message: str,
        intent: Intent,
        knowledge: Sequence[RetrievedKnowledge],
        history: Sequence[ConversationTurn] = (),
        interaction_id: Optional[str] = None,
        is_simulation: bool = False,
        is_ambiguous: bool = False,
        preferences_summary: Optional[str] = None
    ) -> OrchestratorResponse:
        """
        Generate a structured reply.

        Args:
            workspace: Business profile for personalization
            message: Customer message
            intent: Classified intent
            knowledge: Retrieved items; the only ones that may be cited
            history: Conversation history
            interaction_id: For usage tracking
            is_simulation: Business owner testing the bot
            is_ambiguous: Top matches too close to pick one
            preferences_summary: Long-term customer notes

        Returns:
            Validated OrchestratorResponse (never raises)
        """
        try:
            return await self._generate_structured(
                workspace, message, intent, knowledge, history, interaction_id,
                is_simulation, is_ambiguous, preferences_summary
            )
        except GenerationError as e:
            logger.warning(f"Structured generation failed ({e.error_code}): {e.message}")

        try:
            return await self._generate_plain(workspace, message, intent, knowledge, history, interaction_id)
        except Exception as e:
            logger.error(f"Fallback generation also failed: {e}")

        return apology_response(intent)

    async def _generate_structured(
        self,
        workspace: WorkspaceContext,
        message: str,
        intent: Intent,
        knowledge: Sequence[RetrievedKnowledge],
        history: Sequence[ConversationTurn],
        interaction_id: Optional[str],
        is_simulation: bool,
        is_ambiguous: bool,
        preferences_summary: Optional[str]
    ) -> OrchestratorResponse:
        prompt = response_generation_prompt(
            workspace, message, intent.value, knowledge,
            is_simulation=is_simulation,
            is_ambiguous=is_ambiguous,
            preferences_summary=preferences_summary
        )

        try:
            result = await self.backend.chat(
                ChatParams(
                    system_prompt=RESPONSE_SYSTEM_PROMPT,
                    user_message=prompt,
                    history=history,
                    tools=CUSTOMER_TOOL_DEFINITIONS,
                    temperature=0.3,
                    max_tokens=1024,
                    usage_type="chat"
                ),
                interaction_id=interaction_id
            )
        except GenerationError:
            raise
        except Exception as e:
            raise BackendError(f"Chat backend failed: {e}", cause=e) from e

        if result.tool_calls:
            logger.info(
                f"Model requested tool(s) {[tc.name for tc in result.tool_calls]} "
                f"for interaction {interaction_id}"
            )
            return OrchestratorResponse(
                reply=TOOL_CALL_PLACEHOLDER,
                intent=intent,
                confidence=1.0,
                used_knowledge_ids=[],
                needs_clarification=False,
                suggested_actions=[SuggestedAction.NO_ACTION],
                tool_calls=list(result.tool_calls)
            )

        response = parse_json_output(result.content, OrchestratorResponse)

        cited = filter_knowledge_ids(response.used_knowledge_ids, knowledge)
        if len(cited) != len(response.used_knowledge_ids):
            logger.debug(
                f"Dropped {len(response.used_knowledge_ids) - len(cited)} unretrieved knowledge id(s)"
            )
        return response.model_copy(update={"used_knowledge_ids": cited})

    async def _generate_plain(
        self,
        workspace: WorkspaceContext,
        message: str,
        intent: Intent,
        knowledge: Sequence[RetrievedKnowledge],
        history: Sequence[ConversationTurn],
        interaction_id: Optional[str]
    ) -> OrchestratorResponse:
        result = await self.backend.chat(
            ChatParams(
                system_prompt=fallback_response_prompt(workspace, knowledge),
                user_message=message,
                history=history,
                temperature=0.3,
                max_tokens=512,
                usage_type="chat_fallback"
            ),
            interaction_id=interaction_id
        )

        reply = _FUNCTION_MARKUP_RE.sub("", result.content or "").strip()
        if not reply:
            raise GenerationError("Fallback generation returned empty text")

        return OrchestratorResponse(
            reply=reply,
            intent=intent,
            confidence=0.5,
            used_knowledge_ids=[],
            needs_clarification=True,
            suggested_actions=[SuggestedAction.NO_ACTION]
        )
