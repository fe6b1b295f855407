"""
Intent Classifier
Dedicated, deterministic (temperature 0) LLM call that labels a customer
message with one intent from a closed set.
"""

import logging
from typing import Optional, Sequence

from reply_orchestrator.orchestrator.json_output import parse_json_output
from reply_orchestrator.orchestrator.prompts import (
    INTENT_SYSTEM_PROMPT,
    YES_NO_SYSTEM_PROMPT,
    intent_classification_prompt,
    yes_no_classification_prompt,
)
from reply_orchestrator.orchestrator.types import (
    ConversationTurn,
    Intent,
    IntentResult,
    YesNoIntent,
    YesNoResult,
)
from reply_orchestrator.services.base import ChatBackend, ChatParams

logger = logging.getLogger(__name__)

# Returned whenever classification fails; low confidence biases toward escalation
FALLBACK_INTENT = IntentResult(
    intent=Intent.UNKNOWN,
    confidence=0.3,
    reasoning="classification failed"
)


class IntentClassifier:
    """
    Classifies customer messages.

    Never raises: backend, parsing and schema failures all return
    FALLBACK_INTENT (or "unknown" for the yes/no classifier).
    """

    HISTORY_TURNS = 6
    PREVIEW_CHARS = 100

    def __init__(self, backend: ChatBackend):
        self.backend = backend

    def summarize_history(self, history: Sequence[ConversationTurn]) -> str:
        """Compress the last few turns into one-line previews."""
        return "\n".join(
            f"{turn.role}: {turn.content[:self.PREVIEW_CHARS]}"
            for turn in list(history)[-self.HISTORY_TURNS:]
        )

    async def classify(
        self,
        message: str,
        history: Sequence[ConversationTurn] = (),
        interaction_id: Optional[str] = None
    ) -> IntentResult:
        """
        Classify a message into an intent.

        Args:
            message: Raw customer message
            history: Recent conversation turns
            interaction_id: For usage tracking

        Returns:
            Validated IntentResult, or FALLBACK_INTENT on any failure
        """
        prompt = intent_classification_prompt(message, self.summarize_history(history))

        try:
            result = await self.backend.chat(
                ChatParams(
                    system_prompt=INTENT_SYSTEM_PROMPT,
                    user_message=prompt,
                    temperature=0.0,
                    max_tokens=200,
                    usage_type="intent"
                ),
                interaction_id=interaction_id
            )
            intent = parse_json_output(result.content, IntentResult)
        except Exception as e:
            logger.warning(f"Intent classification failed, defaulting to unknown: {e}")
            return FALLBACK_INTENT

        logger.debug(f"Intent {intent.intent.value} ({intent.confidence:.2f}) for interaction {interaction_id}")
        return intent

    async def detect_yes_no(
        self,
        message: str,
        interaction_id: Optional[str] = None
    ) -> YesNoIntent:
        """Classify a short confirmation as yes/no/unknown in any language."""
        try:
            result = await self.backend.chat(
                ChatParams(
                    system_prompt=YES_NO_SYSTEM_PROMPT,
                    user_message=yes_no_classification_prompt(message),
                    temperature=0.0,
                    max_tokens=50,
                    usage_type="chat_yes_no"
                ),
                interaction_id=interaction_id
            )
            return parse_json_output(result.content, YesNoResult).intent
        except Exception as e:
            logger.warning(f"Yes/no classification failed, defaulting to unknown: {e}")
            return YesNoIntent.UNKNOWN
