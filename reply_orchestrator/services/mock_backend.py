"""
Mock Backend
Offline backend for local development and tests. Replies come from a
scripted queue; embeddings are deterministic per input text.
"""

import hashlib
import logging
import uuid
from collections import deque
from typing import Dict, Iterable, List, Optional, Set, Tuple, Union

import numpy as np

from reply_orchestrator.orchestrator.errors import BackendError
from reply_orchestrator.services.base import (
    ChatBackend, ChatParams, ChatResult, EmbedResult, TokenUsage, ToolCall
)

logger = logging.getLogger(__name__)

ScriptedReply = Union[str, ChatResult, Exception]


class MockBackend(ChatBackend):
    """
    Scripted backend.

    Each chat call consumes the next scripted reply. A string becomes the
    reply content, a ChatResult is returned as-is and an Exception is
    raised as a BackendError. When the script is exhausted the default
    reply is used.
    """

    name = "mock"

    def __init__(
        self,
        responses: Optional[Iterable[ScriptedReply]] = None,
        default_response: Optional[str] = None,
        dimensions: int = 768,
        embeddings: Optional[Dict[str, List[float]]] = None,
        failing_embeddings: Optional[Set[str]] = None,
        mock_tool_calls: bool = False
    ):
        """
        Initialize mock backend.

        Args:
            responses: Scripted replies consumed in order
            default_response: Reply once the script runs out
            dimensions: Embedding size
            embeddings: Fixed vectors for specific texts
            failing_embeddings: Texts whose embedding call fails
            mock_tool_calls: Answer tool-enabled calls with a call to the first tool
        """
        self._responses = deque(responses or [])
        self.default_response = default_response
        self.dimensions = dimensions
        self.embeddings = dict(embeddings or {})
        self.failing_embeddings = set(failing_embeddings or set())
        self.mock_tool_calls = mock_tool_calls

        self.calls: List[Tuple[ChatParams, Optional[str]]] = []
        self.embed_calls: List[str] = []

    def queue(self, *responses: ScriptedReply) -> None:
        """Append replies to the script."""
        self._responses.extend(responses)

    @property
    def pending_responses(self) -> int:
        return len(self._responses)

    async def chat(
        self,
        params: ChatParams,
        interaction_id: Optional[str] = None
    ) -> ChatResult:
        self.calls.append((params, interaction_id))

        if self._responses:
            scripted = self._responses.popleft()
        elif self.mock_tool_calls and params.tools:
            tool = params.tools[0]
            return ChatResult(
                content="",
                model="mock-model",
                tool_calls=[ToolCall(
                    id=f"mock_call_{uuid.uuid4().hex[:8]}",
                    name=tool["name"],
                    arguments={}
                )]
            )
        else:
            scripted = self.default_response or f'Mock response to: "{params.user_message[:50]}..."'

        if isinstance(scripted, Exception):
            raise BackendError(f"Mock backend failure: {scripted}", cause=scripted)
        if isinstance(scripted, ChatResult):
            return scripted

        prompt_tokens = len(params.system_prompt) + len(params.user_message)
        return ChatResult(
            content=scripted,
            model="mock-model",
            usage=TokenUsage(prompt_tokens=prompt_tokens, completion_tokens=len(scripted))
        )

    async def embed(
        self,
        text: str,
        interaction_id: Optional[str] = None
    ) -> EmbedResult:
        self.embed_calls.append(text)

        if text in self.failing_embeddings:
            raise BackendError(f"Mock embedding failure for '{text[:40]}'")
        if text in self.embeddings:
            return EmbedResult(embedding=list(self.embeddings[text]))

        return EmbedResult(embedding=self.hash_embedding(text, self.dimensions))

    @staticmethod
    def hash_embedding(text: str, dimensions: int = 768) -> List[float]:
        """Unit vector seeded from the text hash; equal texts give equal vectors."""
        seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest()[:8], "big")
        vector = np.random.default_rng(seed).standard_normal(dimensions)
        return (vector / np.linalg.norm(vector)).tolist()
