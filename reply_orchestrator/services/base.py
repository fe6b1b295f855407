"""
Chat/Embedding Backend
Abstract contract shared by every LLM backend. The pipeline only talks
to this interface, so backends are interchangeable.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, TYPE_CHECKING

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from reply_orchestrator.orchestrator.types import ConversationTurn


class ToolCall(BaseModel):
    """A native tool invocation requested by the model."""
    id: str
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)


@dataclass
class TokenUsage:
    """Token accounting for one backend call."""
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def to_dict(self) -> Dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens
        }


@dataclass
class ChatParams:
    """Parameters for a single chat call."""
    system_prompt: str
    user_message: str
    history: Sequence["ConversationTurn"] = ()
    tools: Optional[List[Dict[str, Any]]] = None
    temperature: float = 0.3
    max_tokens: int = 1024
    usage_type: str = "chat"


@dataclass
class ChatResult:
    """Result of a chat call."""
    content: str
    model: str
    tool_calls: List[ToolCall] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)


@dataclass
class EmbedResult:
    """Result of an embedding call."""
    embedding: List[float]


class ChatBackend(ABC):
    """
    Abstract base class for chat/embedding backends.

    Implementations own retries and timeouts; callers only see a
    ChatResult or a BackendError.
    """

    name: str = "base"

    @abstractmethod
    async def chat(
        self,
        params: ChatParams,
        interaction_id: Optional[str] = None
    ) -> ChatResult:
        """
        Generate a reply.

        Args:
            params: Prompt, history, tools and sampling settings
            interaction_id: Interaction the call is billed to

        Returns:
            ChatResult with text and/or tool calls
        """
        pass

    @abstractmethod
    async def embed(
        self,
        text: str,
        interaction_id: Optional[str] = None
    ) -> EmbedResult:
        """
        Embed text into a fixed-size vector.

        Args:
            text: Text to embed
            interaction_id: Interaction the call is billed to

        Returns:
            EmbedResult with the embedding vector
        """
        pass
