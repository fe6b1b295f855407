"""Chat/embedding backends."""

from reply_orchestrator.services.base import (
    ChatBackend,
    ChatParams,
    ChatResult,
    EmbedResult,
    TokenUsage,
    ToolCall,
)
from reply_orchestrator.services.factory import create_backend, create_knowledge_store
from reply_orchestrator.services.mock_backend import MockBackend
from reply_orchestrator.services.usage import UsageRecord, UsageTracker

__all__ = [
    "ChatBackend",
    "ChatParams",
    "ChatResult",
    "EmbedResult",
    "TokenUsage",
    "ToolCall",
    "MockBackend",
    "UsageRecord",
    "UsageTracker",
    "create_backend",
    "create_knowledge_store",
]
