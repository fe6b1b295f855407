"""
Backend Factory
Builds the chat backend and knowledge store selected in settings.
Called once at process start; the results are passed into each component.
"""

import logging
from typing import Optional, TYPE_CHECKING

from reply_orchestrator.config.settings import Settings
from reply_orchestrator.services.base import ChatBackend
from reply_orchestrator.services.usage import UsageTracker

if TYPE_CHECKING:
    from reply_orchestrator.storage.knowledge_store import KnowledgeStore

logger = logging.getLogger(__name__)


def create_backend(
    settings: Settings,
    usage_tracker: Optional[UsageTracker] = None
) -> ChatBackend:
    """
    Create the chat/embedding backend for the configured provider.

    Args:
        settings: Application settings
        usage_tracker: Optional usage log shared across calls

    Returns:
        ChatBackend instance
    """
    provider = settings.llm_provider.lower()

    if provider == "mock":
        from reply_orchestrator.services.mock_backend import MockBackend
        logger.info("Using mock chat backend")
        return MockBackend(dimensions=settings.embedding_dimensions)

    if provider in ("openai", "ollama"):
        from reply_orchestrator.services.langchain_backend import LangChainBackend
        logger.info(f"Using {provider} chat backend with model {settings.llm_model}")
        return LangChainBackend(settings, usage_tracker=usage_tracker)

    raise ValueError(f"Unknown LLM provider: {settings.llm_provider}")


def create_knowledge_store(settings: Settings) -> "KnowledgeStore":
    """Create the knowledge store selected by settings.knowledge_store."""
    kind = settings.knowledge_store.lower()

    if kind == "memory":
        from reply_orchestrator.storage.knowledge_store import InMemoryKnowledgeStore
        return InMemoryKnowledgeStore()

    if kind == "chroma":
        from reply_orchestrator.storage.chroma_store import ChromaKnowledgeStore
        return ChromaKnowledgeStore.from_settings(settings)

    raise ValueError(f"Unknown knowledge store: {settings.knowledge_store}")
