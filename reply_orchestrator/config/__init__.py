"""Configuration module."""

from reply_orchestrator.config.settings import Settings, get_settings, get_llm, get_embeddings
from reply_orchestrator.config.logging_config import configure_logging

__all__ = [
    "Settings",
    "get_settings",
    "get_llm",
    "get_embeddings",
    "configure_logging"
]
