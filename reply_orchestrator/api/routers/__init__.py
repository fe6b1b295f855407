"""API routers module."""

from reply_orchestrator.api.routers import orchestrator

__all__ = ["orchestrator"]
