"""
Orchestrator exception hierarchy.

Generation errors never cross a component boundary: the classifier,
retriever, response generator and extractor convert them into safe
fallback values. Persistence errors are allowed to propagate so the
caller can retry the whole interaction.
"""

from typing import Any, Dict, Optional


class OrchestratorError(Exception):
    """Base exception for all orchestrator errors."""

    error_code = "ORCHESTRATOR_ERROR"

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None
    ):
        """
        Initialize orchestrator error.

        Args:
            message: Human-readable error message
            context: Additional error context
            cause: Underlying exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary representation."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
            "cause": str(self.cause) if self.cause else None,
        }


# ===== LLM Generation Errors =====

class GenerationError(OrchestratorError):
    """An LLM call did not produce a usable structured result."""

    error_code = "GENERATION_ERROR"


class BackendError(GenerationError):
    """Network failure, timeout or non-2xx response from the chat backend."""

    error_code = "BACKEND_ERROR"


class MalformedOutputError(GenerationError):
    """Backend output was not parseable JSON."""

    error_code = "MALFORMED_OUTPUT"


class SchemaValidationError(GenerationError):
    """Backend output parsed but did not match the expected schema."""

    error_code = "SCHEMA_VALIDATION_ERROR"


# ===== Persistence and Lookup Errors =====

class PersistenceError(OrchestratorError):
    """A write to the repository or knowledge store failed."""

    error_code = "PERSISTENCE_ERROR"


class InteractionNotFoundError(OrchestratorError):
    """The interaction (or its workspace) to orchestrate does not exist."""

    error_code = "INTERACTION_NOT_FOUND"

    def __init__(self, interaction_id: str, **kwargs):
        super().__init__(
            message=f"Interaction {interaction_id} not found",
            context={"interaction_id": interaction_id},
            **kwargs
        )


class ToolArgumentError(OrchestratorError):
    """Tool call arguments failed validation against the tool's schema."""

    error_code = "TOOL_ARGUMENT_ERROR"
