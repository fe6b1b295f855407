"""
Reply Orchestrator - FastAPI Application
Main entry point for the API server.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from reply_orchestrator.api.routers import orchestrator as orchestrator_router
from reply_orchestrator.config.logging_config import configure_logging
from reply_orchestrator.config.settings import Settings, get_settings
from reply_orchestrator.orchestrator.errors import (
    InteractionNotFoundError,
    OrchestratorError,
    PersistenceError,
    ToolArgumentError,
)
from reply_orchestrator.orchestrator.orchestrator import Orchestrator
from reply_orchestrator.services.factory import create_backend, create_knowledge_store
from reply_orchestrator.services.usage import UsageTracker
from reply_orchestrator.storage.repository import InMemoryRepository

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    InteractionNotFoundError: status.HTTP_404_NOT_FOUND,
    ToolArgumentError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    PersistenceError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Settings to use; defaults to get_settings()

    Returns:
        Configured FastAPI app
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Construct the backend, stores and orchestrator once per process."""
        configure_logging(settings)

        logger.info(f"Starting {settings.app_name} v{settings.app_version}")
        logger.info(f"Environment: {settings.environment}")
        logger.info(f"LLM provider: {settings.llm_provider}, knowledge store: {settings.knowledge_store}")

        app.state.settings = settings
        app.state.usage_tracker = UsageTracker()
        app.state.backend = create_backend(settings, usage_tracker=app.state.usage_tracker)
        app.state.knowledge_store = create_knowledge_store(settings)
        app.state.repository = InMemoryRepository()
        app.state.orchestrator = Orchestrator(
            app.state.backend,
            app.state.knowledge_store,
            app.state.repository,
            settings
        )

        yield

        logger.info("Shutting down application...")

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="""
        Reply Orchestrator API

        - Intent classification and knowledge-grounded replies
        - Deterministic confidence scoring
        - Clarification tickets for the seller when the AI is unsure
        - Learning from the seller's answers
        """,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle validation errors."""
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": "Validation Error",
                "detail": jsonable_encoder(exc.errors())
            }
        )

    @app.exception_handler(OrchestratorError)
    async def orchestrator_exception_handler(request: Request, exc: OrchestratorError):
        """Map orchestrator errors onto HTTP status codes."""
        status_code = next(
            (code for error_type, code in ERROR_STATUS.items() if isinstance(exc, error_type)),
            status.HTTP_500_INTERNAL_SERVER_ERROR
        )
        if status_code >= 500:
            logger.error(f"{exc.error_code} on {request.url.path}: {exc.message}")
        return JSONResponse(status_code=status_code, content=jsonable_encoder(exc.to_dict()))

    app.include_router(orchestrator_router.router)

    @app.get("/health", tags=["Health"])
    async def health_check() -> Dict[str, Any]:
        """Basic health check endpoint."""
        return {
            "status": "healthy",
            "app": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "reply_orchestrator.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=get_settings().debug
    )
