"""
Application settings using Pydantic Settings management.
Loads configuration from environment variables and .env file.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ===========================================
    # Application Settings
    # ===========================================
    app_name: str = Field(default="Reply Orchestrator")
    app_version: str = Field(default="1.0.0")
    debug: bool = Field(default=False)
    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")

    # ===========================================
    # API Keys
    # ===========================================
    openai_api_key: str = Field(default="")

    # ===========================================
    # LLM Settings
    # ===========================================
    # Provider: "openai", "ollama", "mock"
    llm_provider: str = Field(default="openai")
    llm_model: str = Field(default="gpt-4o-mini")
    llm_timeout_seconds: float = Field(default=30.0)
    llm_max_retries: int = Field(default=3)

    # Ollama Settings (OpenAI-compatible endpoint)
    ollama_base_url: str = Field(default="http://localhost:11434")

    # Embedding Settings
    embedding_model: str = Field(default="text-embedding-3-small")
    embedding_dimensions: int = Field(default=768)

    # ===========================================
    # ChromaDB
    # ===========================================
    # Store: "memory", "chroma"
    knowledge_store: str = Field(default="memory")
    chroma_host: str = Field(default="localhost")
    chroma_port: int = Field(default=8001)
    chroma_persist_directory: Optional[str] = Field(default=None)
    chroma_collection: str = Field(default="knowledge_items")

    # ===========================================
    # Orchestrator Thresholds
    # ===========================================
    confidence_threshold: float = Field(default=0.75)
    vector_similarity_threshold: float = Field(default=0.5)
    hybrid_score_threshold: float = Field(default=0.4)
    dedup_similarity_threshold: float = Field(default=0.85)
    seller_confirmation_threshold: float = Field(default=0.75)
    max_retrieval_results: int = Field(default=8)
    history_max_turns: int = Field(default=3)

    # ===========================================
    # CORS Settings
    # ===========================================
    cors_origins: List[str] = Field(
        default=["http://localhost:3000"]
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS origins from string or list."""
        if isinstance(v, str):
            import json
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(",")]
        return v

    @field_validator(
        "confidence_threshold",
        "vector_similarity_threshold",
        "hybrid_score_threshold",
        "dedup_similarity_threshold",
        "seller_confirmation_threshold",
    )
    @classmethod
    def check_unit_interval(cls, v: float) -> float:
        """Thresholds are similarities/confidences and must lie in [0, 1]."""
        if not 0.0 <= v <= 1.0:
            raise ValueError("threshold must be between 0 and 1")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def get_llm(
    settings: Settings,
    temperature: float = 0.3,
    max_tokens: Optional[int] = None
):
    """
    Create a chat model instance for the configured provider.

    Ollama exposes an OpenAI-compatible API, so both providers go
    through ChatOpenAI.

    Args:
        settings: Application settings
        temperature: LLM temperature setting
        max_tokens: Output token budget

    Returns:
        Configured ChatOpenAI instance
    """
    from langchain_openai import ChatOpenAI

    provider = settings.llm_provider.lower()

    if provider == 'ollama':
        return ChatOpenAI(
            model=settings.llm_model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=settings.llm_timeout_seconds,
            base_url=f"{settings.ollama_base_url}/v1",
            api_key="ollama"
        )
    return ChatOpenAI(
        model=settings.llm_model,
        temperature=temperature,
        max_tokens=max_tokens,
        timeout=settings.llm_timeout_seconds,
        api_key=settings.openai_api_key
    )


def get_embeddings(settings: Settings):
    """Create an embeddings client for the configured provider."""
    from langchain_openai import OpenAIEmbeddings

    if settings.llm_provider.lower() == 'ollama':
        return OpenAIEmbeddings(
            model=settings.embedding_model,
            base_url=f"{settings.ollama_base_url}/v1",
            api_key="ollama",
            check_embedding_ctx_length=False
        )
    return OpenAIEmbeddings(
        model=settings.embedding_model,
        dimensions=settings.embedding_dimensions,
        api_key=settings.openai_api_key
    )
