"""Tests for settings and the backend/store factories."""

import pytest
from pydantic import ValidationError

from reply_orchestrator.config.settings import Settings
from reply_orchestrator.services.factory import create_backend, create_knowledge_store
from reply_orchestrator.services.mock_backend import MockBackend
from reply_orchestrator.storage.knowledge_store import InMemoryKnowledgeStore


def test_defaults():
    settings = Settings(_env_file=None)

    assert settings.confidence_threshold == 0.75
    assert settings.dedup_similarity_threshold == 0.85
    assert settings.max_retrieval_results == 8
    assert settings.history_max_turns == 3


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("LLM_PROVIDER", "ollama")
    monkeypatch.setenv("CONFIDENCE_THRESHOLD", "0.6")

    settings = Settings(_env_file=None)

    assert settings.llm_provider == "ollama"
    assert settings.confidence_threshold == 0.6


def test_cors_origins_from_comma_separated_string():
    settings = Settings(_env_file=None, cors_origins="http://a.test, http://b.test")

    assert settings.cors_origins == ["http://a.test", "http://b.test"]


def test_thresholds_must_be_unit_interval():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, confidence_threshold=1.5)


def test_create_mock_backend(settings):
    backend = create_backend(settings)

    assert isinstance(backend, MockBackend)


def test_create_backend_rejects_unknown_provider():
    with pytest.raises(ValueError):
        create_backend(Settings(_env_file=None, llm_provider="carrier-pigeon"))


def test_create_knowledge_store(settings):
    assert isinstance(create_knowledge_store(settings), InMemoryKnowledgeStore)

    with pytest.raises(ValueError):
        create_knowledge_store(Settings(_env_file=None, knowledge_store="filing-cabinet"))
