"""Shared fixtures for orchestrator tests."""

import json
import math
from typing import List

import pytest
import pytest_asyncio

from reply_orchestrator.config.settings import Settings
from reply_orchestrator.services.mock_backend import MockBackend
from reply_orchestrator.storage.knowledge_store import InMemoryKnowledgeStore
from reply_orchestrator.storage.models import (
    CustomerRecord,
    InteractionRecord,
    KnowledgeItem,
    WorkspaceContext,
)
from reply_orchestrator.storage.repository import InMemoryRepository

DIMS = 768
WORKSPACE_ID = "ws_test"


def unit_vector(index: int, dims: int = DIMS) -> List[float]:
    vector = [0.0] * dims
    vector[index] = 1.0
    return vector


def vector_with_similarity(similarity: float, base: int = 0, other: int = 1, dims: int = DIMS) -> List[float]:
    """Unit vector whose cosine similarity to unit_vector(base) is `similarity`."""
    vector = [0.0] * dims
    vector[base] = similarity
    vector[other] = math.sqrt(max(0.0, 1 - similarity ** 2))
    return vector


def intent_json(intent: str, confidence: float) -> str:
    return json.dumps({"intent": intent, "confidence": confidence, "reasoning": "test"})


def reply_json(reply: str, intent: str, confidence: float, used_ids=(), **extra) -> str:
    payload = {
        "reply": reply,
        "intent": intent,
        "confidence": confidence,
        "usedKnowledgeIds": list(used_ids),
    }
    payload.update(extra)
    return json.dumps(payload)


@pytest.fixture
def settings():
    """Settings pinned to defaults, independent of the environment."""
    return Settings(
        _env_file=None,
        llm_provider="mock",
        knowledge_store="memory",
        embedding_dimensions=DIMS
    )


@pytest.fixture
def backend():
    return MockBackend(dimensions=DIMS)


@pytest.fixture
def store():
    return InMemoryKnowledgeStore()


@pytest.fixture
def repository():
    return InMemoryRepository()


@pytest.fixture
def workspace():
    return WorkspaceContext(
        id=WORKSPACE_ID,
        name="nadia",
        business_name="Nadia Boutique",
        industry="fashion",
        tone_of_voice="friendly",
        settings={"language": "English"}
    )


@pytest.fixture
def make_item():
    def _make(name, content, category="product", embedding=None, **kwargs):
        return KnowledgeItem(
            workspace_id=kwargs.pop("workspace_id", WORKSPACE_ID),
            name=name,
            content=content,
            category=category,
            embedding=embedding,
            **kwargs
        )
    return _make


@pytest_asyncio.fixture
async def seeded_repository(repository, workspace):
    """Repository holding the workspace, one customer and one pending interaction."""
    await repository.save_workspace(workspace)
    customer = await repository.save_customer(CustomerRecord(
        workspace_id=workspace.id,
        id="cust_1",
        name="Amina",
        preferences_summary="Prefers size M, pays on delivery"
    ))
    await repository.save_interaction(InteractionRecord(
        workspace_id=workspace.id,
        id="int_current",
        content="How much is the red dress?",
        author_id="author_1",
        customer_id=customer.id
    ))
    return repository
