"""Tests for the in-memory knowledge store."""

from datetime import datetime, timedelta

import pytest

from conftest import WORKSPACE_ID, unit_vector, vector_with_similarity
from reply_orchestrator.orchestrator.errors import PersistenceError
from reply_orchestrator.storage.knowledge_store import InMemoryKnowledgeStore


@pytest.mark.asyncio
async def test_similarity_search_ranks_and_filters(make_item):
    exact = make_item("Red Dress", "$50", embedding=unit_vector(0))
    close = make_item("Red Skirt", "$30", embedding=vector_with_similarity(0.8))
    far = make_item("Blue Hat", "$10", embedding=vector_with_similarity(0.4))
    unembedded = make_item("Returns", "14 days", category="policy")
    store = InMemoryKnowledgeStore([far, close, exact, unembedded])

    results = await store.similarity_search(WORKSPACE_ID, unit_vector(0), min_similarity=0.5, limit=5)

    assert [item.id for item, _ in results] == [exact.id, close.id]
    assert results[0][1] == pytest.approx(1.0)
    assert results[1][1] == pytest.approx(0.8)


@pytest.mark.asyncio
async def test_similarity_threshold_is_exclusive(make_item):
    item = make_item("Red Dress", "$50", embedding=unit_vector(0))
    store = InMemoryKnowledgeStore([item])

    assert await store.similarity_search(WORKSPACE_ID, unit_vector(0), min_similarity=1.0, limit=5) == []


@pytest.mark.asyncio
async def test_similarity_search_respects_limit_and_workspace(make_item):
    items = [make_item(f"Dress {i}", "$50", embedding=unit_vector(0)) for i in range(4)]
    other = make_item("Dress elsewhere", "$50", embedding=unit_vector(0), workspace_id="ws_other")
    store = InMemoryKnowledgeStore(items + [other])

    results = await store.similarity_search(WORKSPACE_ID, unit_vector(0), min_similarity=0.5, limit=2)

    assert len(results) == 2
    assert all(item.workspace_id == WORKSPACE_ID for item, _ in results)


@pytest.mark.asyncio
async def test_expired_items_are_hidden_unless_requested(make_item):
    expired = make_item("Summer sale", "20% off", embedding=unit_vector(0),
                        expires_at=datetime.now() - timedelta(days=1))
    store = InMemoryKnowledgeStore([expired])

    assert await store.similarity_search(WORKSPACE_ID, unit_vector(0), 0.5, 5) == []
    assert await store.keyword_search(WORKSPACE_ID, ["sale"], 5) == []

    [(item, _)] = await store.similarity_search(WORKSPACE_ID, unit_vector(0), 0.5, 5, include_expired=True)
    assert item.id == expired.id


@pytest.mark.asyncio
async def test_dimension_mismatch_returns_nothing(make_item):
    store = InMemoryKnowledgeStore([make_item("Red Dress", "$50", embedding=unit_vector(0))])

    assert await store.similarity_search(WORKSPACE_ID, unit_vector(0, dims=8), 0.5, 5) == []


@pytest.mark.asyncio
async def test_keyword_search_is_case_insensitive(make_item):
    dress = make_item("Red Dress", "Cotton, $50")
    hat = make_item("Hat", "Straw hat, $10")
    store = InMemoryKnowledgeStore([dress, hat])

    assert [item.id for item in await store.keyword_search(WORKSPACE_ID, ["COTTON"], 5)] == [dress.id]
    assert len(await store.keyword_search(WORKSPACE_ID, ["dress", "hat"], 5)) == 2
    assert await store.keyword_search(WORKSPACE_ID, [], 5) == []


@pytest.mark.asyncio
async def test_get_items_is_workspace_scoped(make_item):
    mine = make_item("Red Dress", "$50")
    theirs = make_item("Red Dress", "$40", workspace_id="ws_other")
    store = InMemoryKnowledgeStore([mine, theirs])

    found = await store.get_items(WORKSPACE_ID, [mine.id, theirs.id, "item_missing"])

    assert [item.id for item in found] == [mine.id]


@pytest.mark.asyncio
async def test_insert_and_update(store, make_item):
    item = await store.insert(make_item("Red Dress", "$50"))

    with pytest.raises(PersistenceError):
        await store.insert(item)

    item.content = "$45"
    await store.update(item)
    assert [i.content for i in await store.list_items(WORKSPACE_ID)] == ["$45"]

    with pytest.raises(PersistenceError):
        await store.update(make_item("Unknown", "never stored"))
