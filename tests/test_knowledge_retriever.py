"""Tests for hybrid knowledge retrieval."""

from datetime import datetime, timedelta

import pytest

from conftest import WORKSPACE_ID, unit_vector, vector_with_similarity
from reply_orchestrator.orchestrator.knowledge_retriever import KnowledgeRetriever
from reply_orchestrator.orchestrator.types import ConversationTurn, Intent
from reply_orchestrator.services.mock_backend import MockBackend
from reply_orchestrator.storage.knowledge_store import InMemoryKnowledgeStore

QUERY = "Do you sell leather handbags"
OLD = datetime.now() - timedelta(days=200)


def _retriever(store, settings, query_vector=None, **backend_kwargs):
    backend = MockBackend(embeddings={QUERY: query_vector or unit_vector(0)}, **backend_kwargs)
    return KnowledgeRetriever(backend, store, settings), backend


def test_extract_keywords_drops_stop_words_and_short_words():
    assert KnowledgeRetriever.extract_keywords("How much is the RED dress, please?") == ["red", "dress", "please"]


def test_extract_keywords_caps_at_five():
    words = "alpha bravo charlie delta echo foxtrot golf"
    assert KnowledgeRetriever.extract_keywords(words) == ["alpha", "bravo", "charlie", "delta", "echo"]


@pytest.mark.asyncio
async def test_empty_store_returns_nothing(settings):
    retriever, _ = _retriever(InMemoryKnowledgeStore(), settings)
    assert await retriever.retrieve(WORKSPACE_ID, QUERY, Intent.PRODUCT_INQUIRY) == []


@pytest.mark.asyncio
async def test_ranks_by_hybrid_score(settings, make_item):
    handbag = make_item("Leather Handbag", "Genuine leather, $120", embedding=unit_vector(0))
    tote = make_item("Canvas Tote", "Cotton canvas", embedding=vector_with_similarity(0.7))
    scarf = make_item("Silk Scarf", "Pure silk", embedding=unit_vector(5))
    store = InMemoryKnowledgeStore([scarf, tote, handbag])

    retriever, _ = _retriever(store, settings)
    results = await retriever.retrieve(WORKSPACE_ID, QUERY, Intent.PRODUCT_INQUIRY)

    assert [r.id for r in results] == [handbag.id, tote.id]
    assert results[0].similarity == pytest.approx(1.0)
    # 0.5 * 0.7 + 0.1 * recency + 0.15 * boost
    assert results[1].similarity == pytest.approx(0.6, abs=0.01)


@pytest.mark.asyncio
async def test_items_at_or_below_hybrid_floor_are_dropped(settings, make_item):
    weak_vector = make_item("Returns FAQ", "Returns within 7 days", category="faq",
                            embedding=vector_with_similarity(0.55), updated_at=OLD)
    keyword_only_old = make_item("Leather care", "Use a soft cloth", category="policy", updated_at=OLD)
    keyword_only_fresh = make_item("Leather wallet", "Brown leather", category="product")
    store = InMemoryKnowledgeStore([weak_vector, keyword_only_old, keyword_only_fresh])

    retriever, _ = _retriever(store, settings)
    results = await retriever.retrieve(WORKSPACE_ID, QUERY, Intent.PRODUCT_INQUIRY)

    assert [r.id for r in results] == [keyword_only_fresh.id]
    assert results[0].similarity == pytest.approx(0.5, abs=0.01)


@pytest.mark.asyncio
async def test_intent_boost_favours_matching_category(settings, make_item):
    policy = make_item("Shipping", "2-3 days", category="policy",
                       embedding=vector_with_similarity(0.6), updated_at=OLD)
    product = make_item("Sneakers", "White sneakers", category="product",
                        embedding=vector_with_similarity(0.6, other=2), updated_at=OLD)
    store = InMemoryKnowledgeStore([policy, product])

    retriever, _ = _retriever(store, settings)
    results = await retriever.retrieve(WORKSPACE_ID, QUERY, Intent.DELIVERY_QUESTION)

    assert [r.id for r in results] == [policy.id]
    assert results[0].similarity == pytest.approx(0.45)


@pytest.mark.asyncio
async def test_related_items_are_appended(settings, make_item):
    strap = make_item("Spare Strap", "Adjustable, brown")
    handbag = make_item("Leather Handbag", "Genuine leather", embedding=unit_vector(0),
                        related_item_ids=[strap.id])
    store = InMemoryKnowledgeStore([handbag, strap])

    retriever, _ = _retriever(store, settings)
    results = await retriever.retrieve(WORKSPACE_ID, QUERY, Intent.PRODUCT_INQUIRY)

    assert [r.id for r in results][-1] == strap.id
    assert results[-1].similarity == pytest.approx(KnowledgeRetriever.RELATED_SIMILARITY)


@pytest.mark.asyncio
async def test_max_results_limits_ranked_items(settings, make_item):
    items = [
        make_item(f"Leather item {i}", "leather", embedding=vector_with_similarity(0.9 - i * 0.05, other=i + 1))
        for i in range(4)
    ]
    retriever, _ = _retriever(InMemoryKnowledgeStore(items), settings)

    results = await retriever.retrieve(WORKSPACE_ID, QUERY, Intent.PRODUCT_INQUIRY, max_results=2)

    assert [r.id for r in results] == [items[0].id, items[1].id]


@pytest.mark.asyncio
async def test_expired_and_foreign_items_are_ignored(settings, make_item):
    expired = make_item("Old promo", "50% off", embedding=unit_vector(0),
                        expires_at=datetime.now() - timedelta(days=1))
    foreign = make_item("Other shop bag", "leather", embedding=unit_vector(0), workspace_id="ws_other")
    retriever, _ = _retriever(InMemoryKnowledgeStore([expired, foreign]), settings)

    assert await retriever.retrieve(WORKSPACE_ID, QUERY, Intent.PRODUCT_INQUIRY) == []


@pytest.mark.asyncio
async def test_short_follow_up_is_embedded_with_context(settings):
    backend = MockBackend()
    retriever = KnowledgeRetriever(backend, InMemoryKnowledgeStore(), settings)
    history = [
        ConversationTurn(role="user", content="How much is the red dress?"),
        ConversationTurn(role="assistant", content="The red dress is $50."),
    ]

    await retriever.retrieve(WORKSPACE_ID, "and in blue?", Intent.PRODUCT_INQUIRY, history=history)

    assert backend.embed_calls == ["Context: The red dress is $50.... Query: and in blue?"]


@pytest.mark.asyncio
async def test_long_query_is_embedded_as_is(settings):
    backend = MockBackend()
    retriever = KnowledgeRetriever(backend, InMemoryKnowledgeStore(), settings)
    history = [ConversationTurn(role="assistant", content="Hello!")]

    await retriever.retrieve(WORKSPACE_ID, "do you deliver to Casablanca on weekends", Intent.DELIVERY_QUESTION,
                             history=history)

    assert backend.embed_calls == ["do you deliver to Casablanca on weekends"]


@pytest.mark.asyncio
async def test_embedding_failure_returns_empty(settings, make_item):
    store = InMemoryKnowledgeStore([make_item("Leather Handbag", "leather", embedding=unit_vector(0))])
    backend = MockBackend(failing_embeddings={QUERY})
    retriever = KnowledgeRetriever(backend, store, settings)

    assert await retriever.retrieve(WORKSPACE_ID, QUERY, Intent.PRODUCT_INQUIRY) == []
