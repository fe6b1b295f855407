"""End-to-end tests for the orchestrator pipeline."""

import json
from datetime import datetime, timedelta

import pytest

from conftest import WORKSPACE_ID, intent_json, reply_json, unit_vector, vector_with_similarity
from reply_orchestrator.orchestrator.errors import InteractionNotFoundError
from reply_orchestrator.orchestrator.orchestrator import Orchestrator, is_ambiguous
from reply_orchestrator.orchestrator.response_generator import APOLOGY_REPLY
from reply_orchestrator.orchestrator.tools import AddToCartCall
from reply_orchestrator.orchestrator.types import (
    ClarificationTicketInput,
    ConversationTurn,
    Intent,
    InteractionBundle,
    ResolutionOutcome,
    RetrievedKnowledge,
    SuggestedAction,
)
from reply_orchestrator.services.base import ChatResult, ToolCall
from reply_orchestrator.services.mock_backend import MockBackend
from reply_orchestrator.storage.knowledge_store import InMemoryKnowledgeStore
from reply_orchestrator.storage.models import CustomerRecord, InteractionRecord, TicketStatus

MESSAGE = "How much is the red dress?"


@pytest.fixture
def red_dress(make_item):
    return make_item("Red Dress", "$50", embedding=unit_vector(0), metadata={"sizes": "S-XL"})


def _orchestrator(backend, items, repository, settings):
    return Orchestrator(backend, InMemoryKnowledgeStore(items), repository, settings)


def _backend(*responses):
    return MockBackend(responses=responses, embeddings={MESSAGE: unit_vector(0)})


def _knowledge(*similarities):
    return [
        RetrievedKnowledge(id=f"k{i}", name="", content="", category="product", metadata={}, similarity=s)
        for i, s in enumerate(similarities)
    ]


@pytest.mark.parametrize("intent,similarities,expected", [
    (Intent.PRODUCT_INQUIRY, (0.9, 0.87), True),
    (Intent.PRICE_CHECK, (0.9, 0.86), True),
    (Intent.ORDER_INTENT, (0.9, 0.8), False),
    (Intent.DELIVERY_QUESTION, (0.9, 0.9), False),
    (Intent.PRICE_CHECK, (0.9,), False),
])
def test_is_ambiguous(intent, similarities, expected):
    assert is_ambiguous(intent, _knowledge(*similarities)) is expected


@pytest.mark.asyncio
async def test_single_source_answer_escalates(seeded_repository, settings, red_dress):
    backend = _backend(
        intent_json("price_check", 0.9),
        reply_json("The red dress is $50.", "price_check", 0.9, [red_dress.id])
    )
    orchestrator = _orchestrator(backend, [red_dress], seeded_repository, settings)

    result = await orchestrator.orchestrate("int_current")

    assert result.intent == Intent.PRICE_CHECK
    assert result.used_knowledge_ids == [red_dress.id]
    assert result.confidence == pytest.approx(0.705)
    assert result.should_escalate is True
    assert result.escalation_question is None
    # No side effects
    assert seeded_repository.tickets == {}


@pytest.mark.asyncio
async def test_two_source_answer_is_sent(seeded_repository, settings, red_dress, make_item):
    red_xl = make_item("Red Dress XL", "$55", embedding=vector_with_similarity(0.6))
    backend = _backend(
        intent_json("price_check", 0.9),
        reply_json("The red dress is $50, $55 in XL.", "price_check", 0.9, [red_dress.id, red_xl.id])
    )
    orchestrator = _orchestrator(backend, [red_dress, red_xl], seeded_repository, settings)

    result = await orchestrator.orchestrate("int_current")

    assert result.confidence == pytest.approx(0.8525)
    assert result.should_escalate is False
    assert result.confidence_signals.knowledge_item_count == 2
    assert "Ambiguity Detected" not in backend.calls[1][0].user_message


@pytest.mark.asyncio
async def test_empty_knowledge_base_escalates(seeded_repository, settings):
    backend = _backend(
        intent_json("price_check", 0.95),
        reply_json("It's $50!", "price_check", 1.0)
    )
    orchestrator = _orchestrator(backend, [], seeded_repository, settings)

    result = await orchestrator.orchestrate("int_current")

    assert result.should_escalate is True
    assert result.confidence < 0.5
    assert result.confidence_signals.knowledge_coverage == 0.0


@pytest.mark.asyncio
async def test_near_identical_matches_flag_ambiguity(seeded_repository, settings, red_dress, make_item):
    red_cap = make_item("Red Cap", "Red cap, $20", embedding=unit_vector(0))
    backend = _backend(
        intent_json("price_check", 0.9),
        reply_json("Did you mean 1) the Red Dress or 2) the Red Cap?", "price_check", 0.7,
                   needsClarification=True)
    )
    orchestrator = _orchestrator(backend, [red_dress, red_cap], seeded_repository, settings)

    result = await orchestrator.orchestrate("int_current")

    assert "Ambiguity Detected" in backend.calls[1][0].user_message
    assert result.needs_clarification is True
    assert result.should_escalate is True


@pytest.mark.asyncio
async def test_customer_preferences_and_simulation_reach_the_prompt(seeded_repository, settings, red_dress):
    seeded_repository.interactions["int_current"].source_id = "simulation"
    backend = _backend(
        intent_json("price_check", 0.9),
        reply_json("The red dress is $50.", "price_check", 0.9, [red_dress.id])
    )
    orchestrator = _orchestrator(backend, [red_dress], seeded_repository, settings)

    await orchestrator.orchestrate("int_current")

    prompt = backend.calls[1][0].user_message
    assert "Simulation mode" in prompt
    assert "Prefers size M, pays on delivery" in prompt


@pytest.mark.asyncio
async def test_history_is_passed_to_classifier_and_generator(seeded_repository, settings, red_dress):
    now = datetime.now()
    previous = [
        ("Hello", "Hi! How can I help?"),
        ("Do you have dresses?", "Yes, we have red and blue dresses."),
        ("Which sizes?", None),
        ("Ok", "Anything else?"),
    ]
    for index, (content, response) in enumerate(previous):
        await seeded_repository.save_interaction(InteractionRecord(
            workspace_id=WORKSPACE_ID,
            id=f"int_prev_{index}",
            content=content,
            response=response,
            author_id="author_1",
            created_at=now - timedelta(minutes=10 - index)
        ))
    await seeded_repository.save_interaction(InteractionRecord(
        workspace_id=WORKSPACE_ID, content="someone else", author_id="author_2"
    ))

    backend = _backend(
        intent_json("price_check", 0.9),
        reply_json("The red dress is $50.", "price_check", 0.9, [red_dress.id])
    )
    orchestrator = _orchestrator(backend, [red_dress], seeded_repository, settings)

    await orchestrator.orchestrate("int_current")

    expected = [
        ConversationTurn(role="user", content="Do you have dresses?"),
        ConversationTurn(role="assistant", content="Yes, we have red and blue dresses."),
        ConversationTurn(role="user", content="Which sizes?"),
        ConversationTurn(role="assistant", content="..."),
        ConversationTurn(role="user", content="Ok"),
        ConversationTurn(role="assistant", content="Anything else?"),
    ]
    assert list(backend.calls[1][0].history) == expected
    assert "user: Which sizes?" in backend.calls[0][0].user_message


@pytest.mark.asyncio
async def test_history_without_author_is_empty(seeded_repository, settings):
    orchestrator = _orchestrator(MockBackend(), [], seeded_repository, settings)

    assert await orchestrator.fetch_conversation_history(WORKSPACE_ID, None, "int_current") == []


@pytest.mark.asyncio
async def test_classifier_failure_still_produces_a_reply(seeded_repository, settings, red_dress):
    backend = _backend(
        "garbage",
        reply_json("The red dress is $50.", "price_check", 0.9, [red_dress.id])
    )
    orchestrator = _orchestrator(backend, [red_dress], seeded_repository, settings)

    result = await orchestrator.orchestrate("int_current")

    assert result.reply == "The red dress is $50."
    assert result.confidence_signals.intent_confidence == pytest.approx(0.3)
    assert result.should_escalate is True


@pytest.mark.asyncio
async def test_tool_calls_are_returned_and_validated(seeded_repository, settings, red_dress):
    call = ToolCall(id="call_1", name="add_to_cart",
                    arguments={"productId": red_dress.id, "productName": "Red Dress", "price": 50})
    backend = _backend(
        intent_json("order_intent", 0.95),
        ChatResult(content="", model="mock-model", tool_calls=[call])
    )
    orchestrator = _orchestrator(backend, [red_dress], seeded_repository, settings)

    result = await orchestrator.orchestrate("int_current")
    [validated] = orchestrator.validate_tool_calls(result.tool_calls)

    assert result.tool_calls == [call]
    assert isinstance(validated, AddToCartCall)
    assert validated.arguments.product_id == red_dress.id


@pytest.mark.asyncio
async def test_preloaded_bundle_skips_lookup(repository, settings, workspace, red_dress):
    backend = _backend(
        intent_json("price_check", 0.9),
        reply_json("The red dress is $50.", "price_check", 0.9, [red_dress.id])
    )
    orchestrator = _orchestrator(backend, [red_dress], repository, settings)

    result = await orchestrator.orchestrate(InteractionBundle(
        id="int_inline",
        workspace_id=WORKSPACE_ID,
        content=MESSAGE,
        workspace=workspace
    ))

    assert result.used_knowledge_ids == [red_dress.id]


@pytest.mark.asyncio
async def test_missing_interaction_raises(seeded_repository, settings):
    orchestrator = _orchestrator(MockBackend(), [], seeded_repository, settings)

    with pytest.raises(InteractionNotFoundError):
        await orchestrator.orchestrate("int_missing")


@pytest.mark.asyncio
async def test_missing_workspace_raises(seeded_repository, settings):
    await seeded_repository.save_interaction(InteractionRecord(
        workspace_id="ws_gone", id="int_orphan", content="hello"
    ))
    orchestrator = _orchestrator(MockBackend(), [], seeded_repository, settings)

    with pytest.raises(InteractionNotFoundError):
        await orchestrator.orchestrate("int_orphan")


@pytest.mark.asyncio
async def test_teach_reply_learns_and_resolves(seeded_repository, settings):
    question = "What is the price of the red dress in XL?"
    extraction = json.dumps({"knowledgeItems": [{
        "type": "pricing_rule", "name": "Red Dress XL price", "content": "XL costs $55", "confidence": 0.9
    }]})
    backend = MockBackend(responses=[json.dumps({"question": question}), extraction])
    orchestrator = _orchestrator(backend, [], seeded_repository, settings)

    ticket = await orchestrator.create_escalation(ClarificationTicketInput(
        workspace_id=WORKSPACE_ID,
        interaction_id="int_current",
        customer_message="How much is the red dress in XL?",
        detected_intent=Intent.PRICE_CHECK,
        customer_id="cust_1"
    ))
    assert [t.id for t in await orchestrator.get_pending_tickets(WORKSPACE_ID)] == [ticket.id]

    result = await orchestrator.teach_reply(ticket.id, "XL is $55")

    assert result.outcome == ResolutionOutcome.RESOLVED
    assert [k.name for k in result.knowledge] == ["Red Dress XL price"]
    assert question in backend.calls[1][0].user_message

    stored = seeded_repository.tickets[ticket.id]
    assert stored.status == TicketStatus.RESOLVED
    assert stored.extracted_knowledge[0]["content"] == "XL costs $55"
    assert [i.name for i in await orchestrator.store.list_items(WORKSPACE_ID)] == ["Red Dress XL price"]
    assert seeded_repository.customers["cust_1"].ai_paused is False

    again = await orchestrator.teach_reply(ticket.id, "XL is $60")
    assert again.outcome == ResolutionOutcome.ALREADY_RESOLVED
    assert len(backend.calls) == 2


@pytest.mark.asyncio
async def test_teach_reply_unknown_ticket(seeded_repository, settings):
    orchestrator = _orchestrator(MockBackend(), [], seeded_repository, settings)

    result = await orchestrator.teach_reply("tkt_missing", "hello")

    assert result.outcome == ResolutionOutcome.NOT_FOUND
    assert result.knowledge == []


@pytest.mark.asyncio
async def test_result_reports_classified_intent(seeded_repository, settings, red_dress):
    backend = _backend(
        intent_json("price_check", 0.9),
        reply_json("Hello! The red dress is $50.", "greeting", 0.9, [red_dress.id])
    )
    orchestrator = _orchestrator(backend, [red_dress], seeded_repository, settings)

    result = await orchestrator.orchestrate("int_current")

    assert result.intent == Intent.PRICE_CHECK


@pytest.mark.asyncio
async def test_invalid_tool_call_becomes_apology(seeded_repository, settings, red_dress):
    backend = _backend(
        intent_json("order_intent", 0.95),
        ChatResult(content="", model="mock-model", tool_calls=[
            ToolCall(id="call_1", name="add_to_cart", arguments={"productId": red_dress.id})
        ])
    )
    orchestrator = _orchestrator(backend, [red_dress], seeded_repository, settings)

    result = await orchestrator.orchestrate("int_current")

    assert result.reply == APOLOGY_REPLY
    assert result.tool_calls is None
    assert result.should_escalate is True
    assert result.suggested_actions == [SuggestedAction.ESCALATE_TO_HUMAN]
    assert orchestrator.validate_tool_calls(result.tool_calls) == []


@pytest.mark.asyncio
async def test_customer_of_another_workspace_is_ignored(seeded_repository, settings, red_dress):
    await seeded_repository.save_customer(CustomerRecord(
        workspace_id="ws_other", id="cust_other", preferences_summary="Other shop's private notes"
    ))
    seeded_repository.interactions["int_current"].customer_id = "cust_other"
    backend = _backend(
        intent_json("price_check", 0.9),
        reply_json("The red dress is $50.", "price_check", 0.9, [red_dress.id])
    )
    orchestrator = _orchestrator(backend, [red_dress], seeded_repository, settings)

    bundle = await orchestrator.load_interaction("int_current")
    await orchestrator.orchestrate("int_current")

    assert bundle.customer is None
    assert "Other shop's private notes" not in backend.calls[1][0].user_message


@pytest.mark.asyncio
async def test_preloaded_bundle_drops_foreign_customer(repository, settings, workspace, red_dress):
    backend = _backend(
        intent_json("price_check", 0.9),
        reply_json("The red dress is $50.", "price_check", 0.9, [red_dress.id])
    )
    orchestrator = _orchestrator(backend, [red_dress], repository, settings)

    await orchestrator.orchestrate(InteractionBundle(
        id="int_inline",
        workspace_id=WORKSPACE_ID,
        content=MESSAGE,
        workspace=workspace,
        customer=CustomerRecord(workspace_id="ws_other", id="cust_other", preferences_summary="Private notes")
    ))

    assert "Private notes" not in backend.calls[1][0].user_message
