"""Tests for intent and yes/no classification."""

import pytest

from conftest import intent_json
from reply_orchestrator.orchestrator.intent_classifier import FALLBACK_INTENT, IntentClassifier
from reply_orchestrator.orchestrator.types import ConversationTurn, Intent, YesNoIntent
from reply_orchestrator.services.mock_backend import MockBackend


@pytest.mark.asyncio
async def test_classify_parses_valid_output():
    backend = MockBackend(responses=[intent_json("price_check", 0.92)])
    result = await IntentClassifier(backend).classify("How much is the red dress?", interaction_id="int_1")

    assert result.intent == Intent.PRICE_CHECK
    assert result.confidence == pytest.approx(0.92)

    params, interaction_id = backend.calls[0]
    assert params.temperature == 0.0
    assert params.max_tokens == 200
    assert params.usage_type == "intent"
    assert interaction_id == "int_1"


@pytest.mark.asyncio
async def test_classify_strips_code_fences():
    backend = MockBackend(responses=["```json\n" + intent_json("greeting", 0.99) + "\n```"])
    result = await IntentClassifier(backend).classify("hi!")

    assert result.intent == Intent.GREETING


@pytest.mark.asyncio
async def test_classify_ignores_text_around_json():
    backend = MockBackend(responses=[
        "Sure! Here is the classification:\n" + intent_json("price_check", 0.8) + "\nHope that helps."
    ])
    result = await IntentClassifier(backend).classify("How much?")

    assert result.intent == Intent.PRICE_CHECK
    assert result.confidence == pytest.approx(0.8)


@pytest.mark.asyncio
@pytest.mark.parametrize("scripted", [
    "I think this is a price check",
    '{"intent": "buy_now", "confidence": 0.9}',
    '{"intent": "price_check", "confidence": 1.7}',
    RuntimeError("connection reset"),
])
async def test_classify_falls_back_on_failure(scripted):
    backend = MockBackend(responses=[scripted])
    result = await IntentClassifier(backend).classify("How much?")

    assert result == FALLBACK_INTENT
    assert result.intent == Intent.UNKNOWN
    assert result.confidence == pytest.approx(0.3)


@pytest.mark.asyncio
async def test_classify_includes_recent_history_in_prompt():
    backend = MockBackend(responses=[intent_json("price_check", 0.8)])
    history = [
        ConversationTurn(role="user", content="Do you have the red dress?"),
        ConversationTurn(role="assistant", content="Yes, in sizes S to XL."),
    ]
    await IntentClassifier(backend).classify("how much?", history)

    prompt = backend.calls[0][0].user_message
    assert "user: Do you have the red dress?" in prompt
    assert "assistant: Yes, in sizes S to XL." in prompt


def test_summarize_history_keeps_last_turns_and_truncates():
    classifier = IntentClassifier(MockBackend())
    history = [ConversationTurn(role="user", content=f"message {i} " + "x" * 200) for i in range(10)]

    summary = classifier.summarize_history(history).splitlines()

    assert len(summary) == IntentClassifier.HISTORY_TURNS
    assert summary[0].startswith("user: message 4")
    assert all(len(line) <= len("user: ") + IntentClassifier.PREVIEW_CHARS for line in summary)


@pytest.mark.asyncio
@pytest.mark.parametrize("scripted,expected", [
    ('{"intent": "yes"}', YesNoIntent.YES),
    ('{"intent": "no"}', YesNoIntent.NO),
    ('{"intent": "maybe"}', YesNoIntent.UNKNOWN),
    ("not json", YesNoIntent.UNKNOWN),
])
async def test_detect_yes_no(scripted, expected):
    backend = MockBackend(responses=[scripted])
    assert await IntentClassifier(backend).detect_yes_no("naam") == expected
