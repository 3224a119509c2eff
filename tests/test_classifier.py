import asyncio

import pytest

from cooling_feedback.engine.classifier import GenerativeClassifier, build_classification_prompt
from cooling_feedback.exceptions import LLMError, LLMFailure
from cooling_feedback.models.action import ClassifierSource, Intent
from cooling_feedback.models.conversation import HistoryMessage, TurnRole


def test_prompt_carries_zone_history_and_message() -> None:
    prompt = build_classification_prompt(
        "1",
        [
            HistoryMessage(role=TurnRole.USER, text="too hot"),
            HistoryMessage(role=TurnRole.ASSISTANT, text="Done. The AC is on and set to 22°C."),
        ],
        "still hot",
    )

    assert prompt.splitlines() == [
        "Zone ID: 1",
        "Conversation so far:",
        "User: too hot",
        "Assistant: Done. The AC is on and set to 22°C.",
        "",
        "Latest user message: still hot",
    ]


def test_prompt_without_history() -> None:
    assert build_classification_prompt("2", [], "hi") == "Zone ID: 2\nLatest user message: hi"


@pytest.mark.asyncio
async def test_parses_camel_case_json(llm) -> None:
    llm.chat_json.return_value = {
        "intent": "FEEDBACK",
        "requiresAction": True,
        "action": {"power": "ON", "deltaC": -2},
    }

    result = await GenerativeClassifier(llm).classify("prompt", "1")

    assert result.intent == Intent.FEEDBACK
    assert result.requires_action is True
    assert result.action.delta_c == -2.0
    assert result.source == ClassifierSource.LLM


@pytest.mark.asyncio
async def test_read_intent_never_carries_an_action(llm) -> None:
    llm.chat_json.return_value = {
        "intent": "GET_HUMIDITY",
        "requiresAction": True,
        "action": {"setpointC": 20},
    }

    result = await GenerativeClassifier(llm).classify("prompt", "1")

    assert result.requires_action is False
    assert result.action is None


@pytest.mark.asyncio
async def test_off_schema_output_is_an_error(llm) -> None:
    llm.chat_json.return_value = {"intent": "MAKE_COFFEE"}

    with pytest.raises(LLMError) as exc_info:
        await GenerativeClassifier(llm).classify("prompt", "1")

    assert exc_info.value.reason == LLMFailure.ERROR


@pytest.mark.asyncio
async def test_slow_backend_times_out(llm) -> None:
    async def never_answers(**kwargs):
        await asyncio.sleep(5)

    llm.chat_json.side_effect = never_answers

    with pytest.raises(LLMError) as exc_info:
        await GenerativeClassifier(llm, timeout_seconds=0.01).classify("prompt", "1")

    assert exc_info.value.reason == LLMFailure.TIMEOUT
    assert exc_info.value.code == "BACKEND_TIMEOUT"


@pytest.mark.asyncio
async def test_backend_errors_propagate(llm) -> None:
    llm.chat_json.side_effect = LLMError(LLMFailure.RATE_LIMIT, "slow down")

    with pytest.raises(LLMError) as exc_info:
        await GenerativeClassifier(llm).classify("prompt", "1")

    assert exc_info.value.reason == LLMFailure.RATE_LIMIT
