import pytest

from cooling_feedback.models.action import Intent
from cooling_feedback.models.conversation import ConversationTurn, TurnRole
from cooling_feedback.storage.chat_store import MAX_STORED_TEXT


def _turn(text: str, role: TurnRole = TurnRole.USER, session_id: str = "s-1", **kwargs) -> ConversationTurn:
    return ConversationTurn(zone_id="1", session_id=session_id, role=role, text=text, **kwargs)


@pytest.mark.asyncio
async def test_turns_come_back_newest_first(chat_store) -> None:
    for i in range(3):
        await chat_store.record_turn(_turn(f"message {i}"))

    turns = await chat_store.get_turns("1", "s-1")

    assert [t.text for t in turns] == ["message 2", "message 1", "message 0"]


@pytest.mark.asyncio
async def test_limit_and_session_filter(chat_store) -> None:
    for i in range(5):
        await chat_store.record_turn(_turn(f"message {i}"))
    await chat_store.record_turn(_turn("other session", session_id="s-2"))

    turns = await chat_store.get_turns("1", "s-1", limit=2)

    assert [t.text for t in turns] == ["message 4", "message 3"]


@pytest.mark.asyncio
async def test_assistant_turn_keeps_classification(chat_store) -> None:
    await chat_store.record_turn(_turn(
        "Done.",
        role=TurnRole.ASSISTANT,
        request_id="abc",
        intent=Intent.FEEDBACK,
        requires_action=True,
        action={"power": "ON", "deltaC": -2.0},
    ))

    [turn] = await chat_store.get_turns("1", "s-1")

    assert turn.role == TurnRole.ASSISTANT
    assert turn.intent == Intent.FEEDBACK
    assert turn.requires_action is True
    assert turn.action == {"power": "ON", "deltaC": -2.0}
    assert turn.request_id == "abc"


@pytest.mark.asyncio
async def test_long_text_is_truncated(chat_store) -> None:
    await chat_store.record_turn(_turn("x" * (MAX_STORED_TEXT + 100)))

    [turn] = await chat_store.get_turns("1", "s-1")

    assert len(turn.text) == MAX_STORED_TEXT


@pytest.mark.asyncio
async def test_exchange_is_written_together(chat_store) -> None:
    ids = await chat_store.record_turns([
        _turn("too hot"),
        _turn("Lowered to 22°C.", role=TurnRole.ASSISTANT, intent=Intent.FEEDBACK),
    ])

    turns = await chat_store.get_turns("1", "s-1")

    assert len(set(ids)) == 2
    assert [t.text for t in turns] == ["Lowered to 22°C.", "too hot"]


@pytest.mark.asyncio
async def test_failed_exchange_leaves_no_partial_turns(chat_store) -> None:
    with pytest.raises(TypeError):
        await chat_store.record_turns([
            _turn("too hot"),
            _turn("Done.", role=TurnRole.ASSISTANT, action={"power": object()}),
        ])

    assert await chat_store.get_turns("1", "s-1") == []

    await chat_store.record_turn(_turn("still there?"))
    assert [t.text for t in await chat_store.get_turns("1", "s-1")] == ["still there?"]
