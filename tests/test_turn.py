"""Tests for run_turn(): one persisted, streamed conversational turn."""

import asyncio
import json
from unittest.mock import AsyncMock, patch

import pytest

from wisdomai.chats import turn
from wisdomai.chats.models import ChatMessage, Role
from wisdomai.chats.store import ChatNotFoundError, ChatStore
from wisdomai.chats.turn import run_turn
from wisdomai.llm.client import ProviderError
from wisdomai.llm.personas import PERSONA_INSTRUCTIONS, Persona
from wisdomai.llm.prompt import ComposedPrompt

# -- Helpers -----------------------------------------------------------------


def _fake_generate(*chunks: str):
    """A generate_response stand-in that streams *chunks* to the callback."""

    async def _generate(messages, *, system, on_text_delta=None, **kwargs):
        for chunk in chunks:
            if on_text_delta:
                await on_text_delta(chunk)
        return "".join(chunks)

    return AsyncMock(side_effect=_generate)


def _fake_compose():
    async def _compose(user_id, message, persona, chat_id=None):
        return ComposedPrompt(
            system=f"system for {persona}",
            messages=[{"role": "user", "content": message}],
        )

    return AsyncMock(side_effect=_compose)


async def _drain_background() -> None:
    if turn._background_tasks:
        await asyncio.gather(*turn._background_tasks)


@pytest.fixture
def memory_update():
    with patch("wisdomai.chats.turn.update_user_memory", new=AsyncMock()) as mock:
        yield mock


# -- Tests -------------------------------------------------------------------


async def test_new_chat_turn(chat_store: ChatStore, memory_update: AsyncMock) -> None:
    received: list[str] = []

    async def on_delta(text: str) -> None:
        received.append(text)

    with (
        patch("wisdomai.chats.turn.compose_prompt", _fake_compose()),
        patch("wisdomai.chats.turn.generate_response", _fake_generate("Breathe. ", "Let go.")),
    ):
        result = await run_turn("u1", "How do I calm my mind?", Persona.BUDDHA, on_text_delta=on_delta)

    assert received == ["Breathe. ", "Let go."]
    assert result.reply == "Breathe. Let go."
    assert result.title == "How do I calm my mind?"

    session = await chat_store.get_session(result.chat_id, "u1")
    assert [(m.role, m.content) for m in session.messages] == [
        (Role.USER, "How do I calm my mind?"),
        (Role.ASSISTANT, "Breathe. Let go."),
    ]
    assert session.messages[1].persona is Persona.BUDDHA

    await _drain_background()
    memory_update.assert_awaited_once_with(
        "u1",
        user_message="How do I calm my mind?",
        ai_response="Breathe. Let go.",
        persona="Buddha",
    )


async def test_existing_chat_turn(chat_store: ChatStore, memory_update) -> None:
    session = await chat_store.create_session("u1", ChatMessage(role=Role.USER, content="q1"))
    compose = _fake_compose()

    with (
        patch("wisdomai.chats.turn.compose_prompt", compose),
        patch("wisdomai.chats.turn.generate_response", _fake_generate("a2")),
    ):
        result = await run_turn("u1", "q2", Persona.TWAIN, chat_id=session.id)

    assert result.chat_id == session.id
    assert result.title == "q1"
    compose.assert_awaited_once_with("u1", "q2", "Twain", session.id)

    stored = await chat_store.get_session(session.id, "u1")
    assert [m.content for m in stored.messages] == ["q1", "q2", "a2"]


async def test_prompt_composed_before_user_message_saved(chat_store: ChatStore, memory_update) -> None:
    session = await chat_store.create_session("u1", ChatMessage(role=Role.USER, content="q1"))
    seen: list[list[str]] = []

    async def _compose(user_id, message, persona, chat_id=None):
        window = await chat_store.recent_messages(chat_id, user_id, 10)
        seen.append([m.content for m in window])
        return ComposedPrompt(system="s", messages=[{"role": "user", "content": message}])

    with (
        patch("wisdomai.chats.turn.compose_prompt", AsyncMock(side_effect=_compose)),
        patch("wisdomai.chats.turn.generate_response", _fake_generate("a")),
    ):
        await run_turn("u1", "q2", Persona.RUMI, chat_id=session.id)

    assert seen == [["q1"]]


async def test_foreign_chat_rejected(chat_store: ChatStore, memory_update) -> None:
    session = await chat_store.create_session("alice", ChatMessage(role=Role.USER, content="hi"))
    generate = _fake_generate("never")

    with (
        patch("wisdomai.chats.turn.compose_prompt", _fake_compose()),
        patch("wisdomai.chats.turn.generate_response", generate),
        pytest.raises(ChatNotFoundError),
    ):
        await run_turn("bob", "hello", Persona.RUMI, chat_id=session.id)

    generate.assert_not_awaited()
    stored = await chat_store.get_session(session.id, "alice")
    assert len(stored.messages) == 1


async def test_provider_failure_keeps_user_message(chat_store: ChatStore, memory_update) -> None:
    with (
        patch("wisdomai.chats.turn.compose_prompt", _fake_compose()),
        patch(
            "wisdomai.chats.turn.generate_response",
            AsyncMock(side_effect=ProviderError("timed out", retryable=True)),
        ),
        pytest.raises(ProviderError) as exc_info,
    ):
        await run_turn("u1", "Are you there?", Persona.SAGAN)

    (summary,) = await chat_store.list_sessions("u1")
    assert exc_info.value.chat_id == summary.id
    session = await chat_store.get_session(summary.id, "u1")
    assert [m.content for m in session.messages] == ["Are you there?"]
    memory_update.assert_not_called()


async def test_retry_after_provider_failure_reuses_chat(
    chat_store: ChatStore, memory_update
) -> None:
    with (
        patch("wisdomai.chats.turn.compose_prompt", _fake_compose()),
        patch(
            "wisdomai.chats.turn.generate_response",
            AsyncMock(side_effect=ProviderError("timed out", retryable=True)),
        ),
        pytest.raises(ProviderError) as exc_info,
    ):
        await run_turn("u1", "Are you there?", Persona.SAGAN)

    with (
        patch("wisdomai.chats.turn.compose_prompt", _fake_compose()),
        patch("wisdomai.chats.turn.generate_response", _fake_generate("Yes.")),
    ):
        result = await run_turn(
            "u1", "Are you there?", Persona.SAGAN, chat_id=exc_info.value.chat_id
        )

    assert result.chat_id == exc_info.value.chat_id
    assert await chat_store.count_sessions("u1") == 1


async def test_client_disconnect_drops_partial_reply(chat_store: ChatStore, memory_update) -> None:
    async def on_delta(text: str) -> None:
        raise ConnectionResetError("gone")

    with (
        patch("wisdomai.chats.turn.compose_prompt", _fake_compose()),
        patch("wisdomai.chats.turn.generate_response", _fake_generate("half", "way")),
        pytest.raises(ConnectionResetError),
    ):
        await run_turn("u1", "hello", Persona.KOOI, on_text_delta=on_delta)

    (summary,) = await chat_store.list_sessions("u1")
    session = await chat_store.get_session(summary.id, "u1")
    assert [m.role for m in session.messages] == [Role.USER]
    memory_update.assert_not_called()


async def test_empty_reply_not_stored(chat_store: ChatStore, memory_update) -> None:
    with (
        patch("wisdomai.chats.turn.compose_prompt", _fake_compose()),
        patch("wisdomai.chats.turn.generate_response", _fake_generate("   ")),
    ):
        result = await run_turn("u1", "hello", Persona.JESUS)

    assert result.reply == ""
    session = await chat_store.get_session(result.chat_id, "u1")
    assert len(session.messages) == 1
    memory_update.assert_not_called()


async def test_end_to_end_buddha_first_message(
    chat_store, memory_store, knowledge_store, tmp_path
) -> None:
    """Real prompt composition over a small corpus; only the providers mocked."""
    corpus = {
        "impermanence.txt": "All conditioned things are impermanent.",
        "breath.txt": "Return to the breath when the mind races.",
        "attachment.txt": "Suffering arises from clinging.",
        "stars.txt": "We are made of star stuff.",
    }
    vectors = {
        "impermanence.txt": [0.9, 0.1, 0.0],
        "breath.txt": [1.0, 0.0, 0.0],
        "attachment.txt": [0.5, 0.5, 0.0],
        "stars.txt": [0.0, 1.0, 0.0],
    }
    (tmp_path / "knowledge").mkdir()
    for name, text in corpus.items():
        (tmp_path / "knowledge" / name).write_text(text, encoding="utf-8")
    (tmp_path / "embeddings.json").write_text(
        json.dumps(
            [
                {"fileName": name, "content": text, "embedding": vectors[name]}
                for name, text in corpus.items()
            ]
        ),
        encoding="utf-8",
    )
    await knowledge_store.reload()

    message = "What should I do when I feel anxious?"
    captured: dict = {}

    async def _generate(messages, *, system, on_text_delta=None, **kwargs):
        captured["system"] = system
        captured["messages"] = messages
        return "Sit with the feeling and breathe."

    with (
        patch("wisdomai.llm.embeddings.embed", AsyncMock(return_value=[1.0, 0.0, 0.0])),
        patch("wisdomai.chats.turn.generate_response", AsyncMock(side_effect=_generate)),
        patch("wisdomai.chats.turn.update_user_memory", new=AsyncMock()),
    ):
        result = await run_turn("u1", message, Persona.BUDDHA)

    system = captured["system"]
    assert system.startswith(PERSONA_INSTRUCTIONS[Persona.BUDDHA])
    for absent in ("About the user", "User preferences", "Recent conversation context"):
        assert absent not in system
    assert system == (
        PERSONA_INSTRUCTIONS[Persona.BUDDHA]
        + "\n\nContext from knowledge base:\n"
        + "Return to the breath when the mind races.\n\n"
        + "All conditioned things are impermanent.\n\n"
        + "Suffering arises from clinging."
    )
    assert "star stuff" not in system
    assert captured["messages"] == [{"role": "user", "content": message}]
    assert result.title == message
    assert await memory_store.fetch("u1") is not None
