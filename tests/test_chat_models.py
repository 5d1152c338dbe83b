"""Tests for chat data models."""

import pytest
from pydantic import ValidationError

from wisdomai.chats.models import (
    DEFAULT_TITLE,
    ChatMessage,
    ChatSession,
    Role,
    derive_title,
    make_session_id,
)
from wisdomai.llm.personas import Persona


class TestChatMessage:
    def test_user_message_without_persona(self):
        msg = ChatMessage(role=Role.USER, content="hello")
        assert msg.persona is None
        assert msg.created_at.tzinfo is not None

    def test_assistant_requires_persona(self):
        with pytest.raises(ValidationError, match="persona"):
            ChatMessage(role=Role.ASSISTANT, content="hi")

    def test_assistant_with_persona(self):
        msg = ChatMessage(role="assistant", content="Be still.", persona="Laozi")
        assert msg.role is Role.ASSISTANT
        assert msg.persona is Persona.LAOZI

    def test_empty_content_rejected(self):
        with pytest.raises(ValidationError):
            ChatMessage(role=Role.USER, content="")

    def test_to_api(self):
        msg = ChatMessage(role=Role.USER, content="hi")
        assert msg.to_api() == {"role": "user", "content": "hi"}


class TestChatSession:
    def test_last_persona(self):
        session = ChatSession(
            id="c1",
            user_id="u1",
            messages=[
                ChatMessage(role=Role.USER, content="q1"),
                ChatMessage(role=Role.ASSISTANT, content="a1", persona=Persona.RUMI),
                ChatMessage(role=Role.USER, content="q2"),
                ChatMessage(role=Role.ASSISTANT, content="a2", persona=Persona.SAGAN),
                ChatMessage(role=Role.USER, content="q3"),
            ],
        )
        assert session.last_persona is Persona.SAGAN

    def test_last_persona_none_without_replies(self):
        session = ChatSession(id="c1", user_id="u1")
        assert session.last_persona is None
        assert session.title == DEFAULT_TITLE


class TestDeriveTitle:
    def test_short_message_kept(self):
        assert derive_title("What is suffering?") == "What is suffering?"

    def test_exactly_fifty_chars_not_truncated(self):
        text = "x" * 50
        assert derive_title(text) == text

    def test_long_message_truncated(self):
        text = "a" * 60
        assert derive_title(text) == "a" * 50 + "..."

    def test_whitespace_stripped(self):
        assert derive_title("  hello  ") == "hello"

    def test_blank_gets_default(self):
        assert derive_title("   ") == DEFAULT_TITLE


def test_session_ids_unique() -> None:
    assert len({make_session_id() for _ in range(100)}) == 100
