"""Data models for chat sessions and their messages."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field, model_validator

from wisdomai.llm.personas import Persona

TITLE_MAX_CHARS = 50
DEFAULT_TITLE = "New Chat"


def _now() -> datetime:
    return datetime.now(UTC)


class Role(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    """A single conversation message."""

    role: Role
    content: str = Field(min_length=1)
    persona: Persona | None = None
    created_at: datetime = Field(default_factory=_now)

    @model_validator(mode="after")
    def _assistant_needs_persona(self) -> ChatMessage:
        if self.role is Role.ASSISTANT and self.persona is None:
            raise ValueError("assistant messages require a persona")
        return self

    def to_api(self) -> dict[str, str]:
        """Format for the Claude API."""
        return {"role": self.role.value, "content": self.content}


class ChatSession(BaseModel):
    """One conversation owned by one user."""

    id: str
    user_id: str
    title: str = DEFAULT_TITLE
    messages: list[ChatMessage] = Field(default_factory=list)
    last_message: str = ""
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    @property
    def last_persona(self) -> Persona | None:
        """Persona of the most recent assistant reply, if any."""
        for msg in reversed(self.messages):
            if msg.role is Role.ASSISTANT:
                return msg.persona
        return None


class ChatSummary(BaseModel):
    """A session as shown in the history listing (no messages)."""

    id: str
    title: str
    last_message: str
    created_at: datetime
    updated_at: datetime
    last_persona: Persona | None = None


def derive_title(content: str) -> str:
    """Title a new chat after its first user message."""
    text = content.strip()
    if not text:
        return DEFAULT_TITLE
    if len(text) > TITLE_MAX_CHARS:
        return text[:TITLE_MAX_CHARS] + "..."
    return text


def make_session_id() -> str:
    """Generate a new chat session ID."""
    return uuid.uuid4().hex
