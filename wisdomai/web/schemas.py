"""Request bodies accepted by the HTTP API."""

from __future__ import annotations

import re

from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

from wisdomai.chats.models import Role
from wisdomai.config import settings
from wisdomai.llm.personas import Persona

_FORBIDDEN_CHARS = re.compile(r"[<>{}]")

_PERSONA_ALIASES = AliasChoices("persona", "personaTag", "wisdomFigure")
_CHAT_ID_ALIASES = AliasChoices("chatId", "chat_id")


class StreamChatRequest(BaseModel):
    """Body (or query) of ``/api/chat/stream``."""

    message: str
    persona: Persona = Field(validation_alias=_PERSONA_ALIASES)
    chat_id: str | None = Field(default=None, validation_alias=_CHAT_ID_ALIASES)

    @field_validator("message")
    @classmethod
    def _check_message(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Message is required")
        if len(value) > settings.max_message_length:
            raise ValueError(
                f"Message must be between 1 and {settings.max_message_length} characters"
            )
        if _FORBIDDEN_CHARS.search(value):
            raise ValueError("Message contains invalid characters")
        return value

    @field_validator("persona", mode="before")
    @classmethod
    def _strip_persona(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value

    @field_validator("chat_id", mode="before")
    @classmethod
    def _blank_chat_id(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class MessageIn(BaseModel):
    role: Role
    content: str = Field(min_length=1)


class SaveMessageRequest(BaseModel):
    """Body of ``/api/chat/message``: store a message without generating a reply."""

    message: MessageIn
    persona: Persona | None = Field(default=None, validation_alias=_PERSONA_ALIASES)
    chat_id: str | None = Field(default=None, validation_alias=_CHAT_ID_ALIASES)

    @field_validator("chat_id", mode="before")
    @classmethod
    def _blank_chat_id(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class ClearChatRequest(BaseModel):
    chat_id: str = Field(min_length=1, validation_alias=_CHAT_ID_ALIASES)


def first_error(exc: ValidationError) -> str:
    """A short human-readable message for the first validation problem."""
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    err = errors[0]
    field_name = ".".join(str(p) for p in err.get("loc", ()))
    message = str(err.get("msg", "Invalid value")).removeprefix("Value error, ")
    return f"{field_name}: {message}" if field_name else message
