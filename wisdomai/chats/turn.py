"""One conversational turn: compose, persist, stream, remember."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from wisdomai.chats.models import ChatMessage, Role
from wisdomai.chats.store import ChatNotFoundError, ChatStore
from wisdomai.llm.client import ProviderError, generate_response
from wisdomai.llm.personas import Persona
from wisdomai.llm.prompt import compose_prompt
from wisdomai.memory.automatic import update_user_memory

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

# Background memory tasks, held until they finish so they are not collected.
_background_tasks: set[asyncio.Task] = set()


@dataclass
class TurnResult:
    chat_id: str
    reply: str
    title: str


def _schedule_memory_update(user_id: str, user_message: str, reply: str, persona: Persona) -> None:
    task = asyncio.create_task(
        update_user_memory(
            user_id,
            user_message=user_message,
            ai_response=reply,
            persona=persona.value,
        )
    )
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)


async def run_turn(
    user_id: str,
    message: str,
    persona: Persona,
    chat_id: str | None = None,
    on_text_delta: Callable[[str], Awaitable[None]] | None = None,
) -> TurnResult:
    """Answer *message* as *persona* and record the exchange.

    The user message is stored before the model is called, so it survives
    a failed or abandoned stream. The assistant reply is stored only once it
    is complete. Memory maintenance runs afterwards in the background.

    Raises:
        ChatNotFoundError: *chat_id* is unknown or belongs to another user.
        ProviderError: The model call failed; the user message stays saved
            and the error carries its ``chat_id``.
    """
    store = ChatStore.get()

    if chat_id and await store.get_session(chat_id, user_id) is None:
        raise ChatNotFoundError(chat_id)

    # Compose before saving so the new message is not replayed as history.
    prompt = await compose_prompt(user_id, message, persona.value, chat_id)

    user_msg = ChatMessage(role=Role.USER, content=message)
    if chat_id:
        session = await store.append_message(chat_id, user_id, user_msg)
    else:
        session = await store.create_session(user_id, user_msg)

    logger.info("Turn for user %s in chat %s (%s)", user_id, session.id, persona.value)

    streamed = 0

    async def forward(delta: str) -> None:
        nonlocal streamed
        streamed += len(delta)
        if on_text_delta:
            await on_text_delta(delta)

    try:
        reply = await generate_response(
            prompt.messages,
            system=prompt.system,
            on_text_delta=forward,
        )
    except (ConnectionError, asyncio.CancelledError):
        logger.warning(
            "Client left chat %s mid-stream; dropping %d streamed chars", session.id, streamed
        )
        raise
    except ProviderError as exc:
        exc.chat_id = session.id
        raise

    if not reply.strip():
        logger.warning("Empty reply for chat %s; nothing stored", session.id)
        return TurnResult(chat_id=session.id, reply="", title=session.title)

    await store.append_message(
        session.id,
        user_id,
        ChatMessage(role=Role.ASSISTANT, content=reply, persona=persona),
    )

    _schedule_memory_update(user_id, message, reply, persona)
    return TurnResult(chat_id=session.id, reply=reply, title=session.title)
