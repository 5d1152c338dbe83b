"""Read path for a user's memory: facts, preferences and recent history."""

from __future__ import annotations

import logging
from datetime import timedelta

from wisdomai.chats.models import ChatMessage
from wisdomai.chats.store import ChatStore
from wisdomai.config import settings
from wisdomai.memory.models import UserMemoryContext
from wisdomai.memory.store import MemoryStore

logger = logging.getLogger(__name__)


class MemoryRetrievalError(Exception):
    """Memory or chat history could not be read."""


def format_transcript(messages: list[ChatMessage]) -> str:
    """Render messages as ``role: content`` lines."""
    return "\n".join(f"{m.role.value}: {m.content}" for m in messages)


def compose_relevant_history(summary: str, window: list[ChatMessage]) -> str:
    """Merge a (fresh) summary with the short-term window into one text."""
    window_text = format_transcript(window)
    summary = summary.strip()

    if summary and window_text:
        if summary == window_text.strip():
            return window_text
        return f"General summary:\n{summary}\n\nRecent messages:\n{window_text}"
    return summary or window_text


async def get_user_memory(
    user_id: str,
    current_message: str = "",
    chat_id: str | None = None,
) -> UserMemoryContext:
    """Gather what the next reply should know about the user.

    Creates an empty memory record on first access; otherwise read-only.
    A summary older than ``summary_max_age_days`` is ignored (not deleted).
    A ``chat_id`` the user does not own contributes no history, and neither
    does any chat when there is no current message to answer.

    Raises:
        MemoryRetrievalError: The memory or chat store failed.
    """
    try:
        record = await MemoryStore.get().get_or_create(user_id)
        window: list[ChatMessage] = []
        if chat_id and current_message.strip():
            window = await ChatStore.get().recent_messages(
                chat_id, user_id, limit=settings.history_window
            )
    except Exception as exc:
        raise MemoryRetrievalError(f"Memory lookup failed for user {user_id}") from exc

    max_age = timedelta(days=settings.summary_max_age_days)
    summary = record.conversation_summary if record.summary_is_fresh(max_age) else ""
    if record.conversation_summary and not summary:
        logger.debug("Ignoring stale summary for user %s", user_id)

    return UserMemoryContext(
        personal_facts=list(record.personal_facts),
        preferences=dict(record.preferences),
        relevant_history=compose_relevant_history(summary, window),
        short_term=window,
    )
