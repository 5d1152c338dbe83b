"""System prompt assembly with memory and knowledge retrieval.

A turn's prompt is built from, in this order:

1. the persona instruction,
2. facts about the user,
3. the user's preferences,
4. recent conversation context (summary and/or the chat's latest messages),
5. the most relevant knowledge-base snippets.

Memory and knowledge are best effort: if either lookup fails the section is
left out and the turn goes ahead.
"""

import logging
from dataclasses import dataclass, field

from wisdomai.chats.models import Role
from wisdomai.config import settings
from wisdomai.knowledge.models import RelevantSnippet
from wisdomai.llm.personas import Persona, parse_persona, persona_instruction
from wisdomai.memory.models import MemoryFact, UserMemoryContext

logger = logging.getLogger(__name__)


@dataclass
class ComposedPrompt:
    """Everything sent to the model for one turn."""

    system: str
    messages: list[dict[str, str]] = field(default_factory=list)
    persona: Persona | None = None


def _clip(text: str, limit: int) -> str:
    if limit <= 0 or len(text) <= limit:
        return text
    return text[:limit].rstrip() + " [...]"


def _format_facts(facts: list[MemoryFact], limit: int) -> str:
    recent = facts[-limit:] if limit > 0 else []
    contents = [f.content.strip().rstrip(".") for f in recent if f.content.strip()]
    if not contents:
        return ""
    return "About the user: " + ". ".join(contents) + "."


def _format_preferences(preferences: dict[str, str]) -> str:
    if not preferences:
        return ""
    return "User preferences: " + ", ".join(f"{k}: {v}" for k, v in preferences.items())


def _format_knowledge(snippets: list[RelevantSnippet]) -> str:
    contents = [s.content.strip() for s in snippets if s.content.strip()]
    if not contents:
        return ""
    return "\n\n".join(contents)


async def _retrieve_memory(user_id: str, message: str, chat_id: str | None) -> UserMemoryContext:
    """Look up the user's memory; an empty context on failure."""
    try:
        from wisdomai.memory.retrieval import get_user_memory

        return await get_user_memory(user_id, message, chat_id)
    except Exception:
        logger.exception("Memory retrieval failed for user %s", user_id)
        return UserMemoryContext.empty()


async def _retrieve_knowledge(message: str) -> list[RelevantSnippet]:
    """Search the knowledge base; an empty list on failure."""
    try:
        from wisdomai.knowledge.store import KnowledgeStore

        return await KnowledgeStore.get().find_relevant(message, k=settings.knowledge_top_k)
    except Exception:
        logger.exception("Knowledge retrieval failed")
        return []


def build_system_prompt(
    persona: str | None,
    memory: UserMemoryContext,
    snippets: list[RelevantSnippet],
) -> str:
    """Concatenate the prompt sections in their fixed order, skipping empty ones."""
    limit = settings.max_context_chars
    sections = [persona_instruction(persona)]

    facts = _format_facts(memory.personal_facts, settings.prompt_fact_limit)
    if facts:
        sections.append(facts)

    preferences = _format_preferences(memory.preferences)
    if preferences:
        sections.append(preferences)

    if memory.relevant_history:
        sections.append(
            "Recent conversation context:\n" + _clip(memory.relevant_history, limit)
        )

    knowledge = _format_knowledge(snippets)
    if knowledge:
        sections.append("Context from knowledge base:\n" + _clip(knowledge, limit))

    return "\n\n".join(sections)


async def compose_prompt(
    user_id: str,
    message: str,
    persona: str | None,
    chat_id: str | None = None,
) -> ComposedPrompt:
    """Build the full prompt for one turn.

    Args:
        user_id: Owner of the memory and chat.
        message: The new user message.
        persona: Persona tag; unknown tags use the generic instruction.
        chat_id: Conversation whose recent messages are replayed, if any.

    Returns:
        The system text plus the message list (recent window + new message).
    """
    memory = await _retrieve_memory(user_id, message, chat_id)
    snippets = await _retrieve_knowledge(message)

    system = build_system_prompt(persona, memory, snippets)
    # The model expects the conversation to open with a user turn.
    window = list(memory.short_term)
    while window and window[0].role is Role.ASSISTANT:
        window.pop(0)
    messages = [m.to_api() for m in window]
    messages.append({"role": "user", "content": message})

    logger.debug(
        "Composed prompt for user %s: %d chars system, %d messages, %d snippets",
        user_id,
        len(system),
        len(messages),
        len(snippets),
    )
    return ComposedPrompt(system=system, messages=messages, persona=parse_persona(persona))
