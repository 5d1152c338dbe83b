"""Tests for system prompt assembly."""

from unittest.mock import AsyncMock, patch

from wisdomai.chats.models import ChatMessage, Role
from wisdomai.knowledge.models import RelevantSnippet
from wisdomai.llm.personas import GENERIC_INSTRUCTION, PERSONA_INSTRUCTIONS, Persona
from wisdomai.llm.prompt import build_system_prompt, compose_prompt
from wisdomai.memory.models import MemoryFact, UserMemoryContext
from wisdomai.memory.retrieval import MemoryRetrievalError

# -- Helpers -----------------------------------------------------------------


def _memory(**kwargs) -> UserMemoryContext:
    return UserMemoryContext(**kwargs)


def _snippet(content: str, similarity: float = 0.9) -> RelevantSnippet:
    return RelevantSnippet(content=content, similarity=similarity, source_name="src.txt")


def _patch_retrieval(memory: UserMemoryContext | None = None, snippets=None):
    """Patch both lookups used by compose_prompt."""
    memory_mock = AsyncMock(return_value=memory or UserMemoryContext.empty())
    knowledge_mock = AsyncMock(return_value=snippets or [])
    return (
        patch("wisdomai.memory.retrieval.get_user_memory", memory_mock),
        patch("wisdomai.knowledge.store.KnowledgeStore.find_relevant", knowledge_mock),
    )


# -- build_system_prompt -----------------------------------------------------


def test_persona_only() -> None:
    prompt = build_system_prompt("Buddha", UserMemoryContext.empty(), [])
    assert prompt == PERSONA_INSTRUCTIONS[Persona.BUDDHA]


def test_unknown_persona_uses_generic() -> None:
    prompt = build_system_prompt("Socrates", UserMemoryContext.empty(), [])
    assert prompt == GENERIC_INSTRUCTION


def test_sections_in_fixed_order() -> None:
    memory = _memory(
        personal_facts=[MemoryFact(content="Is a nurse"), MemoryFact(content="Works nights.")],
        preferences={"tone": "gentle", "length": "short"},
        relevant_history="user: I am tired",
    )
    prompt = build_system_prompt("Rumi", memory, [_snippet("Love is the bridge.")])

    assert prompt == "\n\n".join(
        [
            PERSONA_INSTRUCTIONS[Persona.RUMI],
            "About the user: Is a nurse. Works nights.",
            "User preferences: tone: gentle, length: short",
            "Recent conversation context:\nuser: I am tired",
            "Context from knowledge base:\nLove is the bridge.",
        ]
    )


def test_empty_sections_omitted() -> None:
    memory = _memory(preferences={"tone": "direct"})
    prompt = build_system_prompt("Twain", memory, [])
    assert "About the user" not in prompt
    assert "Recent conversation context" not in prompt
    assert "Context from knowledge base" not in prompt
    assert prompt.endswith("User preferences: tone: direct")


def test_knowledge_snippets_joined_best_first() -> None:
    prompt = build_system_prompt(
        "Sagan", UserMemoryContext.empty(), [_snippet("Pale blue dot."), _snippet("Starstuff.")]
    )
    assert prompt.endswith("Context from knowledge base:\nPale blue dot.\n\nStarstuff.")


def test_fact_limit_keeps_most_recent(monkeypatch) -> None:
    monkeypatch.setattr("wisdomai.config.settings.prompt_fact_limit", 2)
    memory = _memory(personal_facts=[MemoryFact(content=f"fact {i}") for i in range(5)])
    prompt = build_system_prompt("Buddha", memory, [])
    assert "About the user: fact 3. fact 4." in prompt
    assert "fact 2" not in prompt


def test_long_history_clipped(monkeypatch) -> None:
    monkeypatch.setattr("wisdomai.config.settings.max_context_chars", 20)
    memory = _memory(relevant_history="x" * 100)
    prompt = build_system_prompt("Buddha", memory, [])
    assert "x" * 21 not in prompt
    assert prompt.endswith("[...]")


# -- compose_prompt ----------------------------------------------------------


async def test_compose_appends_user_message() -> None:
    window = [
        ChatMessage(role=Role.USER, content="q1"),
        ChatMessage(role=Role.ASSISTANT, content="a1", persona=Persona.LAOZI),
    ]
    mem_patch, kb_patch = _patch_retrieval(_memory(short_term=window))
    with mem_patch, kb_patch:
        prompt = await compose_prompt("u1", "q2", "Laozi", chat_id="c1")

    assert prompt.messages == [
        {"role": "user", "content": "q1"},
        {"role": "assistant", "content": "a1"},
        {"role": "user", "content": "q2"},
    ]
    assert prompt.persona is Persona.LAOZI


async def test_compose_drops_leading_assistant_turns() -> None:
    window = [
        ChatMessage(role=Role.ASSISTANT, content="orphan", persona=Persona.LAOZI),
        ChatMessage(role=Role.USER, content="q1"),
    ]
    mem_patch, kb_patch = _patch_retrieval(_memory(short_term=window))
    with mem_patch, kb_patch:
        prompt = await compose_prompt("u1", "q2", "Laozi", chat_id="c1")

    assert prompt.messages[0] == {"role": "user", "content": "q1"}


async def test_compose_memory_failure_degrades() -> None:
    with (
        patch(
            "wisdomai.memory.retrieval.get_user_memory",
            AsyncMock(side_effect=MemoryRetrievalError("db down")),
        ),
        patch(
            "wisdomai.knowledge.store.KnowledgeStore.find_relevant",
            AsyncMock(return_value=[_snippet("Be water.")]),
        ),
    ):
        prompt = await compose_prompt("u1", "hello", "Laozi")

    assert prompt.system.startswith(PERSONA_INSTRUCTIONS[Persona.LAOZI])
    assert "Be water." in prompt.system
    assert prompt.messages == [{"role": "user", "content": "hello"}]


async def test_compose_knowledge_failure_degrades() -> None:
    with (
        patch(
            "wisdomai.memory.retrieval.get_user_memory",
            AsyncMock(return_value=_memory(preferences={"tone": "warm"})),
        ),
        patch(
            "wisdomai.knowledge.store.KnowledgeStore.find_relevant",
            AsyncMock(side_effect=RuntimeError("embedding outage")),
        ),
    ):
        prompt = await compose_prompt("u1", "hello", "Jesus")

    assert "User preferences: tone: warm" in prompt.system
    assert "Context from knowledge base" not in prompt.system


async def test_compose_unknown_persona() -> None:
    mem_patch, kb_patch = _patch_retrieval()
    with mem_patch, kb_patch:
        prompt = await compose_prompt("u1", "hello", "Nobody")

    assert prompt.system == GENERIC_INSTRUCTION
    assert prompt.persona is None
