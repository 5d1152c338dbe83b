"""Background ("unconscious") memory maintenance.

After a reply has been streamed, ``update_user_memory`` is scheduled as a
background task. To keep model spend bounded it does not distill every
turn; it samples on the user's conversation count:

- every ``summary_every``-th conversation (5) the rolling summary is
  regenerated from the latest sessions;
- every ``extraction_every``-th conversation (3) facts and preferences are
  extracted from the latest exchange and merged into the record.

Both can fire on the same turn (count 15). The count comes from the
database, so several server instances agree on it.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from wisdomai.chats.store import ChatStore
from wisdomai.config import settings
from wisdomai.llm.models import memory_model
from wisdomai.memory.retrieval import format_transcript
from wisdomai.memory.store import MemoryStore

logger = logging.getLogger(__name__)

SUMMARY_INSTRUCTION = (
    "Your task is to create a concise summary of key points from these conversations. "
    "Focus on extracting important facts about the user, their interests, problems "
    "they've mentioned, and preferences. This summary will be used as context for "
    "future conversations."
)

EXTRACTION_INSTRUCTION = (
    "Extract facts about the user and their preferences from this conversation. "
    'Return JSON only, with the format: {"personalFacts": ["fact1", "fact2"], '
    '"preferences": {"topic": "value"}}. Use empty values when nothing is worth keeping.'
)


# -- Data structures ---------------------------------------------------------


@dataclass
class ExtractionResult:
    facts: list[str] = field(default_factory=list)
    preferences: dict[str, str] = field(default_factory=dict)


# -- Trigger policy ----------------------------------------------------------


def should_summarize(conversation_count: int) -> bool:
    """True on every positive multiple of ``summary_every``."""
    return conversation_count > 0 and conversation_count % settings.summary_every == 0


def should_extract(conversation_count: int) -> bool:
    """True on every positive multiple of ``extraction_every``."""
    return conversation_count > 0 and conversation_count % settings.extraction_every == 0


# -- Prompt building ---------------------------------------------------------


def build_extraction_prompt(user_message: str, ai_response: str) -> str:
    """Build the user-message content sent to the extraction model."""
    return f"User message: {user_message}\nAI response: {ai_response}"


# -- Parsing -----------------------------------------------------------------


def _find_json_object(text: str) -> dict[str, Any] | None:
    """Return the first well-formed JSON object embedded in *text*."""
    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            value, _ = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            pass
        else:
            if isinstance(value, dict):
                return value
        start = text.find("{", start + 1)
    return None


def parse_extraction_result(text: str) -> ExtractionResult | None:
    """Parse the extraction model's reply.

    The reply is untrusted: it may wrap the JSON in prose or markdown fences,
    or contain no JSON at all. Returns None when nothing usable is found.
    """
    data = _find_json_object(text)
    if data is None:
        logger.warning("No JSON object in extraction reply")
        return None

    facts: list[str] = []
    raw_facts = data.get("personalFacts", data.get("facts", []))
    if isinstance(raw_facts, list):
        for item in raw_facts:
            if isinstance(item, dict):
                item = item.get("content", "")
            if isinstance(item, str) and item.strip():
                facts.append(item.strip())

    preferences: dict[str, str] = {}
    raw_prefs = data.get("preferences", {})
    if isinstance(raw_prefs, dict):
        for key, value in raw_prefs.items():
            if value is None or isinstance(value, (dict, list)):
                continue
            preferences[str(key)] = str(value)

    return ExtractionResult(facts=facts, preferences=preferences)


# -- Maintenance steps -------------------------------------------------------


async def regenerate_summary(user_id: str) -> bool:
    """Rebuild the rolling summary from the latest sessions.

    Returns True if a new summary was stored. On any failure the existing
    summary is left untouched.
    """
    from wisdomai.llm.client import complete_text

    sessions = await ChatStore.get().recent_sessions(user_id, limit=settings.summary_session_limit)
    transcript = "\n".join(
        text for text in (format_transcript(s.messages) for s in sessions) if text
    )
    if not transcript:
        return False

    try:
        summary = await complete_text(
            [{"role": "user", "content": transcript}],
            system=SUMMARY_INSTRUCTION,
            model=memory_model(),
        )
    except Exception:
        logger.exception("Summary generation failed for user %s (non-fatal)", user_id)
        return False

    summary = summary.strip()
    if not summary:
        logger.warning("Summary generation returned nothing for user %s", user_id)
        return False

    await MemoryStore.get().update_summary(user_id, summary)
    logger.info("Updated conversation summary for user %s (%d chars)", user_id, len(summary))
    return True


async def extract_facts_and_preferences(user_id: str, user_message: str, ai_response: str) -> int:
    """Extract new facts/preferences from one exchange and merge them.

    Returns the number of facts added plus preferences changed.
    """
    from wisdomai.llm.client import complete_text

    try:
        reply = await complete_text(
            [{"role": "user", "content": build_extraction_prompt(user_message, ai_response)}],
            system=EXTRACTION_INSTRUCTION,
            model=memory_model(),
        )
    except Exception:
        logger.exception("Fact extraction call failed for user %s (non-fatal)", user_id)
        return 0

    result = parse_extraction_result(reply)
    if result is None:
        return 0

    changed = await MemoryStore.get().merge(user_id, result.facts, result.preferences)
    if changed:
        logger.info("Merged %d memory change(s) for user %s", changed, user_id)
    return changed


# -- Main pipeline -----------------------------------------------------------


async def update_user_memory(
    user_id: str,
    user_message: str,
    ai_response: str,
    persona: str | None = None,
) -> None:
    """Background task: refresh the user's summary and/or extract facts.

    Call via ``asyncio.create_task(update_user_memory(...))`` after the reply
    has been delivered. Never raises.
    """
    if not settings.memory_extraction_enabled:
        return

    try:
        count = await ChatStore.get().count_sessions(user_id)
        logger.debug("Memory maintenance for user %s: %d conversations (%s)", user_id, count, persona)

        if should_summarize(count):
            await regenerate_summary(user_id)

        if should_extract(count):
            await extract_facts_and_preferences(user_id, user_message, ai_response)

    except Exception:
        logger.exception("Memory maintenance failed for user %s (non-fatal)", user_id)
