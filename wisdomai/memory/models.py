"""Data models for durable per-user memory."""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from enum import StrEnum

from pydantic import BaseModel, Field

from wisdomai.chats.models import ChatMessage


def _now() -> datetime:
    return datetime.now(UTC)


class FactSource(StrEnum):
    OBSERVATION = "observation"
    FACT = "fact"
    PREFERENCE = "preference"


class MemoryFact(BaseModel):
    """Something learned about the user."""

    content: str
    source: FactSource = FactSource.OBSERVATION
    timestamp: datetime = Field(default_factory=_now)


class MemoryRecord(BaseModel):
    """Everything remembered about one user. At most one per user."""

    user_id: str
    personal_facts: list[MemoryFact] = Field(default_factory=list)
    preferences: dict[str, str] = Field(default_factory=dict)
    conversation_summary: str = ""
    last_updated: datetime = Field(default_factory=_now)

    def add_fact(self, content: str, source: FactSource = FactSource.OBSERVATION) -> bool:
        """Append a fact unless an identical one is already known.

        Returns True if the fact was added.
        """
        text = content.strip()
        if not text:
            return False
        if any(fact.content.strip() == text for fact in self.personal_facts):
            return False
        self.personal_facts.append(MemoryFact(content=text, source=source))
        return True

    def set_preference(self, key: str, value: str) -> bool:
        """Set a preference, replacing any older value. Returns True if it changed."""
        key = key.strip()
        if not key:
            return False
        if self.preferences.get(key) == value:
            return False
        self.preferences[key] = value
        return True

    def touch(self) -> None:
        self.last_updated = _now()

    def summary_is_fresh(self, max_age: timedelta, now: datetime | None = None) -> bool:
        """Whether the stored summary exists and is younger than *max_age*."""
        if not self.conversation_summary.strip():
            return False
        now = now or _now()
        return now - self.last_updated <= max_age

    # -- Serialization ---------------------------------------------------------

    def to_row(self) -> tuple:
        """Serialize to a tuple matching the ``user_memory`` column order."""
        return (
            self.user_id,
            json.dumps([fact.model_dump(mode="json") for fact in self.personal_facts]),
            json.dumps(self.preferences),
            self.conversation_summary,
            self.last_updated.isoformat(),
        )

    @classmethod
    def from_row(cls, row: tuple) -> MemoryRecord:
        """Deserialize from a SQLite row tuple."""
        facts = json.loads(row[1]) if row[1] else []
        preferences = json.loads(row[2]) if row[2] else {}
        return cls(
            user_id=row[0],
            personal_facts=[MemoryFact.model_validate(f) for f in facts],
            preferences={str(k): str(v) for k, v in preferences.items()},
            conversation_summary=row[3] or "",
            last_updated=row[4],
        )


class UserMemoryContext(BaseModel):
    """What a single turn gets to see of the user's memory."""

    personal_facts: list[MemoryFact] = Field(default_factory=list)
    preferences: dict[str, str] = Field(default_factory=dict)
    relevant_history: str = ""
    short_term: list[ChatMessage] = Field(default_factory=list)

    @classmethod
    def empty(cls) -> UserMemoryContext:
        return cls()
