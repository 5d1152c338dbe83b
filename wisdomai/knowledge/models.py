"""Immutable knowledge-base records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime


@dataclass(frozen=True)
class KnowledgeDocument:
    """A raw corpus text file."""

    file_name: str
    content: str


@dataclass(frozen=True)
class KnowledgeItem:
    """A pre-embedded piece of reference text."""

    source_name: str
    content: str
    embedding: tuple[float, ...]


@dataclass(frozen=True)
class RelevantSnippet:
    """A knowledge item ranked against a query."""

    content: str
    similarity: float
    source_name: str = ""


@dataclass(frozen=True)
class KnowledgeSnapshot:
    """Everything loaded by one (re)load. Swapped as a single reference."""

    documents: tuple[KnowledgeDocument, ...] = ()
    items: tuple[KnowledgeItem, ...] = ()
    loaded_at: datetime = field(default_factory=lambda: datetime.now(UTC))
