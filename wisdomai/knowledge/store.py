"""In-memory knowledge base with similarity search.

The corpus is loaded once at startup and replaced wholesale by ``reload()``.
All loaded state lives in one immutable ``KnowledgeSnapshot``; readers grab
the current reference once per query, so a concurrent reload is never
observed half-way.
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import TYPE_CHECKING

from wisdomai.config import settings
from wisdomai.knowledge.loader import KnowledgeLoadError, load_embeddings, load_text_files
from wisdomai.knowledge.models import KnowledgeSnapshot, RelevantSnippet
from wisdomai.vectors import cosine_similarity

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

logger = logging.getLogger(__name__)


def _load_snapshot(knowledge_dir: Path, embeddings_path: Path) -> KnowledgeSnapshot:
    documents = load_text_files(knowledge_dir)
    items = load_embeddings(embeddings_path)
    known = {doc.file_name for doc in documents}
    orphans = [i.source_name for i in items if i.source_name and i.source_name not in known]
    if orphans:
        logger.warning("%d embedding(s) have no matching corpus file: %s", len(orphans), orphans[:5])
    return KnowledgeSnapshot(documents=tuple(documents), items=tuple(items))


class KnowledgeStore:
    """Shared, read-mostly knowledge base.

    Singleton accessed via ``KnowledgeStore.get()``.  Pass explicit paths
    for test isolation.
    """

    _instance: KnowledgeStore | None = None

    def __init__(
        self,
        knowledge_dir: Path | None = None,
        embeddings_path: Path | None = None,
    ) -> None:
        self._knowledge_dir = knowledge_dir or settings.knowledge_dir
        self._embeddings_path = embeddings_path or settings.embeddings_path
        self._snapshot = KnowledgeSnapshot()
        self._reload_lock = asyncio.Lock()

    @classmethod
    def get(cls) -> KnowledgeStore:
        """Return the shared KnowledgeStore instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    @property
    def snapshot(self) -> KnowledgeSnapshot:
        return self._snapshot

    @property
    def size(self) -> int:
        return len(self._snapshot.items)

    # -- Loading -------------------------------------------------------------

    async def reload(self) -> KnowledgeSnapshot:
        """Re-read corpus and embeddings, then swap them in atomically.

        Raises:
            KnowledgeLoadError: Either source is missing or malformed. The
                previously loaded snapshot stays in place.
        """
        async with self._reload_lock:
            try:
                snapshot = await asyncio.to_thread(
                    _load_snapshot, self._knowledge_dir, self._embeddings_path
                )
            except KnowledgeLoadError:
                logger.exception("Knowledge reload failed; keeping previous snapshot")
                raise
            self._snapshot = snapshot

        logger.info(
            "Loaded knowledge base: %d files, %d embeddings",
            len(snapshot.documents),
            len(snapshot.items),
        )
        return snapshot

    async def load_initial(self) -> None:
        """Startup load. A broken corpus leaves the store empty instead of failing."""
        try:
            await self.reload()
        except KnowledgeLoadError as exc:
            logger.error("Knowledge base unavailable, continuing without it: %s", exc)

    # -- Queries -------------------------------------------------------------

    def top_relevant(self, query_embedding: Sequence[float], k: int = 3) -> list[RelevantSnippet]:
        """Return the *k* items most similar to *query_embedding*, best first.

        Ties keep load order. Items with a zero vector rank last; items whose
        dimension differs from the query are skipped.
        """
        if k <= 0:
            return []

        items = self._snapshot.items
        scored: list[RelevantSnippet] = []
        for item in items:
            try:
                similarity = cosine_similarity(query_embedding, item.embedding)
            except ValueError:
                logger.warning("Skipping %r: embedding dimension mismatch", item.source_name)
                continue
            scored.append(
                RelevantSnippet(
                    content=item.content,
                    similarity=similarity,
                    source_name=item.source_name,
                )
            )

        scored.sort(
            key=lambda s: -math.inf if math.isnan(s.similarity) else s.similarity,
            reverse=True,
        )
        return scored[:k]

    async def find_relevant(self, query: str, k: int | None = None) -> list[RelevantSnippet]:
        """Embed *query* and return the most relevant snippets.

        Raises:
            ProviderError: The embedding call failed.
        """
        from wisdomai.llm.embeddings import embed

        if not self._snapshot.items:
            return []
        query_embedding = await embed(query)
        return self.top_relevant(query_embedding, k=settings.knowledge_top_k if k is None else k)
