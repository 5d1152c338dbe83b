"""Read the knowledge corpus and its precomputed embeddings from disk.

These functions are synchronous; the store runs them in a worker thread.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from wisdomai.knowledge.models import KnowledgeDocument, KnowledgeItem

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

# Accepted keys for the item's origin, in priority order.
_SOURCE_KEYS = ("fileName", "sourceName", "source")


class KnowledgeLoadError(Exception):
    """The corpus or the embeddings file is missing or malformed."""


def load_text_files(directory: Path) -> list[KnowledgeDocument]:
    """Load every ``*.txt`` file in *directory*, sorted by file name."""
    if not directory.is_dir():
        raise KnowledgeLoadError(f"Knowledge directory not found: {directory}")

    documents = []
    for path in sorted(directory.glob("*.txt")):
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise KnowledgeLoadError(f"Cannot read {path}: {exc}") from exc
        documents.append(KnowledgeDocument(file_name=path.name, content=content))
    return documents


def _parse_item(raw: Any, position: int) -> KnowledgeItem:
    if not isinstance(raw, dict):
        raise KnowledgeLoadError(f"Embedding entry {position} is not an object")

    content = raw.get("content")
    if not isinstance(content, str) or not content:
        raise KnowledgeLoadError(f"Embedding entry {position} has no content")

    vector = raw.get("embedding")
    if not isinstance(vector, list) or not vector:
        raise KnowledgeLoadError(f"Embedding entry {position} has no embedding")
    if not all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in vector):
        raise KnowledgeLoadError(f"Embedding entry {position} has non-numeric values")

    source = next((raw[k] for k in _SOURCE_KEYS if isinstance(raw.get(k), str)), "")
    return KnowledgeItem(
        source_name=source,
        content=content,
        embedding=tuple(float(v) for v in vector),
    )


def load_embeddings(path: Path) -> list[KnowledgeItem]:
    """Parse the embeddings JSON file into knowledge items, in file order.

    Expected format is a JSON array of::

        {"fileName": "dao.txt", "content": "...", "embedding": [0.01, ...]}
    """
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise KnowledgeLoadError(f"Embeddings file not found: {path}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise KnowledgeLoadError(f"Cannot read {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise KnowledgeLoadError(f"Invalid JSON in {path}: {exc}") from exc

    if not isinstance(raw, list):
        raise KnowledgeLoadError(f"Embeddings file must contain a JSON array: {path}")

    return [_parse_item(entry, i) for i, entry in enumerate(raw)]
