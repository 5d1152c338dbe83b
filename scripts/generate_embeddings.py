#!/usr/bin/env python3
"""Embed every knowledge file and write the embeddings JSON the server loads.

Usage examples:
    # Defaults from settings (KNOWLEDGE_DIR, EMBEDDINGS_PATH)
    uv run python scripts/generate_embeddings.py

    # Explicit paths
    uv run python scripts/generate_embeddings.py --knowledge-dir ./knowledge --output ./knowledgeEmbeddings.json

A file whose embedding request fails is logged and left out; the rest are
still written.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Allow running from project root
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from wisdomai.config import settings
from wisdomai.knowledge.loader import KnowledgeLoadError, load_text_files
from wisdomai.knowledge.models import KnowledgeDocument
from wisdomai.llm.client import ProviderError
from wisdomai.llm.embeddings import embed

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level),
)
logger = logging.getLogger("generate_embeddings")


async def _embed_document(doc: KnowledgeDocument) -> dict | None:
    try:
        vector = await embed(doc.content)
    except ProviderError:
        logger.exception("Embedding failed for %s", doc.file_name)
        return None
    return {"fileName": doc.file_name, "content": doc.content, "embedding": vector}


async def generate(knowledge_dir: Path, output: Path) -> int:
    documents = [d for d in load_text_files(knowledge_dir) if d.content.strip()]
    logger.info("Loaded %d files from %s", len(documents), knowledge_dir)

    results = await asyncio.gather(*(_embed_document(d) for d in documents))
    entries = [r for r in results if r is not None]

    output.write_text(json.dumps(entries, indent=2), encoding="utf-8")
    logger.info("Saved %d/%d embeddings to %s", len(entries), len(documents), output)
    return len(entries)


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate knowledge-base embeddings")
    parser.add_argument("--knowledge-dir", type=Path, default=settings.knowledge_dir)
    parser.add_argument("--output", type=Path, default=settings.embeddings_path)
    args = parser.parse_args()

    if not settings.openai_api_key:
        print("Error: OPENAI_API_KEY must be set in .env", file=sys.stderr)
        sys.exit(1)

    try:
        asyncio.run(generate(args.knowledge_dir, args.output))
    except KnowledgeLoadError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
