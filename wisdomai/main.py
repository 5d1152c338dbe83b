"""WisdomAI entry point."""

import asyncio
import logging

from wisdomai.config import settings
from wisdomai.llm.models import chat_model, friendly, memory_model

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level),
)
logger = logging.getLogger(__name__)


async def _serve() -> None:
    from wisdomai.knowledge.store import KnowledgeStore
    from wisdomai.web.server import WebServer

    store = KnowledgeStore.get()
    await store.load_initial()
    if store.size == 0:
        logger.warning("Knowledge base is empty; replies will not cite any source material")
    else:
        logger.info("Knowledge base ready: %d embedded items", store.size)

    if not settings.anthropic_api_key:
        logger.warning("ANTHROPIC_API_KEY is empty; persona replies will fail")
    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY is empty; knowledge retrieval is disabled")

    server = WebServer()
    await server.start()
    try:
        await asyncio.Event().wait()
    finally:
        await server.stop()


def main() -> None:
    """Start the API server and run until interrupted."""
    logger.info(
        "Starting WisdomAI with chat model %s, memory model %s...",
        friendly(chat_model()),
        friendly(memory_model()),
    )
    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")


if __name__ == "__main__":
    main()
