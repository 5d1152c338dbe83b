"""Text embeddings via the OpenAI API."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import openai

from wisdomai.config import settings
from wisdomai.llm.client import ProviderError

if TYPE_CHECKING:
    from openai import AsyncOpenAI

logger = logging.getLogger(__name__)

_client: AsyncOpenAI | None = None


def _get_client() -> AsyncOpenAI:
    """Return a lazily-initialised AsyncOpenAI singleton."""
    global _client  # noqa: PLW0603
    if _client is None:
        _client = openai.AsyncOpenAI(
            api_key=settings.openai_api_key,
            timeout=settings.embedding_timeout_seconds,
        )
    return _client


def _wrap_error(exc: openai.APIError) -> ProviderError:
    if isinstance(exc, openai.APITimeoutError):
        return ProviderError("Embedding request timed out", retryable=True)
    if isinstance(exc, openai.APIConnectionError):
        return ProviderError("Could not reach the embedding service", retryable=True)
    if isinstance(exc, openai.RateLimitError):
        return ProviderError("Embedding rate limit reached", retryable=True, rate_limited=True)
    if isinstance(exc, openai.APIStatusError) and exc.status_code >= 500:
        return ProviderError(f"Embedding service error ({exc.status_code})", retryable=True)
    return ProviderError(f"Embedding request failed: {exc}")


async def embed_many(texts: list[str]) -> list[list[float]]:
    """Embed several texts in one request, preserving input order.

    Raises:
        ProviderError: The embedding call failed.
    """
    if not texts:
        return []
    client = _get_client()
    try:
        response = await client.embeddings.create(model=settings.embedding_model, input=texts)
    except openai.APIError as exc:
        raise _wrap_error(exc) from exc

    ordered = sorted(response.data, key=lambda d: d.index)
    return [list(d.embedding) for d in ordered]


async def embed(text: str) -> list[float]:
    """Embed a single text.

    Raises:
        ProviderError: The embedding call failed.
    """
    vectors = await embed_many([text])
    logger.debug("Embedded %d chars -> %d dims", len(text), len(vectors[0]))
    return vectors[0]
