"""Async Claude API client: single-shot completions and streamed replies."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import anthropic

from wisdomai.config import settings
from wisdomai.llm.models import chat_model

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

_client: anthropic.AsyncAnthropic | None = None


class ProviderError(Exception):
    """An external model provider call failed.

    ``retryable`` is True for timeouts, connection drops, rate limits and
    provider-side 5xx responses.

    ``chat_id`` is set once the failed call belongs to a stored chat.
    """

    def __init__(self, message: str, *, retryable: bool = False, rate_limited: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.rate_limited = rate_limited
        self.chat_id: str | None = None


def _get_client() -> anthropic.AsyncAnthropic:
    """Lazily initialize the Anthropic client."""
    global _client  # noqa: PLW0603
    if _client is None:
        _client = anthropic.AsyncAnthropic(
            api_key=settings.anthropic_api_key,
            timeout=settings.llm_timeout_seconds,
            max_retries=settings.llm_max_retries,
        )
    return _client


def _wrap_error(exc: anthropic.APIError) -> ProviderError:
    """Translate an SDK exception into a ProviderError."""
    if isinstance(exc, anthropic.APITimeoutError):
        return ProviderError("Model request timed out", retryable=True)
    if isinstance(exc, anthropic.APIConnectionError):
        return ProviderError("Could not reach the model provider", retryable=True)
    if isinstance(exc, anthropic.RateLimitError):
        return ProviderError("Model provider rate limit reached", retryable=True, rate_limited=True)
    if isinstance(exc, anthropic.APIStatusError) and exc.status_code >= 500:
        return ProviderError(f"Model provider error ({exc.status_code})", retryable=True)
    return ProviderError(f"Model request failed: {exc}")


async def complete_text(
    messages: list[dict[str, Any]],
    *,
    system: str | None = None,
    model: str | None = None,
    max_tokens: int = 1024,
) -> str:
    """Single-shot Claude call, no streaming.

    Use this for isolated LLM tasks (summarization, extraction) where the
    reply is consumed as a whole.

    Raises:
        ProviderError: The provider call failed.
    """
    client = _get_client()
    kwargs: dict[str, Any] = {
        "model": model or chat_model(),
        "max_tokens": max_tokens,
        "messages": messages,
    }
    if system is not None:
        kwargs["system"] = system
    try:
        response = await client.messages.create(**kwargs)
    except anthropic.APIError as exc:
        raise _wrap_error(exc) from exc
    return "".join(block.text for block in response.content if block.type == "text")


async def generate_response(
    messages: list[dict[str, Any]],
    *,
    system: str,
    on_text_delta: Callable[[str], Awaitable[None]] | None = None,
    model: str | None = None,
    max_tokens: int = 2048,
) -> str:
    """Stream a persona reply.

    Each text chunk is passed to ``on_text_delta`` as it arrives. If the
    callback raises (e.g. the HTTP client went away) the exception
    propagates and the provider stream is closed on the way out.

    Args:
        messages: Conversation turns in Claude API message format, ending
            with the new user message.
        system: The composed system instruction.
        on_text_delta: Async callback receiving each text chunk.

    Returns:
        The complete reply text.

    Raises:
        ProviderError: The provider call failed or timed out.
    """
    client = _get_client()
    parts: list[str] = []

    try:
        async with client.messages.stream(
            model=model or chat_model(),
            max_tokens=max_tokens,
            system=system,
            messages=messages,
        ) as stream:
            async for text in stream.text_stream:
                if not text:
                    continue
                parts.append(text)
                if on_text_delta:
                    await on_text_delta(text)
    except anthropic.APIError as exc:
        logger.warning("Streaming reply failed after %d chunk(s): %s", len(parts), exc)
        raise _wrap_error(exc) from exc

    return "".join(parts)
