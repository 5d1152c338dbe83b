"""Model name resolution for chat and memory calls."""

import logging

from wisdomai.config import settings

logger = logging.getLogger(__name__)

MODEL_MAP: dict[str, str] = {
    "haiku": "claude-haiku-4-5-20251001",
    "sonnet": "claude-sonnet-4-5-20250929",
    "opus": "claude-opus-4-1-20250805",
}

# Reverse lookup: full model string → friendly name
FRIENDLY_NAMES: dict[str, str] = {v: k for k, v in MODEL_MAP.items()}


def resolve(name_or_id: str) -> str | None:
    """Resolve a friendly name or full model ID. Returns full ID or None."""
    if name_or_id in MODEL_MAP:
        return MODEL_MAP[name_or_id]
    if name_or_id in FRIENDLY_NAMES:
        return name_or_id
    return None


def friendly(model_id: str) -> str:
    """Return the friendly name for a model ID, or the ID itself."""
    return FRIENDLY_NAMES.get(model_id, model_id)


def chat_model() -> str:
    """Model used for persona replies."""
    model_id = resolve(settings.default_chat_model)
    if model_id is None:
        logger.warning("Unknown chat model %r, using sonnet", settings.default_chat_model)
        return MODEL_MAP["sonnet"]
    return model_id


def memory_model() -> str:
    """Model used for summaries and fact extraction."""
    model_id = resolve(settings.default_memory_model)
    if model_id is None:
        logger.warning("Unknown memory model %r, using haiku", settings.default_memory_model)
        return MODEL_MAP["haiku"]
    return model_id
