"""Application settings loaded from environment variables."""

import logging
import os
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """WisdomAI configuration. All values come from environment variables."""

    # Anthropic (persona replies, summaries, fact extraction)
    anthropic_api_key: str = Field(default="")
    default_chat_model: str = Field(default="sonnet")
    default_memory_model: str = Field(default="haiku")
    llm_timeout_seconds: float = Field(default=60.0)
    llm_max_retries: int = Field(default=2)

    # OpenAI (embeddings only)
    openai_api_key: str = Field(default="")
    embedding_model: str = Field(default="text-embedding-ada-002")
    embedding_timeout_seconds: float = Field(default=15.0)

    # Database
    database_path: Path = Field(default=Path("data/wisdomai.db"))

    # Turso (hosted libSQL). When set, overrides local database_path
    turso_database_url: str = Field(default="")
    turso_auth_token: str = Field(default="")

    # Knowledge base
    knowledge_dir: Path = Field(default=Path("knowledge"))
    embeddings_path: Path = Field(default=Path("knowledgeEmbeddings.json"))
    knowledge_top_k: int = Field(default=3)

    # Conversation context
    history_window: int = Field(default=10)
    prompt_fact_limit: int = Field(default=20)
    max_context_chars: int = Field(default=6000)
    max_message_length: int = Field(default=1000)

    # Memory maintenance
    memory_extraction_enabled: bool = Field(default=True)
    summary_every: int = Field(default=5)
    extraction_every: int = Field(default=3)
    summary_session_limit: int = Field(default=10)
    summary_max_age_days: int = Field(default=7)

    # HTTP server
    server_host: str = Field(default="0.0.0.0")
    server_port: int = Field(default=5000)

    # API keys
    api_key_ttl_days: int = Field(default=365)
    admin_user_ids: str = Field(default="")

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"unknown log level: {value!r}")
        return level

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    def get_admin_user_ids(self) -> set[str]:
        """Parse ADMIN_USER_IDS into a set of user IDs."""
        if not self.admin_user_ids.strip():
            return set()
        return {uid.strip() for uid in self.admin_user_ids.split(",") if uid.strip()}


settings = Settings()
