"""Shared test fixtures."""

from pathlib import Path

import pytest

from wisdomai.auth.store import ApiKeyStore
from wisdomai.chats.store import ChatStore
from wisdomai.knowledge.store import KnowledgeStore
from wisdomai.memory.store import MemoryStore


@pytest.fixture(autouse=False)
def _no_turso(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure tests use local file, not remote Turso."""
    monkeypatch.setattr("wisdomai.config.settings.turso_database_url", "")


@pytest.fixture
def chat_store(tmp_path: Path, _no_turso):
    """Install a ChatStore on a temp database as the shared instance."""
    ChatStore._reset()
    store = ChatStore(db_path=tmp_path / "test.db")
    ChatStore._instance = store
    yield store
    ChatStore._reset()


@pytest.fixture
def memory_store(tmp_path: Path, _no_turso):
    """Install a MemoryStore on a temp database as the shared instance."""
    MemoryStore._reset()
    store = MemoryStore(db_path=tmp_path / "test.db")
    MemoryStore._instance = store
    yield store
    MemoryStore._reset()


@pytest.fixture
def key_store(tmp_path: Path, _no_turso):
    """Install an ApiKeyStore on a temp database as the shared instance."""
    ApiKeyStore._reset()
    store = ApiKeyStore(db_path=tmp_path / "test.db")
    ApiKeyStore._instance = store
    yield store
    ApiKeyStore._reset()


@pytest.fixture
def knowledge_store(tmp_path: Path):
    """Install an empty KnowledgeStore pointing at temp paths."""
    KnowledgeStore._reset()
    store = KnowledgeStore(
        knowledge_dir=tmp_path / "knowledge",
        embeddings_path=tmp_path / "embeddings.json",
    )
    KnowledgeStore._instance = store
    yield store
    KnowledgeStore._reset()
