"""MemoryStore: one durable memory record per user via libsql."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from wisdomai.db import connect
from wisdomai.memory.models import MemoryRecord

if TYPE_CHECKING:
    from pathlib import Path

    from wisdomai.db import _AsyncConnection

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS user_memory (
    user_id              TEXT PRIMARY KEY,
    personal_facts       TEXT NOT NULL DEFAULT '[]',
    preferences          TEXT NOT NULL DEFAULT '{}',
    conversation_summary TEXT NOT NULL DEFAULT '',
    last_updated         TEXT NOT NULL
)
"""

_COLUMNS = "user_id, personal_facts, preferences, conversation_summary, last_updated"


class MemoryStore:
    """Persists per-user memory records in SQLite / Turso.

    Singleton accessed via ``MemoryStore.get()``.  Pass an explicit *db_path*
    for test isolation (e.g. ``tmp_path / "test.db"``).

    Records are created lazily and never deleted.
    """

    _instance: MemoryStore | None = None

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path
        self._initialised = False

    @classmethod
    def get(cls) -> MemoryStore:
        """Return the shared MemoryStore instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    # -- Internal helpers ------------------------------------------------------

    async def _ensure_schema(self) -> None:
        if self._initialised:
            return
        async with connect(self._db_path, write=True) as db:
            await db.execute(_CREATE_TABLE)
            await db.commit()
        self._initialised = True

    async def _fetch(self, db: _AsyncConnection, user_id: str) -> MemoryRecord | None:
        cursor = await db.execute(
            f"SELECT {_COLUMNS} FROM user_memory WHERE user_id = ?", (user_id,)
        )
        row = await cursor.fetchone()
        return MemoryRecord.from_row(row) if row else None

    # -- CRUD ------------------------------------------------------------------

    async def fetch(self, user_id: str) -> MemoryRecord | None:
        """Fetch a user's record, or None if none exists yet."""
        await self._ensure_schema()
        async with connect(self._db_path) as db:
            return await self._fetch(db, user_id)

    async def _get_or_create(self, db: _AsyncConnection, user_id: str) -> MemoryRecord:
        record = await self._fetch(db, user_id)
        if record is not None:
            return record

        # INSERT OR IGNORE: concurrent first accesses converge on one row.
        await db.execute(
            f"INSERT OR IGNORE INTO user_memory ({_COLUMNS}) VALUES (?, ?, ?, ?, ?)",
            MemoryRecord(user_id=user_id).to_row(),
        )
        await db.commit()
        logger.info("Created memory record for user %s", user_id)
        return await self._fetch(db, user_id)

    async def get_or_create(self, user_id: str) -> MemoryRecord:
        """Fetch a user's record, creating an empty one on first access."""
        await self._ensure_schema()
        async with connect(self._db_path, write=True) as db:
            return await self._get_or_create(db, user_id)

    async def save(self, record: MemoryRecord) -> None:
        """Insert or replace a user's record."""
        await self._ensure_schema()
        async with connect(self._db_path, write=True) as db:
            await db.execute(
                f"""
                INSERT INTO user_memory ({_COLUMNS}) VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    personal_facts = excluded.personal_facts,
                    preferences = excluded.preferences,
                    conversation_summary = excluded.conversation_summary,
                    last_updated = excluded.last_updated
                """,
                record.to_row(),
            )
            await db.commit()
        logger.debug(
            "Saved memory for user %s: %d facts, %d preferences",
            record.user_id,
            len(record.personal_facts),
            len(record.preferences),
        )

    # -- Targeted updates ------------------------------------------------------

    async def update_summary(self, user_id: str, summary: str) -> None:
        """Replace the conversation summary, leaving facts and preferences alone."""
        await self._ensure_schema()
        async with connect(self._db_path, write=True) as db:
            await self._get_or_create(db, user_id)
            await db.execute(
                "UPDATE user_memory SET conversation_summary = ?, last_updated = ? "
                "WHERE user_id = ?",
                (summary, datetime.now(UTC).isoformat(), user_id),
            )
            await db.commit()

    async def merge(
        self, user_id: str, facts: list[str], preferences: dict[str, str]
    ) -> int:
        """Add *facts* and set *preferences* on the stored record.

        The read, merge and write happen under one write lock, so concurrent
        merges for the same user never drop each other's changes.
        Returns the number of facts added plus preferences changed.
        """
        await self._ensure_schema()
        async with connect(self._db_path, write=True) as db:
            record = await self._get_or_create(db, user_id)
            changed = sum(record.add_fact(fact) for fact in facts)
            changed += sum(record.set_preference(k, v) for k, v in preferences.items())
            if not changed:
                return 0

            record.touch()
            _, facts_json, preferences_json, _, last_updated = record.to_row()
            await db.execute(
                "UPDATE user_memory SET personal_facts = ?, preferences = ?, last_updated = ? "
                "WHERE user_id = ?",
                (facts_json, preferences_json, last_updated, user_id),
            )
            await db.commit()
        return changed
