"""ApiKeyStore: CRUD and lookup for API credentials via libsql."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from wisdomai.auth.models import ApiCredential, generate_key, hash_key
from wisdomai.config import settings
from wisdomai.db import connect

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS api_keys (
    id           TEXT PRIMARY KEY,
    user_id      TEXT NOT NULL,
    key_hash     TEXT NOT NULL UNIQUE,
    label        TEXT NOT NULL,
    expires_at   TEXT NOT NULL,
    last_used_at TEXT,
    usage_count  INTEGER NOT NULL DEFAULT 0,
    active       INTEGER NOT NULL DEFAULT 1,
    created_at   TEXT NOT NULL
)
"""

_COLUMNS = (
    "id, user_id, key_hash, label, expires_at, last_used_at, usage_count, active, created_at"
)


class ApiKeyStore:
    """Persists API credentials in SQLite / Turso.

    Singleton accessed via ``ApiKeyStore.get()``.  Pass an explicit *db_path*
    for test isolation (e.g. ``tmp_path / "test.db"``).
    """

    _instance: ApiKeyStore | None = None

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path
        self._initialised = False

    @classmethod
    def get(cls) -> ApiKeyStore:
        """Return the shared ApiKeyStore instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    async def _ensure_schema(self) -> None:
        if self._initialised:
            return
        async with connect(self._db_path, write=True) as db:
            await db.execute(_CREATE_TABLE)
            await db.commit()
        self._initialised = True

    # -- CRUD ------------------------------------------------------------------

    async def create_key(
        self, user_id: str, label: str, ttl_days: int | None = None
    ) -> tuple[str, ApiCredential]:
        """Issue a new key. Returns ``(raw_key, credential)``."""
        raw_key = generate_key()
        days = settings.api_key_ttl_days if ttl_days is None else ttl_days
        credential = ApiCredential(
            user_id=user_id,
            key_hash=hash_key(raw_key),
            label=label.strip() or "default",
            expires_at=datetime.now(UTC) + timedelta(days=days),
        )
        await self._ensure_schema()
        async with connect(self._db_path, write=True) as db:
            await db.execute(
                f"INSERT INTO api_keys ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                credential.to_row(),
            )
            await db.commit()
        logger.info("Issued API key %s (%s) for user %s", credential.id, credential.label, user_id)
        return raw_key, credential

    async def authenticate(self, raw_key: str) -> ApiCredential | None:
        """Resolve a raw key to its active credential and record the use.

        Unknown, revoked and expired keys return None; an expired key is
        deactivated on the way.
        """
        if not raw_key:
            return None

        now = datetime.now(UTC)
        await self._ensure_schema()
        async with connect(self._db_path, write=True) as db:
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM api_keys WHERE key_hash = ? AND active = 1",
                (hash_key(raw_key),),
            )
            row = await cursor.fetchone()
            if row is None:
                return None

            credential = ApiCredential.from_row(row)
            if credential.is_expired(now):
                await db.execute("UPDATE api_keys SET active = 0 WHERE id = ?", (credential.id,))
                await db.commit()
                logger.info("API key %s expired; deactivated", credential.id)
                return None

            await db.execute(
                "UPDATE api_keys SET last_used_at = ?, usage_count = usage_count + 1 WHERE id = ?",
                (now.isoformat(), credential.id),
            )
            await db.commit()

        credential.last_used_at = now
        credential.usage_count += 1
        return credential

    async def list_keys(self, user_id: str) -> list[ApiCredential]:
        """All keys for a user, newest first."""
        await self._ensure_schema()
        async with connect(self._db_path) as db:
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM api_keys WHERE user_id = ? ORDER BY created_at DESC",
                (user_id,),
            )
            rows = await cursor.fetchall()
        return [ApiCredential.from_row(row) for row in rows]

    async def revoke(self, key_id: str, user_id: str) -> bool:
        """Deactivate a key. Returns True if an active key was revoked."""
        await self._ensure_schema()
        async with connect(self._db_path, write=True) as db:
            cursor = await db.execute(
                "UPDATE api_keys SET active = 0 WHERE id = ? AND user_id = ? AND active = 1",
                (key_id, user_id),
            )
            await db.commit()
            revoked = cursor.rowcount > 0
        if revoked:
            logger.info("Revoked API key %s", key_id)
        return revoked
