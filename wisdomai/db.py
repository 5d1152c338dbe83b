"""Async database connection abstraction over libsql.

The ``libsql`` driver is synchronous, so every call is pushed onto a worker
thread with ``asyncio.to_thread()`` and never blocks the event loop.
Connection target is determined by settings:

- **Production**: ``TURSO_DATABASE_URL`` + ``TURSO_AUTH_TOKEN`` → remote Turso
- **Dev/test**: no Turso env vars → local SQLite file via ``database_path``

Stores open one short-lived connection per operation::

    async with connect(self._db_path) as db:
        cursor = await db.execute("SELECT ...", (key,))
        row = await cursor.fetchone()

Operations that write pass ``write=True`` so their transactions are
serialized per database.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

import libsql

if TYPE_CHECKING:
    from pathlib import Path

from wisdomai.config import settings

# Keyed by resolved database path or Turso URL.
_write_locks: dict[str, asyncio.Lock] = {}


class _AsyncCursor:
    """Thin async wrapper around a synchronous libsql cursor."""

    def __init__(self, cursor: Any) -> None:
        self._cursor = cursor

    async def fetchone(self) -> tuple | None:
        return await asyncio.to_thread(self._cursor.fetchone)

    async def fetchall(self) -> list[tuple]:
        return await asyncio.to_thread(self._cursor.fetchall)

    @property
    def rowcount(self) -> int:
        return self._cursor.rowcount


class _AsyncConnection:
    """Thin async wrapper around a synchronous libsql connection."""

    def __init__(self, conn: Any) -> None:
        self._conn = conn

    async def execute(self, sql: str, params: tuple = ()) -> _AsyncCursor:
        cursor = await asyncio.to_thread(self._conn.execute, sql, params)
        return _AsyncCursor(cursor)

    async def execute_all(self, statements: Iterable[str]) -> None:
        """Run several parameterless statements (schema setup) in order."""
        for sql in statements:
            await asyncio.to_thread(self._conn.execute, sql, ())

    async def commit(self) -> None:
        await asyncio.to_thread(self._conn.commit)

    async def close(self) -> None:
        await asyncio.to_thread(self._conn.close)


def _open_local(path: str) -> Any:
    """Open a local libsql connection with WAL mode and busy timeout."""
    conn = libsql.connect(path)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA busy_timeout=5000")
    return conn


async def get_connection(local_path_override: Path | None = None) -> _AsyncConnection:
    """Return an async-wrapped libsql connection.

    If *local_path_override* is given (test isolation), it takes priority.
    Otherwise, ``TURSO_DATABASE_URL`` triggers a remote connection, and
    ``database_path`` falls back to a local file.
    """
    if local_path_override:
        local_path_override.parent.mkdir(parents=True, exist_ok=True)
        conn = await asyncio.to_thread(_open_local, str(local_path_override))
        return _AsyncConnection(conn)

    if settings.turso_database_url:
        conn = await asyncio.to_thread(
            libsql.connect,
            database=settings.turso_database_url,
            auth_token=settings.turso_auth_token,
        )
        return _AsyncConnection(conn)

    settings.database_path.parent.mkdir(parents=True, exist_ok=True)
    conn = await asyncio.to_thread(_open_local, str(settings.database_path))
    return _AsyncConnection(conn)


def _write_lock_key(local_path_override: Path | None) -> str:
    if local_path_override:
        return str(local_path_override.resolve())
    if settings.turso_database_url:
        return settings.turso_database_url
    return str(settings.database_path.resolve())


def write_lock(local_path_override: Path | None = None) -> asyncio.Lock:
    """The lock serializing write transactions against one database."""
    key = _write_lock_key(local_path_override)
    lock = _write_locks.get(key)
    if lock is None:
        lock = _write_locks[key] = asyncio.Lock()
    return lock


@asynccontextmanager
async def connect(
    local_path_override: Path | None = None, *, write: bool = False
) -> AsyncIterator[_AsyncConnection]:
    """Open a connection for the duration of a ``async with`` block.

    With ``write=True`` the block holds the database's write lock: at most
    one write transaction per database is open in this process.
    """
    if not write:
        db = await get_connection(local_path_override)
        try:
            yield db
        finally:
            await db.close()
        return

    async with write_lock(local_path_override):
        db = await get_connection(local_path_override)
        try:
            yield db
        finally:
            await db.close()
