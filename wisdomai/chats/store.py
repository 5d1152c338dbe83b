"""ChatStore: per-user chat sessions and their ordered messages via libsql."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from wisdomai.chats.models import ChatMessage, ChatSession, ChatSummary, derive_title, make_session_id
from wisdomai.db import connect

if TYPE_CHECKING:
    from pathlib import Path

    from wisdomai.db import _AsyncConnection

logger = logging.getLogger(__name__)

_CREATE_TABLES = (
    """
    CREATE TABLE IF NOT EXISTS chat_sessions (
        id           TEXT PRIMARY KEY,
        user_id      TEXT NOT NULL,
        title        TEXT NOT NULL,
        last_message TEXT NOT NULL DEFAULT '',
        created_at   TEXT NOT NULL,
        updated_at   TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_chat_sessions_user ON chat_sessions (user_id, updated_at)",
    """
    CREATE TABLE IF NOT EXISTS chat_messages (
        id         INTEGER PRIMARY KEY AUTOINCREMENT,
        session_id TEXT NOT NULL,
        role       TEXT NOT NULL,
        content    TEXT NOT NULL,
        persona    TEXT,
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_chat_messages_session ON chat_messages (session_id, id)",
)

_SESSION_COLUMNS = "id, user_id, title, last_message, created_at, updated_at"

_LAST_PERSONA = (
    "SELECT persona FROM chat_messages "
    "WHERE session_id = chat_sessions.id AND role = 'assistant' "
    "ORDER BY id DESC LIMIT 1"
)


class ChatNotFoundError(LookupError):
    """The chat does not exist or belongs to someone else.

    Both cases raise the same error so callers cannot discover other users' chats.
    """

    def __init__(self, chat_id: str) -> None:
        super().__init__(f"Chat not found: {chat_id}")
        self.chat_id = chat_id


def _message_from_row(row: tuple) -> ChatMessage:
    return ChatMessage(role=row[0], content=row[1], persona=row[2], created_at=row[3])


def _session_from_row(row: tuple, messages: list[ChatMessage]) -> ChatSession:
    return ChatSession(
        id=row[0],
        user_id=row[1],
        title=row[2],
        last_message=row[3],
        created_at=row[4],
        updated_at=row[5],
        messages=messages,
    )


class ChatStore:
    """Persists chat sessions in SQLite / Turso.

    Singleton accessed via ``ChatStore.get()``.  Pass an explicit *db_path*
    for test isolation (e.g. ``tmp_path / "test.db"``).

    Every read and write is scoped by ``user_id``; a session owned by another
    user behaves exactly like a missing one.
    """

    _instance: ChatStore | None = None

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path
        self._initialised = False

    @classmethod
    def get(cls) -> ChatStore:
        """Return the shared ChatStore instance."""
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
            await db.execute_all(_CREATE_TABLES)
            await db.commit()
        self._initialised = True

    async def _owned_row(self, db: _AsyncConnection, session_id: str, user_id: str) -> tuple | None:
        cursor = await db.execute(
            f"SELECT {_SESSION_COLUMNS} FROM chat_sessions WHERE id = ? AND user_id = ?",
            (session_id, user_id),
        )
        return await cursor.fetchone()

    async def _messages(
        self, db: _AsyncConnection, session_id: str, limit: int | None = None
    ) -> list[ChatMessage]:
        if limit is None:
            cursor = await db.execute(
                "SELECT role, content, persona, created_at FROM chat_messages "
                "WHERE session_id = ? ORDER BY id",
                (session_id,),
            )
            rows = await cursor.fetchall()
        else:
            cursor = await db.execute(
                "SELECT role, content, persona, created_at FROM chat_messages "
                "WHERE session_id = ? ORDER BY id DESC LIMIT ?",
                (session_id, limit),
            )
            rows = list(reversed(await cursor.fetchall()))
        return [_message_from_row(row) for row in rows]

    async def _insert_message(self, db: _AsyncConnection, session_id: str, message: ChatMessage) -> None:
        await db.execute(
            """
            INSERT INTO chat_messages (session_id, role, content, persona, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                session_id,
                message.role.value,
                message.content,
                message.persona.value if message.persona else None,
                message.created_at.isoformat(),
            ),
        )

    # -- Writes ----------------------------------------------------------------

    async def create_session(
        self, user_id: str, first_message: ChatMessage, title: str | None = None
    ) -> ChatSession:
        """Start a new conversation with its first message."""
        now = datetime.now(UTC).isoformat()
        session_id = make_session_id()
        if title is None:
            title = derive_title(first_message.content) if first_message.role == "user" else "New Chat"

        await self._ensure_schema()
        async with connect(self._db_path, write=True) as db:
            await db.execute(
                f"INSERT INTO chat_sessions ({_SESSION_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?)",
                (session_id, user_id, title, first_message.content, now, now),
            )
            await self._insert_message(db, session_id, first_message)
            await db.commit()

        logger.info("Created chat %s for user %s: %r", session_id, user_id, title)
        return ChatSession(
            id=session_id,
            user_id=user_id,
            title=title,
            messages=[first_message],
            last_message=first_message.content,
            created_at=now,
            updated_at=now,
        )

    async def append_message(self, session_id: str, user_id: str, message: ChatMessage) -> ChatSession:
        """Append a message to an owned session and return the updated session.

        Raises:
            ChatNotFoundError: The session is missing or not owned by *user_id*.
        """
        now = datetime.now(UTC).isoformat()
        await self._ensure_schema()
        async with connect(self._db_path, write=True) as db:
            if await self._owned_row(db, session_id, user_id) is None:
                raise ChatNotFoundError(session_id)

            await self._insert_message(db, session_id, message)
            await db.execute(
                "UPDATE chat_sessions SET last_message = ?, updated_at = ? WHERE id = ?",
                (message.content, now, session_id),
            )
            await db.commit()

            row = await self._owned_row(db, session_id, user_id)
            messages = await self._messages(db, session_id)

        return _session_from_row(row, messages)

    async def clear_session(self, session_id: str, user_id: str) -> bool:
        """Remove all messages but keep the session. Returns False if not found."""
        now = datetime.now(UTC).isoformat()
        await self._ensure_schema()
        async with connect(self._db_path, write=True) as db:
            if await self._owned_row(db, session_id, user_id) is None:
                return False
            await db.execute("DELETE FROM chat_messages WHERE session_id = ?", (session_id,))
            await db.execute(
                "UPDATE chat_sessions SET last_message = '', updated_at = ? WHERE id = ?",
                (now, session_id),
            )
            await db.commit()
        logger.info("Cleared chat %s", session_id)
        return True

    async def delete_session(self, session_id: str, user_id: str) -> bool:
        """Delete a session and all its messages. Returns False if not found."""
        await self._ensure_schema()
        async with connect(self._db_path, write=True) as db:
            cursor = await db.execute(
                "DELETE FROM chat_sessions WHERE id = ? AND user_id = ?", (session_id, user_id)
            )
            if cursor.rowcount == 0:
                return False
            await db.execute("DELETE FROM chat_messages WHERE session_id = ?", (session_id,))
            await db.commit()
        logger.info("Deleted chat %s", session_id)
        return True

    # -- Reads -----------------------------------------------------------------

    async def get_session(self, session_id: str, user_id: str) -> ChatSession | None:
        """Fetch an owned session with all messages, or None."""
        await self._ensure_schema()
        async with connect(self._db_path) as db:
            row = await self._owned_row(db, session_id, user_id)
            if row is None:
                return None
            messages = await self._messages(db, session_id)
        return _session_from_row(row, messages)

    async def recent_messages(self, session_id: str, user_id: str, limit: int) -> list[ChatMessage]:
        """The last *limit* messages of an owned session, oldest first."""
        await self._ensure_schema()
        async with connect(self._db_path) as db:
            if await self._owned_row(db, session_id, user_id) is None:
                return []
            return await self._messages(db, session_id, limit=limit)

    async def list_sessions(self, user_id: str, limit: int = 30) -> list[ChatSummary]:
        """Session summaries for a user, most recently updated first."""
        await self._ensure_schema()
        async with connect(self._db_path) as db:
            cursor = await db.execute(
                f"SELECT {_SESSION_COLUMNS}, ({_LAST_PERSONA}) FROM chat_sessions "
                "WHERE user_id = ? ORDER BY updated_at DESC LIMIT ?",
                (user_id, limit),
            )
            rows = await cursor.fetchall()
        return [
            ChatSummary(
                id=row[0],
                title=row[2],
                last_message=row[3],
                created_at=row[4],
                updated_at=row[5],
                last_persona=row[6],
            )
            for row in rows
        ]

    async def recent_sessions(self, user_id: str, limit: int) -> list[ChatSession]:
        """Most recently updated sessions for a user, with their messages."""
        await self._ensure_schema()
        async with connect(self._db_path) as db:
            cursor = await db.execute(
                f"SELECT {_SESSION_COLUMNS} FROM chat_sessions WHERE user_id = ? "
                "ORDER BY updated_at DESC LIMIT ?",
                (user_id, limit),
            )
            rows = await cursor.fetchall()
            return [_session_from_row(row, await self._messages(db, row[0])) for row in rows]

    async def count_sessions(self, user_id: str) -> int:
        """Number of conversations the user has."""
        await self._ensure_schema()
        async with connect(self._db_path) as db:
            cursor = await db.execute(
                "SELECT COUNT(*) FROM chat_sessions WHERE user_id = ?", (user_id,)
            )
            row = await cursor.fetchone()
        return int(row[0]) if row else 0
