"""Async Data Access Layer for the HOST, CHAT_SESSION and MESSAGE tables.

Each DAL class accepts an `AsyncDatabaseInitializer` (or any object
exposing an async `connection()` context manager that yields an
`aiosqlite.Connection`).
"""

from __future__ import annotations

import time
from typing import List, Optional, Sequence
from uuid import uuid4

from models.chat_models import ChatMessage, ChatSession, HostInfo, TranslationStatus
from utils.database_init import AsyncDatabaseInitializer


class HostDAL:
    """Data access layer for HOST records."""

    _COLUMNS = ("id", "name", "title", "url", "avatar_url")
    _COLUMN_LIST = ", ".join(_COLUMNS)

    def __init__(self, db_initializer: AsyncDatabaseInitializer) -> None:
        self._db = db_initializer

    async def upsert_host(self, host: HostInfo) -> HostInfo:
        """Insert or replace a HOST row and return it."""
        async with self._db.connection() as conn:
            await conn.execute(
                f"INSERT OR REPLACE INTO HOST ({self._COLUMN_LIST}) VALUES (?, ?, ?, ?, ?)",
                (host.id, host.name, host.title, host.url, host.avatar_url),
            )
            await conn.commit()
        return host

    async def get_host(self, host_id: str) -> Optional[HostInfo]:
        """Return HostInfo for `host_id`, or None if not found."""
        async with self._db.connection() as conn:
            cur = await conn.execute(f"SELECT {self._COLUMN_LIST} FROM HOST WHERE id = ?", (host_id,))
            row = await cur.fetchone()
            return HostInfo(*row) if row else None


class SessionDAL:
    """Data access layer for CHAT_SESSION records."""

    _COLUMNS = ("id", "host_id", "user_id", "created_at", "updated_at", "status", "user_language")
    _COLUMN_LIST = ", ".join(_COLUMNS)

    def __init__(self, db_initializer: AsyncDatabaseInitializer) -> None:
        self._db = db_initializer

    async def create_session(
        self,
        user_id: Optional[str],
        host_id: Optional[str] = None,
        user_language: Optional[str] = None,
    ) -> ChatSession:
        """Insert a new active session with a fresh uuid and return it."""
        now = time.time()
        session = ChatSession(
            id=uuid4().hex,
            host_id=host_id,
            user_id=user_id,
            created_at=now,
            updated_at=now,
            user_language=user_language,
        )
        async with self._db.connection() as conn:
            await conn.execute(
                f"INSERT INTO CHAT_SESSION ({self._COLUMN_LIST}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    session.id,
                    session.host_id,
                    session.user_id,
                    session.created_at,
                    session.updated_at,
                    session.status,
                    session.user_language,
                ),
            )
            await conn.commit()
        return session

    async def get_session(self, session_id: str) -> Optional[ChatSession]:
        """Return the ChatSession for `session_id`, or None if not found."""
        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"SELECT {self._COLUMN_LIST} FROM CHAT_SESSION WHERE id = ?",
                (session_id,),
            )
            row = await cur.fetchone()
            return self._row_to_session(row) if row else None

    async def latest_active_session(self, user_id: str, host_id: Optional[str] = None) -> Optional[ChatSession]:
        """Return the most recent active session of a guest, optionally for one host."""
        sql = f"SELECT {self._COLUMN_LIST} FROM CHAT_SESSION WHERE user_id = ? AND status = 'active'"
        params: list = [user_id]
        if host_id is not None:
            sql += " AND host_id = ?"
            params.append(host_id)
        sql += " ORDER BY created_at DESC, rowid DESC LIMIT 1"
        async with self._db.connection() as conn:
            cur = await conn.execute(sql, tuple(params))
            row = await cur.fetchone()
            return self._row_to_session(row) if row else None

    async def touch(self, session_id: str, user_language: Optional[str] = None) -> bool:
        """Refresh the activity timestamp (and language, if given). Returns True if a row changed."""
        fields = ["updated_at = ?"]
        params: list = [time.time()]
        if user_language:
            fields.append("user_language = ?")
            params.append(user_language)
        params.append(session_id)
        async with self._db.connection() as conn:
            await conn.execute(f"UPDATE CHAT_SESSION SET {', '.join(fields)} WHERE id = ?", tuple(params))
            await conn.commit()
            cur = await conn.execute("SELECT changes()")
            changed = await cur.fetchone()
            return bool(changed and changed[0] > 0)

    @staticmethod
    def _row_to_session(row: Sequence[object]) -> ChatSession:
        return ChatSession(
            id=row[0],
            host_id=row[1],
            user_id=row[2],
            created_at=row[3],
            updated_at=row[4],
            status=row[5],
            user_language=row[6],
        )


class MessageDAL:
    """Data access layer for MESSAGE records."""

    _COLUMNS = (
        "id",
        "session_id",
        "content",
        "sender",
        "created_at",
        "original_language",
        "target_language",
        "translated_content",
        "translation_status",
    )
    _COLUMN_LIST, _INSERT_COLUMNS = ", ".join(_COLUMNS), ", ".join(_COLUMNS[1:])

    def __init__(self, db_initializer: AsyncDatabaseInitializer) -> None:
        self._db = db_initializer

    async def create_message(
        self,
        session_id: str,
        content: str,
        sender: str,
        *,
        original_language: Optional[str] = None,
        target_language: Optional[str] = None,
        translation_status: Optional[TranslationStatus] = None,
    ) -> ChatMessage:
        """Insert a MESSAGE row and return it with its assigned id."""
        message = ChatMessage(
            id=0,
            session_id=session_id,
            content=content,
            sender=sender,
            created_at=time.time(),
            original_language=original_language,
            target_language=target_language,
            translation_status=translation_status,
        )
        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"INSERT INTO MESSAGE ({self._INSERT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    message.session_id,
                    message.content,
                    message.sender,
                    message.created_at,
                    message.original_language,
                    message.target_language,
                    None,
                    translation_status.value if translation_status else None,
                ),
            )
            await conn.commit()
            message.id = cur.lastrowid
        return message

    async def get_message(self, message_id: int) -> Optional[ChatMessage]:
        """Return the ChatMessage for `message_id`, or None if not found."""
        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"SELECT {self._COLUMN_LIST} FROM MESSAGE WHERE id = ?",
                (message_id,),
            )
            row = await cur.fetchone()
            return self._row_to_message(row) if row else None

    async def list_messages(
        self,
        session_id: str,
        since_id: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[ChatMessage]:
        """List a session's messages in ascending creation order.

        Args:
            session_id: Parent session.
            since_id: Only return rows with an id greater than this.
            limit: Maximum number of rows to return.
        """
        sql = f"SELECT {self._COLUMN_LIST} FROM MESSAGE WHERE session_id = ?"
        params: list = [session_id]
        if since_id is not None:
            sql += " AND id > ?"
            params.append(since_id)
        sql += " ORDER BY created_at ASC, id ASC"
        if limit:
            sql += " LIMIT ?"
            params.append(limit)
        async with self._db.connection() as conn:
            cur = await conn.execute(sql, tuple(params))
            rows = await cur.fetchall()
            return [self._row_to_message(r) for r in rows]

    async def update_translation(
        self,
        message_id: int,
        status: TranslationStatus,
        translated_content: Optional[str] = None,
    ) -> bool:
        """Record a translation outcome. Returns True if a row was changed.

        Rows that already reached `completed` or `error` are left untouched.
        """
        allowed = [s.value for s in TranslationStatus if s.can_become(status)]
        placeholders = ", ".join("?" for _ in allowed)
        sql = (
            "UPDATE MESSAGE SET translated_content = COALESCE(?, translated_content), translation_status = ? "
            f"WHERE id = ? AND (translation_status IS NULL OR translation_status IN ({placeholders}))"
        )
        async with self._db.connection() as conn:
            await conn.execute(sql, (translated_content, status.value, message_id, *allowed))
            await conn.commit()
            cur = await conn.execute("SELECT changes()")
            changed = await cur.fetchone()
            return bool(changed and changed[0] > 0)

    @staticmethod
    def _row_to_message(row: Sequence[object]) -> ChatMessage:
        """Convert a DB row tuple into a ChatMessage."""
        return ChatMessage(
            id=row[0],
            session_id=row[1],
            content=row[2],
            sender=row[3],
            created_at=row[4],
            original_language=row[5],
            target_language=row[6],
            translated_content=row[7],
            translation_status=TranslationStatus(row[8]) if row[8] else None,
        )
