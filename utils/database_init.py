import os
import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

import aiosqlite

DB_FILENAME = "chat.db"

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS HOST (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        title TEXT,
        url TEXT,
        avatar_url TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS CHAT_SESSION (
        id TEXT PRIMARY KEY,
        host_id TEXT,
        user_id TEXT,
        created_at REAL NOT NULL,
        updated_at REAL NOT NULL,
        status TEXT NOT NULL DEFAULT 'active',
        user_language TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS MESSAGE (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        session_id TEXT NOT NULL REFERENCES CHAT_SESSION(id),
        content TEXT NOT NULL,
        sender TEXT NOT NULL,
        created_at REAL NOT NULL,
        original_language TEXT,
        target_language TEXT,
        translated_content TEXT,
        translation_status TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_message_session ON MESSAGE(session_id, id)",
    "CREATE INDEX IF NOT EXISTS idx_chat_session_user ON CHAT_SESSION(user_id, created_at)",
)


def _resolve_db_dir(db_dir: Optional[Path | str]) -> Path:
    raw = str(db_dir) if db_dir is not None else os.getenv("DATABASE_DIR")
    if raw is None or not raw.strip():
        raise RuntimeError(
            "No database directory configured: pass db_dir or set DATABASE_DIR "
            "to a writable directory for the chat store."
        )

    path = Path(raw).expanduser()
    if path.exists() and not path.is_dir():
        raise RuntimeError(f"Database directory {raw!r} is a file, not a directory.")
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise RuntimeError(f"Cannot create database directory {path}") from exc
    return path


class AsyncDatabaseInitializer:
    """
    Own the SQLite chat store at `<db_dir>/chat.db`.

    `db_dir` defaults to the DATABASE_DIR environment variable. The HOST,
    CHAT_SESSION and MESSAGE tables are created the first time
    `ensure_database()` runs on an instance; with `reset=True` the existing
    file is removed beforehand. Later calls are no-ops, which is what lets
    `connection()` call it on every use.
    """

    def __init__(self, db_dir: Optional[Path | str] = None, reset: bool = False) -> None:
        self.db_dir = _resolve_db_dir(db_dir)
        self.db_path = self.db_dir / DB_FILENAME
        self.reset = reset
        self._initialized = False

    async def ensure_database(self) -> None:
        """Create the chat tables once per instance."""
        if self._initialized:
            return

        if self.reset:
            try:
                self.db_path.unlink(missing_ok=True)
            except OSError as exc:
                raise RuntimeError(f"Could not reset chat database at {self.db_path}") from exc

        for attempt in range(3):
            try:
                async with aiosqlite.connect(self.db_path) as db:
                    for statement in SCHEMA:
                        await db.execute(statement)
                    await db.commit()
                break
            except FileNotFoundError:
                # The directory can briefly vanish on network mounts.
                if attempt == 2:
                    raise
                await asyncio.sleep(0.1 * (attempt + 1))

        self._initialized = True

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Yield a fresh `aiosqlite.Connection`, creating the schema on first use."""
        await self.ensure_database()
        conn = await aiosqlite.connect(self.db_path)
        try:
            yield conn
        finally:
            await conn.close()
