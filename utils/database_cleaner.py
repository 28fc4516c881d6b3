"""Background job that closes chat sessions nobody has touched in a while."""

import asyncio
import logging
import time

from utils.database_init import AsyncDatabaseInitializer

LOGGER = logging.getLogger(__name__)


class DatabaseCleaner:
    """Flip idle `active` sessions to `closed` so guests start fresh next visit.

    Args:
        db_initializer: Shared chat store.
        retention_seconds: A session whose `updated_at` is older than this
            is considered idle.
    """

    def __init__(self, db_initializer: AsyncDatabaseInitializer, retention_seconds: float = 86_400) -> None:
        self._db = db_initializer
        self.retention_seconds = retention_seconds

    async def close_idle_sessions(self) -> int:
        """Close idle sessions and return how many were closed."""
        cutoff = time.time() - self.retention_seconds
        async with self._db.connection() as conn:
            cur = await conn.execute(
                "UPDATE CHAT_SESSION SET status = 'closed' WHERE status = 'active' AND updated_at < ?",
                (cutoff,),
            )
            await conn.commit()
            return max(cur.rowcount, 0)

    async def run_periodic_cleanup(self, interval_seconds: float = 3_600) -> None:
        """Run `close_idle_sessions` every `interval_seconds` until the task is cancelled."""
        while True:
            try:
                closed = await self.close_idle_sessions()
            except asyncio.CancelledError:
                break
            except Exception as exc:
                LOGGER.error("Session cleanup failed: %s", exc)
            else:
                if closed:
                    LOGGER.info("Closed %d idle chat session(s)", closed)
            try:
                await asyncio.sleep(interval_seconds)
            except asyncio.CancelledError:
                break
