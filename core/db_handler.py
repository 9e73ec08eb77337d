"""
Database Handler
SQLite persistence for finished cook sessions
"""
import logging
from typing import List, Optional

import aiosqlite

from models.cooking import SessionRecord

logger = logging.getLogger(__name__)


class SessionDB:
    """
    Cook session database
    Implements the persistence collaborator (save_session) and history queries
    """

    def __init__(self, db_path: str = "cook_sessions.db"):
        """
        Args:
            db_path: SQLite database file path
        """
        self.db_path = db_path
        self.connection = None

    async def init_db(self):
        """
        Open the database and create tables
        """
        self.connection = await aiosqlite.connect(self.db_path)

        await self.connection.execute("""
            CREATE TABLE IF NOT EXISTS cook_sessions (
                id TEXT PRIMARY KEY,
                meat_type TEXT NOT NULL,
                weight_lb REAL NOT NULL,
                start_time TIMESTAMP NOT NULL,
                end_time TIMESTAMP,
                record_json TEXT NOT NULL
            )
        """)
        await self.connection.commit()

    async def save_session(self, record: SessionRecord) -> bool:
        """
        Store a finished session

        Args:
            record: SessionRecord

        Returns:
            True on success, False if the write failed
        """
        if self.connection is None:
            await self.init_db()

        try:
            await self.connection.execute(
                "INSERT OR REPLACE INTO cook_sessions "
                "(id, meat_type, weight_lb, start_time, end_time, record_json) VALUES (?, ?, ?, ?, ?, ?)",
                (
                    record.id,
                    record.meat_type,
                    record.weight_lb,
                    record.start_time.isoformat(),
                    record.end_time.isoformat() if record.end_time else None,
                    record.model_dump_json(),
                ),
            )
            await self.connection.commit()
        except aiosqlite.Error as e:
            logger.error("[SessionDB] failed to save session %s: %s", record.id, e)
            return False
        return True

    async def get_session(self, session_id: str) -> Optional[SessionRecord]:
        """
        Load one session by id

        Returns:
            SessionRecord or None
        """
        if self.connection is None:
            await self.init_db()

        cursor = await self.connection.execute(
            "SELECT record_json FROM cook_sessions WHERE id = ?",
            (session_id,)
        )
        row = await cursor.fetchone()
        if not row:
            return None
        return SessionRecord.model_validate_json(row[0])

    async def list_sessions(self, limit: int = 50) -> List[SessionRecord]:
        """
        Session history, newest first

        Args:
            limit: Maximum number of sessions

        Returns:
            SessionRecord list
        """
        if self.connection is None:
            await self.init_db()

        cursor = await self.connection.execute(
            "SELECT record_json FROM cook_sessions ORDER BY start_time DESC LIMIT ?",
            (limit,)
        )
        rows = await cursor.fetchall()
        return [SessionRecord.model_validate_json(row[0]) for row in rows]

    async def get_session_counts(self, meat_type: str) -> int:
        """
        Number of stored sessions for a meat type (case-insensitive)
        """
        if self.connection is None:
            await self.init_db()

        cursor = await self.connection.execute(
            "SELECT COUNT(*) FROM cook_sessions WHERE lower(meat_type) = lower(?)",
            (meat_type,)
        )
        result = await cursor.fetchone()
        return result[0] if result else 0

    async def close(self):
        """Close the database connection"""
        if self.connection:
            await self.connection.close()
            self.connection = None
