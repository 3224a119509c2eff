"""SQLite chat store: one row per conversation turn, append-only."""

import json
import logging
import uuid
from datetime import datetime

import aiosqlite

from config import settings
from cooling_feedback.models.action import Intent
from cooling_feedback.models.conversation import ConversationTurn, TurnRole

logger = logging.getLogger(__name__)

MAX_STORED_TEXT = 4000


class ChatStore:
    """Async SQLite-based conversation store."""

    def __init__(self, db_path: str | None = None):
        self._db_path = db_path or settings.sqlite_db_path
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Create database and tables."""
        self._db = await aiosqlite.connect(self._db_path)

        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS chat_messages (
                message_id TEXT PRIMARY KEY,
                zone_id TEXT NOT NULL,
                session_id TEXT NOT NULL,
                role TEXT NOT NULL,
                text TEXT NOT NULL,
                intent TEXT,
                requires_action INTEGER,
                action TEXT,
                request_id TEXT,
                created_at TEXT NOT NULL
            )
        """)
        await self._db.execute("""
            CREATE INDEX IF NOT EXISTS idx_chat_zone_session
            ON chat_messages(zone_id, session_id, created_at)
        """)
        await self._db.execute("""
            CREATE INDEX IF NOT EXISTS idx_chat_request
            ON chat_messages(request_id)
        """)

        await self._db.commit()
        logger.info(f"Chat store initialized at {self._db_path}")

    async def record_turn(self, turn: ConversationTurn) -> str:
        """Store a turn and return its ID."""
        return (await self.record_turns([turn]))[0]

    async def record_turns(self, turns: list[ConversationTurn]) -> list[str]:
        """Store several turns in one transaction; either all are kept or none."""
        if not self._db:
            await self.initialize()

        message_ids = []
        try:
            for turn in turns:
                message_ids.append(await self._insert(turn))
            await self._db.commit()
        except Exception:
            await self._db.rollback()
            raise
        return message_ids

    async def _insert(self, turn: ConversationTurn) -> str:
        message_id = str(uuid.uuid4())[:12]
        await self._db.execute(
            """INSERT INTO chat_messages (message_id, zone_id, session_id, role, text, intent,
                                          requires_action, action, request_id, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                message_id,
                turn.zone_id,
                turn.session_id,
                turn.role.value,
                turn.text[:MAX_STORED_TEXT],
                turn.intent.value if turn.intent else None,
                None if turn.requires_action is None else int(turn.requires_action),
                json.dumps(turn.action) if turn.action is not None else None,
                turn.request_id,
                turn.created_at.isoformat(),
            ),
        )
        return message_id

    async def get_turns(self, zone_id: str, session_id: str, limit: int = 50) -> list[ConversationTurn]:
        """Turns of one session, newest first."""
        if not self._db:
            await self.initialize()

        async with self._db.execute(
            """SELECT zone_id, session_id, role, text, intent, requires_action, action,
                      request_id, created_at
               FROM chat_messages
               WHERE zone_id = ? AND session_id = ?
               ORDER BY created_at DESC, rowid DESC
               LIMIT ?""",
            (zone_id, session_id, limit),
        ) as cursor:
            rows = await cursor.fetchall()

        return [
            ConversationTurn(
                zone_id=row[0],
                session_id=row[1],
                role=TurnRole(row[2]),
                text=row[3],
                intent=Intent(row[4]) if row[4] else None,
                requires_action=None if row[5] is None else bool(row[5]),
                action=json.loads(row[6]) if row[6] else None,
                request_id=row[7],
                created_at=datetime.fromisoformat(row[8]),
            )
            for row in rows
        ]

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None
            logger.info("Chat store closed")
