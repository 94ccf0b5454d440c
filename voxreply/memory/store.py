"""SQLite message store: messages and chat summaries, async via aiosqlite.

Writes are upserts keyed by message id / chat JID, so re-delivered events and
concurrent pipeline runs never create duplicates.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from voxreply.gateway.message import ChatSummary, MessageRecord

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS messages (
    message_id TEXT PRIMARY KEY,
    chat_jid TEXT NOT NULL,
    sender TEXT NOT NULL,
    content TEXT,
    timestamp TIMESTAMP NOT NULL,
    media_type TEXT,
    filename TEXT,
    is_from_me BOOLEAN NOT NULL DEFAULT 0,
    created_at TIMESTAMP
);

CREATE TABLE IF NOT EXISTS chats (
    jid TEXT PRIMARY KEY,
    name TEXT,
    last_message TEXT,
    last_message_time TIMESTAMP,
    is_group BOOLEAN NOT NULL DEFAULT 0,
    updated_at TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_messages_chat_jid ON messages(chat_jid);
CREATE INDEX IF NOT EXISTS idx_messages_timestamp ON messages(timestamp);
CREATE INDEX IF NOT EXISTS idx_chats_last_message_time ON chats(last_message_time);
"""

_MESSAGE_COLUMNS = (
    "message_id, chat_jid, sender, content, timestamp, media_type, filename, is_from_me"
)


def _parse_ts(value: str | None) -> datetime:
    if not value:
        return datetime.fromtimestamp(0, timezone.utc)
    ts = datetime.fromisoformat(value)
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def _format_ts(value: datetime) -> str:
    # Fixed-width UTC text so SQLite compares timestamps in time order.
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _row_to_record(row: tuple) -> MessageRecord:
    return MessageRecord(
        message_id=row[0],
        chat_jid=row[1],
        sender=row[2],
        content=row[3] or "",
        timestamp=_parse_ts(row[4]),
        media_type=row[5] or "",
        filename=row[6] or "",
        is_from_me=bool(row[7]),
    )


def _row_to_chat(row: tuple) -> ChatSummary:
    return ChatSummary(
        jid=row[0],
        name=row[1] or row[0],
        last_message=row[2] or "",
        last_message_time=_parse_ts(row[3]),
        is_group=bool(row[4]),
    )


class MessageStore:
    """SQLite-backed store for messages and chat summaries."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = str(db_path)
        self._db: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        """Open the database connection and create tables."""
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(self.db_path)
        await self._db.executescript(_SCHEMA)
        await self._db.commit()
        logger.info(f"Message store connected: {self.db_path}")

    async def close(self) -> None:
        """Close the database connection."""
        if self._db:
            await self._db.close()
            self._db = None

    def _conn(self) -> aiosqlite.Connection:
        if not self._db:
            raise RuntimeError("Message store not connected")
        return self._db

    # ─── Messages ────────────────────────────────────────────────

    async def upsert_message(self, record: MessageRecord) -> None:
        """Insert or replace a message keyed by its network message id."""
        db = self._conn()
        now = datetime.now(timezone.utc).isoformat()
        await db.execute(
            f"""INSERT OR REPLACE INTO messages ({_MESSAGE_COLUMNS}, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                record.message_id,
                record.chat_jid,
                record.sender,
                record.content,
                _format_ts(record.timestamp),
                record.media_type,
                record.filename,
                record.is_from_me,
                now,
            ),
        )
        await db.commit()

    async def get_message(self, message_id: str) -> MessageRecord | None:
        """Get a message by its network message id."""
        cursor = await self._conn().execute(
            f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE message_id = ?",
            (message_id,),
        )
        row = await cursor.fetchone()
        return _row_to_record(row) if row else None

    async def list_messages(
        self, chat_jid: str, limit: int = 50, offset: int = 0
    ) -> list[MessageRecord]:
        """Get messages of a chat, newest first."""
        cursor = await self._conn().execute(
            f"""SELECT {_MESSAGE_COLUMNS} FROM messages
                WHERE chat_jid = ? ORDER BY timestamp DESC LIMIT ? OFFSET ?""",
            (chat_jid, limit, offset),
        )
        rows = await cursor.fetchall()
        return [_row_to_record(row) for row in rows]

    async def count_messages(self) -> int:
        cursor = await self._conn().execute("SELECT COUNT(*) FROM messages")
        row = await cursor.fetchone()
        return int(row[0]) if row else 0

    # ─── Chats ───────────────────────────────────────────────────

    async def upsert_chat(self, summary: ChatSummary) -> None:
        """Insert a chat summary, or update it unless the stored one is newer."""
        db = self._conn()
        now = datetime.now(timezone.utc).isoformat()
        await db.execute(
            """INSERT INTO chats
               (jid, name, last_message, last_message_time, is_group, updated_at)
               VALUES (?, ?, ?, ?, ?, ?)
               ON CONFLICT(jid) DO UPDATE SET
                   name = excluded.name,
                   last_message = excluded.last_message,
                   last_message_time = excluded.last_message_time,
                   is_group = excluded.is_group,
                   updated_at = excluded.updated_at
               WHERE excluded.last_message_time >= chats.last_message_time
                  OR chats.last_message_time IS NULL""",
            (
                summary.jid,
                summary.name,
                summary.last_message,
                _format_ts(summary.last_message_time),
                summary.is_group,
                now,
            ),
        )
        await db.commit()

    async def get_chat(self, jid: str) -> ChatSummary | None:
        """Get a chat summary by JID."""
        cursor = await self._conn().execute(
            """SELECT jid, name, last_message, last_message_time, is_group
               FROM chats WHERE jid = ?""",
            (jid,),
        )
        row = await cursor.fetchone()
        return _row_to_chat(row) if row else None

    async def list_chats(self, limit: int = 100) -> list[ChatSummary]:
        """Get chats ordered by most recent activity."""
        cursor = await self._conn().execute(
            """SELECT jid, name, last_message, last_message_time, is_group
               FROM chats ORDER BY last_message_time DESC LIMIT ?""",
            (limit,),
        )
        rows = await cursor.fetchall()
        return [_row_to_chat(row) for row in rows]
