"""Conversation log: persists message records and refreshes chat summaries."""

from __future__ import annotations

import logging

from voxreply.gateway.message import ChatSummary, MessageRecord
from voxreply.gateway.session import MessagingSession
from voxreply.memory.store import MessageStore
from voxreply.utils.jid import is_group_jid

logger = logging.getLogger(__name__)


class ConversationLog:
    """Best-effort persistence shared by inbound and outbound paths.

    The record and the summary are written independently; a failure in either
    is logged and swallowed, so message handling never stops on storage errors.
    """

    def __init__(self, store: MessageStore, session: MessagingSession | None = None) -> None:
        self.store = store
        self.session = session

    async def record(self, record: MessageRecord) -> bool:
        """Persist a message and update its chat summary. Returns True if both succeeded."""
        ok = True
        try:
            await self.store.upsert_message(record)
            logger.debug(f"Stored {record.media_type} message {record.message_id}")
        except Exception:
            logger.exception(f"Failed to store message {record.message_id}")
            ok = False

        try:
            await self.store.upsert_chat(await self._summary_for(record))
        except Exception:
            logger.exception(f"Failed to update chat {record.chat_jid}")
            ok = False
        return ok

    async def _summary_for(self, record: MessageRecord) -> ChatSummary:
        is_group = is_group_jid(record.chat_jid)
        name = record.chat_jid
        if not is_group and self.session is not None:
            try:
                name = await self.session.contact_name(record.chat_jid) or record.chat_jid
            except Exception as e:
                logger.debug(f"Contact lookup failed for {record.chat_jid}: {e}")
        return ChatSummary(
            jid=record.chat_jid,
            name=name,
            last_message=record.content,
            last_message_time=record.timestamp,
            is_group=is_group,
        )
