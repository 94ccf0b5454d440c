"""Event classifier: routes each inbound message to exactly one handler."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from voxreply.engine.pipeline import VoicePipeline
from voxreply.gateway.message import (
    AudioPayload,
    DocumentPayload,
    ExtendedTextPayload,
    ImagePayload,
    InboundEvent,
    MessageKind,
    MessageRecord,
    TextPayload,
    VideoPayload,
)
from voxreply.memory.history import ConversationLog
from voxreply.utils.jid import sanitize_message_content

logger = logging.getLogger(__name__)

UNKNOWN_LABEL = "[Unknown Message Type]"


def _text_content(payload: TextPayload | ExtendedTextPayload) -> tuple[str, str, str]:
    return payload.text, "text", ""


def _caption_content(payload: ImagePayload | VideoPayload) -> tuple[str, str, str]:
    return payload.caption, payload.kind, ""


def _audio_content(payload: AudioPayload) -> tuple[str, str, str]:
    return payload.label, payload.media_type, ""


def _document_content(payload: DocumentPayload) -> tuple[str, str, str]:
    return payload.caption, "document", payload.filename


def _unknown_content(payload: Any) -> tuple[str, str, str]:
    return UNKNOWN_LABEL, "unknown", ""


# kind -> (content, media_type, filename)
_CONTENT_HANDLERS: dict[str, Callable[[Any], tuple[str, str, str]]] = {
    MessageKind.TEXT: _text_content,
    MessageKind.EXTENDED_TEXT: _text_content,
    MessageKind.IMAGE: _caption_content,
    MessageKind.VIDEO: _caption_content,
    MessageKind.AUDIO: _audio_content,
    MessageKind.DOCUMENT: _document_content,
    MessageKind.UNKNOWN: _unknown_content,
}


class EventClassifier:
    """Stores every inbound message and hands voice notes to the pipeline."""

    def __init__(
        self,
        log: ConversationLog,
        pipeline: VoicePipeline | None = None,
        on_voice_note: Callable[[InboundEvent], Awaitable[object]] | None = None,
    ) -> None:
        self.log = log
        if on_voice_note is None and pipeline is not None:
            on_voice_note = pipeline.run
        self._on_voice_note = on_voice_note

    def record_for(self, event: InboundEvent) -> MessageRecord:
        """Build the stored record for an event."""
        handler = _CONTENT_HANDLERS.get(event.kind, _unknown_content)
        content, media_type, filename = handler(event.payload)
        return MessageRecord(
            message_id=event.message_id,
            chat_jid=event.chat,
            sender=event.sender,
            content=sanitize_message_content(content),
            timestamp=event.timestamp,
            media_type=media_type,
            filename=filename,
            is_from_me=event.is_from_me,
        )

    async def handle_event(self, event: InboundEvent) -> None:
        """Classify, persist and dispatch one event. Never raises."""
        try:
            record = self.record_for(event)
            logger.info(
                f"📨 {event.kind} message {event.message_id} from {event.sender} "
                f"in {event.chat}: {record.content[:80]!r}"
            )
            await self.log.record(record)

            if event.is_voice_note:
                if self._on_voice_note is None:
                    logger.warning(f"No voice pipeline configured; skipping {event.message_id}")
                    return
                await self._on_voice_note(event)
            elif isinstance(event.payload, AudioPayload):
                logger.debug(f"Audio {event.message_id} is not a voice note from a contact")
        except Exception:
            logger.exception(f"Unhandled error while handling message {event.message_id}")
