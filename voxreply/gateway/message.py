"""Message schema: inbound events, stored records and chat summaries.

An InboundEvent carries exactly one payload. Payloads form a tagged union:
each payload class has a fixed ``kind`` and the classifier dispatches on it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import ClassVar, Union


class MessageKind:
    """Payload kind tags, in classification precedence order."""

    TEXT = "text"
    EXTENDED_TEXT = "extended_text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"
    UNKNOWN = "unknown"

    ORDER: ClassVar[tuple[str, ...]] = (
        TEXT, EXTENDED_TEXT, IMAGE, VIDEO, AUDIO, DOCUMENT, UNKNOWN,
    )


@dataclass(frozen=True)
class TextPayload:
    text: str
    kind: ClassVar[str] = MessageKind.TEXT


@dataclass(frozen=True)
class ExtendedTextPayload:
    text: str
    kind: ClassVar[str] = MessageKind.EXTENDED_TEXT


@dataclass(frozen=True)
class ImagePayload:
    caption: str = ""
    mimetype: str = ""
    kind: ClassVar[str] = MessageKind.IMAGE


@dataclass(frozen=True)
class VideoPayload:
    caption: str = ""
    mimetype: str = ""
    kind: ClassVar[str] = MessageKind.VIDEO


@dataclass(frozen=True)
class AudioPayload:
    """Audio share or push-to-talk voice note."""

    ptt: bool = False
    seconds: int = 0
    mimetype: str = "audio/ogg; codecs=opus"
    kind: ClassVar[str] = MessageKind.AUDIO

    @property
    def label(self) -> str:
        """Synthetic content stored for audio messages."""
        return "[Voice Message]" if self.ptt else "[Audio Message]"

    @property
    def media_type(self) -> str:
        return "voice" if self.ptt else "audio"


@dataclass(frozen=True)
class DocumentPayload:
    caption: str = ""
    filename: str = ""
    mimetype: str = ""
    kind: ClassVar[str] = MessageKind.DOCUMENT


@dataclass(frozen=True)
class UnknownPayload:
    kind: ClassVar[str] = MessageKind.UNKNOWN


Payload = Union[
    TextPayload,
    ExtendedTextPayload,
    ImagePayload,
    VideoPayload,
    AudioPayload,
    DocumentPayload,
    UnknownPayload,
]


def payload_from_dict(raw: dict) -> Payload:
    """Build a payload from a protocol-shaped message dict.

    Keys are probed in precedence order, so a message carrying both a plain
    conversation body and an attachment is classified as text.
    """
    if conversation := raw.get("conversation"):
        return TextPayload(text=conversation)
    if (ext := raw.get("extendedTextMessage")) is not None:
        return ExtendedTextPayload(text=ext.get("text", ""))
    if (image := raw.get("imageMessage")) is not None:
        return ImagePayload(caption=image.get("caption", ""), mimetype=image.get("mimetype", ""))
    if (video := raw.get("videoMessage")) is not None:
        return VideoPayload(caption=video.get("caption", ""), mimetype=video.get("mimetype", ""))
    if (audio := raw.get("audioMessage")) is not None:
        return AudioPayload(
            ptt=bool(audio.get("ptt", False)),
            seconds=int(audio.get("seconds", 0) or 0),
            mimetype=audio.get("mimetype", "audio/ogg; codecs=opus"),
        )
    if (doc := raw.get("documentMessage")) is not None:
        return DocumentPayload(
            caption=doc.get("caption", ""),
            filename=doc.get("fileName", ""),
            mimetype=doc.get("mimetype", ""),
        )
    return UnknownPayload()


@dataclass
class InboundEvent:
    """One message event delivered by the messaging session."""

    message_id: str
    chat: str
    sender: str
    payload: Payload
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    is_from_me: bool = False
    push_name: str = ""

    @property
    def kind(self) -> str:
        return self.payload.kind

    @property
    def is_voice_note(self) -> bool:
        """A push-to-talk recording sent by someone else."""
        return (
            isinstance(self.payload, AudioPayload)
            and self.payload.ptt
            and not self.is_from_me
        )


@dataclass
class MessageRecord:
    """A persisted message, keyed by the network message id."""

    message_id: str
    chat_jid: str
    sender: str
    content: str
    timestamp: datetime
    media_type: str = "text"
    filename: str = ""
    is_from_me: bool = False


@dataclass
class ChatSummary:
    """Per-chat summary refreshed after every message in the chat."""

    jid: str
    name: str
    last_message: str
    last_message_time: datetime
    is_group: bool = False
