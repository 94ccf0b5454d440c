"""Messaging session interface: the protocol client the core talks to.

The session itself (pairing, encryption, socket) lives outside this package.
Implementations wrap a real client; the console channel and the tests provide
in-process ones.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Union

from voxreply.gateway.message import InboundEvent


class PresenceState:
    """Chat presence values understood by set_presence."""

    RECORDING = "recording"   # composing, media=audio
    COMPOSING = "composing"
    PAUSED = "paused"


class MediaKind:
    """Upload categories (they select the media encryption info)."""

    AUDIO = "audio"
    IMAGE = "image"
    VIDEO = "video"
    DOCUMENT = "document"


@dataclass
class UploadResult:
    """What the media server returns for an uploaded blob."""

    url: str
    direct_path: str = ""
    media_key: bytes = b""
    file_sha256: bytes = b""
    file_enc_sha256: bytes = b""
    file_length: int = 0


@dataclass
class TextMessage:
    text: str


@dataclass
class VoiceMessage:
    """Audio message built from an upload; ptt marks it as a voice note."""

    upload: UploadResult
    mimetype: str
    seconds: int
    file_length: int
    ptt: bool = True


OutboundMessage = Union[TextMessage, VoiceMessage]


@dataclass
class SendResult:
    message_id: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class MessagingSession(ABC):
    """Abstract messaging session.

    Every method may raise; callers decide whether a failure is fatal.
    """

    @property
    @abstractmethod
    def own_jid(self) -> str:
        """Return the JID of the logged-in account."""
        ...

    @abstractmethod
    async def download(self, event: InboundEvent) -> bytes:
        """Download and decrypt the media attached to an event."""
        ...

    @abstractmethod
    async def upload(self, data: bytes, media_kind: str) -> UploadResult:
        """Encrypt and upload a media blob."""
        ...

    @abstractmethod
    async def send(self, recipient: str, message: OutboundMessage) -> SendResult:
        """Send a message to a user or group JID."""
        ...

    @abstractmethod
    async def set_presence(self, chat: str, state: str) -> None:
        """Show a presence indicator (recording, paused...) in a chat."""
        ...

    async def contact_name(self, jid: str) -> str | None:
        """Return the contact's display name if the session knows it."""
        return None

    async def start(self) -> None:
        """Connect the session. Override if needed."""

    async def stop(self) -> None:
        """Disconnect gracefully. Override if needed."""
