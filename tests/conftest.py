"""Shared fakes and fixtures for VoxReply tests."""

from __future__ import annotations

import stat
from datetime import datetime, timezone
from pathlib import Path

import pytest
import pytest_asyncio

from voxreply.gateway.message import AudioPayload, InboundEvent
from voxreply.gateway.session import (
    MessagingSession,
    OutboundMessage,
    SendResult,
    TextMessage,
    UploadResult,
    VoiceMessage,
)
from voxreply.memory.history import ConversationLog
from voxreply.memory.store import MessageStore

USER_JID = "15551234567@s.whatsapp.net"
OWN_JID = "15550000000@s.whatsapp.net"
GROUP_JID = "120363025246125486@g.us"


class FakeSession(MessagingSession):
    """In-memory messaging session that records everything sent to it."""

    def __init__(
        self,
        audio: bytes = b"OggS fake voice note",
        download_error: Exception | None = None,
        upload_failures: int = 0,
        send_error: Exception | None = None,
        presence_error: Exception | None = None,
        contact_names: dict[str, str] | None = None,
    ) -> None:
        self.audio = audio
        self.download_error = download_error
        self.upload_failures = upload_failures
        self.send_error = send_error
        self.presence_error = presence_error
        self.contact_names = contact_names or {}
        self.sent: list[tuple[str, OutboundMessage]] = []
        self.presence: list[tuple[str, str]] = []
        self.timeline: list[str] = []
        self.upload_calls = 0

    @property
    def own_jid(self) -> str:
        return OWN_JID

    async def download(self, event: InboundEvent) -> bytes:
        if self.download_error:
            raise self.download_error
        return self.audio

    async def upload(self, data: bytes, media_kind: str) -> UploadResult:
        self.upload_calls += 1
        if self.upload_calls <= self.upload_failures:
            raise ConnectionError("media server unavailable")
        return UploadResult(
            url=f"https://media.example/{self.upload_calls}",
            direct_path=f"/v/{self.upload_calls}",
            file_length=len(data),
        )

    async def send(self, recipient: str, message: OutboundMessage) -> SendResult:
        if self.send_error:
            raise self.send_error
        self.sent.append((recipient, message))
        self.timeline.append(f"send:{type(message).__name__}")
        return SendResult(message_id=f"OUT{len(self.sent)}")

    async def set_presence(self, chat: str, state: str) -> None:
        self.presence.append((chat, state))
        self.timeline.append(f"presence:{state}")
        if self.presence_error:
            raise self.presence_error

    async def contact_name(self, jid: str) -> str | None:
        return self.contact_names.get(jid)

    @property
    def texts(self) -> list[str]:
        return [m.text for _, m in self.sent if isinstance(m, TextMessage)]

    @property
    def voices(self) -> list[VoiceMessage]:
        return [m for _, m in self.sent if isinstance(m, VoiceMessage)]


def voice_event(
    message_id: str = "3EB0C767D26A1D8C",
    chat: str = USER_JID,
    is_from_me: bool = False,
    ptt: bool = True,
) -> InboundEvent:
    return InboundEvent(
        message_id=message_id,
        chat=chat,
        sender=chat,
        payload=AudioPayload(ptt=ptt, seconds=3),
        timestamp=datetime(2026, 5, 4, 12, 30, tzinfo=timezone.utc),
        is_from_me=is_from_me,
    )


def make_script(directory: Path, name: str, body: str) -> str:
    """Write an executable shell script standing in for an engine binary."""
    path = directory / name
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest_asyncio.fixture
async def store():
    s = MessageStore(":memory:")
    await s.connect()
    yield s
    await s.close()


@pytest.fixture
def log(store: MessageStore, session: FakeSession) -> ConversationLog:
    return ConversationLog(store, session)
