"""Console session: an in-process messaging session driven from the terminal.

Typed lines become text messages. ``/voice <path>`` sends the audio file at
``path`` as a push-to-talk voice note, which runs the full voice pipeline.
"""

from __future__ import annotations

import hashlib
import itertools
import logging
from pathlib import Path
from typing import AsyncIterator

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.text import Text

from voxreply import __version__
from voxreply.delivery.media import resolve_media_type
from voxreply.errors import InvalidInput
from voxreply.gateway.message import AudioPayload, InboundEvent, TextPayload
from voxreply.gateway.session import (
    MessagingSession,
    OutboundMessage,
    PresenceState,
    SendResult,
    TextMessage,
    UploadResult,
)

logger = logging.getLogger(__name__)

console = Console()

CONSOLE_CHAT = "10000000000@s.whatsapp.net"
CONSOLE_OWN_JID = "19999999999@s.whatsapp.net"


class ConsoleSession(MessagingSession):
    """Terminal stand-in for a messaging session.

    Uploaded voice replies are written to ``outbox_dir`` so they can be
    played back.
    """

    def __init__(self, outbox_dir: str | Path, chat: str = CONSOLE_CHAT) -> None:
        self.outbox_dir = Path(outbox_dir)
        self.chat = chat
        self._media: dict[str, Path] = {}
        self._ids = itertools.count(1)

    @property
    def own_jid(self) -> str:
        return CONSOLE_OWN_JID

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}{next(self._ids):06d}"

    def event_from_line(self, line: str) -> InboundEvent:
        """Turn one line of input into an inbound event."""
        message_id = self._next_id("IN")
        if line.startswith("/voice "):
            path = Path(line[len("/voice "):].strip()).expanduser()
            if not path.is_file():
                raise InvalidInput(f"audio file not found: {path}")
            self._media[message_id] = path
            payload = AudioPayload(ptt=True, mimetype=resolve_media_type(path.name).mime)
        else:
            payload = TextPayload(text=line)
        return InboundEvent(
            message_id=message_id,
            chat=self.chat,
            sender=self.chat,
            payload=payload,
            push_name="console",
        )

    async def receive(self) -> AsyncIterator[InboundEvent]:
        """Read events from stdin until exit, quit or Ctrl+C."""
        console.print(
            Panel(
                Text.from_markup(
                    f"[bold cyan]🎙 VoxReply[/] v{__version__}. "
                    "Type a message, [bold]/voice <file>[/] to send a voice note, "
                    "or [bold]exit[/] to quit."
                ),
                border_style="cyan",
            )
        )
        while True:
            try:
                user_input = console.input("[bold green]you >[/] ").strip()
            except (EOFError, KeyboardInterrupt):
                console.print("\n[dim]Goodbye![/]")
                break

            if not user_input:
                continue
            if user_input.lower() in ("exit", "quit", "/exit", "/quit"):
                console.print("[dim]Goodbye![/]")
                break

            try:
                yield self.event_from_line(user_input)
            except InvalidInput as e:
                console.print(f"[red]{e}[/]")

    async def download(self, event: InboundEvent) -> bytes:
        path = self._media.pop(event.message_id, None)
        if path is None:
            raise InvalidInput(f"no media attached to {event.message_id}")
        return path.read_bytes()

    async def upload(self, data: bytes, media_kind: str) -> UploadResult:
        self.outbox_dir.mkdir(parents=True, exist_ok=True)
        media_id = self._next_id("MEDIA")
        path = self.outbox_dir / f"{media_id}.ogg"
        path.write_bytes(data)
        digest = hashlib.sha256(data).digest()
        logger.debug(f"Stored {media_kind} upload at {path}")
        return UploadResult(
            url=path.resolve().as_uri(),
            direct_path=str(path),
            file_sha256=digest,
            file_enc_sha256=digest,
            file_length=len(data),
        )

    async def send(self, recipient: str, message: OutboundMessage) -> SendResult:
        console.print()
        if isinstance(message, TextMessage):
            body = Markdown(message.text)
        else:
            body = Text.from_markup(
                f"🔊 voice note, {message.seconds}s ({message.file_length} bytes)\n"
                f"[link={message.upload.url}]{message.upload.direct_path}[/link]"
            )
        console.print(
            Panel(body, title="[bold cyan]🎙 VoxReply[/]", border_style="blue", padding=(1, 2))
        )
        console.print()
        return SendResult(message_id=self._next_id("OUT"))

    async def set_presence(self, chat: str, state: str) -> None:
        if state == PresenceState.RECORDING:
            console.print("[dim]recording audio...[/]")
