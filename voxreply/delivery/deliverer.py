"""Outbound delivery: upload voice notes with bounded retry, send, and log them."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Awaitable, Callable

from voxreply.config import DeliveryConfig
from voxreply.delivery.media import audio_mime_type, estimate_duration
from voxreply.errors import EngineFailure, InvalidInput, UploadFailed
from voxreply.gateway.message import MessageRecord
from voxreply.gateway.session import (
    MediaKind,
    MessagingSession,
    SendResult,
    TextMessage,
    UploadResult,
    VoiceMessage,
)
from voxreply.memory.history import ConversationLog
from voxreply.utils.jid import parse_jid, prepare_message_content
from voxreply.utils.process import run_process, tail

logger = logging.getLogger(__name__)

VOICE_LABEL = "[Voice Message]"


class OutboundDeliverer:
    """Sends text and voice messages and records them as from-me messages."""

    def __init__(
        self,
        session: MessagingSession,
        log: ConversationLog,
        config: DeliveryConfig,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.session = session
        self.log = log
        self.config = config
        self._sleep = sleep

    async def send_text(self, recipient: str, text: str) -> SendResult:
        """Send a plain text message."""
        parse_jid(recipient)
        body = prepare_message_content(text)
        result = await self.session.send(recipient, TextMessage(text=body))
        logger.info(f"Text message {result.message_id} sent to {recipient}")
        await self._record(recipient, result, body, media_type="text")
        return result

    async def send_voice(self, recipient: str, audio_path: str | Path) -> SendResult:
        """Upload an audio file and send it as a push-to-talk voice note.

        Raises:
            InvalidInput: bad recipient or missing/empty file.
            UploadFailed: every upload attempt failed.
        """
        parse_jid(recipient)
        path = Path(audio_path)
        if not path.is_file():
            raise InvalidInput(f"audio file not found: {path}")
        data = path.read_bytes()
        if not data:
            raise InvalidInput(f"audio file is empty: {path}")

        mimetype = audio_mime_type(path.name)
        seconds = await self.probe_duration(path, len(data))
        logger.info(
            f"Sending voice note to {recipient}: {len(data)} bytes, {mimetype}, {seconds}s"
        )

        uploaded = await self._upload_with_retry(data)
        message = VoiceMessage(
            upload=uploaded,
            mimetype=mimetype,
            seconds=seconds,
            file_length=len(data),
            ptt=True,
        )
        result = await self.session.send(recipient, message)
        logger.info(f"Voice message {result.message_id} sent to {recipient}")

        await self._record(recipient, result, VOICE_LABEL, media_type="voice", filename=path.name)
        return result

    async def probe_duration(self, path: Path, size_bytes: int) -> int:
        """Duration in seconds from ffprobe, or the size-based estimate."""
        try:
            return await self._ffprobe_duration(path)
        except Exception as e:
            estimate = estimate_duration(size_bytes)
            logger.warning(f"Could not probe duration of {path.name} ({e}); estimating {estimate}s")
            return estimate

    async def _ffprobe_duration(self, path: Path) -> int:
        result = await run_process(
            self.config.ffprobe_binary,
            "-v", "quiet",
            "-print_format", "json",
            "-show_format",
            str(path),
        )
        if not result.ok:
            raise EngineFailure(f"ffprobe failed: {tail(result.stderr)}")
        try:
            duration = float(json.loads(result.stdout)["format"]["duration"])
        except (ValueError, KeyError, TypeError) as e:
            raise EngineFailure(f"unreadable ffprobe output: {e}") from e
        return max(1, round(duration))

    async def _upload_with_retry(self, data: bytes) -> UploadResult:
        attempts = max(1, self.config.max_upload_attempts)
        last_error: Exception | None = None

        for attempt in range(1, attempts + 1):
            logger.info(f"Upload attempt {attempt}/{attempts}")
            try:
                uploaded = await self.session.upload(data, MediaKind.AUDIO)
                logger.info(f"Audio uploaded: {uploaded.url}")
                return uploaded
            except Exception as e:
                last_error = e
                logger.warning(f"Upload attempt {attempt} failed: {e}")
            if attempt < attempts:
                await self._sleep(self.config.retry_delay_seconds)

        raise UploadFailed(
            f"failed to upload audio after {attempts} attempts: {last_error}",
            attempts=attempts,
        )

    async def _record(
        self,
        recipient: str,
        result: SendResult,
        content: str,
        media_type: str,
        filename: str = "",
    ) -> None:
        record = MessageRecord(
            message_id=result.message_id,
            chat_jid=recipient,
            sender=self.session.own_jid,
            content=content,
            timestamp=result.timestamp,
            media_type=media_type,
            filename=filename,
            is_from_me=True,
        )
        if not await self.log.record(record):
            logger.warning(f"Message {result.message_id} was delivered but not fully recorded")
