"""Voice pipeline: voice note in, spoken reply out.

Stages run strictly in order:

    recording presence -> download -> transcribe -> agent turn
    -> synthesize -> deliver -> debug echo -> clear presence

Every stage failure degrades to a text reply. Working files belong to one
run and are removed on every exit path, and presence is always cleared.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from voxreply.config import PipelineConfig
from voxreply.delivery.deliverer import OutboundDeliverer
from voxreply.delivery.formatter import (
    DOWNLOAD_FAILED,
    PIPELINE_FAILED,
    TRANSCRIBE_FAILED,
    format_debug_echo,
)
from voxreply.delivery.tts import TextToSpeechAdapter
from voxreply.engine.agent import AgentTurnConsumer
from voxreply.engine.fallback import fallback_reply
from voxreply.gateway.message import InboundEvent
from voxreply.gateway.session import MessagingSession, PresenceState
from voxreply.speech.stt import SpeechToTextAdapter

logger = logging.getLogger(__name__)

_UNSAFE_CHARS_RE = re.compile(r"[^A-Za-z0-9_-]")


class Stage:
    DOWNLOADING = "downloading"
    TRANSCRIBING = "transcribing"
    AGENT_PROCESSING = "agent_processing"
    SYNTHESIZING = "synthesizing"
    DELIVERING = "delivering"
    DONE = "done"
    FAILED = "failed"


@dataclass
class PipelineRun:
    """In-memory state of one voice note going through the pipeline."""

    event: InboundEvent
    work_dir: Path
    stage: str = Stage.DOWNLOADING
    failed_stage: str | None = None
    transcript: str = ""
    reply: str = ""
    audio_out: Path | None = None
    replies_sent: list[str] = field(default_factory=list)

    @property
    def stem(self) -> str:
        """Working file stem: message id plus the event's unix timestamp."""
        message_id = _UNSAFE_CHARS_RE.sub("_", self.event.message_id) or "voice"
        return f"{message_id}_{int(self.event.timestamp.timestamp())}"

    @property
    def audio_in(self) -> Path:
        return self.work_dir / f"{self.stem}_in.ogg"

    @property
    def succeeded(self) -> bool:
        return self.stage == Stage.DONE

    def advance(self, stage: str) -> None:
        logger.info(f"[{self.event.message_id}] {self.stage} -> {stage}")
        self.stage = stage

    def fail(self) -> None:
        self.failed_stage = self.stage
        self.stage = Stage.FAILED

    def cleanup(self) -> None:
        """Remove every working file this run created."""
        for path in (self.audio_in, self.audio_out):
            if path is None:
                continue
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Could not remove working file {path}: {e}")


class VoicePipeline:
    """Turns an incoming voice note into a spoken reply in the same chat."""

    def __init__(
        self,
        session: MessagingSession,
        stt: SpeechToTextAdapter,
        agent: AgentTurnConsumer,
        tts: TextToSpeechAdapter,
        deliverer: OutboundDeliverer,
        config: PipelineConfig,
    ) -> None:
        self.session = session
        self.stt = stt
        self.agent = agent
        self.tts = tts
        self.deliverer = deliverer
        self.config = config
        self.work_dir = Path(config.work_dir)
        self._active: set[str] = set()

    async def run(self, event: InboundEvent) -> PipelineRun | None:
        """Process one voice note. Never raises.

        Returns the finished run, or None when a run for the same message id
        is already in progress.
        """
        if event.message_id in self._active:
            logger.info(f"Voice note {event.message_id} is already being processed")
            return None
        self._active.add(event.message_id)

        run = PipelineRun(event=event, work_dir=self.work_dir)
        logger.info(f"🎤 Voice note {event.message_id} from {event.sender} in {event.chat}")
        try:
            await self._set_presence(event.chat, PresenceState.RECORDING)
            await self._process(run)
        except Exception:
            logger.exception(f"Voice pipeline crashed in stage {run.stage}")
            await self._fail(run, PIPELINE_FAILED)
        finally:
            run.cleanup()
            await self._set_presence(event.chat, PresenceState.PAUSED)
            self._active.discard(event.message_id)

        if run.succeeded:
            logger.info(f"✅ Voice reply delivered for {event.message_id}")
        else:
            logger.warning(f"Voice note {event.message_id} failed at {run.failed_stage}")
        return run

    async def _process(self, run: PipelineRun) -> None:
        event = run.event

        # ─── Download ───
        try:
            data = await self.session.download(event)
            if not data:
                raise ValueError("downloaded audio is empty")
            run.work_dir.mkdir(parents=True, exist_ok=True)
            run.audio_in.write_bytes(data)
        except Exception as e:
            logger.error(f"Failed to download voice note {event.message_id}: {e}")
            await self._fail(run, DOWNLOAD_FAILED)
            return
        logger.debug(f"Saved {len(data)} bytes to {run.audio_in}")

        # ─── Transcribe ───
        run.advance(Stage.TRANSCRIBING)
        try:
            run.transcript = await self.stt.transcribe(run.audio_in)
        except Exception as e:
            logger.error(f"Failed to transcribe voice note {event.message_id}: {e}")
            await self._fail(run, TRANSCRIBE_FAILED)
            return
        logger.info(f"📝 Transcript: {run.transcript}")

        # ─── Agent turn ───
        run.advance(Stage.AGENT_PROCESSING)
        outcome = await self.agent.ask(run.transcript)
        if not outcome.success:
            logger.error(f"Agent turn failed ({outcome.error_kind}): {outcome.error}")
            await self._fail(run, fallback_reply(run.transcript))
            return
        run.reply = outcome.text
        logger.info(f"🤖 Reply: {run.reply}")

        # ─── Synthesize ───
        run.advance(Stage.SYNTHESIZING)
        try:
            run.audio_out = await self.tts.synthesize(run.reply, f"{run.stem}_reply")
        except Exception as e:
            logger.error(f"Failed to synthesize reply: {e}")
            await self._fail(run, run.reply)
            return

        # ─── Deliver ───
        run.advance(Stage.DELIVERING)
        try:
            await self.deliverer.send_voice(event.chat, run.audio_out)
        except Exception as e:
            logger.error(f"Failed to deliver voice reply: {e}")
            await self._fail(run, run.reply)
            return

        if self.config.debug_echo:
            await self._reply_text(run, format_debug_echo(run.transcript, run.reply))
        run.advance(Stage.DONE)

    async def _fail(self, run: PipelineRun, text: str) -> None:
        """Mark the run failed, stop the recording indicator, then send ``text``."""
        run.fail()
        await self._set_presence(run.event.chat, PresenceState.PAUSED)
        await self._reply_text(run, text)

    async def _reply_text(self, run: PipelineRun, text: str) -> None:
        try:
            await self.deliverer.send_text(run.event.chat, text)
            run.replies_sent.append(text)
        except Exception as e:
            logger.error(f"Failed to send text reply to {run.event.chat}: {e}")

    async def _set_presence(self, chat: str, state: str) -> None:
        try:
            await self.session.set_presence(chat, state)
        except Exception as e:
            logger.warning(f"Could not set presence {state} in {chat}: {e}")
