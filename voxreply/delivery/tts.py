"""Text-to-speech: espeak renders a WAV, ffmpeg turns it into an Opus voice note."""

from __future__ import annotations

import logging
from pathlib import Path

from voxreply.config import SynthesisConfig
from voxreply.errors import EngineFailure, InvalidInput
from voxreply.utils.process import run_process, tail

logger = logging.getLogger(__name__)


async def convert_to_opus(
    input_path: Path, output_path: Path, config: SynthesisConfig
) -> Path:
    """Transcode any audio file to mono Opus in an Ogg container.

    Voice notes must be Opus at 48 kHz; other codecs are rejected or played
    as plain audio attachments by the client.
    """
    result = await run_process(
        config.ffmpeg_binary,
        "-y",
        "-i", str(input_path),
        "-c:a", "libopus",
        "-b:a", config.bitrate,
        "-ar", str(config.sample_rate),
        "-ac", str(config.channels),
        str(output_path),
    )
    if not result.ok:
        raise EngineFailure(f"ffmpeg conversion failed: {tail(result.stderr)}")
    if not output_path.is_file() or output_path.stat().st_size == 0:
        raise EngineFailure("ffmpeg produced no audio")
    return output_path


class TextToSpeechAdapter:
    """Synthesizes reply text into a voice-note-ready .ogg file."""

    def __init__(self, config: SynthesisConfig, output_dir: str | Path) -> None:
        self.config = config
        self.output_dir = Path(output_dir)

    async def synthesize(self, text: str, stem: str) -> Path:
        """Render ``text`` to ``<output_dir>/<stem>.ogg`` and return the path.

        The intermediate WAV is always removed. Any failure raises; nothing
        is retried.
        """
        if not text.strip():
            raise InvalidInput("cannot synthesize empty text")

        self.output_dir.mkdir(parents=True, exist_ok=True)
        wav_path = self.output_dir / f"{stem}.wav"
        ogg_path = self.output_dir / f"{stem}.ogg"

        try:
            result = await run_process(
                self.config.espeak_binary,
                "-v", self.config.voice,
                "-s", str(self.config.words_per_minute),
                "-w", str(wav_path),
                text,
            )
            if not result.ok:
                raise EngineFailure(f"espeak failed: {tail(result.stderr)}")
            if not wav_path.is_file() or wav_path.stat().st_size == 0:
                raise EngineFailure("espeak produced an empty waveform")

            await convert_to_opus(wav_path, ogg_path, self.config)
        except BaseException:
            ogg_path.unlink(missing_ok=True)
            raise
        finally:
            wav_path.unlink(missing_ok=True)

        logger.info(f"Synthesized {len(text)} chars to {ogg_path.name}")
        return ogg_path
