"""Speech-to-text: cloud Whisper API when a key is configured, local whisper otherwise.

A single attempt per call. Failures raise and are handled by the pipeline.
"""

from __future__ import annotations

import logging
from pathlib import Path

import httpx

from voxreply.config import SpeechConfig
from voxreply.delivery.media import audio_mime_type
from voxreply.errors import EngineFailure, EngineTimeout, EngineUnavailable, InvalidInput
from voxreply.utils.process import run_process, tail

logger = logging.getLogger(__name__)


class SpeechToTextAdapter:
    """Transcribes an audio file into trimmed text."""

    def __init__(self, config: SpeechConfig, client: httpx.AsyncClient | None = None) -> None:
        self.config = config
        self._client = client

    @property
    def engine_name(self) -> str:
        return "cloud" if self.config.cloud_api_key else "local"

    async def transcribe(self, audio_path: str | Path) -> str:
        """Return the transcript of ``audio_path``.

        Raises:
            InvalidInput: the file does not exist.
            EngineUnavailable: no cloud key and no local whisper binary.
            EngineTimeout: local whisper exceeded its deadline.
            EngineFailure: the engine failed or returned nothing.
        """
        path = Path(audio_path)
        if not path.is_file():
            raise InvalidInput(f"audio file not found: {path}")

        if self.config.cloud_api_key:
            text = await self._transcribe_cloud(path)
        else:
            text = await self._transcribe_local(path)

        text = text.strip()
        if not text:
            raise EngineFailure("transcription is empty")
        logger.info(f"Transcribed {path.name} with {self.engine_name} engine ({len(text)} chars)")
        return text

    async def _transcribe_local(self, path: Path) -> str:
        out_dir = Path(self.config.output_dir)
        out_dir.mkdir(parents=True, exist_ok=True)

        args = [
            str(path),
            "--model", self.config.whisper_model,
            "--output_format", "txt",
            "--output_dir", str(out_dir),
        ]
        if self.config.language:
            args += ["--language", self.config.language]

        result = await run_process(
            self.config.whisper_binary, *args, timeout=self.config.timeout_seconds
        )
        transcript_file = out_dir / f"{path.stem}.txt"
        try:
            if not result.ok:
                raise EngineFailure(
                    f"whisper exited with {result.returncode}: {tail(result.stderr)}"
                )
            if not transcript_file.is_file():
                raise EngineFailure(f"whisper wrote no transcript for {path.name}")
            return transcript_file.read_text(encoding="utf-8")
        finally:
            transcript_file.unlink(missing_ok=True)

    async def _transcribe_cloud(self, path: Path) -> str:
        client = self._client or httpx.AsyncClient(timeout=self.config.timeout_seconds)
        try:
            with open(path, "rb") as f:
                files = {"file": (path.name, f, audio_mime_type(path.name))}
                data = {"model": self.config.cloud_model, "response_format": "json"}
                if self.config.language:
                    data["language"] = self.config.language
                resp = await client.post(
                    f"{self.config.cloud_base_url.rstrip('/')}/audio/transcriptions",
                    headers={"Authorization": f"Bearer {self.config.cloud_api_key}"},
                    data=data,
                    files=files,
                )
            resp.raise_for_status()
            return resp.json().get("text", "")
        except httpx.ConnectError as e:
            raise EngineUnavailable(f"transcription service unreachable: {e}") from e
        except httpx.TimeoutException as e:
            raise EngineTimeout(f"transcription request timed out: {e}") from e
        except httpx.HTTPStatusError as e:
            raise EngineFailure(
                f"transcription API error {e.response.status_code}: {e.response.text[:200]}"
            ) from e
        except httpx.HTTPError as e:
            raise EngineFailure(f"transcription request failed: {e}") from e
        finally:
            if self._client is None:
                await client.aclose()
