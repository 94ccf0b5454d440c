"""Media type resolution and audio duration helpers."""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_VOICE_MIME = "audio/ogg"

# Bytes per second assumed when the real duration cannot be probed.
# Roughly a 128 kbps stream; only an approximation for non-Opus inputs.
ESTIMATED_BYTES_PER_SECOND = 16000


@dataclass(frozen=True)
class MediaType:
    kind: str   # "audio", "image", "video", "document"
    mime: str


_EXTENSIONS: dict[str, MediaType] = {
    # WhatsApp prefers the bare ogg type for voice notes, opus included.
    ".ogg": MediaType("audio", "audio/ogg"),
    ".opus": MediaType("audio", "audio/ogg"),
    ".mp3": MediaType("audio", "audio/mpeg"),
    ".wav": MediaType("audio", "audio/wav"),
    ".m4a": MediaType("audio", "audio/mp4"),
    ".aac": MediaType("audio", "audio/aac"),
    ".flac": MediaType("audio", "audio/flac"),
    ".wma": MediaType("audio", "audio/x-ms-wma"),
    ".3gp": MediaType("audio", "audio/3gpp"),
    ".amr": MediaType("audio", "audio/amr"),
    ".mp4": MediaType("audio", "audio/mp4"),
    ".jpg": MediaType("image", "image/jpeg"),
    ".jpeg": MediaType("image", "image/jpeg"),
    ".png": MediaType("image", "image/png"),
    ".gif": MediaType("image", "image/gif"),
    ".webp": MediaType("image", "image/webp"),
    ".avi": MediaType("video", "video/x-msvideo"),
    ".mov": MediaType("video", "video/quicktime"),
    ".mkv": MediaType("video", "video/x-matroska"),
    ".webm": MediaType("video", "video/webm"),
    ".pdf": MediaType("document", "application/pdf"),
    ".txt": MediaType("document", "text/plain"),
}

AUDIO_EXTENSIONS = frozenset(ext for ext, mt in _EXTENSIONS.items() if mt.kind == "audio")


def resolve_media_type(path_or_ext: str) -> MediaType:
    """Map a file name or extension to its media kind and MIME type.

    Unknown or missing extensions resolve to a voice-compatible audio type,
    since the outbound path only ever ships voice notes.
    """
    ext = os.path.splitext(path_or_ext)[1] or path_or_ext
    if ext and not ext.startswith("."):
        ext = "." + ext
    return _EXTENSIONS.get(ext.lower(), MediaType("audio", DEFAULT_VOICE_MIME))


def audio_mime_type(path: str) -> str:
    return resolve_media_type(path).mime


def is_audio_file(path: str) -> bool:
    return os.path.splitext(path)[1].lower() in AUDIO_EXTENSIONS


def estimate_duration(size_bytes: int) -> int:
    """Rough duration in whole seconds from a file size, never below 1."""
    return max(1, size_bytes // ESTIMATED_BYTES_PER_SECOND)
