"""Error taxonomy shared by the adapters and the voice pipeline."""

from __future__ import annotations


class VoxReplyError(Exception):
    """Base class for all VoxReply failures."""


class Unavailable(VoxReplyError):
    """A dependency is missing or unreachable."""


class EngineUnavailable(Unavailable):
    """An external engine binary (whisper, espeak, ffmpeg) is not installed."""


class EngineTimeout(VoxReplyError):
    """An external engine did not finish within its deadline."""


class InvalidInput(VoxReplyError):
    """Bad JID, bad path or empty content."""


class UpstreamFailure(VoxReplyError):
    """A remote service or external process returned an error."""


class EngineFailure(UpstreamFailure):
    """An external engine ran but failed or produced no usable output."""


class StreamError(UpstreamFailure):
    """The agent stream reported an error or the transport broke."""


class UploadFailed(UpstreamFailure):
    """Media upload failed after every attempt."""

    def __init__(self, message: str, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts


class NoResponse(VoxReplyError):
    """The agent stream ended without usable assistant content."""
