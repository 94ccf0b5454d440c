"""User-facing texts for degraded pipeline paths and the debug echo."""

from __future__ import annotations

DOWNLOAD_FAILED = "Sorry, I couldn't download your voice message."
TRANSCRIBE_FAILED = "Sorry, I couldn't understand your voice message."
AGENT_FAILED = (
    "Sorry, I'm having trouble generating a response right now. Please try again later."
)
PIPELINE_FAILED = "Sorry, something went wrong while processing your voice message."


def format_debug_echo(transcript: str, reply: str) -> str:
    """Plain-text summary of what was heard and what was answered."""
    heard = transcript.strip() or "(nothing)"
    answered = reply.strip() or "(no reply)"
    return f"🎤 You said: {heard}\n\n🤖 Reply: {answered}"
