"""Keyword-based canned replies, used when the agent cannot answer."""

from __future__ import annotations

import re
from datetime import datetime

from voxreply.delivery.formatter import AGENT_FAILED

HELP_TEXT = (
    "Send me a voice note and I'll answer with one.\n"
    "You can also say: help, ping, or ask what time it is."
)

_GREETING_RE = re.compile(r"\b(hello|hi|hey|good (morning|afternoon|evening))\b")


def keyword_reply(text: str, now: datetime | None = None) -> str | None:
    """Return a canned reply if the text matches a known keyword, else None."""
    text_lower = text.lower().strip()
    if not text_lower:
        return None

    if text_lower.startswith("/help") or any(
        w in text_lower for w in ["help", "what can you do"]
    ):
        return HELP_TEXT
    if text_lower.startswith("/ping") or re.search(r"\bping\b", text_lower):
        return "Pong! 🏓"
    if text_lower.startswith("/time") or any(
        w in text_lower for w in ["what time", "current time", "time is it"]
    ):
        current = (now or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")
        return f"Current time: {current}"
    if _GREETING_RE.search(text_lower):
        return "Hello! 👋 How can I help you?"
    return None


def fallback_reply(text: str, now: datetime | None = None) -> str:
    """Canned reply for a failed agent turn: keyword match or the generic apology."""
    return keyword_reply(text, now) or AGENT_FAILED
