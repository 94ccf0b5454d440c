"""JID helpers: validation, chat type and content sanitizing."""

from __future__ import annotations

import re

from voxreply.errors import InvalidInput

_USER_RE = re.compile(r"^\d+@s\.whatsapp\.net$")
_GROUP_RE = re.compile(r"^\d+(-\d+)?@g\.us$")
_BROADCAST_RE = re.compile(r"^\d+@broadcast$")
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")

GROUP_SERVER = "g.us"
MAX_MESSAGE_LENGTH = 4096


def validate_jid(jid: str) -> str:
    """Return the JID unchanged, or raise InvalidInput if it is malformed."""
    if not jid:
        raise InvalidInput("JID cannot be empty")
    if _USER_RE.match(jid) or _GROUP_RE.match(jid) or _BROADCAST_RE.match(jid):
        return jid
    raise InvalidInput(f"invalid JID format: {jid}")


def parse_jid(jid: str) -> str:
    """Lenient check for addresses the network handed us.

    Accepts any ``user@server`` form, including ``@lid`` and device-suffixed
    user JIDs that :func:`validate_jid` rejects.
    """
    if not jid or not jid.strip():
        raise InvalidInput("JID cannot be empty")
    user, sep, server = jid.partition("@")
    if not sep or not server or "@" in server or any(c.isspace() for c in jid):
        raise InvalidInput(f"unparseable JID: {jid}")
    return jid


def is_group_jid(jid: str) -> bool:
    return jid.endswith("@" + GROUP_SERVER)


def phone_from_jid(jid: str) -> str:
    return jid.split("@", 1)[0]


def sanitize_message_content(content: str) -> str:
    """Strip control characters and surrounding whitespace."""
    return _CONTROL_CHARS_RE.sub("", content).strip()


def prepare_message_content(content: str) -> str:
    """Sanitize outgoing text, clip it to the protocol limit, reject empty bodies."""
    cleaned = sanitize_message_content(content)
    if not cleaned:
        raise InvalidInput("message content cannot be empty")
    if len(cleaned) > MAX_MESSAGE_LENGTH:
        cleaned = cleaned[: MAX_MESSAGE_LENGTH - 3].rstrip() + "..."
    return cleaned
