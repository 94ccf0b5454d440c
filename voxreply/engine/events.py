"""Typed events of a streamed agent turn, parsed from Server-Sent Event chunks.

Llama Stack streams one JSON object per ``data:`` line. Each chunk either
carries ``event.payload`` with an ``event_type`` or a top-level ``error``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TurnStart:
    turn_id: str = ""


@dataclass(frozen=True)
class StepProgress:
    step_type: str = ""
    delta_type: str = ""   # "text" or "tool_call"
    text: str = ""


@dataclass(frozen=True)
class StepComplete:
    step_type: str = ""    # "inference" or "tool_execution"
    role: str = ""
    content: str = ""
    tool_names: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class TurnComplete:
    turn_id: str = ""


@dataclass(frozen=True)
class StreamFailure:
    message: str


@dataclass(frozen=True)
class IgnoredChunk:
    event_type: str = ""


TurnEvent = Union[TurnStart, StepProgress, StepComplete, TurnComplete, StreamFailure, IgnoredChunk]


def extract_content(content: object) -> str:
    """Flatten message content: a string, or the first non-empty text item of a list."""
    if isinstance(content, str):
        return content.strip()
    if isinstance(content, list):
        for item in content:
            if isinstance(item, str) and item.strip():
                return item.strip()
            if isinstance(item, dict):
                text = item.get("text") or ""
                if isinstance(text, str) and text.strip():
                    return text.strip()
    if isinstance(content, dict):
        return extract_content(content.get("text", ""))
    return ""


def _error_message(error: object) -> str:
    if isinstance(error, dict):
        return str(error.get("message") or error.get("detail") or error)
    return str(error)


def parse_chunk(chunk: dict) -> TurnEvent:
    """Convert one decoded stream chunk into a typed event."""
    if error := chunk.get("error"):
        return StreamFailure(message=_error_message(error))

    payload = (chunk.get("event") or {}).get("payload") or {}
    event_type = payload.get("event_type", "")

    if event_type == "turn_start":
        return TurnStart(turn_id=payload.get("turn_id", ""))

    if event_type == "step_progress":
        delta = payload.get("delta") or {}
        delta_type = delta.get("type", "")
        text = delta.get("text", "") if delta_type == "text" else ""
        return StepProgress(step_type=payload.get("step_type", ""), delta_type=delta_type, text=text)

    if event_type == "step_complete":
        details = payload.get("step_details") or {}
        step_type = payload.get("step_type") or details.get("step_type", "")
        if step_type == "inference":
            response = details.get("model_response") or {}
            return StepComplete(
                step_type=step_type,
                role=response.get("role", ""),
                content=extract_content(response.get("content", "")),
            )
        calls = details.get("tool_calls") or []
        names = tuple(str(c.get("tool_name", "")) for c in calls if isinstance(c, dict))
        return StepComplete(step_type=step_type, tool_names=names)

    if event_type == "turn_complete":
        turn = payload.get("turn") or {}
        return TurnComplete(turn_id=turn.get("turn_id", ""))

    return IgnoredChunk(event_type=event_type)


async def iter_sse_events(lines: AsyncIterator[str]) -> AsyncIterator[TurnEvent]:
    """Lazily decode ``data:`` lines of an SSE stream into typed events.

    Undecodable or wrongly shaped chunks are reported as a StreamFailure and
    end the stream.
    """
    async for line in lines:
        line = line.strip()
        if not line.startswith("data:"):
            continue
        data = line[len("data:"):].strip()
        if not data or data == "[DONE]":
            continue
        try:
            chunk = json.loads(data)
        except json.JSONDecodeError as e:
            yield StreamFailure(message=f"malformed stream chunk: {e}")
            return
        if not isinstance(chunk, dict):
            continue
        try:
            event = parse_chunk(chunk)
        except (AttributeError, TypeError) as e:
            yield StreamFailure(message=f"unexpected stream chunk shape: {e}")
            return
        yield event
