"""Agent turn consumer: one Llama Stack agent, one session, one streamed turn.

The stream is consumed by a small state machine over typed events. Only the
content of completed assistant inference steps is kept; partial deltas are
logged and dropped so a cut-off stream never yields a truncated answer.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import AsyncIterator

import httpx

from voxreply.config import AgentConfig
from voxreply.engine.events import (
    IgnoredChunk,
    StepComplete,
    StepProgress,
    StreamFailure,
    TurnComplete,
    TurnEvent,
    TurnStart,
    iter_sse_events,
)
from voxreply.errors import InvalidInput, NoResponse, StreamError

logger = logging.getLogger(__name__)

NO_RESPONSE = "no_response"
STREAM_ERROR = "stream_error"


@dataclass
class TurnOutcome:
    """Terminal result of a turn: complete with an answer, or failed with a reason."""

    success: bool
    text: str = ""
    error: str | None = None
    error_kind: str | None = None   # NO_RESPONSE or STREAM_ERROR
    turn_id: str = ""

    @classmethod
    def complete(cls, answer: str, turn_id: str = "") -> TurnOutcome:
        return cls(success=True, text=answer, turn_id=turn_id)

    @classmethod
    def failed(cls, reason: str, kind: str, turn_id: str = "") -> TurnOutcome:
        return cls(success=False, error=reason, error_kind=kind, turn_id=turn_id)

    def unwrap(self) -> str:
        """Return the answer, or raise the error matching the failure kind."""
        if self.success:
            return self.text
        if self.error_kind == NO_RESPONSE:
            raise NoResponse(self.error or "no response from agent")
        raise StreamError(self.error or "agent stream failed")


class _State:
    AWAITING_TURN = "awaiting_turn"
    IN_TURN = "in_turn"


async def consume_turn(events: AsyncIterator[TurnEvent]) -> TurnOutcome:
    """Reduce a stream of turn events to a single outcome.

    The last assistant inference step wins. ``turn_complete`` ends the turn;
    an error chunk ends it immediately.
    """
    state = _State.AWAITING_TURN
    turn_id = ""
    answer = ""

    async for event in events:
        if isinstance(event, StreamFailure):
            logger.error(f"Agent stream error: {event.message}")
            return TurnOutcome.failed(event.message, STREAM_ERROR, turn_id)

        if isinstance(event, TurnStart):
            turn_id = event.turn_id
            state = _State.IN_TURN
            logger.debug(f"Turn started: {turn_id}")
            continue

        if state == _State.AWAITING_TURN:
            logger.debug(f"Event before turn_start: {type(event).__name__}")

        if isinstance(event, StepProgress):
            if event.delta_type == "tool_call":
                logger.debug(f"Tool call in progress ({event.step_type})")
            elif event.text:
                logger.debug(f"Partial text: {event.text!r}")
        elif isinstance(event, StepComplete):
            if event.step_type == "inference":
                if event.role == "assistant" and event.content:
                    answer = event.content
                    logger.debug(f"Assistant step complete ({len(answer)} chars)")
            elif event.step_type == "tool_execution":
                logger.info(f"Tool execution complete: {', '.join(event.tool_names) or 'unnamed'}")
            else:
                logger.debug(f"Step complete: {event.step_type}")
        elif isinstance(event, TurnComplete):
            if answer:
                return TurnOutcome.complete(answer, event.turn_id or turn_id)
            return TurnOutcome.failed(
                "turn completed without assistant content", NO_RESPONSE, turn_id
            )
        elif isinstance(event, IgnoredChunk):
            logger.debug(f"Ignoring stream event: {event.event_type or 'untyped'}")

    if answer:
        return TurnOutcome.failed("stream ended before turn_complete", STREAM_ERROR, turn_id)
    return TurnOutcome.failed("stream ended without assistant content", NO_RESPONSE, turn_id)


class AgentTurnConsumer:
    """Runs a single user turn against the Llama Stack agents API."""

    def __init__(self, config: AgentConfig, client: httpx.AsyncClient | None = None) -> None:
        self.config = config
        headers = {"Content-Type": "application/json"}
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"
        self._client = client or httpx.AsyncClient(
            base_url=config.base_url.rstrip("/"),
            headers=headers,
            timeout=config.timeout,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def agent_config(self) -> dict:
        """The agent definition sent on creation."""
        cfg = self.config
        return {
            "model": cfg.model,
            "instructions": cfg.instructions,
            "toolgroups": list(cfg.tool_groups),
            "tool_config": {"tool_choice": cfg.tool_choice},
            "sampling_params": {
                "strategy": {"type": "top_p", "temperature": cfg.temperature, "top_p": 0.9},
                "max_tokens": cfg.max_tokens,
            },
            "max_infer_iters": cfg.max_infer_iters,
            "enable_session_persistence": False,
        }

    async def ask(self, text: str) -> TurnOutcome:
        """Submit ``text`` as one user turn and return the final answer."""
        if not text.strip():
            raise InvalidInput("cannot ask the agent an empty question")

        agent_id = ""
        try:
            agent_id = await self._create_agent()
            session_id = await self._create_session(agent_id)
            logger.info(f"Agent {agent_id} session {session_id}: submitting turn")
            return await self._run_turn(agent_id, session_id, text)
        except httpx.HTTPStatusError as e:
            reason = f"agent service error {e.response.status_code}: {e.response.text[:200]}"
        except httpx.HTTPError as e:
            reason = f"agent service request failed: {e}"
        except (KeyError, ValueError, TypeError) as e:
            reason = f"unexpected agent service response: {e}"
        finally:
            if agent_id:
                await self._delete_agent(agent_id)

        logger.error(reason)
        return TurnOutcome.failed(reason, STREAM_ERROR)

    async def _create_agent(self) -> str:
        resp = await self._client.post("/v1/agents", json={"agent_config": self.agent_config()})
        resp.raise_for_status()
        return resp.json()["agent_id"]

    async def _create_session(self, agent_id: str) -> str:
        resp = await self._client.post(
            f"/v1/agents/{agent_id}/session",
            json={"session_name": f"whatsapp_voice_session_{int(time.time())}"},
        )
        resp.raise_for_status()
        return resp.json()["session_id"]

    async def _run_turn(self, agent_id: str, session_id: str, text: str) -> TurnOutcome:
        body = {"messages": [{"role": "user", "content": text}], "stream": True}
        async with self._client.stream(
            "POST", f"/v1/agents/{agent_id}/session/{session_id}/turn", json=body
        ) as resp:
            if resp.status_code >= 400:
                detail = (await resp.aread()).decode("utf-8", errors="replace")[:200]
                return TurnOutcome.failed(
                    f"turn request failed with status {resp.status_code}: {detail}", STREAM_ERROR
                )
            outcome = await consume_turn(iter_sse_events(resp.aiter_lines()))

        if outcome.success:
            logger.info(f"Agent answered ({len(outcome.text)} chars)")
        else:
            logger.warning(f"Agent turn failed ({outcome.error_kind}): {outcome.error}")
        return outcome

    async def _delete_agent(self, agent_id: str) -> None:
        try:
            await self._client.delete(f"/v1/agents/{agent_id}")
        except httpx.HTTPError as e:
            logger.debug(f"Could not delete agent {agent_id}: {e}")
