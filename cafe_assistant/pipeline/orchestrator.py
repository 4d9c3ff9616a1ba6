"""Orchestrator — answers one customer message end-to-end.

Turn flow:
  1. Take the session lock, load stored history (≤ MAX_HISTORY_TURNS).
  2. Working transcript = [system instructions, *history, user message].
  3. Up to `max_steps` times:
       call the model → parse the reply
       violation  → append raw reply + reminder, ask again
       tool call  → run the tool, append raw reply + tool result
                    (+ a nudge to explain when the tool failed), ask again
       final      → store [*history, user, assistant] and return the text
  4. Budget spent or model call timed out → FALLBACK_REPLY, history untouched.

The working transcript is scratch space: tool traffic and reminders are
never persisted, only the user message and the final answer are.
"""

from __future__ import annotations

import asyncio
import json
import logging

from cafe_assistant.llm import ChatLLM
from cafe_assistant.models import Turn
from cafe_assistant.protocol import FinalReply, ProtocolViolation, ToolCallReply, parse_reply
from cafe_assistant.storage import ConversationStore, trim_history
from cafe_assistant.tools import ToolRegistry

logger = logging.getLogger(__name__)

MAX_STEPS = 6
FALLBACK_REPLY = "Sorry, something went wrong. Please try again."
FAILED_TOOL_NUDGE = (
    "Tool result indicates failure. Explain to the customer and ask for what you need."
)


async def run_turn(
    *,
    session_id: str,
    message: str,
    llm: ChatLLM,
    registry: ToolRegistry,
    conversations: ConversationStore,
    instructions: str,
    max_steps: int = MAX_STEPS,
    timeout: float | None = None,
) -> str:
    """Run the tool loop for one user message and return the reply text."""

    async with conversations.session(session_id):
        history = trim_history(conversations.load(session_id))
        user_turn = Turn(role="user", content=message)
        transcript: list[Turn] = [
            Turn(role="system", content=instructions),
            *history,
            user_turn,
        ]

        for step in range(1, max_steps + 1):
            try:
                raw = await asyncio.wait_for(llm(list(transcript)), timeout)
            except asyncio.TimeoutError:
                logger.warning("session=%s step=%d model call timed out after %ss", session_id, step, timeout)
                return FALLBACK_REPLY

            raw = (raw or "").strip()
            reply = parse_reply(raw)

            if isinstance(reply, ProtocolViolation):
                logger.debug("session=%s step=%d protocol %s: %s", session_id, step, reply.kind, reply.detail)
                transcript.append(Turn(role="assistant", content=raw))
                transcript.append(Turn(role="user", content=reply.reminder))
                continue

            if isinstance(reply, ToolCallReply):
                result = await registry.execute(reply.name, reply.arguments)
                logger.debug("session=%s step=%d tool=%s ok=%s", session_id, step, reply.name, result.ok)
                transcript.append(Turn(role="assistant", content=raw))
                transcript.append(Turn(
                    role="tool",
                    content=json.dumps({"tool": reply.name, "result": result.payload()}, ensure_ascii=False),
                ))
                if not result.ok:
                    transcript.append(Turn(role="user", content=FAILED_TOOL_NUDGE))
                continue

            if isinstance(reply, FinalReply):
                logger.debug("session=%s step=%d final", session_id, step)
                conversations.save(
                    session_id,
                    trim_history([*history, user_turn, Turn(role="assistant", content=reply.text)]),
                )
                return reply.text

    logger.warning("session=%s no final answer after %d steps", session_id, max_steps)
    return FALLBACK_REPLY
