"""Reply protocol: the only two shapes a model reply may take.

    {"tool_call": {"name": "<tool>", "arguments": {...}}}
    {"final": "<text for the customer>"}

`parse_reply` never raises. Anything that is not exactly one of the two
shapes comes back as a ProtocolViolation, which the orchestrator treats as a
recoverable step: it appends `violation.reminder` and asks the model again.
Arguments are not checked against the tool schemas here; each handler
validates its own input.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Literal, Union

MALFORMED_REMINDER = (
    'Reminder: reply with VALID JSON only. Use {"final":"..."} or {"tool_call":{...}}.'
)
UNRECOGNIZED_REMINDER = 'Your JSON must include either "final" or "tool_call". Try again.'

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


@dataclass(frozen=True)
class ToolCallReply:
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FinalReply:
    text: str


@dataclass(frozen=True)
class ProtocolViolation:
    kind: Literal["malformed", "unrecognized"]
    detail: str

    @property
    def reminder(self) -> str:
        return MALFORMED_REMINDER if self.kind == "malformed" else UNRECOGNIZED_REMINDER


ParsedReply = Union[ToolCallReply, FinalReply, ProtocolViolation]


def _strip_fence(text: str) -> str:
    match = _FENCE_RE.match(text)
    return match.group(1) if match else text


def parse_reply(raw: str) -> ParsedReply:
    """Classify raw model output as a tool call, a final answer, or a violation."""
    text = _strip_fence((raw or "").strip())
    if not text:
        return ProtocolViolation("malformed", "empty reply")

    try:
        obj = json.loads(text)
    except json.JSONDecodeError as e:
        return ProtocolViolation("malformed", f"invalid JSON: {e}")
    except RecursionError:
        return ProtocolViolation("malformed", "JSON nested too deeply")

    if not isinstance(obj, dict):
        return ProtocolViolation("unrecognized", f"expected a JSON object, got {type(obj).__name__}")

    if "tool_call" in obj and "final" in obj:
        return ProtocolViolation("unrecognized", "reply has both tool_call and final")

    if "tool_call" in obj:
        call = obj["tool_call"]
        name = call.get("name") if isinstance(call, dict) else None
        if not isinstance(name, str) or not name.strip():
            return ProtocolViolation("unrecognized", "tool_call without a name")
        arguments = call.get("arguments")
        return ToolCallReply(name=name.strip(), arguments=arguments if isinstance(arguments, dict) else {})

    final = obj.get("final")
    if isinstance(final, str):
        return FinalReply(final)
    if "final" in obj:
        return ProtocolViolation("unrecognized", f"final must be a string, got {type(final).__name__}")
    return ProtocolViolation("unrecognized", "reply has neither tool_call nor final")
