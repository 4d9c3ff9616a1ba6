"""Handlebars rendering of the instruction preamble.

The preamble is rebuilt for every request and sent as the leading system
turn; it is never stored in session history. It is the main thing keeping
the model on the two-shape reply protocol (see cafe_assistant.protocol).
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable
from typing import Any

import pybars

from cafe_assistant.models import ShopInfo, ToolDescriptor

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


_REPLY_FORMATS = {
    "toolCall": '{"tool_call":{"name":"TOOL_NAME","arguments":{...}}}',
    "final": '{"final":"your reply to the user"}',
    "shortFinal": '{"final":"..."}',
}

INSTRUCTIONS_TEMPLATE = """\
You are the AI assistant for a coffee shop website: "{{{shop.name}}}".
You must:
- Help customers with menu questions, allergens, shop info, and online ordering.
- Support languages: {{{languages}}}.
- Reply in the SAME language as the user. If unclear, ask which language they prefer.
- Be concise, friendly, and confirm important order details (items, milk, size, pickup time, phone).
- Ask about allergies when relevant (milk, gluten, nuts).

VERY IMPORTANT OUTPUT FORMAT:
You MUST reply with VALID JSON only (no markdown, no extra text).
Choose ONE of:
1) {{{formats.toolCall}}}
2) {{{formats.final}}}
Call at most one tool per reply.

Available tools (name + what they do):
{{#each tools}}- {{{name}}}: {{{description}}} Args schema: {{{schema}}}
{{/each}}
Shop info:
- Hours: {{{shop.hours}}}
- Address: {{{shop.address}}}
- Phone: {{{shop.phone}}}
- Currency: {{{shop.currency}}}
- Ordering policy: {{{shop.orderingPolicy}}}

When the user wants to order, you SHOULD call "create_order" after gathering missing details.
If user asks menu/prices, call "get_menu".
If user asks about an existing order, call "get_order_status".
If you do not need a tool, respond with {{{formats.shortFinal}}}.
"""


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


def build_instructions(shop: ShopInfo, tools: Iterable[ToolDescriptor]) -> str:
    context = {
        "shop": shop.model_dump(mode="json", by_alias=True),
        "languages": ", ".join(shop.languages),
        "formats": _REPLY_FORMATS,
        "tools": [
            {
                "name": t.name,
                "description": t.description,
                "schema": json.dumps(t.parameters, separators=(",", ":")),
            }
            for t in tools
        ],
    }
    return render_prompt(INSTRUCTIONS_TEMPLATE, context).strip()
