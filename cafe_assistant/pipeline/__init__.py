"""Chat pipeline: the tool loop plus the bundle of stores it runs against.

Assistant owns one instance of every collaborator (catalog, order ledger,
conversation store, tool registry, model adapter) built from Settings at
startup. Tests build their own Assistant, or call run_turn directly, with
fresh stores and a scripted model.
"""

from __future__ import annotations

import logging

from cafe_assistant.catalog import load_shop
from cafe_assistant.config import Settings
from cafe_assistant.llm import ChatLLM, build_llm
from cafe_assistant.models import ShopInfo
from cafe_assistant.prompts import build_instructions
from cafe_assistant.storage import ConversationStore, OrderLedger
from cafe_assistant.tools import ToolRegistry, build_registry

from .orchestrator import FALLBACK_REPLY, MAX_STEPS, run_turn  # noqa: F401

logger = logging.getLogger(__name__)

# Headroom over the adapter's own HTTP timeout before the loop gives up.
STEP_TIMEOUT_SLACK = 5.0


class Assistant:
    def __init__(
        self,
        *,
        shop: ShopInfo,
        llm: ChatLLM,
        ledger: OrderLedger | None = None,
        conversations: ConversationStore | None = None,
        registry: ToolRegistry | None = None,
        max_steps: int = MAX_STEPS,
        step_timeout: float | None = None,
    ) -> None:
        self.shop = shop
        self.llm = llm
        self.ledger = ledger if ledger is not None else OrderLedger()
        self.conversations = conversations if conversations is not None else ConversationStore()
        self.registry = registry if registry is not None else build_registry(shop, self.ledger)
        self.instructions = build_instructions(shop, self.registry.descriptors())
        self.max_steps = max_steps
        self.step_timeout = step_timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> Assistant:
        shop = load_shop(settings.catalog_path)
        logger.info(
            "Assistant ready: shop=%r provider=%s model=%s",
            shop.name, settings.provider, settings.model,
        )
        return cls(
            shop=shop,
            llm=build_llm(settings),
            conversations=ConversationStore(max_sessions=settings.max_sessions),
            step_timeout=settings.llm_timeout + STEP_TIMEOUT_SLACK,
        )

    async def reply(self, session_id: str, message: str) -> str:
        return await run_turn(
            session_id=session_id,
            message=message,
            llm=self.llm,
            registry=self.registry,
            conversations=self.conversations,
            instructions=self.instructions,
            max_steps=self.max_steps,
            timeout=self.step_timeout,
        )
