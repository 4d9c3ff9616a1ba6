import pytest

from cafe_assistant.catalog import default_shop
from cafe_assistant.models import ShopInfo
from cafe_assistant.storage import ConversationStore, OrderLedger
from cafe_assistant.tools import ToolRegistry, build_registry


class StubLLM:
    """Scripted model: returns queued replies in order and records every transcript."""

    def __init__(self, replies: list[str] | None = None, default: str | None = None) -> None:
        self.replies = list(replies or [])
        self.default = default
        self.calls: list[list] = []

    async def __call__(self, transcript):
        self.calls.append(list(transcript))
        if self.replies:
            return self.replies.pop(0)
        if self.default is not None:
            return self.default
        raise AssertionError("StubLLM ran out of scripted replies")


@pytest.fixture
def shop() -> ShopInfo:
    return default_shop()


@pytest.fixture
def ledger() -> OrderLedger:
    return OrderLedger()


@pytest.fixture
def conversations() -> ConversationStore:
    return ConversationStore()


@pytest.fixture
def registry(shop: ShopInfo, ledger: OrderLedger) -> ToolRegistry:
    return build_registry(shop, ledger)


@pytest.fixture
def stub_llm():
    """Factory: stub_llm(["reply1", ...], default=None) -> StubLLM."""
    return StubLLM
