"""Core domain models.

Every store, tool handler and the orchestrator operate on these types.
Pydantic is used for validation and serialisation at every data boundary;
records handed to the model are dumped with camelCase keys.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel

# Money stays exact in memory and becomes a plain JSON number on the wire.
Money = Annotated[
    Decimal,
    PlainSerializer(float, return_type=float, when_used="json"),
]

Role = Literal["system", "user", "assistant", "tool"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------

class Turn(BaseModel):
    """One role-tagged message in a transcript."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

class MenuItem(_CamelModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    price: Money = Field(gt=0)
    tags: list[str] = Field(default_factory=list)
    options: list[str] | None = None  # sizes / variants
    milks: list[str] | None = None
    allergens: list[str] | None = None


class ShopInfo(_CamelModel):
    model_config = ConfigDict(frozen=True)

    name: str
    currency: str = "EUR"
    languages: list[str] = Field(default_factory=lambda: ["English"])
    hours: str = ""
    address: str = ""
    phone: str = ""
    ordering_policy: str = ""
    menu: list[MenuItem] = Field(default_factory=list)

    def find_item(self, item_id: Any) -> MenuItem | None:
        for item in self.menu:
            if item.id == item_id:
                return item
        return None


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

class OrderStatus(str, Enum):
    RECEIVED = "RECEIVED"
    IN_PROGRESS = "IN_PROGRESS"
    READY = "READY"
    COMPLETED = "COMPLETED"


class LineItem(_CamelModel):
    id: str  # menu item id
    name: str
    qty: int = Field(ge=1, le=20)
    unit_price: Money
    line_total: Money
    milk: str | None = None
    size: str | None = None
    notes: str | None = None


class Order(_CamelModel):
    order_id: str
    status: OrderStatus = OrderStatus.RECEIVED
    created_at: datetime
    customer_name: str
    phone: str
    pickup_time: str = "ASAP"
    special_instructions: str = ""
    language: str | None = None
    currency: str
    total: Money
    items: list[LineItem]


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------

class ToolDescriptor(BaseModel):
    """A tool advertised to the model. `parameters` is a JSON Schema object."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    parameters: dict[str, Any]


class ToolResult(BaseModel):
    """Outcome of a tool execution, fed back to the model verbatim."""

    ok: bool
    data: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None

    @classmethod
    def success(cls, **data: Any) -> ToolResult:
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, error: str) -> ToolResult:
        return cls(ok=False, error=error)

    def payload(self) -> dict[str, Any]:
        if not self.ok:
            return {"ok": False, "error": self.error}
        return {"ok": True, **self.data}
