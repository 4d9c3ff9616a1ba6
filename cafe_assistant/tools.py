"""Tools the model may call, and the registry that dispatches them.

Registry contract:

    await registry.execute(name, arguments) -> ToolResult

Dispatch never raises for bad input: an unknown tool name, missing
arguments or unknown identifiers all come back as ToolResult.failure so the
model can explain the problem to the customer. Handlers may be plain
functions or coroutines.

Handlers (ShopTools):
    get_menu(tag?)                 whole menu, or items carrying `tag`
    create_order(...)              price the items, store a RECEIVED order
    get_order_status(orderId)      status + pickup time of a stored order
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Union

from cafe_assistant.models import (
    LineItem,
    Order,
    OrderStatus,
    ShopInfo,
    ToolDescriptor,
    ToolResult,
)
from cafe_assistant.storage import OrderLedger

logger = logging.getLogger(__name__)

MIN_QTY = 1
MAX_QTY = 20

Handler = Callable[..., Union[ToolResult, Awaitable[ToolResult]]]


# ---------------------------------------------------------------------------
# Descriptors, advertised to the model in the instruction preamble
# ---------------------------------------------------------------------------

GET_MENU = ToolDescriptor(
    name="get_menu",
    description="Get menu items and prices (optionally filtered by category/tag).",
    parameters={
        "type": "object",
        "properties": {"tag": {"type": "string", "description": "e.g. coffee, tea, pastry, cold"}},
        "required": [],
    },
)

CREATE_ORDER = ToolDescriptor(
    name="create_order",
    description="Create an online order for pickup. Use to place an order.",
    parameters={
        "type": "object",
        "properties": {
            "customerName": {"type": "string"},
            "phone": {"type": "string"},
            "language": {"type": "string", "description": "en | el | fr | es"},
            "items": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "menuItemId": {"type": "string"},
                        "qty": {"type": "integer", "minimum": MIN_QTY, "maximum": MAX_QTY},
                        "size": {"type": "string", "description": "optional (e.g. single/double)"},
                        "milk": {"type": "string", "description": "optional (e.g. oat)"},
                        "notes": {"type": "string", "description": "optional notes (e.g. decaf)"},
                    },
                    "required": ["menuItemId", "qty"],
                },
            },
            "pickupTime": {"type": "string", "description": "ISO time or natural text like 'in 20 minutes'"},
            "specialInstructions": {"type": "string"},
        },
        "required": ["customerName", "phone", "items"],
    },
)

GET_ORDER_STATUS = ToolDescriptor(
    name="get_order_status",
    description="Check order status by orderId.",
    parameters={
        "type": "object",
        "properties": {"orderId": {"type": "string"}},
        "required": ["orderId"],
    },
)

TOOLS: tuple[ToolDescriptor, ...] = (GET_MENU, CREATE_ORDER, GET_ORDER_STATUS)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class ToolRegistry:
    """Static name → handler mapping."""

    def __init__(self) -> None:
        self._tools: dict[str, tuple[ToolDescriptor, Handler]] = {}

    def register(self, descriptor: ToolDescriptor, handler: Handler) -> None:
        if descriptor.name in self._tools:
            raise ValueError(f"Tool '{descriptor.name}' is already registered")
        self._tools[descriptor.name] = (descriptor, handler)

    def descriptors(self) -> list[ToolDescriptor]:
        return [d for d, _ in self._tools.values()]

    def names(self) -> list[str]:
        return list(self._tools)

    async def execute(self, name: str, arguments: Mapping[str, Any] | None) -> ToolResult:
        entry = self._tools.get(name)
        if entry is None:
            logger.info("Model called unknown tool %r", name)
            return ToolResult.failure(f"Tool not implemented: {name}")

        _, handler = entry
        args = dict(arguments) if isinstance(arguments, Mapping) else {}
        logger.debug("tool call name=%s args=%s", name, sorted(args))

        result = handler(args)
        if inspect.isawaitable(result):
            result = await result
        if not result.ok:
            logger.info("tool %s failed: %s", name, result.error)
        return result


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

def _coerce_qty(value: Any) -> int:
    """Integer quantity clamped to [MIN_QTY, MAX_QTY]; 1 when unusable."""
    if isinstance(value, bool):
        return MIN_QTY
    try:
        qty = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return MIN_QTY
    return max(MIN_QTY, min(MAX_QTY, qty))


def _opt_text(value: Any) -> str | None:
    return str(value) if value not in (None, "") else None


class ShopTools:
    def __init__(self, shop: ShopInfo, ledger: OrderLedger) -> None:
        self._shop = shop
        self._ledger = ledger

    def get_menu(self, args: dict[str, Any]) -> ToolResult:
        tag = str(args.get("tag") or "").strip().lower()
        items = self._shop.menu
        if tag:
            items = [m for m in items if tag in (t.lower() for t in m.tags)]
        return ToolResult.success(
            shop=self._shop.name,
            currency=self._shop.currency,
            items=[m.model_dump(mode="json", by_alias=True, exclude_none=True) for m in items],
        )

    def create_order(self, args: dict[str, Any]) -> ToolResult:
        raw_items = args.get("items")
        if not isinstance(raw_items, list) or not raw_items:
            return ToolResult.failure("No items provided.")

        # Resolve every line before touching the ledger: no partial orders.
        lines: list[LineItem] = []
        for raw in raw_items:
            item_id = raw.get("menuItemId") if isinstance(raw, dict) else None
            menu_item = self._shop.find_item(item_id)
            if menu_item is None:
                return ToolResult.failure(f"Unknown menu item: {item_id}")
            qty = _coerce_qty(raw.get("qty"))
            lines.append(LineItem(
                id=menu_item.id,
                name=menu_item.name,
                qty=qty,
                unit_price=menu_item.price,
                line_total=menu_item.price * qty,
                milk=_opt_text(raw.get("milk")),
                size=_opt_text(raw.get("size")),
                notes=_opt_text(raw.get("notes")),
            ))

        total = sum((line.line_total for line in lines), Decimal("0"))
        order = self._ledger.add_new(lambda order_id: Order(
            order_id=order_id,
            status=OrderStatus.RECEIVED,
            created_at=datetime.now(timezone.utc),
            customer_name=str(args.get("customerName") or ""),
            phone=str(args.get("phone") or ""),
            pickup_time=str(args.get("pickupTime") or "ASAP"),
            special_instructions=str(args.get("specialInstructions") or ""),
            language=_opt_text(args.get("language")),
            currency=self._shop.currency,
            total=total.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
            items=lines,
        ))
        logger.info("Created order %s total=%s %s", order.order_id, order.total, order.currency)
        return ToolResult.success(order=order.model_dump(mode="json", by_alias=True))

    def get_order_status(self, args: dict[str, Any]) -> ToolResult:
        order = self._ledger.get(str(args.get("orderId") or ""))
        if order is None:
            return ToolResult.failure("Order not found.")
        return ToolResult.success(
            orderId=order.order_id,
            status=order.status.value,
            pickupTime=order.pickup_time,
        )


def build_registry(shop: ShopInfo, ledger: OrderLedger) -> ToolRegistry:
    tools = ShopTools(shop, ledger)
    registry = ToolRegistry()
    registry.register(GET_MENU, tools.get_menu)
    registry.register(CREATE_ORDER, tools.create_order)
    registry.register(GET_ORDER_STATUS, tools.get_order_status)
    return registry
