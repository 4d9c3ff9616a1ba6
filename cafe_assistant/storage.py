"""In-memory stores.

Two process-lifetime keyed stores, each constructed explicitly and handed to
whoever needs it. Nothing is written to disk; a restart loses everything.

    OrderLedger        order_id   -> Order         (insert-only, status mutable)
    ConversationStore  session_id -> list[Turn]    (bounded to MAX_HISTORY_TURNS)

System instructions are never stored; they are rebuilt for every model call.
"""

from __future__ import annotations

import asyncio
import threading
import uuid
from collections import OrderedDict
from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import asynccontextmanager

from cafe_assistant.models import Order, OrderStatus, Turn

MAX_HISTORY_TURNS = 20
ORDER_ID_PREFIX = "ORD-"


def trim_history(turns: Sequence[Turn], limit: int = MAX_HISTORY_TURNS) -> list[Turn]:
    """Return the most recent `limit` turns as a new list (oldest dropped first)."""
    if limit <= 0:
        return []
    return list(turns[-limit:])


class OrderLedger:
    def __init__(self) -> None:
        self._orders: dict[str, Order] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._orders)

    def __contains__(self, order_id: object) -> bool:
        return order_id in self._orders

    def new_order_id(self) -> str:
        """Draw a fresh identifier: prefix + 8 uppercase hex chars of a UUID4."""
        while True:
            candidate = ORDER_ID_PREFIX + uuid.uuid4().hex[:8].upper()
            if candidate not in self._orders:
                return candidate

    def add_new(self, build: Callable[[str], Order]) -> Order:
        """Draw an unused id and store `build(order_id)` under one lock."""
        with self._lock:
            order = build(self.new_order_id())
            self._orders[order.order_id] = order
            return order

    def add(self, order: Order) -> None:
        with self._lock:
            if order.order_id in self._orders:
                raise ValueError(f"Order {order.order_id} already exists")
            self._orders[order.order_id] = order

    def get(self, order_id: str) -> Order | None:
        return self._orders.get(order_id)

    def set_status(self, order_id: str, status: OrderStatus) -> Order | None:
        with self._lock:
            order = self._orders.get(order_id)
            if order is None:
                return None
            order.status = status
            return order


class ConversationStore:
    """Per-session turn history.

    `async with store.session(session_id)` serialises a caller's
    load → run → save cycle against other requests for the same session.
    A session's lock lives only while someone holds or waits on it, or while
    the session has stored history. Sessions beyond `max_sessions` are
    evicted least recently saved first.
    """

    def __init__(self, max_sessions: int | None = None) -> None:
        self._sessions: OrderedDict[str, list[Turn]] = OrderedDict()
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}
        self._max_sessions = max_sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    @asynccontextmanager
    async def session(self, session_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        self._holders[session_id] = self._holders.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[session_id] -= 1
            if not self._holders[session_id]:
                del self._holders[session_id]
                if session_id not in self._sessions:
                    del self._locks[session_id]

    def load(self, session_id: str) -> list[Turn]:
        return list(self._sessions.get(session_id, []))

    def save(self, session_id: str, turns: Sequence[Turn]) -> None:
        if any(t.role == "system" for t in turns):
            raise ValueError("System turns are not part of stored history")
        self._sessions[session_id] = trim_history(turns)
        self._sessions.move_to_end(session_id)
        self._prune()

    def _prune(self) -> None:
        if self._max_sessions is None:
            return
        while len(self._sessions) > self._max_sessions:
            evicted, _ = self._sessions.popitem(last=False)
            if evicted not in self._holders:
                self._locks.pop(evicted, None)
