"""
In-process storage backend (STORAGE_BACKEND=memory). Transactions run one at a time under
a single asyncio lock (so every read is already a consistent snapshot); an exception restores
the state captured when the transaction began.
"""
import asyncio
import copy
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator

from purchasing.db import Session
from purchasing.order_state import Order, OrderFields, Status, StatusEvent


class _State:
    def __init__(self) -> None:
        self.next_id = 1
        self.orders: dict[int, Order] = {}
        self.events: dict[int, list[StatusEvent]] = {}


class MemoryOrderStore:
    def __init__(self, state: _State):
        self._state = state

    async def insert(self, fields: OrderFields) -> Order:
        order = Order(id=self._state.next_id, **fields.model_dump())
        self._state.next_id += 1
        self._state.orders[order.id] = order
        return order.model_copy()

    async def find(self, order_id: int, for_update: bool = False) -> Order | None:
        order = self._state.orders.get(order_id)
        return order.model_copy() if order is not None else None

    async def replace_fields(self, order_id: int, fields: OrderFields) -> None:
        order = self._state.orders.get(order_id)
        if order is not None:
            self._state.orders[order_id] = order.model_copy(update=fields.model_dump())

    async def set_ref_number(self, order_id: int, ref_number: int | None) -> None:
        order = self._state.orders.get(order_id)
        if order is not None:
            self._state.orders[order_id] = order.model_copy(update={"ref_number": ref_number})

    async def delete(self, order_id: int) -> None:
        self._state.orders.pop(order_id, None)
        # mirrors ON DELETE CASCADE on order_status
        self._state.events.pop(order_id, None)

    async def list_all(self) -> list[Order]:
        return [o.model_copy() for _, o in sorted(self._state.orders.items())]


class MemoryStatusLedger:
    def __init__(self, state: _State):
        self._state = state

    async def append(self, order_id: int, status: Status, date: datetime) -> int:
        events = self._state.events.setdefault(order_id, [])
        instance_id = max((e.instance_id for e in events), default=0) + 1
        events.append(StatusEvent(order_id=order_id, instance_id=instance_id, date=date, status=status))
        return instance_id

    async def current(self, order_id: int) -> StatusEvent | None:
        events = self._state.events.get(order_id)
        if not events:
            return None
        return max(events, key=lambda e: e.instance_id)

    async def delete_all(self, order_id: int) -> None:
        self._state.events.pop(order_id, None)

    async def list_all(self) -> list[StatusEvent]:
        return [e for _, events in sorted(self._state.events.items()) for e in events]


class MemoryStorage:
    def __init__(self) -> None:
        self._state = _State()
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def transaction(self, snapshot: bool = False) -> AsyncIterator[Session]:
        async with self._lock:
            saved = copy.deepcopy(self._state)
            try:
                yield Session(
                    orders=MemoryOrderStore(self._state),
                    ledger=MemoryStatusLedger(self._state),
                )
            except BaseException:
                self._restore(saved)
                raise

    def _restore(self, snapshot: _State) -> None:
        self._state.next_id = snapshot.next_id
        self._state.orders = snapshot.orders
        self._state.events = snapshot.events

    async def reset(self) -> None:
        async with self._lock:
            self._restore(_State())
