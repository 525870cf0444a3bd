"""
StatusLedger: append-only per-order status history.
Current status = event with the greatest instance_id for the order.
"""
from datetime import datetime
from typing import Protocol

import asyncpg

from purchasing.order_state import Status, StatusEvent


class StatusLedger(Protocol):
    async def append(self, order_id: int, status: Status, date: datetime) -> int: ...

    async def current(self, order_id: int) -> StatusEvent | None: ...

    async def delete_all(self, order_id: int) -> None: ...

    async def list_all(self) -> list[StatusEvent]: ...


def _event(row: asyncpg.Record) -> StatusEvent:
    return StatusEvent(
        order_id=row["order_id"],
        instance_id=row["instance_id"],
        date=row["date"],
        status=Status(row["status"]),
    )


class PostgresStatusLedger:
    """Ledger bound to one connection; callers run it inside a transaction."""

    def __init__(self, conn: asyncpg.Connection):
        self._conn = conn

    async def append(self, order_id: int, status: Status, date: datetime) -> int:
        # next instance_id computed in the same statement; PK (order_id, instance_id)
        # rejects a duplicate if the order row was not locked by the caller
        return await self._conn.fetchval(
            """
            INSERT INTO order_status (order_id, instance_id, date, status)
            SELECT $1, COALESCE(MAX(instance_id), 0) + 1, $2, $3
            FROM order_status WHERE order_id = $1
            RETURNING instance_id;
            """,
            order_id,
            date,
            status.value,
        )

    async def current(self, order_id: int) -> StatusEvent | None:
        row = await self._conn.fetchrow(
            """
            SELECT order_id, instance_id, date, status FROM order_status
            WHERE order_id = $1
            ORDER BY instance_id DESC
            LIMIT 1;
            """,
            order_id,
        )
        return _event(row) if row is not None else None

    async def delete_all(self, order_id: int) -> None:
        await self._conn.execute("DELETE FROM order_status WHERE order_id = $1;", order_id)

    async def list_all(self) -> list[StatusEvent]:
        rows = await self._conn.fetch(
            "SELECT order_id, instance_id, date, status FROM order_status ORDER BY order_id, instance_id;"
        )
        return [_event(r) for r in rows]
