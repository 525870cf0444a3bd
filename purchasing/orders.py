"""
OrderRecord store: descriptive fields of each purchase request, one row per order.
"""
from typing import Protocol

import asyncpg

from purchasing.order_state import Order, OrderFields, Team

ORDER_COLUMNS = "id, name, count, unit_cost, store_in, team, reason, vendor, link, ref_number"


class OrderStore(Protocol):
    async def insert(self, fields: OrderFields) -> Order: ...

    async def find(self, order_id: int, for_update: bool = False) -> Order | None: ...

    async def replace_fields(self, order_id: int, fields: OrderFields) -> None: ...

    async def set_ref_number(self, order_id: int, ref_number: int | None) -> None: ...

    async def delete(self, order_id: int) -> None: ...

    async def list_all(self) -> list[Order]: ...


def _order(row: asyncpg.Record) -> Order:
    data = dict(row)
    data["team"] = Team(data["team"])
    return Order(**data)


class PostgresOrderStore:
    def __init__(self, conn: asyncpg.Connection):
        self._conn = conn

    async def insert(self, fields: OrderFields) -> Order:
        row = await self._conn.fetchrow(
            f"""
            INSERT INTO orders (name, count, unit_cost, store_in, team, reason, vendor, link)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            RETURNING {ORDER_COLUMNS};
            """,
            fields.name,
            fields.count,
            fields.unit_cost,
            fields.store_in,
            fields.team.value,
            fields.reason,
            fields.vendor,
            fields.link,
        )
        return _order(row)

    async def find(self, order_id: int, for_update: bool = False) -> Order | None:
        """With for_update, the row stays locked until the surrounding transaction ends."""
        query = f"SELECT {ORDER_COLUMNS} FROM orders WHERE id = $1"
        if for_update:
            query += " FOR UPDATE"
        row = await self._conn.fetchrow(query + ";", order_id)
        return _order(row) if row is not None else None

    async def replace_fields(self, order_id: int, fields: OrderFields) -> None:
        await self._conn.execute(
            """
            UPDATE orders
            SET name = $2, count = $3, unit_cost = $4, store_in = $5,
                team = $6, reason = $7, vendor = $8, link = $9
            WHERE id = $1;
            """,
            order_id,
            fields.name,
            fields.count,
            fields.unit_cost,
            fields.store_in,
            fields.team.value,
            fields.reason,
            fields.vendor,
            fields.link,
        )

    async def set_ref_number(self, order_id: int, ref_number: int | None) -> None:
        await self._conn.execute(
            "UPDATE orders SET ref_number = $2 WHERE id = $1;", order_id, ref_number
        )

    async def delete(self, order_id: int) -> None:
        await self._conn.execute("DELETE FROM orders WHERE id = $1;", order_id)

    async def list_all(self) -> list[Order]:
        rows = await self._conn.fetch(f"SELECT {ORDER_COLUMNS} FROM orders ORDER BY id;")
        return [_order(r) for r in rows]
