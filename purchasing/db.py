"""
Async Postgres: orders (descriptive fields) + order_status (append-only status history).
Every order operation runs in a single transaction that locks the order row before reading
its current status, so read-validate-write is serialized per order.
"""
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncContextManager, AsyncIterator, Protocol

import asyncpg

from purchasing.config import settings
from purchasing.errors import StorageError
from purchasing.ledger import PostgresStatusLedger, StatusLedger
from purchasing.orders import OrderStore, PostgresOrderStore

_pool: asyncpg.Pool | None = None


@dataclass
class Session:
    """Stores bound to one open transaction."""
    orders: OrderStore
    ledger: StatusLedger


class Storage(Protocol):
    def transaction(self, snapshot: bool = False) -> AsyncContextManager[Session]: ...

    async def reset(self) -> None: ...


async def get_pool() -> asyncpg.Pool:
    global _pool
    if _pool is None:
        _pool = await asyncpg.create_pool(
            settings.database_url,
            min_size=1,
            max_size=5,
            command_timeout=60,
        )
    return _pool


async def close_pool() -> None:
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None


async def init_schema(pool: asyncpg.Pool) -> None:
    async with pool.acquire() as conn:
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS orders (
                id SERIAL PRIMARY KEY,
                name TEXT NOT NULL,
                count INT NOT NULL CHECK (count >= 0),
                unit_cost NUMERIC NOT NULL,
                store_in TEXT NOT NULL DEFAULT '',
                team VARCHAR(32) NOT NULL,
                reason TEXT NOT NULL,
                vendor TEXT NOT NULL,
                link TEXT NOT NULL,
                ref_number BIGINT
            );
        """)
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS order_status (
                order_id INT NOT NULL REFERENCES orders(id) ON DELETE CASCADE,
                instance_id INT NOT NULL,
                date TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                status VARCHAR(32) NOT NULL,
                PRIMARY KEY (order_id, instance_id)
            );
        """)
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_order_status_current
            ON order_status(order_id, instance_id DESC);
        """)


async def reset_tables(pool: asyncpg.Pool) -> None:
    async with pool.acquire() as conn:
        await conn.execute("DROP TABLE IF EXISTS order_status;")
        await conn.execute("DROP TABLE IF EXISTS orders;")
    await init_schema(pool)


class PostgresStorage:
    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    @asynccontextmanager
    async def transaction(self, snapshot: bool = False) -> AsyncIterator[Session]:
        """
        Open one transaction. Any exception rolls it back; driver and I/O failures are
        re-raised as StorageError, everything else propagates unchanged.
        With snapshot, the transaction is read-only at REPEATABLE READ so every query sees
        the same committed state.
        """
        if snapshot:
            options = {"isolation": "repeatable_read", "readonly": True}
        else:
            options = {}
        try:
            async with self._pool.acquire() as conn:
                async with conn.transaction(**options):
                    yield Session(
                        orders=PostgresOrderStore(conn),
                        ledger=PostgresStatusLedger(conn),
                    )
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            raise StorageError(str(e)) from e

    async def reset(self) -> None:
        try:
            await reset_tables(self._pool)
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            raise StorageError(str(e)) from e
