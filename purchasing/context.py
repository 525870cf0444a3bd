"""
Application context: storage, notification dispatcher and backup trigger, built once at startup
and passed to every order operation.
"""
import logging
from dataclasses import dataclass

from fastapi import Request

from purchasing.backup import BackupTrigger, NullBackupTrigger
from purchasing.config import Settings
from purchasing.db import PostgresStorage, Storage, close_pool, get_pool, init_schema
from purchasing.memory_store import MemoryStorage
from purchasing.notifications import Channel, NotificationDispatcher
from purchasing.redis_client import close_redis

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    storage: Storage
    notifier: NotificationDispatcher
    backup: BackupTrigger | NullBackupTrigger


async def build_context(settings: Settings) -> AppContext:
    if settings.storage_backend == "memory":
        storage = MemoryStorage()
    else:
        pool = await get_pool()
        await init_schema(pool)
        storage = PostgresStorage(pool)
    notifier = NotificationDispatcher(
        {
            Channel.LIFECYCLE: settings.new_orders_webhook_url,
            Channel.STATUS: settings.order_updates_webhook_url,
        },
        maxsize=settings.notification_queue_size,
        timeout=settings.notification_timeout_sec,
    )
    # the backup worker snapshots Postgres only
    if settings.backup_enabled and settings.storage_backend == "postgres":
        backup = BackupTrigger(debounce_seconds=settings.backup_debounce_sec)
    else:
        backup = NullBackupTrigger()
    logger.info("Context ready. Storage=%s, backups=%s", settings.storage_backend, isinstance(backup, BackupTrigger))
    return AppContext(storage=storage, notifier=notifier, backup=backup)


async def close_context(ctx: AppContext, wait_seconds: float = 10) -> None:
    await ctx.notifier.stop(wait_seconds)
    await ctx.backup.drain()
    await close_redis()
    await close_pool()


def get_context(request: Request) -> AppContext:
    """FastAPI dependency: the context built in the app lifespan."""
    return request.app.state.context
