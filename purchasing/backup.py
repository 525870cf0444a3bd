"""
Backup trigger: called after every committed order mutation.

Requests are debounced with a Redis window key. The first trigger in a window pushes one request
carrying not_before = now + window; the worker waits until then before taking the snapshot, so
mutations whose triggers were absorbed by the window are still included.
"""
import asyncio
import logging
import time
from typing import Awaitable, Callable

from purchasing.metrics import backups_failed_total, backups_requested_total
from purchasing.queue import push_backup_request
from purchasing.redis_client import claim_window

logger = logging.getLogger(__name__)

BACKUP_DEBOUNCE_KEY = "backup:pending"


class BackupTrigger:
    def __init__(
        self,
        debounce_seconds: int = 60,
        claim: Callable[[str, int], Awaitable[bool]] = claim_window,
        push: Callable[[dict], Awaitable[None]] = push_backup_request,
    ):
        self._debounce_seconds = debounce_seconds
        self._claim = claim
        self._push = push
        self._tasks: set[asyncio.Task] = set()

    def trigger(self) -> None:
        """Schedule a backup request. Returns immediately."""
        t = asyncio.create_task(self._request())
        self._tasks.add(t)
        t.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for in-flight requests (used at shutdown)."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def _request(self) -> None:
        try:
            if not await self._claim(BACKUP_DEBOUNCE_KEY, self._debounce_seconds):
                return
            requested_at = time.time()
            await self._push({
                "requested_at": requested_at,
                "not_before": requested_at + self._debounce_seconds,
            })
        except Exception as e:
            backups_failed_total.inc()
            logger.warning("Failed to request backup: %s", e)
            return
        backups_requested_total.inc()
        logger.info("Backup requested (window=%ds)", self._debounce_seconds)


class NullBackupTrigger:
    """Used when BACKUP_ENABLED=false or with the memory backend."""

    def trigger(self) -> None:
        pass

    async def drain(self) -> None:
        pass
