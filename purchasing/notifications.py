"""
Best-effort notifications for order events, delivered out of band.
- Two channels: lifecycle (create / amend / cancel) and status (advance), each with its own webhook.
- enqueue() never blocks: bounded asyncio.Queue, newest message dropped when full.
- One background consumer POSTs to the webhook (requests, in a thread). Failures are logged
  and counted, never retried: delivery is at-most-once.
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

import requests

from purchasing.metrics import (
    notification_queue_depth,
    notifications_delivered_total,
    notifications_dropped_total,
    notifications_enqueued_total,
    notifications_failed_total,
)

logger = logging.getLogger(__name__)


class Channel(str, Enum):
    LIFECYCLE = "lifecycle"
    STATUS = "status"


@dataclass
class Notification:
    channel: Channel
    order_id: int
    message: str


Sender = Callable[[str, str, float], None]


def post_webhook(url: str, message: str, timeout: float) -> None:
    """Sync POST in Discord webhook format (run in a thread)."""
    resp = requests.post(url, json={"content": message}, timeout=timeout)
    resp.raise_for_status()


class NotificationDispatcher:
    def __init__(
        self,
        destinations: dict[Channel, str | None],
        maxsize: int = 1000,
        timeout: float = 10.0,
        sender: Sender = post_webhook,
    ):
        self._destinations = {channel: url for channel, url in destinations.items() if url}
        self._queue: asyncio.Queue[Notification] = asyncio.Queue(maxsize=maxsize)
        self._timeout = timeout
        self._sender = sender
        self._task: asyncio.Task | None = None

    def enqueue(self, channel: Channel, order_id: int, message: str) -> bool:
        """Queue a message. Returns False if the channel has no webhook or the queue is full."""
        if channel not in self._destinations:
            return False
        try:
            self._queue.put_nowait(Notification(channel, order_id, message))
        except asyncio.QueueFull:
            notifications_dropped_total.labels(channel=channel.value).inc()
            logger.warning("Notification queue full, dropped %s message for order_id=%s", channel.value, order_id)
            return False
        notifications_enqueued_total.labels(channel=channel.value).inc()
        notification_queue_depth.set(self._queue.qsize())
        return True

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run())
            logger.info(
                "Notification dispatcher started (channels=%s)",
                ",".join(c.value for c in self._destinations) or "none",
            )

    async def stop(self, wait_seconds: float = 10) -> None:
        """Give queued messages up to wait_seconds to go out, then stop the consumer."""
        if self._task is None:
            return
        try:
            await asyncio.wait_for(self._queue.join(), timeout=wait_seconds)
        except asyncio.TimeoutError:
            logger.warning("Notification dispatcher stopping with %d undelivered message(s)", self._queue.qsize())
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        logger.info("Notification dispatcher stopped.")

    async def _run(self) -> None:
        while True:
            notification = await self._queue.get()
            try:
                await self._deliver(notification)
            finally:
                self._queue.task_done()
                notification_queue_depth.set(self._queue.qsize())

    async def _deliver(self, notification: Notification) -> None:
        channel = notification.channel.value
        url = self._destinations[notification.channel]
        try:
            await asyncio.to_thread(self._sender, url, notification.message, self._timeout)
        except Exception as e:
            notifications_failed_total.labels(channel=channel).inc()
            logger.warning("Failed to deliver %s notification for order_id=%s: %s", channel, notification.order_id, e)
            return
        notifications_delivered_total.labels(channel=channel).inc()
        logger.info("Delivered %s notification for order_id=%s", channel, notification.order_id)
