"""
Backup worker: pull backup requests from Redis or AWS SQS, write a JSON snapshot of all orders
and their status history.
- Each request carries not_before; the snapshot waits until then (end of the debounce window).
- Redis: failed snapshots re-queued with exponential backoff. SQS: not deleted on failure, redelivered.
- Prometheus /metrics on port 9090 (worker metrics).
- Graceful shutdown on SIGTERM.
Run: python -m purchasing.worker
"""
import asyncio
import json
import logging
import os
import signal
import sys
import threading
import time
from datetime import datetime, timezone
from pathlib import Path

import redis.asyncio as redis

from purchasing.config import settings
from purchasing.db import PostgresStorage, Storage, close_pool, get_pool, init_schema
from purchasing.metrics import backups_failed_total, backups_written_total
from purchasing.order_state import OrderListing
from purchasing.queue import BACKUP_QUEUE_KEY
from purchasing.sqs_client import delete_message, receive_messages

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)

BRPOP_TIMEOUT = 5
BACKUP_MAX_ATTEMPTS = 5
WORKER_METRICS_PORT = 9090


def _start_metrics_server() -> None:
    from prometheus_client import start_http_server
    start_http_server(WORKER_METRICS_PORT)


def _write_file(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".tmp")
    tmp.write_text(content, encoding="utf-8")
    os.replace(tmp, path)


async def write_snapshot(storage: Storage, backup_dir: Path) -> Path:
    """Read orders + statuses from one consistent snapshot and write them to backup_dir."""
    async with storage.transaction(snapshot=True) as tx:
        listing = OrderListing(
            orders=await tx.orders.list_all(),
            statuses=await tx.ledger.list_all(),
        )
    path = backup_dir / f"orders-{datetime.now(timezone.utc):%Y%m%dT%H%M%S%fZ}.json"
    await asyncio.to_thread(_write_file, path, listing.model_dump_json(indent=2))
    return path


async def wait_until(not_before: float, shutdown_event: asyncio.Event) -> None:
    """Sleep until not_before; shutdown cuts the wait short (snapshot is taken early, not skipped)."""
    delay = not_before - time.time()
    if delay <= 0:
        return
    try:
        await asyncio.wait_for(shutdown_event.wait(), timeout=delay)
    except asyncio.TimeoutError:
        pass


async def handle_request(storage: Storage, data: dict, shutdown_event: asyncio.Event) -> Path:
    await wait_until(float(data.get("not_before") or 0), shutdown_event)
    path = await write_snapshot(storage, Path(settings.backup_dir))
    backups_written_total.inc()
    logger.info("Snapshot written to %s", path)
    return path


async def process_one_redis(r: redis.Redis, storage: Storage, raw: str, shutdown_event: asyncio.Event) -> None:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("Invalid JSON from queue: %s", e)
        return
    attempts = data.get("attempts", 0)
    try:
        await handle_request(storage, data, shutdown_event)
    except Exception as e:
        backups_failed_total.inc()
        logger.exception("Failed to write snapshot (attempt %d): %s", attempts + 1, e)
        next_attempts = attempts + 1
        if next_attempts >= BACKUP_MAX_ATTEMPTS:
            logger.warning("Giving up on backup request after %d attempts", next_attempts)
            return
        backoff_sec = 2 ** attempts
        logger.info("Re-queuing backup request in %ds (attempt %d/%d)", backoff_sec, next_attempts, BACKUP_MAX_ATTEMPTS)
        await asyncio.sleep(backoff_sec)
        data["attempts"] = next_attempts
        await r.lpush(BACKUP_QUEUE_KEY, json.dumps(data))


async def process_one_sqs(storage: Storage, body: str, receipt_handle: str, shutdown_event: asyncio.Event) -> None:
    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        logger.warning("Invalid JSON from SQS")
        await asyncio.to_thread(delete_message, receipt_handle)
        return
    try:
        await handle_request(storage, data, shutdown_event)
    except Exception as e:
        backups_failed_total.inc()
        # Don't delete: message reappears after visibility timeout
        logger.exception("Failed to write snapshot: %s", e)
        return
    await asyncio.to_thread(delete_message, receipt_handle)


async def run_worker_redis(storage: Storage, shutdown_event: asyncio.Event) -> None:
    logger.info("Backend=Redis. Listening on %s, writing to %s ...", BACKUP_QUEUE_KEY, settings.backup_dir)
    r = redis.from_url(settings.redis_url, decode_responses=True)
    try:
        while not shutdown_event.is_set():
            result = await r.brpop(BACKUP_QUEUE_KEY, timeout=BRPOP_TIMEOUT)
            if result is None:
                continue
            _key, raw = result
            await process_one_redis(r, storage, raw, shutdown_event)
    finally:
        await r.aclose()


async def run_worker_sqs(storage: Storage, shutdown_event: asyncio.Event) -> None:
    logger.info("Backend=SQS. Queue=%s, writing to %s ...", settings.sqs_backup_queue_url, settings.backup_dir)
    while not shutdown_event.is_set():
        messages = await asyncio.to_thread(receive_messages, 10, 5)
        for msg in messages:
            body = msg.get("Body") or "{}"
            receipt = msg.get("ReceiptHandle") or ""
            await process_one_sqs(storage, body, receipt, shutdown_event)


async def run_worker(shutdown_event: asyncio.Event) -> None:
    pool = await get_pool()
    await init_schema(pool)
    storage = PostgresStorage(pool)
    try:
        if settings.sqs_backup_queue_url:
            await run_worker_sqs(storage, shutdown_event)
        else:
            await run_worker_redis(storage, shutdown_event)
    finally:
        await close_pool()
        logger.info("Worker stopped.")


def main() -> None:
    threading.Thread(target=_start_metrics_server, daemon=True).start()
    logger.info("Metrics server listening on port %s", WORKER_METRICS_PORT)

    shutdown_event = asyncio.Event()

    def on_signal():
        shutdown_event.set()

    loop = asyncio.new_event_loop()
    try:
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, on_signal)
    except NotImplementedError:
        signal.signal(signal.SIGTERM, lambda *a: shutdown_event.set())
        signal.signal(signal.SIGINT, lambda *a: shutdown_event.set())

    asyncio.set_event_loop(loop)
    try:
        loop.run_until_complete(run_worker(shutdown_event))
    finally:
        loop.close()


if __name__ == "__main__":
    main()
