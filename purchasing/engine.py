"""
Order lifecycle operations: create, amend (while New), cancel, advance status, list.

Each operation runs its read -> validate -> write sequence in one storage transaction, with the
order row locked before the current status is read. Notifications and backup requests are sent
only after commit; they never roll back or block the data change.
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator

from purchasing import messages
from purchasing.context import AppContext
from purchasing.db import Session
from purchasing.errors import ConflictError, OrderNotFoundError, StorageError
from purchasing.metrics import (
    order_operations_rejected_total,
    order_operations_total,
    order_storage_failures_total,
)
from purchasing.notifications import Channel
from purchasing.order_state import (
    INITIAL_STATUS,
    Order,
    OrderFields,
    OrderListing,
    Status,
    StatusEvent,
    check_advance,
    check_pending,
)

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@asynccontextmanager
async def _transaction(ctx: AppContext, operation: str, snapshot: bool = False) -> AsyncIterator[Session]:
    try:
        async with ctx.storage.transaction(snapshot=snapshot) as tx:
            yield tx
    except StorageError as e:
        order_storage_failures_total.labels(operation=operation).inc()
        logger.error("Failed to %s order: %s", operation, e)
        raise
    except OrderNotFoundError as e:
        order_operations_rejected_total.labels(operation=operation, reason="not_found").inc()
        logger.info("Rejected %s: order_id=%s not found", operation, e.order_id)
        raise
    except ConflictError as e:
        order_operations_rejected_total.labels(operation=operation, reason="conflict").inc()
        logger.info("Rejected %s: %s (current=%s)", operation, e.reason, e.current_status)
        raise


async def _lock_order(tx: Session, order_id: int) -> tuple[Order, StatusEvent]:
    """Lock the order row and read its current status."""
    order = await tx.orders.find(order_id, for_update=True)
    if order is None:
        raise OrderNotFoundError(order_id)
    current = await tx.ledger.current(order_id)
    if current is None:
        raise OrderNotFoundError(order_id)
    return order, current


def _committed(ctx: AppContext, operation: str, order_id: int) -> None:
    order_operations_total.labels(operation=operation).inc()
    logger.info("Committed %s for order_id=%s", operation, order_id)
    ctx.backup.trigger()


async def create_order(ctx: AppContext, fields: OrderFields) -> Order:
    """Insert the order and its New status together."""
    message = messages.new_order(fields)
    async with _transaction(ctx, "create") as tx:
        order = await tx.orders.insert(fields)
        await tx.ledger.append(order.id, INITIAL_STATUS, _now())
    _committed(ctx, "create", order.id)
    ctx.notifier.enqueue(Channel.LIFECYCLE, order.id, message)
    return order


async def amend_order(ctx: AppContext, order_id: int, fields: OrderFields) -> None:
    """Replace all descriptive fields. Only while the order is New."""
    message = messages.order_changed(fields)
    async with _transaction(ctx, "amend") as tx:
        _, current = await _lock_order(tx, order_id)
        check_pending(current.status)
        await tx.orders.replace_fields(order_id, fields)
    _committed(ctx, "amend", order_id)
    ctx.notifier.enqueue(Channel.LIFECYCLE, order_id, message)


async def cancel_order(ctx: AppContext, order_id: int, force: bool = False) -> None:
    """
    Remove the order. Without force the order must still be New.
    The status history is removed with it in both cases.
    """
    async with _transaction(ctx, "cancel") as tx:
        order, current = await _lock_order(tx, order_id)
        if not force:
            check_pending(current.status)
        message = messages.order_cancelled(order)
        await tx.ledger.delete_all(order_id)
        await tx.orders.delete(order_id)
    _committed(ctx, "cancel", order_id)
    ctx.notifier.enqueue(Channel.LIFECYCLE, order_id, message)


async def advance_order(
    ctx: AppContext,
    order_id: int,
    target: Status,
    ref_number: int | None = None,
) -> None:
    """
    Move the order to target, appending a status event.
    If target is already the current status, ref_number is required and is the only change
    (no event, no status notification).
    """
    async with _transaction(ctx, "advance") as tx:
        order, current = await _lock_order(tx, order_id)
        same_status = check_advance(current.status, target, ref_number)
        message = messages.status_update(order, target)
        if not same_status:
            await tx.ledger.append(order_id, target, _now())
        if ref_number is not None:
            await tx.orders.set_ref_number(order_id, ref_number)
    _committed(ctx, "advance", order_id)
    if not same_status:
        ctx.notifier.enqueue(Channel.STATUS, order_id, message)


async def list_orders(ctx: AppContext) -> OrderListing:
    async with _transaction(ctx, "list", snapshot=True) as tx:
        orders = await tx.orders.list_all()
        statuses = await tx.ledger.list_all()
    return OrderListing(orders=orders, statuses=statuses)


async def reset_orders(ctx: AppContext) -> None:
    """Drop and recreate both tables."""
    try:
        await ctx.storage.reset()
    except StorageError as e:
        order_storage_failures_total.labels(operation="reset").inc()
        logger.error("Failed to reset tables: %s", e)
        raise
    logger.warning("Order tables reset")
    ctx.backup.trigger()
