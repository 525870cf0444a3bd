import asyncio
from decimal import Decimal

import pytest

from _helper import sample_fields
from purchasing.engine import advance_order, amend_order, cancel_order, create_order, list_orders
from purchasing.errors import ConflictError, OrderNotFoundError, StorageError
from purchasing.memory_store import MemoryStatusLedger
from purchasing.notifications import Channel
from purchasing.order_state import Status


def _history(listing, order_id):
    return [(e.instance_id, e.status) for e in listing.statuses if e.order_id == order_id]


def test_create_writes_order_and_new_status(ctx):
    async def scenario():
        order = await create_order(ctx, sample_fields())
        return order, await list_orders(ctx)

    order, listing = asyncio.run(scenario())
    assert order.id == 1
    assert order.ref_number is None
    assert [o.id for o in listing.orders] == [1]
    assert _history(listing, 1) == [(1, Status.NEW)]
    channel, order_id, message = ctx.notifier.sent[0]
    assert (channel, order_id) == (Channel.LIFECYCLE, 1)
    assert "**Subtotal:** $25.00" in message
    assert ctx.backup.triggered == 1


def test_create_storage_failure_persists_nothing(ctx, monkeypatch):
    async def failing_append(self, order_id, status, date):
        raise StorageError("disk full")

    monkeypatch.setattr(MemoryStatusLedger, "append", failing_append)

    async def scenario():
        with pytest.raises(StorageError):
            await create_order(ctx, sample_fields())
        return await list_orders(ctx)

    listing = asyncio.run(scenario())
    assert listing.orders == []
    assert listing.statuses == []
    assert ctx.notifier.sent == []
    assert ctx.backup.triggered == 0


def test_amend_while_new_replaces_fields(ctx):
    async def scenario():
        order = await create_order(ctx, sample_fields())
        await amend_order(ctx, order.id, sample_fields(name="Widget Pro", count=2))
        return await list_orders(ctx)

    listing = asyncio.run(scenario())
    assert listing.orders[0].name == "Widget Pro"
    assert listing.orders[0].count == 2
    assert _history(listing, 1) == [(1, Status.NEW)]
    channel, _, message = ctx.notifier.sent[-1]
    assert channel == Channel.LIFECYCLE
    assert message.startswith("***Order Changed***")


def test_amend_after_processing_is_rejected(ctx):
    async def scenario():
        order = await create_order(ctx, sample_fields())
        await advance_order(ctx, order.id, Status.APPROVED)
        with pytest.raises(ConflictError, match="already been processed"):
            await amend_order(ctx, order.id, sample_fields(name="Changed"))
        return await list_orders(ctx)

    listing = asyncio.run(scenario())
    assert listing.orders[0].name == "Widget"


def test_amend_unknown_order(ctx):
    with pytest.raises(OrderNotFoundError):
        asyncio.run(amend_order(ctx, 404, sample_fields()))


def test_advance_appends_next_instance(ctx):
    async def scenario():
        order = await create_order(ctx, sample_fields())
        await advance_order(ctx, order.id, Status.ORDERED)
        return await list_orders(ctx)

    listing = asyncio.run(scenario())
    assert _history(listing, 1) == [(1, Status.NEW), (2, Status.ORDERED)]
    channel, order_id, message = ctx.notifier.sent[-1]
    assert (channel, order_id) == (Channel.STATUS, 1)
    assert "**Status:** Ordered" in message


def test_advance_to_same_status_without_ref_number(ctx):
    async def scenario():
        order = await create_order(ctx, sample_fields())
        await advance_order(ctx, order.id, Status.ORDERED)
        sent = len(ctx.notifier.sent)
        with pytest.raises(ConflictError, match="already in that state"):
            await advance_order(ctx, order.id, Status.ORDERED)
        return sent, await list_orders(ctx)

    sent, listing = asyncio.run(scenario())
    assert len(_history(listing, 1)) == 2
    assert len(ctx.notifier.sent) == sent


def test_same_status_amend_sets_ref_number_only(ctx):
    async def scenario():
        order = await create_order(ctx, sample_fields())
        await advance_order(ctx, order.id, Status.ORDERED)
        sent = len(ctx.notifier.sent)
        await advance_order(ctx, order.id, Status.ORDERED, ref_number=555)
        return sent, await list_orders(ctx)

    sent, listing = asyncio.run(scenario())
    assert listing.orders[0].ref_number == 555
    assert _history(listing, 1) == [(1, Status.NEW), (2, Status.ORDERED)]
    assert len(ctx.notifier.sent) == sent
    assert ctx.backup.triggered == 3


def test_advance_keeps_ref_number_when_absent(ctx):
    async def scenario():
        order = await create_order(ctx, sample_fields())
        await advance_order(ctx, order.id, Status.ORDERED, ref_number=9)
        await advance_order(ctx, order.id, Status.SHIPPED)
        return await list_orders(ctx)

    listing = asyncio.run(scenario())
    assert listing.orders[0].ref_number == 9


def test_in_storage_is_terminal(ctx):
    async def scenario():
        order = await create_order(ctx, sample_fields(store_in=""))
        await advance_order(ctx, order.id, Status.ORDERED)
        await advance_order(ctx, order.id, Status.IN_STORAGE)
        message = ctx.notifier.sent[-1][2]
        for target, ref in ((Status.NEW, None), (Status.IN_STORAGE, 1), (Status.ORDERED, 2)):
            with pytest.raises(ConflictError, match="already in storage"):
                await advance_order(ctx, order.id, target, ref)
        return message, await list_orders(ctx)

    message, listing = asyncio.run(scenario())
    assert message == "**Order Complete!**\n**Name:** Widget\n**Team:** Eng"
    assert len(_history(listing, 1)) == 3
    assert listing.orders[0].ref_number is None


def test_advance_unknown_order(ctx):
    with pytest.raises(OrderNotFoundError):
        asyncio.run(advance_order(ctx, 7, Status.ORDERED))


def test_cancel_new_order(ctx):
    async def scenario():
        order = await create_order(ctx, sample_fields())
        await cancel_order(ctx, order.id)
        return await list_orders(ctx)

    listing = asyncio.run(scenario())
    assert listing.orders == []
    assert listing.statuses == []
    assert ctx.notifier.sent[-1][2].startswith("***Order Cancelled***")


def test_cancel_processed_order_needs_force(ctx):
    async def scenario():
        await create_order(ctx, sample_fields())
        second = await create_order(ctx, sample_fields(name="Gadget"))
        await advance_order(ctx, second.id, Status.ORDERED)
        with pytest.raises(ConflictError, match="already been processed"):
            await cancel_order(ctx, second.id)
        before = await list_orders(ctx)
        await cancel_order(ctx, second.id, force=True)
        return before, await list_orders(ctx)

    before, after = asyncio.run(scenario())
    assert [o.id for o in before.orders] == [1, 2]
    assert _history(before, 2) == [(1, Status.NEW), (2, Status.ORDERED)]
    assert [o.id for o in after.orders] == [1]
    assert _history(after, 2) == []
    assert _history(after, 1) == [(1, Status.NEW)]


def test_cancel_unknown_order(ctx):
    with pytest.raises(OrderNotFoundError):
        asyncio.run(cancel_order(ctx, 3, force=True))


def test_concurrent_advances_on_one_order_are_serialized(ctx, monkeypatch):
    real_current = MemoryStatusLedger.current

    async def slow_current(self, order_id):
        # hand control to the other request between read and write
        await asyncio.sleep(0)
        return await real_current(self, order_id)

    monkeypatch.setattr(MemoryStatusLedger, "current", slow_current)

    async def scenario():
        order = await create_order(ctx, sample_fields())
        results = await asyncio.gather(
            advance_order(ctx, order.id, Status.ORDERED),
            advance_order(ctx, order.id, Status.ORDERED),
            return_exceptions=True,
        )
        return results, await list_orders(ctx)

    results, listing = asyncio.run(scenario())
    assert sum(r is None for r in results) == 1
    assert sum(isinstance(r, ConflictError) for r in results) == 1
    assert _history(listing, 1) == [(1, Status.NEW), (2, Status.ORDERED)]


def test_concurrent_cancel_and_advance(ctx):
    async def scenario():
        order = await create_order(ctx, sample_fields())
        results = await asyncio.gather(
            cancel_order(ctx, order.id),
            advance_order(ctx, order.id, Status.APPROVED),
            return_exceptions=True,
        )
        return results, await list_orders(ctx)

    results, listing = asyncio.run(scenario())
    assert results[0] is None
    assert isinstance(results[1], OrderNotFoundError)
    assert listing.orders == []
    assert listing.statuses == []


def test_create_with_huge_unit_cost_notifies_exact_subtotal(ctx):
    async def scenario():
        order = await create_order(ctx, sample_fields(count=10, unit_cost=Decimal("1E+27")))
        return order, await list_orders(ctx)

    order, listing = asyncio.run(scenario())
    assert [o.id for o in listing.orders] == [order.id]
    assert _history(listing, order.id) == [(1, Status.NEW)]
    assert len(ctx.notifier.sent) == 1
    _, _, message = ctx.notifier.sent[0]
    assert "**Subtotal:** $1" + "0" * 28 + ".00" in message
