from decimal import Decimal

from _helper import sample_fields
from purchasing import messages
from purchasing.order_state import Order, Status, Team


def _order(**overrides) -> Order:
    return Order(id=1, **sample_fields(**overrides).model_dump())


def test_new_order_subtotal_is_exact():
    msg = messages.new_order(sample_fields(count=10, unit_cost=Decimal("2.50")))
    assert msg.startswith("**New Order!**\n")
    assert "**Unit Cost:** $2.50" in msg
    assert "**Subtotal:** $25.00" in msg
    assert "**Team:** Eng" in msg
    assert "**Reason:** Replacement parts" in msg


def test_subtotal_has_no_float_noise():
    fields = sample_fields(count=3, unit_cost=Decimal("0.1"))
    assert messages.subtotal(fields) == Decimal("0.3")
    assert "**Subtotal:** $0.30" in messages.new_order(fields)


def test_money_keeps_extra_precision():
    assert messages.money(Decimal("2.5")) == "2.50"
    assert messages.money(Decimal("25")) == "25.00"
    assert messages.money(Decimal("1.125")) == "1.125"


def test_order_changed_lists_all_fields():
    msg = messages.order_changed(sample_fields(name="Widget Pro", vendor="Globex"))
    assert msg.startswith("***Order Changed***\n")
    assert "**Name:** Widget Pro" in msg
    assert "**Vendor:** Globex" in msg
    assert "**Link:** https://acme.example/widget" in msg


def test_order_cancelled():
    msg = messages.order_cancelled(_order(team=Team.MEDIA))
    assert msg == "***Order Cancelled***\n**Name:** Widget\n**Count:** 10\n**Team:** Media"


def test_status_update():
    msg = messages.status_update(_order(), Status.ORDERED)
    assert msg == "**Order Update!**\n**Name:** Widget\n**Team:** Eng\n**Status:** Ordered"


def test_complete_without_location():
    msg = messages.status_update(_order(store_in=""), Status.IN_STORAGE)
    assert msg == "**Order Complete!**\n**Name:** Widget\n**Team:** Eng"


def test_complete_with_location():
    msg = messages.status_update(_order(store_in="Shelf B"), Status.IN_STORAGE)
    assert msg.endswith("\n**Location:** Shelf B")


def test_large_amounts_are_formatted_exactly():
    assert messages.money(Decimal("1E+27")) == "1" + "0" * 27 + ".00"
    fields = sample_fields(count=10, unit_cost=Decimal("1E+27"))
    assert messages.subtotal(fields) == Decimal("1E+28")
    assert "**Subtotal:** $1" + "0" * 28 + ".00" in messages.new_order(fields)
