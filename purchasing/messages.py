"""
Notification text for order events. Pure functions, no I/O.
"""
from decimal import MAX_EMAX, MAX_PREC, MIN_EMIN, Context, Decimal

from purchasing.order_state import TERMINAL_STATUS, Order, OrderFields, Status

CENTS = Decimal("0.01")
# unbounded precision: padding and multiplication never round or overflow
EXACT = Context(prec=MAX_PREC, Emax=MAX_EMAX, Emin=MIN_EMIN)


def money(value: Decimal) -> str:
    """Exact amount, padded to at least two decimal places (2.5 -> 2.50, 1.125 -> 1.125)."""
    if value.as_tuple().exponent > -2:
        value = value.quantize(CENTS, context=EXACT)
    return f"{value:f}"


def subtotal(fields: OrderFields) -> Decimal:
    return EXACT.multiply(Decimal(fields.count), fields.unit_cost)


def _details(title: str, fields: OrderFields) -> str:
    return (
        f"{title}\n"
        f"**Name:** {fields.name}\n"
        f"**Vendor:** {fields.vendor}\n"
        f"**Link:** {fields.link}\n"
        f"**Count:** {fields.count}\n"
        f"**Unit Cost:** ${money(fields.unit_cost)}\n"
        f"**Subtotal:** ${money(subtotal(fields))}\n"
        f"**Team:** {fields.team.value}\n"
        f"**Reason:** {fields.reason}"
    )


def new_order(fields: OrderFields) -> str:
    return _details("**New Order!**", fields)


def order_changed(fields: OrderFields) -> str:
    return _details("***Order Changed***", fields)


def order_cancelled(order: Order) -> str:
    return (
        "***Order Cancelled***\n"
        f"**Name:** {order.name}\n"
        f"**Count:** {order.count}\n"
        f"**Team:** {order.team.value}"
    )


def status_update(order: Order, status: Status) -> str:
    if status == TERMINAL_STATUS:
        msg = f"**Order Complete!**\n**Name:** {order.name}\n**Team:** {order.team.value}"
        if order.store_in:
            msg += f"\n**Location:** {order.store_in}"
        return msg
    return (
        "**Order Update!**\n"
        f"**Name:** {order.name}\n"
        f"**Team:** {order.team.value}\n"
        f"**Status:** {status.label}"
    )
