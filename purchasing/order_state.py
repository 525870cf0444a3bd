"""
Order lifecycle state machine. Any non-terminal status may move to any other status;
InStorage is terminal. Moving to the current status is only legal as a ref number amend.
"""
import re
from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field

from purchasing.errors import ConflictError


class Status(str, Enum):
    NEW = "New"
    APPROVED = "Approved"
    ORDERED = "Ordered"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    IN_STORAGE = "InStorage"

    @property
    def label(self) -> str:
        """Display text, e.g. InStorage -> In Storage."""
        return re.sub(r"(?<=[a-z])(?=[A-Z])", " ", self.value)


class Team(str, Enum):
    ENG = "Eng"
    SOFTWARE = "Software"
    MECHANICAL = "Mechanical"
    ELECTRICAL = "Electrical"
    BUSINESS = "Business"
    MEDIA = "Media"


INITIAL_STATUS = Status.NEW
TERMINAL_STATUS = Status.IN_STORAGE


class OrderFields(BaseModel):
    """Descriptive fields of a purchase request. Replaced as a whole on amend."""
    name: str
    count: int = Field(..., ge=0, le=2**31 - 1)  # INT column
    unit_cost: Decimal
    store_in: str = Field(default="", description="Storage location, empty = none")
    team: Team
    reason: str
    vendor: str
    link: str


class Order(OrderFields):
    id: int
    ref_number: int | None = None


class StatusEvent(BaseModel):
    order_id: int
    instance_id: int
    date: datetime
    status: Status


class OrderListing(BaseModel):
    orders: list[Order]
    statuses: list[StatusEvent]


def is_terminal(status: Status) -> bool:
    return status == TERMINAL_STATUS


def check_advance(current: Status, target: Status, ref_number: int | None) -> bool:
    """
    Validate an advance from current to target. Raises ConflictError if not allowed.
    Returns True for a same-status amend (only ref_number changes, no new event).
    """
    if is_terminal(current):
        raise ConflictError("Order is already in storage", current_status=current)
    if current == target:
        if ref_number is None:
            raise ConflictError("Order is already in that state", current_status=current)
        return True
    return False


def check_pending(current: Status) -> None:
    """Amend and plain cancel are only allowed while the order is New."""
    if current != INITIAL_STATUS:
        raise ConflictError("Order has already been processed", current_status=current)
