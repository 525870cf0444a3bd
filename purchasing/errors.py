"""
Errors raised by order operations. Validation errors are raised before any write;
StorageError means the transaction was rolled back.
"""


class OrderNotFoundError(Exception):
    """Raised when the referenced order has no row."""
    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__("Order not found")


class ConflictError(Exception):
    """Raised when an operation is not legal in the order's current lifecycle state."""
    def __init__(self, reason: str, current_status=None):
        self.reason = reason
        self.current_status = current_status
        super().__init__(reason)


class StorageError(Exception):
    """Raised when a transaction could not commit. All of its writes are rolled back."""
