"""
Prometheus metrics: order operations (API), notifications (dispatcher), backups (trigger + worker).
"""
from prometheus_client import Counter, Gauge, generate_latest

# API: committed order operations
order_operations_total = Counter(
    "order_operations_total",
    "Total order operations committed",
    ["operation"],
)
order_operations_rejected_total = Counter(
    "order_operations_rejected_total",
    "Total order operations rejected before any write (not found / lifecycle conflict)",
    ["operation", "reason"],
)
order_storage_failures_total = Counter(
    "order_storage_failures_total",
    "Total order operations rolled back because the transaction could not commit",
    ["operation"],
)

# Notification dispatcher
notifications_enqueued_total = Counter(
    "notifications_enqueued_total",
    "Total notifications queued for delivery",
    ["channel"],
)
notifications_dropped_total = Counter(
    "notifications_dropped_total",
    "Total notifications dropped because the queue was full",
    ["channel"],
)
notifications_delivered_total = Counter(
    "notifications_delivered_total",
    "Total notifications accepted by the webhook",
    ["channel"],
)
notifications_failed_total = Counter(
    "notifications_failed_total",
    "Total notifications that failed delivery (not retried)",
    ["channel"],
)
notification_queue_depth = Gauge(
    "notification_queue_depth",
    "Notifications waiting in the in-process queue",
)

# Backups
backups_requested_total = Counter(
    "backups_requested_total",
    "Total backup requests pushed to the backup queue (after debounce)",
)
backups_written_total = Counter(
    "backups_written_total",
    "Total snapshots written by the backup worker",
)
backups_failed_total = Counter(
    "backups_failed_total",
    "Total backup requests or snapshots that failed",
)


def get_metrics_content_type():
    return "text/plain; charset=utf-8; version=0.0.4"


def get_metrics_bytes():
    return generate_latest()
