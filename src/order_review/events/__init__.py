"""Review session events."""

from order_review.events.bus import EventBus, EventHook
from order_review.events.types import (
    EventType,
    ReviewEvent,
    invoice_attached,
    invoice_removed,
    operation_failed,
    order_settled,
    snapshot_refreshed,
    status_changed,
)

__all__ = [
    "EventBus",
    "EventHook",
    "EventType",
    "ReviewEvent",
    "invoice_attached",
    "invoice_removed",
    "operation_failed",
    "order_settled",
    "snapshot_refreshed",
    "status_changed",
]
