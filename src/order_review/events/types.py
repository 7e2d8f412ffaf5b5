"""Event types emitted by a review session.

Events are delivered to in-process hooks only, for example to refresh an
order detail view after a settlement.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4


class EventType(str, Enum):
    """Types of events emitted by the review engine."""

    SNAPSHOT_REFRESHED = "snapshot.refreshed"
    ORDER_STATUS_CHANGED = "order.status_changed"
    ORDER_SETTLED = "order.settled"
    INVOICE_ATTACHED = "order.invoice_attached"
    INVOICE_REMOVED = "order.invoice_removed"
    OPERATION_FAILED = "operation.failed"


@dataclass
class ReviewEvent:
    """Base event structure."""

    event_type: EventType
    order_id: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_id: UUID = field(default_factory=uuid4)
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to a JSON-friendly dictionary."""
        return {
            "id": str(self.event_id),
            "type": self.event_type.value,
            "order_id": self.order_id,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
        }


def snapshot_refreshed(order_count: int, working_set: int) -> ReviewEvent:
    return ReviewEvent(
        event_type=EventType.SNAPSHOT_REFRESHED,
        data={"orders": order_count, "working_set": working_set},
    )


def status_changed(order_id: str, previous: str, status: str) -> ReviewEvent:
    """Create a review status change event."""
    return ReviewEvent(
        event_type=EventType.ORDER_STATUS_CHANGED,
        order_id=order_id,
        data={"previous": previous, "status": status},
    )


def order_settled(
    order_id: str,
    account_id: str,
    amount: Decimal,
    current_balance: Decimal,
) -> ReviewEvent:
    """Create a settlement event."""
    return ReviewEvent(
        event_type=EventType.ORDER_SETTLED,
        order_id=order_id,
        data={
            "account_id": account_id,
            "amount": str(amount),
            "current_balance": str(current_balance),
        },
    )


def invoice_attached(order_id: str, url: str) -> ReviewEvent:
    return ReviewEvent(
        event_type=EventType.INVOICE_ATTACHED, order_id=order_id, data={"url": url}
    )


def invoice_removed(order_id: str) -> ReviewEvent:
    return ReviewEvent(event_type=EventType.INVOICE_REMOVED, order_id=order_id)


def operation_failed(
    operation: str, message: str, kind: str, order_id: str | None = None
) -> ReviewEvent:
    """Create a failure event."""
    return ReviewEvent(
        event_type=EventType.OPERATION_FAILED,
        order_id=order_id,
        data={"operation": operation, "message": message, "kind": kind},
    )
