"""Review status transitions.

Accountants may move an order from any review status to any other, so they
can correct mistakes. Stricter workflows are expressed as a
``TransitionPolicy`` rather than by changing the state machine.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from enum import Enum

import structlog

from order_review.errors import ValidationError
from order_review.models import Order, ReviewStatus
from order_review.store.base import OrderStore

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class TransitionPolicy:
    """Which review transitions are allowed.

    ``allowed`` maps a source status to its permitted targets; a source
    missing from the map may move anywhere. ``terminal`` statuses accept no
    further transitions. The default instance allows everything.
    """

    allowed: Mapping[ReviewStatus, frozenset[ReviewStatus]] = field(default_factory=dict)
    terminal: frozenset[ReviewStatus] = frozenset()

    @classmethod
    def permissive(cls) -> TransitionPolicy:
        return cls()

    @classmethod
    def from_rules(
        cls,
        allowed: Mapping[str, Iterable[str]] | None = None,
        terminal: Iterable[str] = (),
    ) -> TransitionPolicy:
        """Build a policy from status names, e.g. as read from a config file."""
        return cls(
            allowed={
                ReviewStatus.parse(source): frozenset(ReviewStatus.parse(t) for t in targets)
                for source, targets in (allowed or {}).items()
            },
            terminal=frozenset(ReviewStatus.parse(s) for s in terminal),
        )

    def permits(self, source: ReviewStatus, target: ReviewStatus) -> bool:
        if source in self.terminal and source != target:
            return False
        targets = self.allowed.get(source)
        return targets is None or target in targets or target == source

    def check(self, source: ReviewStatus, target: ReviewStatus) -> None:
        if not self.permits(source, target):
            raise ValidationError(
                f"Transition from {source.value} to {target.value} is not allowed",
                details={"from": source.value, "to": target.value},
            )


class TransitionCode(str, Enum):
    """Distinguishes approvals so callers can explain the balance situation."""

    UPDATED = "updated"
    APPROVED = "approved"


@dataclass(frozen=True)
class TransitionResult:
    order: Order
    previous: ReviewStatus
    code: TransitionCode

    @property
    def message(self) -> str:
        if self.code is TransitionCode.APPROVED:
            return (
                "Order approved successfully. The account balance was already "
                "updated when the order was placed."
            )
        return "Order status updated successfully"


class ReviewStateMachine:
    """Validates and persists ``accountantReviewStatus`` changes.

    Approval never touches the ledger: credit orders were debited when they
    were created.
    """

    def __init__(self, store: OrderStore, policy: TransitionPolicy | None = None):
        self._store = store
        self._policy = policy or TransitionPolicy.permissive()
        self._logger = logger.bind(component="review_state_machine")

    @property
    def policy(self) -> TransitionPolicy:
        return self._policy

    async def transition(self, order_id: str, target: ReviewStatus | str) -> TransitionResult:
        """Set an order's review status with a single partial write.

        Raises:
            ValidationError: Unknown target or a transition the policy refuses.
            NotFoundError: The order does not exist.
            NetworkError: The store could not be reached or failed.
        """
        status = ReviewStatus.parse(target)
        current = await self._store.get_order(order_id)
        previous = current.status_or_default
        self._policy.check(previous, status)

        updated = await self._store.patch_order(
            order_id, {"accountantReviewStatus": status.value}
        )
        if updated is None:
            updated = replace(current, review_status=status)
        code = TransitionCode.APPROVED if status is ReviewStatus.APPROVED else TransitionCode.UPDATED
        self._logger.info(
            "review_status_changed",
            order_id=order_id,
            previous=previous.value,
            status=status.value,
        )
        return TransitionResult(order=updated, previous=previous, code=code)
