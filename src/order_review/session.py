"""Accountant review session.

A session owns one accountant's working state: the latest order snapshot,
the current facet query, the filtered working set and the ledger mirror.
Every operation reports exactly one outcome, success or failure, and a
failed operation leaves that state untouched.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from typing import Any, Literal
from zoneinfo import ZoneInfo

import structlog

from order_review.config import get_settings
from order_review.config.policy_loader import load_transition_policy
from order_review.errors import ReviewError
from order_review.events import (
    EventBus,
    invoice_attached,
    invoice_removed,
    operation_failed,
    order_settled,
    snapshot_refreshed,
    status_changed,
)
from order_review.filters import (
    FacetOptions,
    OrderAggregates,
    ReviewQuery,
    aggregate,
    facet_options,
    filter_orders,
)
from order_review.invoices import InvoiceService
from order_review.ledger import AccountLedger
from order_review.models import Order, ReviewStatus
from order_review.reports import Dashboard, build_dashboard
from order_review.review import ReviewStateMachine, TransitionPolicy
from order_review.settlement import SettlementService
from order_review.store.base import OrderStore

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Outcome:
    """Result of one session operation, shown to the accountant as ``message``."""

    success: bool
    message: str
    payload: Any = None
    error_kind: str | None = None
    status_code: int | None = None

    @classmethod
    def ok(cls, message: str, payload: Any = None) -> Outcome:
        return cls(success=True, message=message, payload=payload)

    @classmethod
    def failed(cls, error: ReviewError) -> Outcome:
        return cls(
            success=False,
            message=error.message,
            error_kind=error.kind,
            status_code=error.status_code,
        )


def _zone(name: str | None) -> tzinfo | None:
    return ZoneInfo(name) if name else None


class ReviewSession:
    """Single-accountant working state over a remote Order Store."""

    def __init__(
        self,
        store: OrderStore,
        *,
        ledger: AccountLedger | None = None,
        policy: TransitionPolicy | None = None,
        query: ReviewQuery | None = None,
        tz: tzinfo | None = None,
        tie_break: Literal["first", "name"] | None = None,
        events: EventBus | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        settings = get_settings()
        self._store = store
        self._ledger = ledger if ledger is not None else AccountLedger()
        if policy is None:
            policy = load_transition_policy(settings.review_policy_path)
        self._machine = ReviewStateMachine(store, policy)
        self._settlement = SettlementService(store, self._ledger, clock)
        self._invoices = InvoiceService(store)
        self._query = query or ReviewQuery()
        self._tz = tz if tz is not None else _zone(settings.review_timezone)
        self._tie_break = tie_break or settings.best_account_tie_break
        self._events = events if events is not None else EventBus()

        self._snapshot: list[Order] = []
        self._working_set: list[Order] = []
        self._logger = logger.bind(component="review_session")

    # === State ===

    @property
    def query(self) -> ReviewQuery:
        return self._query

    @property
    def snapshot(self) -> list[Order]:
        return list(self._snapshot)

    @property
    def working_set(self) -> list[Order]:
        return list(self._working_set)

    @property
    def ledger(self) -> AccountLedger:
        return self._ledger

    @property
    def events(self) -> EventBus:
        return self._events

    def find(self, order_id: str) -> Order | None:
        for order in self._snapshot:
            if order.id == order_id:
                return order
        return None

    async def refresh(self) -> list[Order]:
        """Fetch orders and accounts, then re-run the current query.

        Raises the store's error unchanged; on failure the previous snapshot
        is kept.
        """
        orders = await self._store.list_orders()
        accounts = await self._store.list_accounts()

        self._snapshot = orders
        self._ledger.load(accounts)
        self._ledger.record_settled(
            order.id for order in orders if order.payment.is_credit and order.payment.is_paid
        )
        self._working_set = filter_orders(orders, self._query, self._tz)

        self._events.publish(snapshot_refreshed(len(orders), len(self._working_set)))
        self._logger.debug(
            "snapshot_refreshed", orders=len(orders), working_set=len(self._working_set)
        )
        return self.working_set

    def apply_query(self, query: ReviewQuery) -> list[Order]:
        """Replace the facet selection and re-filter the current snapshot."""
        self._query = query
        self._working_set = filter_orders(self._snapshot, query, self._tz)
        return self.working_set

    def summary(self) -> OrderAggregates:
        return aggregate(self._working_set, self._ledger.accounts, self._tie_break)

    def options(self, users: Iterable[dict[str, Any]] = ()) -> FacetOptions:
        return facet_options(self._snapshot, self._ledger.accounts, users)

    def dashboard(self, months: int = 6, today: date | None = None) -> Dashboard:
        """Dashboard statistics over the whole snapshot, ignoring the facet query."""
        return build_dashboard(self._snapshot, months=months, today=today, tz=self._tz)

    # === Operations ===

    def _fail(self, operation: str, error: ReviewError, order_id: str | None) -> Outcome:
        self._logger.warning(
            "operation_failed",
            operation=operation,
            order_id=order_id,
            kind=error.kind,
            error=error.message,
        )
        self._events.publish(operation_failed(operation, error.message, error.kind, order_id))
        return Outcome.failed(error)

    async def _refresh_after_write(self) -> None:
        """Re-sync after a confirmed write.

        The write already succeeded, so a failed re-sync is logged and the
        stale working set is kept until the next refresh.
        """
        try:
            await self.refresh()
        except ReviewError as e:
            self._logger.warning("snapshot_refresh_failed", kind=e.kind, error=e.message)

    async def transition(self, order_id: str, target: ReviewStatus | str) -> Outcome:
        try:
            result = await self._machine.transition(order_id, target)
        except ReviewError as e:
            return self._fail("transition", e, order_id)

        self._events.publish(
            status_changed(order_id, result.previous.value, result.order.status_or_default.value)
        )
        await self._refresh_after_write()
        return Outcome.ok(result.message, result)

    async def mark_as_paid(self, order_id: str) -> Outcome:
        try:
            result = await self._settlement.mark_as_paid(order_id)
        except ReviewError as e:
            return self._fail("mark_as_paid", e, order_id)

        self._events.publish(
            order_settled(
                order_id, result.account.id, result.amount, result.account.current_balance
            )
        )
        await self._refresh_after_write()
        return Outcome.ok(result.message, result)

    async def attach_invoice(self, order_id: str, url: str, public_id: str = "") -> Outcome:
        try:
            order = await self._invoices.attach(order_id, url, public_id)
        except ReviewError as e:
            return self._fail("attach_invoice", e, order_id)

        self._events.publish(invoice_attached(order_id, url))
        await self._refresh_after_write()
        return Outcome.ok("PDF uploaded and attached to order successfully!", order)

    async def remove_invoice(self, order_id: str) -> Outcome:
        try:
            order = await self._invoices.remove(order_id)
        except ReviewError as e:
            return self._fail("remove_invoice", e, order_id)

        self._events.publish(invoice_removed(order_id))
        await self._refresh_after_write()
        return Outcome.ok("PDF removed successfully", order)
