"""Credit order settlement ("mark as paid")."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from decimal import Decimal

import structlog

from order_review.errors import ValidationError
from order_review.ledger import AccountLedger
from order_review.models import ZERO, Account, Order, Payment
from order_review.store.base import OrderStore

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SettlementResult:
    order: Order
    account: Account
    amount: Decimal
    paid_at: datetime

    @property
    def payment(self) -> Payment:
        return self.order.payment

    @property
    def message(self) -> str:
        return "Order marked as paid successfully. Credit limit has been restored."


class SettlementService:
    """Marks credit orders paid and restores the account's available credit.

    The payment write and the ledger credit are one store request; the store
    applies both or neither. This service only mirrors the confirmed credit
    into the local ledger.
    """

    def __init__(
        self,
        store: OrderStore,
        ledger: AccountLedger,
        clock: Callable[[], datetime] | None = None,
    ):
        self._store = store
        self._ledger = ledger
        self._clock = clock or (lambda: datetime.now(UTC))
        self._logger = logger.bind(component="settlement")

    @staticmethod
    def _check_settleable(order: Order) -> None:
        if not order.payment.is_credit:
            raise ValidationError(
                "Only credit orders can be marked as paid",
                details={"order_id": order.id, "method": order.payment.method},
            )
        if order.payment.is_paid:
            raise ValidationError(
                "Order is already marked as paid",
                details={"order_id": order.id},
            )

    async def mark_as_paid(self, order_id: str) -> SettlementResult:
        """Settle a credit order.

        The paid check runs against a freshly fetched order right before the
        write, never a cached copy, so two calls cannot both credit the
        ledger. The account is resolved before anything is written.

        Raises:
            ValidationError: Non-credit order, already paid, or ambiguous account.
            NotFoundError: Order or account could not be resolved.
            InvariantViolation: Strict ledger mode refused the credit.
            NetworkError: The store could not be reached or failed.
        """
        order = await self._store.get_order(order_id)
        self._check_settleable(order)
        if self._ledger.is_settled(order.id):
            raise ValidationError(
                "Order is already marked as paid", details={"order_id": order.id}
            )

        account = await self._store.resolve_account(order)
        amount = order.pricing.total
        if amount < ZERO:
            raise ValidationError(
                "Order total cannot be negative",
                details={"order_id": order.id, "amount": str(amount)},
            )
        self._ledger.ensure_can_credit(account, amount)

        paid_at = self._clock()
        payment = order.payment.settled(paid_at)
        updated = await self._store.patch_order(order.id, {"payment": payment.to_dict()})
        if updated is None:
            updated = replace(order, payment=payment)

        self._ledger.upsert(account)
        credited = self._ledger.credit(account.id, amount, order.id)

        self._logger.info(
            "order_settled",
            order_id=order.id,
            account_id=account.id,
            amount=str(amount),
            available=str(credited.available_balance),
        )
        return SettlementResult(order=updated, account=credited, amount=amount, paid_at=paid_at)
