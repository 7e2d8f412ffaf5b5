"""Credit ledger mirror and account resolution.

The authoritative balances live in the Order Store. ``AccountLedger`` holds
the accountant's snapshot of them, applies the settlement credit once the
store has confirmed a payment, and reports over-limit accounts. Over-limit
is a reportable condition: it is logged and listed, never corrected.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, replace
from decimal import Decimal

import structlog

from order_review.config import get_settings
from order_review.errors import (
    ACCOUNT_NOT_FOUND,
    InvariantViolation,
    NotFoundError,
    ValidationError,
)
from order_review.models import ZERO, Account, Order

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class LedgerIssue:
    """A reportable inconsistency on one account."""

    account_id: str
    account_name: str
    kind: str  # over_limit | negative_balance
    current_balance: Decimal
    credit_limit: Decimal

    def describe(self) -> str:
        if self.kind == "over_limit":
            return (
                f"{self.account_name} is over its credit limit "
                f"({self.current_balance} > {self.credit_limit})"
            )
        return f"{self.account_name} has a negative balance ({self.current_balance})"


def resolve_account(order: Order, accounts: Iterable[Account]) -> Account:
    """Match an order's billed identity to an account record.

    Resolution order: the stable account id carried on the order, then the
    exact company/account name, then company identifier equality. Names are
    a legacy fallback, so two accounts sharing the matched name are refused
    rather than guessed.

    Raises:
        NotFoundError: No account matches.
        ValidationError: The name matches more than one account.
    """
    candidates = list(accounts)
    customer = order.customer

    if customer.account_id:
        for account in candidates:
            if account.id == customer.account_id:
                return account

    for name in (customer.company_name, customer.account_name):
        if not name:
            continue
        matches = [account for account in candidates if account.name == name]
        if len(matches) > 1:
            raise ValidationError(
                f"Account name {name!r} matches {len(matches)} accounts",
                details={"order_id": order.id, "account_ids": [a.id for a in matches]},
            )
        if matches:
            return matches[0]

    if customer.company_id:
        for account in candidates:
            if account.company_id and account.company_id == customer.company_id:
                return account

    raise NotFoundError(
        ACCOUNT_NOT_FOUND,
        status_code=404,
        details={"order_id": order.id, "account_name": customer.display_name},
    )


class AccountLedger:
    """In-memory view of account credit limits and balances."""

    def __init__(self, accounts: Iterable[Account] = (), strict: bool | None = None):
        self._accounts: dict[str, Account] = {}
        self._settled_orders: set[str] = set()
        self._strict = get_settings().strict_ledger if strict is None else strict
        self._logger = logger.bind(component="account_ledger")
        self.load(accounts)

    @property
    def strict(self) -> bool:
        return self._strict

    @property
    def accounts(self) -> list[Account]:
        return list(self._accounts.values())

    def load(self, accounts: Iterable[Account]) -> None:
        """Replace the account snapshot. Settled-order history is kept."""
        self._accounts = {account.id: account for account in accounts}
        for issue in self.check_invariants(raise_strict=False):
            self._logger.warning(
                "ledger_issue",
                account_id=issue.account_id,
                kind=issue.kind,
                balance=str(issue.current_balance),
                limit=str(issue.credit_limit),
            )

    def upsert(self, account: Account) -> None:
        self._accounts[account.id] = account

    def get(self, account_id: str) -> Account:
        try:
            return self._accounts[account_id]
        except KeyError:
            raise NotFoundError(
                ACCOUNT_NOT_FOUND, status_code=404, details={"account_id": account_id}
            ) from None

    def resolve(self, order: Order) -> Account:
        return resolve_account(order, self._accounts.values())

    def available_balance(self, account_id: str) -> Decimal:
        return self.get(account_id).available_balance

    def utilization(self, account_id: str) -> Decimal | None:
        """Share of the credit limit in use, or None for a zero limit."""
        account = self.get(account_id)
        if account.credit_limit == ZERO:
            return None
        return account.current_balance / account.credit_limit

    def over_limit_accounts(self) -> list[Account]:
        return [account for account in self._accounts.values() if account.is_over_limit]

    def check_invariants(self, raise_strict: bool = True) -> list[LedgerIssue]:
        """List over-limit and negative-balance accounts.

        In strict mode the first issue is raised as ``InvariantViolation``
        instead of being returned.
        """
        issues: list[LedgerIssue] = []
        for account in self._accounts.values():
            if account.is_over_limit:
                kind = "over_limit"
            elif account.current_balance < ZERO:
                kind = "negative_balance"
            else:
                continue
            issues.append(
                LedgerIssue(
                    account_id=account.id,
                    account_name=account.name,
                    kind=kind,
                    current_balance=account.current_balance,
                    credit_limit=account.credit_limit,
                )
            )

        if issues and self._strict and raise_strict:
            first = issues[0]
            raise InvariantViolation(
                first.describe(),
                details={"account_id": first.account_id, "kind": first.kind},
            )
        return issues

    # === Settlement bookkeeping ===

    def is_settled(self, order_id: str) -> bool:
        return order_id in self._settled_orders

    def record_settled(self, order_ids: Iterable[str]) -> None:
        """Register orders the store already reports as paid."""
        self._settled_orders.update(order_ids)

    def ensure_can_credit(self, account: Account, amount: Decimal) -> None:
        """Strict-mode guard: refuse a credit that would drive the balance negative."""
        if self._strict and account.current_balance - amount < ZERO:
            raise InvariantViolation(
                f"Settling {amount} would leave {account.name} with a negative balance",
                details={
                    "account_id": account.id,
                    "current_balance": str(account.current_balance),
                    "amount": str(amount),
                },
            )

    def credit(self, account_id: str, amount: Decimal, order_id: str) -> Account:
        """Restore ``amount`` of credit for a settled order, exactly once per order.

        No floor is enforced: a negative result is logged, not corrected.
        """
        if amount < ZERO:
            raise ValidationError(
                "Settlement amount cannot be negative",
                details={"order_id": order_id, "amount": str(amount)},
            )
        if order_id in self._settled_orders:
            raise ValidationError(
                "Order has already been settled", details={"order_id": order_id}
            )

        account = self.get(account_id)
        updated = replace(account, current_balance=account.current_balance - amount)
        self._accounts[account_id] = updated
        self._settled_orders.add(order_id)

        self._logger.info(
            "ledger_credited",
            account_id=account_id,
            order_id=order_id,
            amount=str(amount),
            balance=str(updated.current_balance),
        )
        if updated.current_balance < ZERO:
            self._logger.warning(
                "negative_balance_after_settlement",
                account_id=account_id,
                balance=str(updated.current_balance),
            )
        return updated
