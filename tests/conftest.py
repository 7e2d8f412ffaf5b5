"""Pytest configuration and fixtures."""

import copy
import os
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

import pytest

# Set test environment variables before importing settings
os.environ.setdefault("ORDER_STORE_URL", "http://store.test")
os.environ.setdefault("ORDER_STORE_TOKEN", "test-token")
os.environ.setdefault("REVIEW_TIMEZONE", "Asia/Bahrain")

from order_review.config import get_settings  # noqa: E402
from order_review.errors import NotFoundError, ReviewError  # noqa: E402
from order_review.ledger import resolve_account  # noqa: E402
from order_review.models import Account, Order, ReviewStatus, to_decimal  # noqa: E402


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def make_order(
    order_id: str,
    *,
    review_status: str | None = "PENDING_REVIEW",
    method: str | None = "credit",
    payment_status: str = "pending",
    account: str = "Acme",
    total: Any = 100,
    created_at: str = "2025-03-10T09:30:00",
    salesman: Any = None,
    items: list[dict[str, Any]] | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """Build an order document shaped like the store's JSON."""
    payment: dict[str, Any] = {"status": payment_status}
    if method is not None:
        payment["method"] = method
    doc: dict[str, Any] = {
        "_id": order_id,
        "orderNumber": f"ORD-{order_id}",
        "status": "pending",
        "payment": payment,
        "pricing": {"subtotal": total, "deliveryCost": 0, "totalVat": 0, "total": total},
        "customer": {"companyName": account},
        "createdAt": created_at,
        "items": items or [],
    }
    if review_status is not None:
        doc["accountantReviewStatus"] = review_status
    if salesman is not None:
        doc["createdBy"] = salesman
    doc.update(extra)
    return doc


def make_account(
    account_id: str,
    name: str,
    credit_limit: Any = 1000,
    current_balance: Any = 0,
    **extra: Any,
) -> dict[str, Any]:
    doc = {
        "_id": account_id,
        "name": name,
        "creditLimit": credit_limit,
        "currentBalance": current_balance,
    }
    doc.update(extra)
    return doc


class FakeOrderStore:
    """In-memory Order Store.

    Like the real store, a write that marks a credit order paid also credits
    the billed account in the same request.
    """

    def __init__(
        self,
        orders: list[dict[str, Any]] = (),
        accounts: list[dict[str, Any]] = (),
    ):
        self.orders = {str(doc["_id"]): copy.deepcopy(doc) for doc in orders}
        self.accounts = {str(doc["_id"]): copy.deepcopy(doc) for doc in accounts}
        self.patch_calls: list[tuple[str, dict[str, Any]]] = []
        self.get_calls: list[str] = []
        self.fail_patch: ReviewError | None = None
        self.fail_list: ReviewError | None = None
        self.echo_document = True
        self.users: dict[str, list[dict[str, Any]]] = {}

    async def list_orders(self, status_filter: ReviewStatus | None = None) -> list[Order]:
        if self.fail_list:
            raise self.fail_list
        docs = list(self.orders.values())
        if status_filter is not None:
            docs = [d for d in docs if d.get("accountantReviewStatus") == status_filter.value]
        return [Order.from_dict(copy.deepcopy(d)) for d in docs]

    async def get_order(self, order_id: str) -> Order:
        self.get_calls.append(order_id)
        doc = self.orders.get(order_id)
        if doc is None:
            raise NotFoundError("Order not found", status_code=404)
        return Order.from_dict(copy.deepcopy(doc))

    async def patch_order(self, order_id: str, fields: dict[str, Any]) -> Order | None:
        self.patch_calls.append((order_id, copy.deepcopy(fields)))
        if self.fail_patch:
            raise self.fail_patch
        doc = self.orders.get(order_id)
        if doc is None:
            raise NotFoundError("Order not found", status_code=404)

        was_paid = (doc.get("payment") or {}).get("status") == "paid"
        doc.update(copy.deepcopy(fields))
        doc["updatedAt"] = datetime.now(UTC).isoformat()

        payment = doc.get("payment") or {}
        if not was_paid and payment.get("status") == "paid" and payment.get("method") == "credit":
            account = resolve_account(Order.from_dict(doc), await self.list_accounts())
            record = self.accounts[account.id]
            record["currentBalance"] = str(
                to_decimal(record["currentBalance"]) - to_decimal(doc["pricing"]["total"])
            )
        if not self.echo_document:
            return None
        return Order.from_dict(copy.deepcopy(doc))

    async def list_accounts(self) -> list[Account]:
        if self.fail_list:
            raise self.fail_list
        return [Account.from_dict(copy.deepcopy(d)) for d in self.accounts.values()]

    async def resolve_account(self, order: Order) -> Account:
        return resolve_account(order, await self.list_accounts())

    async def list_company_users(self, company_id: str) -> list[dict[str, Any]]:
        return copy.deepcopy(self.users.get(company_id, []))

    def balance(self, account_id: str) -> Decimal:
        return to_decimal(self.accounts[account_id]["currentBalance"])


@pytest.fixture
def settlement_store() -> FakeOrderStore:
    """The credit scenario: limit 1000, balance 800, pending credit order of 500."""
    return FakeOrderStore(
        orders=[make_order("o-1", account="Acme", total=500)],
        accounts=[make_account("a-1", "Acme", credit_limit=1000, current_balance=800)],
    )


@pytest.fixture
def fixed_clock():
    moment = datetime(2025, 3, 15, 12, 0, tzinfo=UTC)
    return lambda: moment


@pytest.fixture
def mock_order_response() -> dict[str, Any]:
    """Order document as returned by the store API, with extra fields."""
    return {
        "success": True,
        "data": {
            "_id": "665f1c2e9b1d4a0012ab3401",
            "orderNumber": "ORD-1001",
            "status": "pending",
            "accountantReviewStatus": "UNDER_REVIEW",
            "payment": {"method": "credit", "status": "pending", "reference": "R-9"},
            "pricing": {"subtotal": 450, "deliveryCost": 5, "vat": 45, "total": 500},
            "customer": {
                "companyName": "Acme Trading",
                "company": {"_id": "c-77", "name": "Acme Trading WLL"},
                "employee": "Ali",
            },
            "createdBy": {"_id": "u-5", "name": "Sara", "email": "sara@example.com"},
            "createdAt": "2025-03-10T06:30:00.000Z",
            "items": [
                {
                    "product": {"_id": "p-1", "name": "Gloves", "pricing": {"cost": 2}},
                    "quantity": 10,
                    "unitPrice": 4.5,
                }
            ],
            "invoicePdf": {"url": "", "public_id": ""},
            "shipping": {"carrier": "DHL"},
        },
    }


@pytest.fixture
def mock_accounts_response() -> dict[str, Any]:
    return {
        "success": True,
        "data": [
            {"_id": "a-1", "name": "Acme Trading", "creditLimit": 1000, "currentBalance": 800},
            {"_id": "a-2", "name": "Gulf Clinic", "creditLimit": 500, "currentBalance": 650},
        ],
    }
