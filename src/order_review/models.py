"""Domain records for orders and credit accounts.

Records are parsed from the Order Store's JSON documents. Only the fields
the review engine relies on are modelled; anything else the store sends is
kept untouched in ``raw`` so unknown fields never cause an error.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

import structlog

from order_review.errors import ValidationError

logger = structlog.get_logger(__name__)

ZERO = Decimal("0")
COST_ESTIMATE_RATIO = Decimal("0.7")


class ReviewStatus(str, Enum):
    """Accountant-facing review state of an order."""

    PENDING_REVIEW = "PENDING_REVIEW"
    UNDER_REVIEW = "UNDER_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ")

    @classmethod
    def parse(cls, value: Any) -> ReviewStatus:
        """Parse a status name, accepting lower case and dashed spellings."""
        if isinstance(value, ReviewStatus):
            return value
        if value is None or not str(value).strip():
            raise ValidationError("Review status is required")
        normalized = str(value).strip().upper().replace("-", "_").replace(" ", "_")
        try:
            return cls(normalized)
        except ValueError:
            allowed = ", ".join(s.value for s in cls)
            raise ValidationError(
                f"Invalid review status {value!r}; expected one of {allowed}",
                details={"status": value},
            ) from None


class PaymentMethod(str, Enum):
    """Stored payment method codes."""

    CASH = "cash"
    VISA = "visa"
    BENEFIT = "benefit"
    FLOOS = "floos"
    CREDIT = "credit"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


# Display label -> stored code
PAYMENT_METHOD_LABELS: dict[str, PaymentMethod] = {
    "Cash": PaymentMethod.CASH,
    "Visa": PaymentMethod.VISA,
    "BenefitPay": PaymentMethod.BENEFIT,
    "Flooss": PaymentMethod.FLOOS,
    "Credit": PaymentMethod.CREDIT,
}

_CODE_TO_LABEL = {code.value: label for label, code in PAYMENT_METHOD_LABELS.items()}


def payment_method_label(method: str | None) -> str:
    """Return the display label for a stored method code.

    Orders without a method are credit orders. Unmapped legacy codes are
    echoed back upper-cased.
    """
    code = method or PaymentMethod.CREDIT.value
    return _CODE_TO_LABEL.get(code, code.upper())


def to_decimal(value: Any) -> Decimal:
    """Convert a JSON amount to Decimal, treating missing or junk values as zero."""
    if value is None or value == "":
        return ZERO
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return ZERO


def parse_timestamp(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.warning("unparseable_timestamp", value=value)
        return None


def _ref_id(value: Any) -> str | None:
    """Extract an id from a populated sub-document or a bare reference."""
    if value is None or value == "":
        return None
    if isinstance(value, dict):
        inner = value.get("_id") or value.get("id")
        return str(inner) if inner else None
    return str(value)


def _document_id(data: dict[str, Any]) -> str:
    raw_id = data.get("_id") or data.get("id")
    if not raw_id:
        raise ValidationError("Record is missing an id", details={"record": data})
    return str(raw_id)


@dataclass(frozen=True)
class Pricing:
    """Monetary summary of an order, in the single ledger currency."""

    subtotal: Decimal = ZERO
    delivery_cost: Decimal = ZERO
    total_vat: Decimal = ZERO
    total: Decimal = ZERO

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Pricing:
        data = data or {}
        return cls(
            subtotal=to_decimal(data.get("subtotal")),
            delivery_cost=to_decimal(data.get("deliveryCost")),
            total_vat=to_decimal(data.get("totalVat", data.get("vat"))),
            total=to_decimal(data.get("total")),
        )


@dataclass(frozen=True)
class Payment:
    """Payment sub-record; ``extra`` preserves fields the engine does not model."""

    method: str | None = None
    status: str = PaymentStatus.PENDING.value
    paid_at: datetime | None = None
    extra: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Payment:
        data = dict(data or {})
        method = data.pop("method", None)
        status = data.pop("status", None) or PaymentStatus.PENDING.value
        paid_at = parse_timestamp(data.pop("paidAt", None))
        return cls(method=method, status=status, paid_at=paid_at, extra=data)

    @property
    def is_credit(self) -> bool:
        return self.method == PaymentMethod.CREDIT.value

    @property
    def is_paid(self) -> bool:
        return self.status == PaymentStatus.PAID.value

    def settled(self, paid_at: datetime) -> Payment:
        return replace(self, status=PaymentStatus.PAID.value, paid_at=paid_at)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for a store write, keeping unmodelled fields intact."""
        data = dict(self.extra)
        if self.method is not None:
            data["method"] = self.method
        data["status"] = self.status
        if self.paid_at is not None:
            data["paidAt"] = self.paid_at.isoformat()
        return data


@dataclass(frozen=True)
class LineItem:
    """Read-only order line."""

    product_id: str | None
    product_name: str
    quantity: Decimal
    unit_price: Decimal
    vat_rate: Decimal | None = None
    product_cost: Decimal | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LineItem:
        product = data.get("product")
        product_cost: Decimal | None = None
        product_name = str(data.get("name") or "")
        if isinstance(product, dict):
            product_name = product_name or str(product.get("name") or "")
            cost = (product.get("pricing") or {}).get("cost")
            if cost is not None:
                product_cost = to_decimal(cost)
        vat_rate = data.get("vatRate")
        return cls(
            product_id=_ref_id(product),
            product_name=product_name,
            quantity=to_decimal(data.get("quantity")),
            unit_price=to_decimal(data.get("unitPrice")),
            vat_rate=to_decimal(vat_rate) if vat_rate is not None else None,
            product_cost=product_cost,
        )

    @property
    def estimated_cost(self) -> Decimal:
        """Recorded product cost, or 70% of the unit price when none is recorded."""
        if self.product_cost:
            return self.product_cost * self.quantity
        return self.unit_price * COST_ESTIMATE_RATIO * self.quantity


@dataclass(frozen=True)
class CustomerRef:
    """Billed identity of an order.

    ``account_id`` is the stable account reference when the store provides
    one; names and the company id exist for legacy orders.
    """

    account_id: str | None = None
    company_name: str | None = None
    account_name: str | None = None
    company_id: str | None = None
    employee: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> CustomerRef:
        data = data or {}
        return cls(
            account_id=_ref_id(data.get("account") or data.get("accountId")),
            company_name=data.get("companyName") or None,
            account_name=data.get("accountName") or None,
            company_id=_ref_id(data.get("company")),
            employee=data.get("employee") or None,
        )

    @property
    def display_name(self) -> str:
        return self.company_name or self.account_name or ""


@dataclass(frozen=True)
class SalesmanRef:
    user_id: str | None = None
    name: str | None = None

    @classmethod
    def from_value(cls, value: Any) -> SalesmanRef | None:
        if value is None or value == "":
            return None
        if isinstance(value, dict):
            return cls(user_id=_ref_id(value), name=value.get("name") or None)
        return cls(user_id=str(value))


@dataclass(frozen=True)
class InvoiceDocument:
    url: str = ""
    public_id: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> InvoiceDocument | None:
        if not data:
            return None
        return cls(url=data.get("url") or "", public_id=data.get("public_id") or "")

    @property
    def is_attached(self) -> bool:
        return bool(self.url)

    def to_dict(self) -> dict[str, str]:
        return {"url": self.url, "public_id": self.public_id}


@dataclass(frozen=True)
class Order:
    """An order as seen by the accountant."""

    id: str
    review_status: ReviewStatus | None = None
    status: str | None = None
    order_number: str | None = None
    payment: Payment = field(default_factory=Payment)
    pricing: Pricing = field(default_factory=Pricing)
    customer: CustomerRef = field(default_factory=CustomerRef)
    created_by: SalesmanRef | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    items: tuple[LineItem, ...] = ()
    invoice_pdf: InvoiceDocument | None = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Order:
        order_id = _document_id(data)
        review_status: ReviewStatus | None = None
        raw_status = data.get("accountantReviewStatus")
        if raw_status:
            try:
                review_status = ReviewStatus.parse(raw_status)
            except ValidationError:
                logger.warning("unknown_review_status", order_id=order_id, value=raw_status)

        return cls(
            id=order_id,
            review_status=review_status,
            status=data.get("status"),
            order_number=data.get("orderNumber"),
            payment=Payment.from_dict(data.get("payment")),
            pricing=Pricing.from_dict(data.get("pricing")),
            customer=CustomerRef.from_dict(data.get("customer")),
            created_by=SalesmanRef.from_value(data.get("createdBy")),
            created_at=parse_timestamp(data.get("createdAt")),
            updated_at=parse_timestamp(data.get("updatedAt")),
            items=tuple(LineItem.from_dict(item) for item in data.get("items") or []),
            invoice_pdf=InvoiceDocument.from_dict(data.get("invoicePdf")),
            raw=data,
        )

    @property
    def status_or_default(self) -> ReviewStatus:
        return self.review_status or ReviewStatus.PENDING_REVIEW

    @property
    def account_name(self) -> str:
        return self.customer.display_name

    @property
    def salesman_id(self) -> str | None:
        return self.created_by.user_id if self.created_by else None

    @property
    def salesman_name(self) -> str:
        """Salesman display name, falling back to the customer's employee field."""
        if self.created_by and self.created_by.name:
            return self.created_by.name
        return self.customer.employee or "N/A"

    @property
    def is_review_eligible(self) -> bool:
        return self.review_status is not None or self.status == "pending"


@dataclass(frozen=True)
class Account:
    """A customer account on the revolving credit ledger."""

    id: str
    name: str
    credit_limit: Decimal = ZERO
    current_balance: Decimal = ZERO
    company_id: str | None = None
    email: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Account:
        return cls(
            id=_document_id(data),
            name=str(data.get("name") or ""),
            credit_limit=to_decimal(data.get("creditLimit")),
            current_balance=to_decimal(data.get("currentBalance")),
            company_id=_ref_id(data.get("company")),
            email=data.get("email") or None,
            raw=data,
        )

    @property
    def available_balance(self) -> Decimal:
        """Remaining credit; negative when the account is over its limit."""
        return self.credit_limit - self.current_balance

    @property
    def is_over_limit(self) -> bool:
        return self.current_balance > self.credit_limit
