"""Facet filtering and aggregates over an order snapshot.

Everything here is a pure function of its inputs. Each facet is an
independent predicate and facets are combined with AND, so the order in
which they are applied never changes the result.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, time, tzinfo
from decimal import Decimal
from typing import Any, Literal

from order_review.errors import ValidationError
from order_review.models import (
    PAYMENT_METHOD_LABELS,
    ZERO,
    Account,
    Order,
    PaymentMethod,
    ReviewStatus,
    payment_method_label,
)

OrderPredicate = Callable[[Order], bool]

SALESMAN_ID_PREFIX = "_id:"


def to_local(moment: datetime, tz: tzinfo | None = None) -> datetime:
    """Express a timestamp as naive local wall-clock time.

    Naive timestamps are taken to be local already. Aware ones are converted
    to ``tz``, or to the host's zone when ``tz`` is None.
    """
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(tz).replace(tzinfo=None)


# === Date filters ===


@dataclass(frozen=True)
class NoDateFilter:
    def matches(self, moment: datetime | None, tz: tzinfo | None = None) -> bool:
        return True


@dataclass(frozen=True)
class SingleDate:
    """Orders created on one local calendar day."""

    day: date

    def matches(self, moment: datetime | None, tz: tzinfo | None = None) -> bool:
        return moment is not None and to_local(moment, tz).date() == self.day


@dataclass(frozen=True)
class DateRange:
    """Orders created between two local days, both ends inclusive."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValidationError(
                f"Date range start {self.start} is after end {self.end}",
                details={"from": self.start.isoformat(), "to": self.end.isoformat()},
            )

    @property
    def lower(self) -> datetime:
        return datetime.combine(self.start, time.min)

    @property
    def upper(self) -> datetime:
        return datetime.combine(self.end, time.max)

    def matches(self, moment: datetime | None, tz: tzinfo | None = None) -> bool:
        if moment is None:
            return False
        local = to_local(moment, tz)
        return self.lower <= local <= self.upper


@dataclass(frozen=True)
class MonthFilter:
    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValidationError(f"Invalid month {self.month}", details={"month": self.month})

    @classmethod
    def parse(cls, value: str) -> MonthFilter:
        """Parse ``YYYY-MM``."""
        try:
            year, month = value.split("-")
            return cls(year=int(year), month=int(month))
        except ValueError:
            raise ValidationError(
                f"Invalid month {value!r}; expected YYYY-MM", details={"month": value}
            ) from None

    def matches(self, moment: datetime | None, tz: tzinfo | None = None) -> bool:
        if moment is None:
            return False
        local = to_local(moment, tz)
        return (local.year, local.month) == (self.year, self.month)


DateFilter = NoDateFilter | SingleDate | DateRange | MonthFilter


# === Query ===


@dataclass(frozen=True)
class ReviewQuery:
    """The accountant's facet selection. Unset facets match everything."""

    status: ReviewStatus | None = None
    payment_method: str | None = None
    salesman: str | None = None
    account: str | None = None
    date_filter: DateFilter = field(default_factory=NoDateFilter)

    @classmethod
    def build(
        cls,
        status: str | None = None,
        payment_method: str | None = None,
        salesman: str | None = None,
        account: str | None = None,
        on: date | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
        month: str | None = None,
    ) -> ReviewQuery:
        """Build a query from loosely typed inputs such as CLI arguments."""
        chosen = [name for name, value in (
            ("single", on),
            ("range", date_from or date_to),
            ("month", month),
        ) if value]
        if len(chosen) > 1:
            raise ValidationError(
                "Only one date filter may be used at a time", details={"date_filters": chosen}
            )

        date_filter: DateFilter = NoDateFilter()
        if on:
            date_filter = SingleDate(on)
        elif date_from or date_to:
            if not (date_from and date_to):
                raise ValidationError("A date range needs both a start and an end date")
            date_filter = DateRange(date_from, date_to)
        elif month:
            date_filter = MonthFilter.parse(month)

        return cls(
            status=ReviewStatus.parse(status) if status else None,
            payment_method=payment_method or None,
            salesman=salesman or None,
            account=account or None,
            date_filter=date_filter,
        )

    def predicates(self, tz: tzinfo | None = None) -> list[OrderPredicate]:
        preds: list[OrderPredicate] = []
        if self.status is not None:
            preds.append(status_predicate(self.status))
        if self.payment_method:
            preds.append(payment_method_predicate(self.payment_method))
        if self.salesman:
            preds.append(salesman_predicate(self.salesman))
        if self.account:
            preds.append(account_predicate(self.account))
        if not isinstance(self.date_filter, NoDateFilter):
            preds.append(date_predicate(self.date_filter, tz))
        return preds


# === Predicates ===


def status_predicate(status: ReviewStatus | str) -> OrderPredicate:
    target = ReviewStatus.parse(status)
    return lambda order: order.status_or_default is target


def payment_method_predicate(selection: str) -> OrderPredicate:
    """Match a payment method by display label (``BenefitPay``) or stored code.

    A selection that is neither is compared with the order's display label,
    which for legacy codes is the upper-cased code.
    """
    if not selection:
        raise ValidationError("Payment method facet needs a value")
    code: str | None = None
    if selection in PAYMENT_METHOD_LABELS:
        code = PAYMENT_METHOD_LABELS[selection].value
    elif selection in {m.value for m in PaymentMethod}:
        code = selection

    if code is not None:
        wanted = code
        return lambda order: (order.payment.method or PaymentMethod.CREDIT.value) == wanted
    return lambda order: payment_method_label(order.payment.method) == selection


def salesman_predicate(selection: str) -> OrderPredicate:
    """Match by ``_id:<user id>`` when prefixed, otherwise by display name."""
    if not selection:
        raise ValidationError("Salesman facet needs a value")
    if selection.startswith(SALESMAN_ID_PREFIX):
        user_id = selection[len(SALESMAN_ID_PREFIX):]
        return lambda order: order.salesman_id == user_id
    return lambda order: order.salesman_name == selection


def account_predicate(name: str) -> OrderPredicate:
    if not name:
        raise ValidationError("Account facet needs a value")
    return lambda order: order.account_name == name


def date_predicate(date_filter: DateFilter, tz: tzinfo | None = None) -> OrderPredicate:
    return lambda order: date_filter.matches(order.created_at, tz)


def review_eligible(orders: Iterable[Order]) -> list[Order]:
    """Orders that carry a review status, or are still pending fulfilment."""
    return [order for order in orders if order.is_review_eligible]


def apply_predicates(orders: Iterable[Order], predicates: Sequence[OrderPredicate]) -> list[Order]:
    return [order for order in orders if all(pred(order) for pred in predicates)]


def filter_orders(
    orders: Iterable[Order],
    query: ReviewQuery,
    tz: tzinfo | None = None,
) -> list[Order]:
    """Select the review-eligible orders matching every active facet.

    Snapshot order is preserved.
    """
    return apply_predicates(review_eligible(orders), query.predicates(tz))


# === Aggregates ===


@dataclass(frozen=True)
class OrderAggregates:
    order_count: int
    total_sum: Decimal
    best_account: str | None
    over_limit_accounts: int
    net_profit_estimate: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "order_count": self.order_count,
            "total_sum": str(self.total_sum),
            "best_account": self.best_account,
            "over_limit_accounts": self.over_limit_accounts,
            "net_profit_estimate": str(self.net_profit_estimate),
        }


def account_totals(orders: Iterable[Order]) -> dict[str, Decimal]:
    """Summed order totals per billed account name, in first-seen order."""
    totals: dict[str, Decimal] = {}
    for order in orders:
        name = order.account_name or "N/A"
        totals[name] = totals.get(name, ZERO) + order.pricing.total
    return totals


def best_account(
    orders: Iterable[Order], tie_break: Literal["first", "name"] = "first"
) -> str | None:
    """Account with the highest summed total.

    Ties go to the account encountered first, or to the lexicographically
    smallest name with ``tie_break="name"``.
    """
    totals = account_totals(orders)
    if not totals:
        return None
    top = max(totals.values())
    leaders = [name for name, total in totals.items() if total == top]
    return min(leaders) if tie_break == "name" else leaders[0]


def estimated_net_profit(orders: Iterable[Order]) -> Decimal:
    """Sum of totals minus estimated line cost.

    Line cost uses the product's recorded cost when present and 70% of the
    unit price otherwise. This is an approximation, not an accounting figure.
    """
    revenue = ZERO
    cost = ZERO
    for order in orders:
        revenue += order.pricing.total
        cost += sum((item.estimated_cost for item in order.items), ZERO)
    return revenue - cost


def aggregate(
    orders: Sequence[Order],
    accounts: Iterable[Account] = (),
    tie_break: Literal["first", "name"] = "first",
) -> OrderAggregates:
    """Summary figures over a filtered set.

    The over-limit count covers every known account, not just those in
    ``orders``.
    """
    return OrderAggregates(
        order_count=len(orders),
        total_sum=sum((order.pricing.total for order in orders), ZERO),
        best_account=best_account(orders, tie_break),
        over_limit_accounts=sum(1 for account in accounts if account.is_over_limit),
        net_profit_estimate=estimated_net_profit(orders),
    )


# === Facet options ===


@dataclass(frozen=True)
class FacetOption:
    value: str
    label: str


@dataclass(frozen=True)
class FacetOptions:
    statuses: tuple[FacetOption, ...]
    payment_methods: tuple[FacetOption, ...]
    salesmen: tuple[FacetOption, ...]
    accounts: tuple[FacetOption, ...]


def facet_options(
    orders: Iterable[Order],
    accounts: Iterable[Account] = (),
    users: Iterable[dict[str, Any]] = (),
) -> FacetOptions:
    """Choices offered for each facet.

    Salesmen come from the company's users plus order creators, keyed by
    ``_id:<user id>``. Orders without a resolvable creator id contribute a
    plain display-name entry.
    """
    orders = list(orders)

    salesmen: dict[str, str] = {}
    for user in users:
        user_id = user.get("_id") or user.get("id")
        if user_id:
            salesmen[f"{SALESMAN_ID_PREFIX}{user_id}"] = str(user.get("name") or user_id)
    for order in orders:
        if order.salesman_id:
            key = f"{SALESMAN_ID_PREFIX}{order.salesman_id}"
            salesmen.setdefault(key, order.salesman_name)
        elif order.salesman_name != "N/A":
            salesmen.setdefault(order.salesman_name, order.salesman_name)

    account_names = {account.name for account in accounts if account.name}
    account_names.update(order.account_name for order in orders if order.account_name)

    return FacetOptions(
        statuses=tuple(FacetOption(s.value, s.label) for s in ReviewStatus),
        payment_methods=tuple(
            FacetOption(label, label) for label in PAYMENT_METHOD_LABELS
        ),
        salesmen=tuple(
            FacetOption(value, label)
            for value, label in sorted(salesmen.items(), key=lambda kv: kv[1].lower())
        ),
        accounts=tuple(FacetOption(name, name) for name in sorted(account_names)),
    )
