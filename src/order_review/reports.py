"""Dashboard statistics for the accountant overview."""

from __future__ import annotations

import calendar
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from decimal import Decimal

from order_review.filters import to_local
from order_review.models import ZERO, Order, ReviewStatus, payment_method_label


@dataclass(frozen=True)
class BreakdownRow:
    name: str
    count: int
    amount: Decimal


@dataclass(frozen=True)
class MonthlyRevenue:
    month: str  # YYYY-MM
    label: str  # e.g. "Mar 2025"
    revenue: Decimal
    orders: int


@dataclass(frozen=True)
class Overview:
    total_orders: int
    total_revenue: Decimal
    average_order_value: Decimal


def _shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def _month_key(year: int, month: int) -> str:
    return f"{year}-{month:02d}"


def _month_label(year: int, month: int) -> str:
    return f"{calendar.month_abbr[month]} {year}"


def _local_month(moment: datetime, tz: tzinfo | None) -> tuple[int, int]:
    local = to_local(moment, tz)
    return local.year, local.month


def overview(orders: Sequence[Order]) -> Overview:
    total = sum((order.pricing.total for order in orders), ZERO)
    count = len(orders)
    average = total / count if count else ZERO
    return Overview(total_orders=count, total_revenue=total, average_order_value=average)


def status_breakdown(orders: Iterable[Order]) -> dict[ReviewStatus, BreakdownRow]:
    """Count and amount per review status. Every status is present."""
    counts = {status: 0 for status in ReviewStatus}
    amounts = {status: ZERO for status in ReviewStatus}
    for order in orders:
        status = order.status_or_default
        counts[status] += 1
        amounts[status] += order.pricing.total
    return {
        status: BreakdownRow(name=status.label, count=counts[status], amount=amounts[status])
        for status in ReviewStatus
    }


def payment_method_breakdown(orders: Iterable[Order]) -> list[BreakdownRow]:
    """Count and amount per payment method label, in first-seen order."""
    counts: dict[str, int] = {}
    amounts: dict[str, Decimal] = {}
    for order in orders:
        label = payment_method_label(order.payment.method)
        counts[label] = counts.get(label, 0) + 1
        amounts[label] = amounts.get(label, ZERO) + order.pricing.total
    return [BreakdownRow(name=label, count=counts[label], amount=amounts[label]) for label in counts]


def monthly_revenue(
    orders: Iterable[Order],
    months: int = 6,
    today: date | None = None,
    tz: tzinfo | None = None,
) -> list[MonthlyRevenue]:
    """Revenue per month for the last ``months`` months, oldest first.

    The current month is included and months without orders are zero-filled.
    """
    if months < 1:
        raise ValueError("months must be at least 1")
    today = today or datetime.now(tz).date()

    keys = [_shift_month(today.year, today.month, -offset) for offset in range(months - 1, -1, -1)]
    revenue = {key: ZERO for key in keys}
    counts = {key: 0 for key in keys}

    for order in orders:
        if order.created_at is None:
            continue
        key = _local_month(order.created_at, tz)
        if key in revenue:
            revenue[key] += order.pricing.total
            counts[key] += 1

    return [
        MonthlyRevenue(
            month=_month_key(*key),
            label=_month_label(*key),
            revenue=revenue[key],
            orders=counts[key],
        )
        for key in keys
    ]


def current_month(
    orders: Iterable[Order], today: date | None = None, tz: tzinfo | None = None
) -> MonthlyRevenue:
    """This month's revenue and order count."""
    return monthly_revenue(orders, months=1, today=today, tz=tz)[0]


@dataclass(frozen=True)
class Dashboard:
    """Accountant dashboard figures.

    The overview covers every order; the breakdowns only the orders created
    within the months shown in ``monthly``.
    """

    overview: Overview
    statuses: dict[ReviewStatus, BreakdownRow]
    payment_methods: list[BreakdownRow]
    monthly: list[MonthlyRevenue]

    @property
    def current_month(self) -> MonthlyRevenue:
        return self.monthly[-1]


def build_dashboard(
    orders: Iterable[Order],
    months: int = 6,
    today: date | None = None,
    tz: tzinfo | None = None,
) -> Dashboard:
    orders = list(orders)
    monthly = monthly_revenue(orders, months=months, today=today, tz=tz)
    window = {row.month for row in monthly}
    recent = [
        order
        for order in orders
        if order.created_at is not None
        and _month_key(*_local_month(order.created_at, tz)) in window
    ]
    return Dashboard(
        overview=overview(orders),
        statuses=status_breakdown(recent),
        payment_methods=payment_method_breakdown(recent),
        monthly=monthly,
    )
