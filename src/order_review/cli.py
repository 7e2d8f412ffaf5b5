"""Command-line entry point for order review.

Usage:
    order-review list --status PENDING_REVIEW --method Credit
    order-review summary --from 2025-01-01 --to 2025-01-31
    order-review dashboard --months 12
    order-review options --company <company-id>
    order-review transition <order-id> APPROVED
    order-review mark-paid <order-id>
    order-review attach-invoice <order-id> <url> <public-id>
    order-review remove-invoice <order-id>
"""

import argparse
import asyncio
import sys
from collections.abc import Sequence
from datetime import date
from decimal import Decimal

import structlog

from order_review.config import configure_logging, get_settings
from order_review.errors import ReviewError
from order_review.filters import FacetOptions, ReviewQuery
from order_review.models import Order, payment_method_label
from order_review.reports import Dashboard
from order_review.session import Outcome, ReviewSession
from order_review.store.base import OrderStore
from order_review.store.http import HttpOrderStore

logger = structlog.get_logger(__name__)


def _money(amount: Decimal) -> str:
    return f"{get_settings().currency} {amount:.2f}"


def _add_facet_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--status", help="Review status, e.g. PENDING_REVIEW")
    parser.add_argument("--method", help="Payment method label, e.g. Credit or BenefitPay")
    parser.add_argument("--salesman", help="Salesman as _id:<user id> or display name")
    parser.add_argument("--account", help="Billed account name")
    parser.add_argument("--date", type=date.fromisoformat, help="Single day (YYYY-MM-DD)")
    parser.add_argument("--from", dest="date_from", type=date.fromisoformat, help="Range start")
    parser.add_argument("--to", dest="date_to", type=date.fromisoformat, help="Range end")
    parser.add_argument("--month", help="Calendar month (YYYY-MM)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="order-review",
        description="Review submitted orders and settle credit orders",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    list_parser = subparsers.add_parser("list", help="List orders matching the facets")
    _add_facet_arguments(list_parser)

    summary_parser = subparsers.add_parser("summary", help="Aggregates for matching orders")
    _add_facet_arguments(summary_parser)

    transition_parser = subparsers.add_parser("transition", help="Set an order's review status")
    transition_parser.add_argument("order_id")
    transition_parser.add_argument("status")

    paid_parser = subparsers.add_parser("mark-paid", help="Settle a credit order")
    paid_parser.add_argument("order_id")

    attach_parser = subparsers.add_parser("attach-invoice", help="Attach an uploaded invoice")
    attach_parser.add_argument("order_id")
    attach_parser.add_argument("url")
    attach_parser.add_argument("public_id")

    remove_parser = subparsers.add_parser("remove-invoice", help="Remove an attached invoice")
    remove_parser.add_argument("order_id")

    dashboard_parser = subparsers.add_parser("dashboard", help="Revenue and order statistics")
    dashboard_parser.add_argument(
        "--months", type=int, default=6, help="Months of revenue history (default 6)"
    )

    options_parser = subparsers.add_parser("options", help="Choices available for each facet")
    options_parser.add_argument("--company", help="Company id whose users are listed as salesmen")

    return parser


def _query_from_args(args: argparse.Namespace) -> ReviewQuery:
    return ReviewQuery.build(
        status=args.status,
        payment_method=args.method,
        salesman=args.salesman,
        account=args.account,
        on=args.date,
        date_from=args.date_from,
        date_to=args.date_to,
        month=args.month,
    )


def _format_order(order: Order) -> str:
    created = order.created_at.date().isoformat() if order.created_at else "N/A"
    return "  ".join(
        [
            order.order_number or order.id,
            created,
            order.account_name or "N/A",
            order.salesman_name,
            payment_method_label(order.payment.method),
            order.status_or_default.label,
            _money(order.pricing.total),
        ]
    )


def _print_dashboard(dashboard: Dashboard) -> None:
    summary = dashboard.overview
    print(f"Total Orders: {summary.total_orders}")
    print(f"Total Revenue: {_money(summary.total_revenue)}")
    print(f"Average Order Value: {_money(summary.average_order_value)}")
    print(f"This Month: {_money(dashboard.current_month.revenue)}")

    print("\nMonthly Revenue")
    for row in dashboard.monthly:
        print(f"  {row.label}: {_money(row.revenue)} ({row.orders} orders)")

    print("\nOrder Status")
    for row in dashboard.statuses.values():
        print(f"  {row.name}: {row.count}")

    print("\nPayment Methods")
    for row in dashboard.payment_methods:
        print(f"  {row.name}: {row.count} ({_money(row.amount)})")


def _print_options(options: FacetOptions) -> None:
    sections = [
        ("Statuses", options.statuses),
        ("Payment methods", options.payment_methods),
        ("Salesmen", options.salesmen),
        ("Accounts", options.accounts),
    ]
    for title, choices in sections:
        print(f"{title}:")
        for choice in choices:
            label = choice.label if choice.label == choice.value else f"{choice.label} ({choice.value})"
            print(f"  {label}")


def _report(outcome: Outcome) -> int:
    stream = sys.stdout if outcome.success else sys.stderr
    print(outcome.message, file=stream)
    return 0 if outcome.success else 1


async def run(args: argparse.Namespace, store: OrderStore) -> int:
    """Execute a parsed command against ``store`` and return the exit code."""
    session = ReviewSession(store)

    if args.command in ("list", "summary"):
        try:
            query = _query_from_args(args)
            session.apply_query(query)
            orders = await session.refresh()
        except ReviewError as e:
            print(e.message, file=sys.stderr)
            return 1

        if args.command == "list":
            for order in orders:
                print(_format_order(order))
            if not orders:
                print("No orders found")
            return 0

        summary = session.summary()
        print(f"Best Account: {summary.best_account or 'N/A'}")
        print(f"Account Credit Limit Over: {summary.over_limit_accounts}")
        print(f"Total of all orders: {summary.order_count}")
        print(f"Sum Total: {_money(summary.total_sum)}")
        print(f"Net Profit: {_money(summary.net_profit_estimate)}")
        return 0

    if args.command == "dashboard":
        if args.months < 1:
            print("--months must be at least 1", file=sys.stderr)
            return 1
        try:
            await session.refresh()
        except ReviewError as e:
            print(e.message, file=sys.stderr)
            return 1
        _print_dashboard(session.dashboard(months=args.months))
        return 0

    if args.command == "options":
        try:
            await session.refresh()
            users = await store.list_company_users(args.company) if args.company else []
        except ReviewError as e:
            print(e.message, file=sys.stderr)
            return 1
        _print_options(session.options(users))
        return 0

    if args.command == "transition":
        return _report(await session.transition(args.order_id, args.status))
    if args.command == "mark-paid":
        return _report(await session.mark_as_paid(args.order_id))
    if args.command == "attach-invoice":
        return _report(await session.attach_invoice(args.order_id, args.url, args.public_id))
    if args.command == "remove-invoice":
        return _report(await session.remove_invoice(args.order_id))

    raise ValueError(f"Unknown command: {args.command}")


async def _main(args: argparse.Namespace) -> int:
    async with HttpOrderStore() as store:
        return await run(args, store)


def main(argv: Sequence[str] | None = None) -> None:
    configure_logging()
    args = build_parser().parse_args(argv)
    logger.debug("command_started", command=args.command)
    try:
        code = asyncio.run(_main(args))
    except KeyboardInterrupt:
        logger.info("command_interrupted")
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
