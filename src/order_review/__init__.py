"""Order review - accountant review and credit settlement for B2B orders."""

__version__ = "0.1.0"

from order_review.config import configure_logging, get_settings
from order_review.errors import (
    InvariantViolation,
    NetworkError,
    NotFoundError,
    ReviewError,
    ValidationError,
)
from order_review.filters import (
    DateRange,
    MonthFilter,
    NoDateFilter,
    OrderAggregates,
    ReviewQuery,
    SingleDate,
    aggregate,
    filter_orders,
)
from order_review.ledger import AccountLedger, resolve_account
from order_review.models import Account, Order, PaymentMethod, ReviewStatus
from order_review.reports import Dashboard, build_dashboard
from order_review.review import ReviewStateMachine, TransitionCode, TransitionPolicy
from order_review.session import Outcome, ReviewSession
from order_review.settlement import SettlementService
from order_review.store import HttpOrderStore, OrderStore

__all__ = [
    # Version
    "__version__",
    # Records
    "Account",
    "Order",
    "PaymentMethod",
    "ReviewStatus",
    # Errors
    "ReviewError",
    "ValidationError",
    "NotFoundError",
    "NetworkError",
    "InvariantViolation",
    # Engine
    "AccountLedger",
    "resolve_account",
    "ReviewStateMachine",
    "TransitionCode",
    "TransitionPolicy",
    "SettlementService",
    # Filtering
    "ReviewQuery",
    "NoDateFilter",
    "SingleDate",
    "DateRange",
    "MonthFilter",
    "OrderAggregates",
    "aggregate",
    "filter_orders",
    # Reports
    "Dashboard",
    "build_dashboard",
    # Session & store
    "ReviewSession",
    "Outcome",
    "OrderStore",
    "HttpOrderStore",
    # Config
    "get_settings",
    "configure_logging",
]
