"""Error taxonomy for order review and credit settlement."""

from typing import Any


class ReviewError(Exception):
    """Base exception for review engine failures.

    The message is kept exactly as received when it originates from the
    Order Store, so callers can show it to the accountant unchanged.
    """

    kind = "error"

    def __init__(self, message: str, status_code: int | None = None, details: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details


class ValidationError(ReviewError):
    """Bad target status, settling a non-credit or paid order, missing facet value."""

    kind = "validation"


class NotFoundError(ReviewError):
    """Order or account could not be resolved."""

    kind = "not_found"


class NetworkError(ReviewError):
    """Transport or remote failure talking to the Order Store."""

    kind = "network"


class InvariantViolation(ReviewError):
    """Ledger invariant broken while strict ledger mode is enabled."""

    kind = "invariant"


ACCOUNT_NOT_FOUND = "account not found"
