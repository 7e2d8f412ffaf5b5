"""Request/response contract with the external Order Store."""

from typing import Any, Protocol

from order_review.models import Account, Order, ReviewStatus


class OrderStore(Protocol):
    """Operations the review engine needs from the store.

    Implementations raise ``NotFoundError``, ``ValidationError`` or
    ``NetworkError`` carrying the store's own message. ``patch_order`` must
    apply the given fields in a single write; for a payment settlement the
    store credits the account ledger within that same write. It returns the
    updated order, or None when the store confirmed the write without
    sending the order back.
    """

    async def list_orders(self, status_filter: ReviewStatus | None = None) -> list[Order]: ...

    async def get_order(self, order_id: str) -> Order: ...

    async def patch_order(
        self, order_id: str, fields: dict[str, Any]
    ) -> Order | None: ...

    async def list_accounts(self) -> list[Account]: ...

    async def resolve_account(self, order: Order) -> Account: ...

    async def list_company_users(self, company_id: str) -> list[dict[str, Any]]: ...


# Fields this engine is allowed to write
PATCHABLE_FIELDS = frozenset({"accountantReviewStatus", "payment", "invoicePdf"})
