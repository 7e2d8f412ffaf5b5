"""Invoice document references on orders.

Uploading the PDF is handled elsewhere; this module only records or clears
the stored reference on the order.
"""

from dataclasses import replace

import structlog

from order_review.errors import ValidationError
from order_review.models import InvoiceDocument, Order
from order_review.store.base import OrderStore

logger = structlog.get_logger(__name__)


class InvoiceService:
    def __init__(self, store: OrderStore):
        self._store = store

    async def _write(self, order: Order, document: InvoiceDocument) -> Order:
        updated = await self._store.patch_order(order.id, {"invoicePdf": document.to_dict()})
        return updated if updated is not None else replace(order, invoice_pdf=document)

    async def attach(self, order_id: str, url: str, public_id: str = "") -> Order:
        """Point the order's ``invoicePdf`` at an uploaded document."""
        if not url:
            raise ValidationError("An uploaded document URL is required")
        order = await self._store.get_order(order_id)
        updated = await self._write(order, InvoiceDocument(url=url, public_id=public_id))
        logger.info("invoice_attached", order_id=order_id, public_id=public_id)
        return updated

    async def remove(self, order_id: str) -> Order:
        """Clear the order's invoice reference."""
        order = await self._store.get_order(order_id)
        if order.invoice_pdf is None or not order.invoice_pdf.is_attached:
            raise ValidationError(
                "Order has no attached invoice", details={"order_id": order_id}
            )
        updated = await self._write(order, InvoiceDocument())
        logger.info("invoice_removed", order_id=order_id)
        return updated
