"""Order Store access."""

from order_review.store.base import PATCHABLE_FIELDS, OrderStore
from order_review.store.http import HttpOrderStore

__all__ = ["OrderStore", "HttpOrderStore", "PATCHABLE_FIELDS"]
