"""HTTP client for the Order Store REST API."""

import asyncio
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any

import httpx
import structlog

from order_review.config import get_settings
from order_review.errors import NetworkError, NotFoundError, ReviewError, ValidationError
from order_review.ledger import resolve_account
from order_review.models import Account, Order, ReviewStatus
from order_review.store.base import PATCHABLE_FIELDS

logger = structlog.get_logger(__name__)

DEFAULT_RETRY_AFTER = 60


def _retry_after_seconds(value: str | None) -> int:
    """Parse a Retry-After header given as delta-seconds or an HTTP date."""
    if not value:
        return DEFAULT_RETRY_AFTER
    try:
        return max(0, int(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return DEFAULT_RETRY_AFTER
    if when.tzinfo is None:
        when = when.replace(tzinfo=UTC)
    return max(0, int((when - datetime.now(UTC)).total_seconds()))


class HttpOrderStore:
    """Async Order Store client authenticated with a pre-issued bearer token.

    Reads are retried with exponential backoff on transport errors. Writes
    are sent exactly once: a retried settlement whose first response was
    lost could otherwise credit the ledger twice.
    """

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.store_api_url).rstrip("/")
        if token is None and settings.store_api_token is not None:
            token = settings.store_api_token.get_secret_value()
        self._token = token
        self._timeout = timeout if timeout is not None else settings.store_timeout
        self._max_retries = (
            max_retries if max_retries is not None else settings.store_max_retries
        )
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HttpOrderStore":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _get_headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    # === Generic Request Handling ===

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {"raw": response.text[:500] if response.text else "empty response"}

    @staticmethod
    def _message(body: Any, fallback: str) -> str:
        if isinstance(body, dict):
            for key in ("message", "detail", "error"):
                value = body.get(key)
                if isinstance(value, str) and value:
                    return value
        return fallback

    def _error_for(self, status_code: int, body: Any) -> ReviewError:
        message = self._message(body, f"Order Store error: {status_code}")
        if status_code == 404:
            return NotFoundError(message, status_code=status_code, details=body)
        if status_code in (400, 409, 422):
            return ValidationError(message, status_code=status_code, details=body)
        return NetworkError(message, status_code=status_code, details=body)

    @staticmethod
    def _unwrap(body: Any) -> Any:
        """Strip the ``{"success": ..., "data": ...}`` envelope."""
        if isinstance(body, dict) and "data" in body:
            return body["data"]
        return body

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        retry_count: int = 0,
    ) -> Any:
        client = await self._get_client()

        try:
            response = await client.request(
                method=method,
                url=path,
                params=params,
                json=json,
                headers=self._get_headers(),
            )
        except httpx.RequestError as e:
            if method == "GET" and retry_count < self._max_retries:
                logger.warning("store_request_retry", path=path, attempt=retry_count + 1)
                await asyncio.sleep(2**retry_count)
                return await self._request(method, path, params, json, retry_count + 1)
            raise NetworkError(f"Request failed: {e}") from e

        if response.status_code == 429:
            retry_after = _retry_after_seconds(response.headers.get("Retry-After"))
            raise NetworkError(
                f"Rate limited, retry after {retry_after}s",
                status_code=429,
                details={"retry_after": retry_after},
            )

        body = self._decode(response)
        if response.status_code >= 400:
            error = self._error_for(response.status_code, body)
            logger.warning(
                "store_request_failed",
                method=method,
                path=path,
                status=response.status_code,
                kind=error.kind,
            )
            raise error

        if isinstance(body, dict) and body.get("success") is False:
            raise ValidationError(
                self._message(body, "Order Store rejected the request"),
                status_code=response.status_code,
                details=body,
            )
        return self._unwrap(body)

    @staticmethod
    def _extract_items(result: Any) -> list[dict[str, Any]]:
        """Return list of items from a list or paged response."""
        if isinstance(result, list):
            return result
        if isinstance(result, dict):
            items = result.get("items")
            if isinstance(items, list):
                return items
        return []

    @staticmethod
    def _expect_document(result: Any, path: str) -> dict[str, Any]:
        if not isinstance(result, dict):
            raise NetworkError(f"Unexpected response format from {path}", details=result)
        return result

    # === Order Endpoints ===

    async def list_orders(self, status_filter: ReviewStatus | None = None) -> list[Order]:
        """List orders, optionally narrowed server-side by review status."""
        params: dict[str, Any] = {}
        if status_filter is not None:
            params["accountantReviewStatus"] = ReviewStatus.parse(status_filter).value
        result = await self._request("GET", "/api/orders", params=params or None)
        return [Order.from_dict(item) for item in self._extract_items(result)]

    async def get_order(self, order_id: str) -> Order:
        path = f"/api/orders/{order_id}"
        result = await self._request("GET", path)
        return Order.from_dict(self._expect_document(result, path))

    async def patch_order(self, order_id: str, fields: dict[str, Any]) -> Order | None:
        """Apply a partial update in one request.

        The store accepts partial bodies on PUT and leaves unlisted fields
        untouched. Returns None when the store confirms the write without
        echoing the order back.
        """
        unknown = set(fields) - PATCHABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"Fields not writable by the review engine: {', '.join(sorted(unknown))}",
                details={"fields": sorted(unknown)},
            )
        path = f"/api/orders/{order_id}"
        result = await self._request("PUT", path, json=fields)
        logger.info("order_patched", order_id=order_id, fields=sorted(fields))

        # The write is confirmed at this point; a missing echo must not undo it
        if isinstance(result, dict) and (result.get("_id") or result.get("id")):
            return Order.from_dict(result)
        logger.warning("order_patch_without_document", order_id=order_id)
        return None

    # === Account Endpoints ===

    async def list_accounts(self) -> list[Account]:
        result = await self._request("GET", "/api/accounts")
        return [Account.from_dict(item) for item in self._extract_items(result)]

    async def resolve_account(self, order: Order) -> Account:
        """Resolve the billed account against a freshly fetched account list."""
        return resolve_account(order, await self.list_accounts())

    # === User Endpoints ===

    async def list_company_users(self, company_id: str) -> list[dict[str, Any]]:
        """List system users (salesmen) of a company, for the salesman facet."""
        result = await self._request("GET", f"/api/users/company/{company_id}")
        return self._extract_items(result)
