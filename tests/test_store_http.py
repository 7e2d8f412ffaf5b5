"""Tests for the Order Store HTTP client."""

from datetime import UTC, datetime, timedelta
from email.utils import format_datetime
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from order_review.errors import NetworkError, NotFoundError, ValidationError
from order_review.models import ReviewStatus
from order_review.store.http import HttpOrderStore


@pytest.fixture
def store():
    """Create an HttpOrderStore instance."""
    return HttpOrderStore(base_url="http://localhost:5000", token="token-123", max_retries=2)


def _response(status_code, body=None, headers=None):
    response = MagicMock()
    response.status_code = status_code
    response.headers = headers or {}
    response.content = b"content" if body is not None else b""
    response.json.return_value = body
    response.text = "content"
    return response


def _http(*responses):
    http = AsyncMock()
    http.request = AsyncMock(side_effect=list(responses))
    return http


class TestHttpOrderStoreInit:
    """Tests for HttpOrderStore initialization."""

    def test_init_strips_trailing_slash(self):
        store = HttpOrderStore(base_url="http://store.local/", token="t")

        assert store.base_url == "http://store.local"

    def test_defaults_from_settings(self):
        store = HttpOrderStore()

        assert store.base_url == "http://store.test"
        assert store._token == "test-token"
        assert store._max_retries == 3

    def test_bearer_header(self, store):
        assert store._get_headers()["Authorization"] == "Bearer token-123"


class TestOrderEndpoints:
    """Tests for order requests."""

    @pytest.mark.asyncio
    async def test_get_order(self, store, mock_order_response):
        with patch.object(store, "_get_client") as mock_get:
            mock_http = _http(_response(200, mock_order_response))
            mock_get.return_value = mock_http

            order = await store.get_order("665f1c2e9b1d4a0012ab3401")

            assert order.review_status is ReviewStatus.UNDER_REVIEW
            call = mock_http.request.call_args
            assert call.kwargs["method"] == "GET"
            assert call.kwargs["url"] == "/api/orders/665f1c2e9b1d4a0012ab3401"

    @pytest.mark.asyncio
    async def test_list_orders_with_status_filter(self, store, mock_order_response):
        body = {"success": True, "data": [mock_order_response["data"]]}
        with patch.object(store, "_get_client") as mock_get:
            mock_http = _http(_response(200, body))
            mock_get.return_value = mock_http

            orders = await store.list_orders(ReviewStatus.UNDER_REVIEW)

            assert len(orders) == 1
            params = mock_http.request.call_args.kwargs["params"]
            assert params == {"accountantReviewStatus": "UNDER_REVIEW"}

    @pytest.mark.asyncio
    async def test_patch_order_sends_only_given_fields(self, store, mock_order_response):
        with patch.object(store, "_get_client") as mock_get:
            mock_http = _http(_response(200, mock_order_response))
            mock_get.return_value = mock_http

            await store.patch_order("o-1", {"accountantReviewStatus": "APPROVED"})

            call = mock_http.request.call_args
            assert call.kwargs["method"] == "PUT"
            assert call.kwargs["json"] == {"accountantReviewStatus": "APPROVED"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [{"success": True, "message": "Order updated"}, {"success": True, "data": None}, None],
    )
    async def test_patch_confirmed_without_document(self, store, body):
        with patch.object(store, "_get_client") as mock_get:
            mock_get.return_value = _http(_response(200, body))

            result = await store.patch_order("o-1", {"accountantReviewStatus": "APPROVED"})

            assert result is None

    @pytest.mark.asyncio
    async def test_patch_rejects_unwritable_fields(self, store):
        with patch.object(store, "_get_client") as mock_get:
            mock_http = _http()
            mock_get.return_value = mock_http

            with pytest.raises(ValidationError):
                await store.patch_order("o-1", {"pricing": {"total": 0}})

            mock_http.request.assert_not_called()


class TestAccountEndpoints:
    @pytest.mark.asyncio
    async def test_list_accounts(self, store, mock_accounts_response):
        with patch.object(store, "_get_client") as mock_get:
            mock_get.return_value = _http(_response(200, mock_accounts_response))

            accounts = await store.list_accounts()

            assert [a.name for a in accounts] == ["Acme Trading", "Gulf Clinic"]
            assert accounts[1].is_over_limit

    @pytest.mark.asyncio
    async def test_resolve_account_fetches_fresh_list(
        self, store, mock_order_response, mock_accounts_response
    ):
        from order_review.models import Order

        order = Order.from_dict(mock_order_response["data"])
        with patch.object(store, "_get_client") as mock_get:
            mock_get.return_value = _http(_response(200, mock_accounts_response))

            account = await store.resolve_account(order)

            assert account.id == "a-1"


class TestUserEndpoints:
    @pytest.mark.asyncio
    async def test_list_company_users(self, store):
        body = {"success": True, "data": [{"_id": "u-1", "name": "Sara"}]}
        with patch.object(store, "_get_client") as mock_get:
            mock_http = _http(_response(200, body))
            mock_get.return_value = mock_http

            users = await store.list_company_users("c-77")

            assert users == [{"_id": "u-1", "name": "Sara"}]
            assert mock_http.request.call_args.kwargs["url"] == "/api/users/company/c-77"


class TestErrorMapping:
    """Tests for status code to error mapping."""

    @pytest.mark.asyncio
    async def test_not_found(self, store):
        with patch.object(store, "_get_client") as mock_get:
            mock_get.return_value = _http(_response(404, {"message": "Order not found"}))

            with pytest.raises(NotFoundError) as exc_info:
                await store.get_order("missing")

            assert exc_info.value.message == "Order not found"
            assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [400, 409, 422])
    async def test_validation(self, store, status_code):
        with patch.object(store, "_get_client") as mock_get:
            mock_get.return_value = _http(_response(status_code, {"message": "Invalid status"}))

            with pytest.raises(ValidationError, match="Invalid status"):
                await store.patch_order("o-1", {"accountantReviewStatus": "APPROVED"})

    @pytest.mark.asyncio
    async def test_server_error_message_passed_through(self, store):
        with patch.object(store, "_get_client") as mock_get:
            mock_get.return_value = _http(_response(500, {"message": "Database unavailable"}))

            with pytest.raises(NetworkError) as exc_info:
                await store.list_accounts()

            assert exc_info.value.message == "Database unavailable"

    @pytest.mark.asyncio
    async def test_success_false_body(self, store):
        with patch.object(store, "_get_client") as mock_get:
            mock_get.return_value = _http(
                _response(200, {"success": False, "message": "Order is locked"})
            )

            with pytest.raises(ValidationError, match="Order is locked"):
                await store.get_order("o-1")

    @pytest.mark.asyncio
    async def test_rate_limited(self, store):
        with patch.object(store, "_get_client") as mock_get:
            mock_get.return_value = _http(_response(429, {}, headers={"Retry-After": "5"}))

            with pytest.raises(NetworkError) as exc_info:
                await store.list_orders()

            assert exc_info.value.details == {"retry_after": 5}

    @pytest.mark.asyncio
    async def test_rate_limited_with_http_date(self, store):
        retry_at = format_datetime(datetime.now(UTC) + timedelta(seconds=120), usegmt=True)
        with patch.object(store, "_get_client") as mock_get:
            mock_get.return_value = _http(_response(429, {}, headers={"Retry-After": retry_at}))

            with pytest.raises(NetworkError) as exc_info:
                await store.list_orders()

            assert exc_info.value.status_code == 429
            assert 0 <= exc_info.value.details["retry_after"] <= 120

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("header", "expected"),
        [("Wed, 21 Oct 2015 07:28:00 GMT", 0), ("soon", 60), ("", 60), ("-3", 0)],
    )
    async def test_rate_limited_header_fallbacks(self, store, header, expected):
        with patch.object(store, "_get_client") as mock_get:
            mock_get.return_value = _http(_response(429, {}, headers={"Retry-After": header}))

            with pytest.raises(NetworkError) as exc_info:
                await store.get_order("o-1")

            assert exc_info.value.details == {"retry_after": expected}


class TestRetries:
    """Reads are retried on transport errors, writes never are."""

    @pytest.mark.asyncio
    async def test_read_is_retried(self, store, mock_accounts_response):
        request = httpx.Request("GET", "http://localhost:5000/api/accounts")
        with patch.object(store, "_get_client") as mock_get, patch(
            "order_review.store.http.asyncio.sleep", new=AsyncMock()
        ) as mock_sleep:
            mock_get.return_value = _http(
                httpx.ConnectError("refused", request=request),
                _response(200, mock_accounts_response),
            )

            accounts = await store.list_accounts()

            assert len(accounts) == 2
            mock_sleep.assert_awaited_once_with(1)

    @pytest.mark.asyncio
    async def test_read_gives_up(self, store):
        request = httpx.Request("GET", "http://localhost:5000/api/accounts")
        error = httpx.ConnectError("refused", request=request)
        with patch.object(store, "_get_client") as mock_get, patch(
            "order_review.store.http.asyncio.sleep", new=AsyncMock()
        ):
            mock_http = _http(error, error, error)
            mock_get.return_value = mock_http

            with pytest.raises(NetworkError, match="Request failed"):
                await store.list_accounts()

            assert mock_http.request.await_count == 3

    @pytest.mark.asyncio
    async def test_write_is_not_retried(self, store):
        request = httpx.Request("PUT", "http://localhost:5000/api/orders/o-1")
        with patch.object(store, "_get_client") as mock_get:
            mock_http = _http(httpx.ReadTimeout("timed out", request=request))
            mock_get.return_value = mock_http

            with pytest.raises(NetworkError):
                await store.patch_order("o-1", {"payment": {"method": "credit", "status": "paid"}})

            assert mock_http.request.await_count == 1


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_context_manager_closes_client(self, store):
        mock_http = AsyncMock()
        store._client = mock_http

        async with store:
            pass

        mock_http.aclose.assert_awaited_once()
        assert store._client is None
