"""
Tests for the deBridge order API client.

Requests are served by ``httpx.MockTransport`` so no network is touched.
"""

import json

import httpx
import pytest

from guardx.providers.debridge import BridgeProviderError, DeBridgeProvider


def _provider(handler, api_key="secret"):
    return DeBridgeProvider(
        base_url="https://bridge.test/",
        api_key=api_key,
        timeout_s=1,
        transport=httpx.MockTransport(handler),
    )


class TestPrecheck:
    """Tests for POST /precheck."""

    @pytest.mark.asyncio
    async def test_posts_payload_with_auth(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["auth"] = request.headers.get("authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"valid": True, "quote": {"fee": "1"}})

        result = await _provider(handler).precheck({"amount": "100"})

        assert result == {"valid": True, "quote": {"fee": "1"}}
        assert seen == {
            "method": "POST",
            "path": "/precheck",
            "auth": "Bearer secret",
            "body": {"amount": "100"},
        }

    @pytest.mark.asyncio
    async def test_no_auth_header_without_key(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("authorization")
            return httpx.Response(200, json={"valid": False})

        await _provider(handler, api_key="").precheck({})

        assert seen["auth"] is None

    @pytest.mark.asyncio
    async def test_http_error_carries_status_and_message(self):
        def handler(request):
            return httpx.Response(400, json={"errorMessage": "unsupported token"})

        with pytest.raises(BridgeProviderError) as exc_info:
            await _provider(handler).precheck({})

        assert exc_info.value.status_code == 400
        assert "unsupported token" in exc_info.value.message
        assert exc_info.value.is_transient is False

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(BridgeProviderError) as exc_info:
            await _provider(handler).precheck({})

        assert exc_info.value.status_code is None
        assert exc_info.value.is_transient is True
        assert exc_info.value.timed_out is False

    @pytest.mark.asyncio
    async def test_read_timeout_is_flagged(self):
        def handler(request):
            raise httpx.ReadTimeout("read timed out", request=request)

        with pytest.raises(BridgeProviderError) as exc_info:
            await _provider(handler).precheck({})

        assert exc_info.value.timed_out is True
        assert exc_info.value.is_transient is True


class TestOrders:
    """Tests for order lookups."""

    @pytest.mark.asyncio
    async def test_get_order(self):
        def handler(request):
            assert request.url.path == "/order/abc"
            return httpx.Response(200, json={"status": "Fulfilled"})

        assert await _provider(handler).get_order("abc") == {"status": "Fulfilled"}

    @pytest.mark.asyncio
    async def test_unknown_order_is_none(self):
        def handler(request):
            return httpx.Response(404, json={"message": "not found"})

        assert await _provider(handler).get_order("abc") is None

    @pytest.mark.asyncio
    async def test_server_error_is_transient(self):
        def handler(request):
            return httpx.Response(503, text="maintenance")

        with pytest.raises(BridgeProviderError) as exc_info:
            await _provider(handler).get_order("abc")

        assert exc_info.value.status_code == 503
        assert exc_info.value.is_transient is True

    @pytest.mark.asyncio
    async def test_find_order_ids_accepts_both_shapes(self):
        def handler(request):
            assert request.url.path == "/tx/0xfeed/order-ids"
            return httpx.Response(200, json={"orderIds": [{"stringValue": "0x01"}, "0x02", {"stringValue": ""}]})

        assert await _provider(handler).find_order_ids("0xfeed") == ["0x01", "0x02"]

    @pytest.mark.asyncio
    async def test_find_order_ids_not_indexed(self):
        def handler(request):
            return httpx.Response(404)

        assert await _provider(handler).find_order_ids("0xfeed") == []


class TestHealth:
    """Tests for health reporting."""

    @pytest.mark.asyncio
    async def test_health_check(self):
        provider = _provider(lambda request: httpx.Response(200))

        health = await provider.health_check()

        assert health == {
            "name": "debridge",
            "status": "healthy",
            "baseUrl": "https://bridge.test",
            "hasApiKey": True,
        }
        assert await provider.ready() is True
