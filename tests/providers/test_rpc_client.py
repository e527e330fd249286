"""
Tests for the EVM JSON-RPC client.
"""

import json

import httpx
import pytest

from guardx.core.recovery import (
    ConfirmationTimeoutError,
    NetworkError,
    RpcError,
    TransactionRevertedError,
)
from guardx.providers.rpc import ChainRpcClient

TX_HASH = "0x" + "c" * 64
OWNER = "0x1111111111111111111111111111111111111111"
SPENDER = "0x2222222222222222222222222222222222222222"
USDC = "0x036CbD53842c5426634e7929541eC2318f3dCF7e"


def _client(results, calls=None):
    """Client whose node answers from ``results``: method -> value or list of values."""
    results = {method: list(value) if isinstance(value, list) else value for method, value in results.items()}

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if calls is not None:
            calls.append(body)
        value = results[body["method"]]
        if isinstance(value, list):
            value = value.pop(0) if len(value) > 1 else value[0]
        if isinstance(value, httpx.Response):
            return value
        if isinstance(value, dict) and "error" in value:
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], **value})
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": value})

    return ChainRpcClient({84532: "https://rpc.test/base"}, timeout_s=1, transport=httpx.MockTransport(handler))


class TestCall:
    """Tests for raw JSON-RPC calls."""

    @pytest.mark.asyncio
    async def test_result_and_incrementing_ids(self):
        calls = []
        client = _client({"eth_chainId": "0x14a34"}, calls)

        assert await client.call(84532, "eth_chainId", []) == "0x14a34"
        await client.call(84532, "eth_chainId", [])

        assert [c["id"] for c in calls] == [1, 2]
        assert calls[0]["jsonrpc"] == "2.0"
        await client.close()

    @pytest.mark.asyncio
    async def test_unknown_chain(self):
        client = _client({})

        with pytest.raises(ValueError):
            await client.call(1, "eth_chainId", [])
        assert client.has_chain(84532)
        assert not client.has_chain(1)
        await client.close()

    @pytest.mark.asyncio
    async def test_rpc_error_keeps_code(self):
        client = _client({"eth_sendTransaction": {"error": {"code": 4001, "message": "User rejected"}}})

        with pytest.raises(RpcError) as exc_info:
            await client.send_transaction(84532, {"to": USDC})

        assert exc_info.value.code == 4001
        assert "User rejected" in exc_info.value.message
        await client.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [429, 502])
    async def test_overloaded_node_is_network_error(self, status):
        client = _client({"eth_blockNumber": httpx.Response(status)})

        with pytest.raises(NetworkError):
            await client.get_block_number(84532)
        await client.close()

    @pytest.mark.asyncio
    async def test_client_error_is_rpc_error(self):
        client = _client({"eth_blockNumber": httpx.Response(403)})

        with pytest.raises(RpcError):
            await client.get_block_number(84532)
        await client.close()

    @pytest.mark.asyncio
    async def test_transport_failure_is_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = ChainRpcClient({84532: "https://rpc.test"}, transport=httpx.MockTransport(handler))

        with pytest.raises(NetworkError):
            await client.get_block_number(84532)
        await client.close()


class TestBalances:
    """Tests for balance and allowance reads."""

    @pytest.mark.asyncio
    async def test_native_balance(self):
        calls = []
        client = _client({"eth_getBalance": hex(10**18)}, calls)

        assert await client.get_balance(84532, "0x0000000000000000000000000000000000000000", OWNER) == 10**18
        assert calls[0]["params"] == [OWNER, "latest"]
        await client.close()

    @pytest.mark.asyncio
    async def test_erc20_balance(self):
        calls = []
        client = _client({"eth_call": "0x" + format(5_000_000, "064x")}, calls)

        assert await client.get_balance(84532, USDC, OWNER) == 5_000_000
        call = calls[0]["params"][0]
        assert call["to"] == USDC
        assert call["data"].startswith("0x70a08231")
        await client.close()

    @pytest.mark.asyncio
    async def test_empty_erc20_result_is_zero(self):
        client = _client({"eth_call": "0x"})

        assert await client.get_erc20_balance(84532, USDC, OWNER) == 0
        await client.close()

    @pytest.mark.asyncio
    async def test_allowance(self):
        calls = []
        client = _client({"eth_call": "0x" + format(7_000_000, "064x")}, calls)

        assert await client.get_allowance(84532, USDC, OWNER, SPENDER) == 7_000_000
        call = calls[0]["params"][0]
        assert call["to"] == USDC
        assert call["data"].startswith("0xdd62ed3e")
        assert call["data"].endswith("2" * 40)
        assert len(call["data"]) == 10 + 64 * 2
        await client.close()

    @pytest.mark.asyncio
    async def test_empty_allowance_is_zero(self):
        client = _client({"eth_call": "0x"})

        assert await client.get_allowance(84532, USDC, OWNER, SPENDER) == 0
        await client.close()


class TestWaitForConfirmation:
    """Tests for receipt polling."""

    @pytest.mark.asyncio
    async def test_waits_for_receipt(self):
        receipt = {"blockNumber": "0x10", "status": "0x1"}
        client = _client({"eth_getTransactionReceipt": [None, None, receipt], "eth_blockNumber": "0x12"})

        result = await client.wait_for_confirmation(84532, TX_HASH, timeout_seconds=1, poll_interval=0.001)

        assert result.success is True
        assert result.block_number == 16
        assert result.confirmations == 3
        await client.close()

    @pytest.mark.asyncio
    async def test_waits_for_required_confirmations(self):
        receipt = {"blockNumber": "0x10", "status": "0x1"}
        client = _client({"eth_getTransactionReceipt": receipt, "eth_blockNumber": ["0x10", "0x11", "0x12"]})

        result = await client.wait_for_confirmation(
            84532, TX_HASH, timeout_seconds=1, required_confirmations=3, poll_interval=0.001
        )

        assert result.confirmations == 3
        await client.close()

    @pytest.mark.asyncio
    async def test_reverted(self):
        client = _client({"eth_getTransactionReceipt": {"blockNumber": "0x10", "status": "0x0"}})

        with pytest.raises(TransactionRevertedError):
            await client.wait_for_confirmation(84532, TX_HASH, timeout_seconds=1, poll_interval=0.001)
        await client.close()

    @pytest.mark.asyncio
    async def test_transient_errors_keep_polling(self):
        receipt = {"blockNumber": "0x10", "status": "0x1"}
        client = _client(
            {
                "eth_getTransactionReceipt": [httpx.Response(503), receipt],
                "eth_blockNumber": "0x10",
            }
        )

        result = await client.wait_for_confirmation(84532, TX_HASH, timeout_seconds=1, poll_interval=0.001)

        assert result.block_number == 16
        await client.close()

    @pytest.mark.asyncio
    async def test_timeout(self):
        client = _client({"eth_getTransactionReceipt": None})

        with pytest.raises(ConfirmationTimeoutError):
            await client.wait_for_confirmation(84532, TX_HASH, timeout_seconds=0.02, poll_interval=0.005)
        await client.close()


class TestHealth:
    """Tests for health reporting."""

    @pytest.mark.asyncio
    async def test_health_lists_chains(self):
        client = _client({})

        assert await client.health_check() == {"name": "chain_rpc", "status": "healthy", "chains": [84532]}
        await client.close()
