"""
JSON-RPC client for EVM chains.

Handles:
- Native and ERC-20 balance reads
- ERC-20 allowance reads
- Receipt and block number lookups
- Confirmation monitoring
- Forwarding ``eth_sendTransaction`` to a signing node
"""

import asyncio
import itertools
import logging
from typing import Any, Dict, List, Optional

import httpx

from ..config import settings
from ..core.deposit.constants import ZERO_ADDRESS
from ..core.deposit.models import TransactionReceipt
from ..core.deposit.tx_builder import encode_allowance, encode_balance_of
from ..core.recovery import (
    ConfirmationTimeoutError,
    NetworkError,
    RecoverableError,
    RpcError,
    TransactionRevertedError,
)
from .base import Provider


logger = logging.getLogger(__name__)


class ChainRpcClient(Provider):
    """
    Talks to one JSON-RPC endpoint per chain.

    Transport failures and 5xx/429 responses raise ``NetworkError``; JSON-RPC
    error objects raise ``RpcError`` carrying the node's error code.
    """

    name = "chain_rpc"

    def __init__(
        self,
        rpc_urls: Optional[Dict[int, str]] = None,
        *,
        timeout_s: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._rpc_urls = dict(rpc_urls if rpc_urls is not None else settings.rpc_urls)
        self.timeout_s = timeout_s or settings.rpc_timeout_seconds
        self._client = httpx.AsyncClient(timeout=self.timeout_s, transport=transport)
        self._ids = itertools.count(1)

    def has_chain(self, chain_id: int) -> bool:
        return chain_id in self._rpc_urls

    async def call(
        self,
        chain_id: int,
        method: str,
        params: List[Any],
    ) -> Any:
        """Make an RPC call to the chain."""
        rpc_url = self._rpc_urls.get(chain_id)
        if not rpc_url:
            raise ValueError(f"No RPC URL configured for chain {chain_id}")

        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": next(self._ids),
        }

        try:
            response = await self._client.post(rpc_url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status == 429 or status >= 500:
                raise NetworkError(f"RPC {method} on chain {chain_id} returned HTTP {status}", chain_id=chain_id) from exc
            raise RpcError(f"RPC {method} on chain {chain_id} returned HTTP {status}", chain_id=chain_id) from exc
        except httpx.RequestError as exc:
            raise NetworkError(f"RPC {method} on chain {chain_id} failed: {exc!r}", chain_id=chain_id) from exc

        result = response.json()
        if "error" in result:
            error = result["error"] or {}
            code = error.get("code") if isinstance(error, dict) else None
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise RpcError(f"RPC error: {message}", code=code, chain_id=chain_id)

        return result.get("result")

    # ─────────────────────────────────────────────────────────────────────────
    # Balances
    # ─────────────────────────────────────────────────────────────────────────

    async def get_native_balance(self, chain_id: int, address: str) -> int:
        result = await self.call(chain_id, "eth_getBalance", [address, "latest"])
        return int(result or "0x0", 16)

    async def get_erc20_balance(self, chain_id: int, token_address: str, owner: str) -> int:
        result = await self.call(
            chain_id,
            "eth_call",
            [{"to": token_address, "data": encode_balance_of(owner)}, "latest"],
        )
        if not result or result == "0x":
            return 0
        return int(result, 16)

    async def get_balance(self, chain_id: int, token_address: str, owner: str) -> int:
        """Balance in base units; the zero address means the native asset."""
        if token_address.lower() == ZERO_ADDRESS:
            return await self.get_native_balance(chain_id, owner)
        return await self.get_erc20_balance(chain_id, token_address, owner)

    async def get_allowance(self, chain_id: int, token_address: str, owner: str, spender: str) -> int:
        """ERC-20 amount ``spender`` may pull from ``owner``, in base units."""
        result = await self.call(
            chain_id,
            "eth_call",
            [{"to": token_address, "data": encode_allowance(owner, spender)}, "latest"],
        )
        if not result or result == "0x":
            return 0
        return int(result, 16)

    # ─────────────────────────────────────────────────────────────────────────
    # Transactions
    # ─────────────────────────────────────────────────────────────────────────

    async def send_transaction(self, chain_id: int, tx: Dict[str, Any]) -> str:
        tx_hash = await self.call(chain_id, "eth_sendTransaction", [tx])
        logger.info("Transaction submitted on chain %s: %s", chain_id, tx_hash)
        return tx_hash

    async def get_block_number(self, chain_id: int) -> int:
        return int(await self.call(chain_id, "eth_blockNumber", []), 16)

    async def get_transaction_receipt(self, chain_id: int, tx_hash: str) -> Optional[Dict[str, Any]]:
        return await self.call(chain_id, "eth_getTransactionReceipt", [tx_hash])

    async def wait_for_confirmation(
        self,
        chain_id: int,
        tx_hash: str,
        *,
        timeout_seconds: float,
        required_confirmations: int = 1,
        poll_interval: Optional[float] = None,
    ) -> TransactionReceipt:
        """
        Poll for a receipt until ``required_confirmations`` or timeout.

        Raises:
            TransactionRevertedError: receipt status is 0x0
            ConfirmationTimeoutError: not confirmed within ``timeout_seconds``
        """
        interval = poll_interval or settings.confirmation_poll_interval_seconds
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_seconds

        while True:
            try:
                receipt = await self.get_transaction_receipt(chain_id, tx_hash)
                if receipt:
                    block_number = int(receipt["blockNumber"], 16)

                    # Check status (0x1 = success, 0x0 = revert)
                    status = int(receipt.get("status", "0x1"), 16)
                    if status == 0:
                        raise TransactionRevertedError(
                            f"Transaction {tx_hash} reverted in block {block_number}",
                            tx_hash=tx_hash,
                            chain_id=chain_id,
                        )

                    current_block = await self.get_block_number(chain_id)
                    confirmations = current_block - block_number + 1

                    if confirmations >= required_confirmations:
                        logger.info(
                            "Transaction confirmed: %s (block %s, %s confirmations)",
                            tx_hash,
                            block_number,
                            confirmations,
                        )
                        return TransactionReceipt(
                            tx_hash=tx_hash,
                            chain_id=chain_id,
                            block_number=block_number,
                            success=True,
                            confirmations=confirmations,
                        )
            except RecoverableError as e:
                logger.warning("Error checking transaction status for %s: %s", tx_hash, e)

            remaining = deadline - loop.time()
            if remaining <= 0:
                raise ConfirmationTimeoutError(
                    f"Transaction {tx_hash} not confirmed after {timeout_seconds:g}s",
                    tx_hash=tx_hash,
                    chain_id=chain_id,
                    timeout_seconds=timeout_seconds,
                )
            await asyncio.sleep(min(interval, remaining))

    async def ready(self) -> bool:
        return bool(self._rpc_urls)

    async def health_check(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": "healthy" if self._rpc_urls else "unavailable",
            "chains": sorted(self._rpc_urls),
        }

    async def close(self) -> None:
        """Close HTTP client."""
        await self._client.aclose()


# Singleton instance
_client: Optional[ChainRpcClient] = None


def get_rpc_client() -> ChainRpcClient:
    """Get the singleton RPC client instance."""
    global _client
    if _client is None:
        _client = ChainRpcClient()
    return _client
