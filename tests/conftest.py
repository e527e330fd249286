"""
Shared fakes for deposit workflow and API tests.

Fakes stand in for the wallet signer, the bridge provider and the chain
RPC client; every timing knob is shrunk so workflows finish in milliseconds.
"""

import asyncio
import itertools
from decimal import Decimal
from typing import Any, Dict, List, Optional

import pytest

from guardx.core.deposit.chain_registry import ChainRegistry
from guardx.core.deposit.execution import DestinationSettlementAdapter, SourceExecutionAdapter
from guardx.core.deposit.models import TokenInfo, TransactionReceipt
from guardx.core.deposit.orchestrator import DepositOrchestrator
from guardx.core.deposit.poller import BridgeStatusPoller
from guardx.core.deposit.quote_service import QuoteService
from guardx.core.deposit.signers import WalletSigner
from guardx.core.recovery import RetryConfig, TransactionRevertedError
from guardx.providers.base import BridgeProvider


USER_ADDRESS = "0x1111111111111111111111111111111111111111"
USDC_BASE_SEPOLIA = "0x036CbD53842c5426634e7929541eC2318f3dCF7e"
USDC_ARB_SEPOLIA = "0x75faf114eafb1BDbe2F0316DF893fd58CE46AA4d"
NATIVE = "0x0000000000000000000000000000000000000000"


# =============================================================================
# Fakes
# =============================================================================

class FakeSigner(WalletSigner):
    """Records every call; optional scripted failures."""

    def __init__(
        self,
        chain_id: Optional[int] = 84532,
        address: str = USER_ADDRESS,
        send_errors: Optional[List[Exception]] = None,
        switch_error: Optional[Exception] = None,
        switch_to: Optional[int] = None,
        send_delay: float = 0.0,
    ):
        self.address = address
        self.chain_id = chain_id
        self.send_errors = list(send_errors or [])
        self.switch_error = switch_error
        self.switch_to = switch_to
        self.send_delay = send_delay
        self.sent: List[Any] = []
        self.send_attempts = 0
        self.switch_calls: List[int] = []
        self._hashes = itertools.count(1)

    async def get_address(self) -> str:
        return self.address

    async def get_chain_id(self) -> int:
        return self.chain_id

    async def switch_chain(self, chain_id: int) -> None:
        self.switch_calls.append(chain_id)
        if self.switch_error is not None:
            raise self.switch_error
        # switch_to simulates a wallet that ends up somewhere else
        self.chain_id = self.switch_to if self.switch_to is not None else chain_id

    async def send_transaction(self, tx) -> str:
        self.send_attempts += 1
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        if self.send_errors:
            raise self.send_errors.pop(0)
        self.sent.append(tx)
        return "0x" + format(next(self._hashes), "064x")


class FakeBridgeProvider(BridgeProvider):
    """Scripted precheck and order status responses."""

    name = "fake-bridge"

    def __init__(
        self,
        precheck_response: Any = None,
        statuses: Optional[List[Optional[str]]] = None,
        order_ids: Optional[List[str]] = None,
        order_errors: Optional[List[Optional[Exception]]] = None,
        lookup_errors: Optional[List[Exception]] = None,
        precheck_delay: float = 0.0,
        amount_out: Optional[str] = None,
    ):
        self.precheck_response = precheck_response if precheck_response is not None else {
            "valid": True,
            "quote": {
                "estimatedTime": 240,
                "fee": "1000000000000",
                "minAmountOut": "9900000000000000",
                "maxAmountOut": "10000000000000000",
            },
        }
        self.statuses = list(statuses) if statuses is not None else ["Fulfilled"]
        self.order_ids = list(order_ids) if order_ids is not None else ["order-1"]
        self.order_errors = list(order_errors or [])
        self.lookup_errors = list(lookup_errors or [])
        self.precheck_delay = precheck_delay
        self.amount_out = amount_out
        self.precheck_calls: List[Dict[str, Any]] = []
        self.order_calls = 0
        self.lookup_calls = 0

    @property
    def total_calls(self) -> int:
        return len(self.precheck_calls) + self.order_calls + self.lookup_calls

    async def precheck(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        self.precheck_calls.append(payload)
        if self.precheck_delay:
            await asyncio.sleep(self.precheck_delay)
        if isinstance(self.precheck_response, Exception):
            raise self.precheck_response
        return self.precheck_response

    async def get_order(self, order_id: str) -> Optional[Dict[str, Any]]:
        self.order_calls += 1
        if self.order_errors:
            error = self.order_errors.pop(0)
            if error is not None:
                raise error
        index = min(self.order_calls - 1, len(self.statuses) - 1)
        status = self.statuses[index]
        if status is None:
            return None
        data: Dict[str, Any] = {"orderId": order_id, "status": status}
        if status.lower() == "fulfilled":
            data["dstTxHash"] = "0x" + "b" * 64
            if self.amount_out is not None:
                data["amountOut"] = self.amount_out
        return data

    async def find_order_ids(self, tx_hash: str) -> List[str]:
        self.lookup_calls += 1
        if self.lookup_errors:
            raise self.lookup_errors.pop(0)
        return list(self.order_ids)

    async def ready(self) -> bool:
        return True

    async def health_check(self) -> Dict[str, Any]:
        return {"name": self.name, "status": "healthy"}


class FakeRpc:
    """Subset of ChainRpcClient used by the workflow."""

    def __init__(
        self,
        balance: int = 10**30,
        reverted: Optional[List[str]] = None,
        confirm_delay: float = 0.0,
        allowance: int = 2**256 - 1,
    ):
        self.balance = balance
        self.allowance = allowance
        self.reverted = set(reverted or [])
        self.confirm_delay = confirm_delay
        self.balance_calls: List[tuple] = []
        self.confirm_calls: List[str] = []
        self.allowance_calls: List[tuple] = []

    @property
    def total_calls(self) -> int:
        return len(self.balance_calls) + len(self.confirm_calls) + len(self.allowance_calls)

    def has_chain(self, chain_id: int) -> bool:
        return True

    async def get_balance(self, chain_id: int, token_address: str, owner: str) -> int:
        self.balance_calls.append((chain_id, token_address, owner))
        return self.balance

    async def get_allowance(self, chain_id: int, token_address: str, owner: str, spender: str) -> int:
        self.allowance_calls.append((chain_id, token_address, owner, spender))
        return self.allowance

    async def wait_for_confirmation(
        self,
        chain_id: int,
        tx_hash: str,
        *,
        timeout_seconds: float,
        required_confirmations: int = 1,
        poll_interval: Optional[float] = None,
    ) -> TransactionReceipt:
        self.confirm_calls.append(tx_hash)
        if self.confirm_delay:
            await asyncio.sleep(self.confirm_delay)
        if tx_hash in self.reverted:
            raise TransactionRevertedError(f"Transaction {tx_hash} reverted", tx_hash=tx_hash, chain_id=chain_id)
        return TransactionReceipt(
            tx_hash=tx_hash,
            chain_id=chain_id,
            block_number=100,
            success=True,
            confirmations=required_confirmations,
        )

    async def health_check(self) -> Dict[str, Any]:
        return {"name": "fake-rpc", "status": "healthy"}

    async def close(self) -> None:
        pass


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def registry() -> ChainRegistry:
    """Registry built from the static tables, ignoring env overrides."""
    return ChainRegistry(min_deposit_overrides={})


@pytest.fixture
def usdc() -> TokenInfo:
    return TokenInfo(address=USDC_BASE_SEPOLIA, symbol="USDC", decimals=6)


@pytest.fixture
def usdc_arb() -> TokenInfo:
    return TokenInfo(address=USDC_ARB_SEPOLIA, symbol="USDC", decimals=6)


@pytest.fixture
def eth() -> TokenInfo:
    return TokenInfo(address=NATIVE, symbol="ETH", decimals=18)


@pytest.fixture
def make_signer():
    return FakeSigner


@pytest.fixture
def make_provider():
    return FakeBridgeProvider


@pytest.fixture
def make_rpc():
    return FakeRpc


@pytest.fixture
def fast_retry() -> RetryConfig:
    return RetryConfig(max_attempts=3, initial_delay_seconds=0.001, jitter=False)


@pytest.fixture
def make_orchestrator(registry: ChainRegistry, fast_retry: RetryConfig):
    """Factory for an orchestrator wired to fakes with millisecond timings."""

    def _make(
        provider: Optional[FakeBridgeProvider] = None,
        rpc: Optional[FakeRpc] = None,
        *,
        deadline: float = 1.0,
        poll_interval: float = 0.01,
        max_consecutive_errors: int = 3,
        quote_timeout: float = 0.5,
        max_retained: int = 50,
        min_overrides: Optional[Dict[str, Decimal]] = None,
    ) -> DepositOrchestrator:
        provider = provider or FakeBridgeProvider()
        rpc = rpc or FakeRpc()
        reg = registry if min_overrides is None else ChainRegistry(min_deposit_overrides=min_overrides)
        adapter_kwargs = dict(
            retry_config=fast_retry,
            signer_timeout_seconds=0.5,
            confirmation_timeout_seconds=0.5,
            confirmation_poll_interval=0.01,
        )
        return DepositOrchestrator(
            registry=reg,
            quote_service=QuoteService(provider, reg, timeout_seconds=quote_timeout),
            source_adapter=SourceExecutionAdapter(rpc, reg, **adapter_kwargs),
            settlement_adapter=DestinationSettlementAdapter(
                rpc, reg, network_switch_timeout_seconds=0.5, **adapter_kwargs
            ),
            poller=BridgeStatusPoller(
                provider,
                interval_seconds=poll_interval,
                max_consecutive_errors=max_consecutive_errors,
            ),
            rpc=rpc,
            bridge_deadline_seconds=deadline,
            network_switch_timeout_seconds=0.5,
            max_retained=max_retained,
        )

    return _make
