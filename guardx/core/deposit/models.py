"""
Deposit Workflow Models

Defines requests, quotes, bridge orders, and the per-workflow state
tracked by the deposit orchestrator.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from .constants import ZERO_ADDRESS


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _dec(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


@dataclass(frozen=True)
class TokenInfo:
    """An ERC-20 token (or the native asset when address is zero)."""

    address: str
    symbol: str
    decimals: int
    min_deposit: Optional[Decimal] = None

    @property
    def is_native(self) -> bool:
        return self.address.lower() == ZERO_ADDRESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "symbol": self.symbol,
            "decimals": self.decimals,
            "minDeposit": _dec(self.min_deposit),
        }


@dataclass(frozen=True)
class ChainInfo:
    """Deployment metadata for one chain."""

    chain_id: int
    display_name: str
    is_deployed: bool
    contract_addresses: Tuple[Tuple[str, str], ...] = ()

    def contract(self, name: str) -> Optional[str]:
        for contract_name, address in self.contract_addresses:
            if contract_name == name:
                return address
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chainId": self.chain_id,
            "displayName": self.display_name,
            "isDeployed": self.is_deployed,
            "contracts": dict(self.contract_addresses),
        }


@dataclass(frozen=True)
class UnsupportedChain:
    """Lookup result for a chain id the registry does not know."""

    chain_id: int
    reason: str = "Chain is not supported"


@dataclass(frozen=True)
class DepositRequest:
    """A user's request to deposit ``amount`` of ``token`` into the vault."""

    token: TokenInfo
    amount: str                    # Human units, decimal string
    source_chain_id: int
    destination_chain_id: int
    recipient: Optional[str] = None  # Defaults to the signer address

    @property
    def is_cross_chain(self) -> bool:
        return self.source_chain_id != self.destination_chain_id

    def parsed_amount(self) -> Optional[Decimal]:
        """Amount as a Decimal, or None when it is not a finite number."""
        try:
            value = Decimal(str(self.amount).strip())
        except (InvalidOperation, ValueError):
            return None
        if not value.is_finite():
            return None
        return value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token": self.token.to_dict(),
            "amount": self.amount,
            "sourceChainId": self.source_chain_id,
            "destinationChainId": self.destination_chain_id,
            "recipient": self.recipient,
        }


@dataclass
class Quote:
    """Feasibility, fee and ETA for one deposit. Never cached."""

    feasible: bool
    errors: List[str] = field(default_factory=list)
    estimated_seconds: int = 0
    bridge_fee: Decimal = Decimal("0")
    min_amount_out: Decimal = Decimal("0")
    max_amount_out: Decimal = Decimal("0")
    gas_fee: Optional[Decimal] = None    # None = not yet known
    error_code: Optional[str] = None
    transfer_time: Optional[str] = None  # Human hint, e.g. "5-10 minutes"
    fetched_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "feasible": self.feasible,
            "errors": list(self.errors),
            "estimatedSeconds": self.estimated_seconds,
            "bridgeFee": str(self.bridge_fee),
            "minAmountOut": str(self.min_amount_out),
            "maxAmountOut": str(self.max_amount_out),
            "gasFee": _dec(self.gas_fee),
            "errorCode": self.error_code,
            "transferTime": self.transfer_time,
            "fetchedAt": self.fetched_at.isoformat(),
        }


class BridgeOrderStatus(str, Enum):
    """Lifecycle of a bridge order as seen by the poller."""

    PENDING = "pending"
    FULFILLED = "fulfilled"
    FAILED = "failed"


@dataclass
class BridgeOrder:
    """A bridge transfer created by a confirmed source transaction."""

    order_id: str
    source_tx_hash: str
    status: BridgeOrderStatus = BridgeOrderStatus.PENDING
    destination_tx_hash: Optional[str] = None
    amount_out: Optional[int] = None      # Base units reported by the provider
    synthetic: bool = False               # Order id derived from the tx hash
    provider_status: Optional[str] = None
    polls: int = 0
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status in (BridgeOrderStatus.FULFILLED, BridgeOrderStatus.FAILED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "orderId": self.order_id,
            "sourceTxHash": self.source_tx_hash,
            "status": self.status.value,
            "destinationTxHash": self.destination_tx_hash,
            "amountOut": str(self.amount_out) if self.amount_out is not None else None,
            "synthetic": self.synthetic,
            "providerStatus": self.provider_status,
            "polls": self.polls,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }


@dataclass
class SubmittedTransaction:
    """A transaction accepted by the signer and broadcast."""

    tx_hash: str
    chain_id: int
    submitted_at: datetime = field(default_factory=_utcnow)
    approval_tx_hash: Optional[str] = None   # ERC-20 approve sent just before, if any

    def to_dict(self) -> Dict[str, Any]:
        return {
            "txHash": self.tx_hash,
            "chainId": self.chain_id,
            "submittedAt": self.submitted_at.isoformat(),
            "approvalTxHash": self.approval_tx_hash,
        }


@dataclass
class TransactionReceipt:
    tx_hash: str
    chain_id: int
    block_number: int
    success: bool
    confirmations: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "txHash": self.tx_hash,
            "chainId": self.chain_id,
            "blockNumber": self.block_number,
            "success": self.success,
            "confirmations": self.confirmations,
        }


class WorkflowState(str, Enum):
    """States a deposit workflow moves through."""

    IDLE = "idle"
    VALIDATING = "validating"
    SWITCHING_NETWORK = "switching_network"
    QUOTING = "quoting"
    SUBMITTING_SOURCE = "submitting_source"
    AWAITING_SOURCE_CONFIRMATION = "awaiting_source_confirmation"
    AWAITING_BRIDGE_COMPLETION = "awaiting_bridge_completion"
    SUBMITTING_DESTINATION = "submitting_destination"
    AWAITING_DESTINATION_CONFIRMATION = "awaiting_destination_confirmation"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (WorkflowState.COMPLETED, WorkflowState.FAILED)


class FailureReason(str, Enum):
    """Why a workflow ended in FAILED."""

    VALIDATION_ERROR = "validation_error"
    WRONG_NETWORK = "wrong_network"
    QUOTE_REJECTED = "quote_rejected"
    SOURCE_TX_FAILED = "source_tx_failed"
    SOURCE_TX_REVERTED = "source_tx_reverted"
    BRIDGE_FAILED = "bridge_failed"
    BRIDGE_TIMEOUT = "bridge_timeout"                        # Funds may still arrive
    BRIDGE_STATUS_UNAVAILABLE = "bridge_status_unavailable"  # Funds status unknown
    DESTINATION_TX_FAILED = "destination_tx_failed"
    CANCELLED = "cancelled"


@dataclass
class WorkflowFailure:
    reason: FailureReason
    message: str
    retryable: bool = False
    funds_in_flight: bool = False
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reason": self.reason.value,
            "message": self.message,
            "retryable": self.retryable,
            "fundsInFlight": self.funds_in_flight,
            "details": self.details,
        }


@dataclass
class WorkflowEvent:
    """Record of one workflow state transition."""

    workflow_id: str
    from_state: WorkflowState
    to_state: WorkflowState
    timestamp: datetime = field(default_factory=_utcnow)
    detail: Dict[str, Any] = field(default_factory=dict)
    failure: Optional[WorkflowFailure] = None

    @property
    def is_terminal(self) -> bool:
        return self.to_state.is_terminal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workflowId": self.workflow_id,
            "fromState": self.from_state.value,
            "toState": self.to_state.value,
            "timestamp": self.timestamp.isoformat(),
            "detail": self.detail,
            "failure": self.failure.to_dict() if self.failure else None,
        }


@dataclass
class WorkflowContext:
    """
    Per-request state owned by exactly one deposit workflow.

    Only the workflow's own task mutates it; readers get snapshots
    through ``to_dict()``.
    """

    request: DepositRequest
    workflow_id: str = field(default_factory=lambda: uuid4().hex)
    state: WorkflowState = WorkflowState.IDLE
    recipient: Optional[str] = None
    quote: Optional[Quote] = None
    source_tx: Optional[SubmittedTransaction] = None
    source_receipt: Optional[TransactionReceipt] = None
    order: Optional[BridgeOrder] = None
    destination_tx: Optional[SubmittedTransaction] = None
    destination_receipt: Optional[TransactionReceipt] = None
    failure: Optional[WorkflowFailure] = None
    history: List[WorkflowEvent] = field(default_factory=list)

    created_at: datetime = field(default_factory=_utcnow)
    state_entered_at: datetime = field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def source_tx_hash(self) -> Optional[str]:
        return self.source_tx.tx_hash if self.source_tx else None

    @property
    def destination_tx_hash(self) -> Optional[str]:
        return self.destination_tx.tx_hash if self.destination_tx else None

    @property
    def has_broadcast(self) -> bool:
        """True once any transaction of this workflow left the signer."""
        return self.source_tx is not None or self.destination_tx is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workflowId": self.workflow_id,
            "state": self.state.value,
            "request": self.request.to_dict(),
            "recipient": self.recipient,
            "quote": self.quote.to_dict() if self.quote else None,
            "sourceTx": self.source_tx.to_dict() if self.source_tx else None,
            "sourceReceipt": self.source_receipt.to_dict() if self.source_receipt else None,
            "order": self.order.to_dict() if self.order else None,
            "destinationTx": self.destination_tx.to_dict() if self.destination_tx else None,
            "destinationReceipt": (
                self.destination_receipt.to_dict() if self.destination_receipt else None
            ),
            "failure": self.failure.to_dict() if self.failure else None,
            "history": [event.to_dict() for event in self.history],
            "createdAt": self.created_at.isoformat(),
            "stateEnteredAt": self.state_entered_at.isoformat(),
            "completedAt": _iso(self.completed_at),
        }
