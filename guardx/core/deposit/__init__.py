"""
Cross-chain deposit orchestration.

Routes a vault deposit either straight into the local vault or through the
bridge, tracks the bridge order, and settles on the destination chain.
"""

from importlib import import_module
from typing import TYPE_CHECKING

from .chain_registry import ChainRegistry, get_chain_registry
from .errors import (
    BridgeFailedError,
    BridgeStatusUnavailableError,
    BridgeTimeoutError,
    DepositError,
    DestinationTxFailedError,
    InvalidTransitionError,
    QuoteRejectedError,
    SourceTxFailedError,
    SourceTxRevertedError,
    UnknownWorkflowError,
    ValidationError,
    WorkflowCancelledError,
    WrongNetworkError,
)
from .models import (
    BridgeOrder,
    BridgeOrderStatus,
    ChainInfo,
    DepositRequest,
    FailureReason,
    Quote,
    SubmittedTransaction,
    TokenInfo,
    TransactionReceipt,
    UnsupportedChain,
    WorkflowContext,
    WorkflowEvent,
    WorkflowFailure,
    WorkflowState,
)

if TYPE_CHECKING:  # pragma: no cover
    from .execution import DestinationSettlementAdapter, SourceExecutionAdapter
    from .orchestrator import (
        DepositOrchestrator,
        DepositWorkflow,
        WorkflowHandle,
        get_deposit_orchestrator,
    )
    from .poller import BridgeStatusPoller, normalize_order_status
    from .quote_service import QuoteService
    from .signers import RemoteSigner, WalletSigner
    from .state_machine import DepositStateMachine

# Components that depend on the provider clients load on first access,
# since the providers themselves import the models above.
_LAZY = {
    "SourceExecutionAdapter": ".execution",
    "DestinationSettlementAdapter": ".execution",
    "DepositOrchestrator": ".orchestrator",
    "DepositWorkflow": ".orchestrator",
    "WorkflowHandle": ".orchestrator",
    "get_deposit_orchestrator": ".orchestrator",
    "BridgeStatusPoller": ".poller",
    "normalize_order_status": ".poller",
    "QuoteService": ".quote_service",
    "RemoteSigner": ".signers",
    "WalletSigner": ".signers",
    "DepositStateMachine": ".state_machine",
}

__all__ = [
    # Models
    "TokenInfo",
    "ChainInfo",
    "UnsupportedChain",
    "DepositRequest",
    "Quote",
    "BridgeOrder",
    "BridgeOrderStatus",
    "SubmittedTransaction",
    "TransactionReceipt",
    "WorkflowState",
    "FailureReason",
    "WorkflowFailure",
    "WorkflowEvent",
    "WorkflowContext",
    # Errors
    "DepositError",
    "ValidationError",
    "WrongNetworkError",
    "QuoteRejectedError",
    "SourceTxFailedError",
    "SourceTxRevertedError",
    "BridgeFailedError",
    "BridgeTimeoutError",
    "BridgeStatusUnavailableError",
    "DestinationTxFailedError",
    "WorkflowCancelledError",
    "UnknownWorkflowError",
    "InvalidTransitionError",
    # Components
    "ChainRegistry",
    "get_chain_registry",
    "QuoteService",
    "SourceExecutionAdapter",
    "DestinationSettlementAdapter",
    "BridgeStatusPoller",
    "normalize_order_status",
    "WalletSigner",
    "RemoteSigner",
    # Orchestration
    "DepositStateMachine",
    "DepositWorkflow",
    "DepositOrchestrator",
    "WorkflowHandle",
    "get_deposit_orchestrator",
]


def __getattr__(name: str):  # pragma: no cover - simple thunk
    module_name = _LAZY.get(name)
    if module_name is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    return getattr(import_module(module_name, __name__), name)
