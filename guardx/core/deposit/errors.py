"""Deposit workflow errors.

Each error maps onto exactly one ``FailureReason`` so the orchestrator can
turn it into the terminal ``Failed`` event without guessing.
"""

from typing import Any, Dict, Optional

from .models import FailureReason, WorkflowFailure, WorkflowState


class DepositError(Exception):
    """Base class for failures that end a deposit workflow."""

    reason: FailureReason = FailureReason.VALIDATION_ERROR
    default_retryable: bool = False
    default_funds_in_flight: bool = False

    def __init__(
        self,
        message: str,
        *,
        retryable: Optional[bool] = None,
        funds_in_flight: Optional[bool] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.retryable = self.default_retryable if retryable is None else retryable
        self.funds_in_flight = (
            self.default_funds_in_flight if funds_in_flight is None else funds_in_flight
        )
        self.details = details or {}

    def to_failure(self) -> WorkflowFailure:
        return WorkflowFailure(
            reason=self.reason,
            message=self.message,
            retryable=self.retryable,
            funds_in_flight=self.funds_in_flight,
            details=dict(self.details),
        )


class ValidationError(DepositError):
    """Amount, minimum, route, recipient or balance check failed."""

    reason = FailureReason.VALIDATION_ERROR


class WrongNetworkError(DepositError):
    """The signer could not be moved to the source chain."""

    reason = FailureReason.WRONG_NETWORK
    default_retryable = True


class QuoteRejectedError(DepositError):
    reason = FailureReason.QUOTE_REJECTED


class SourceTxFailedError(DepositError):
    """Signature rejected, broadcast failed, or reverted at submission."""

    reason = FailureReason.SOURCE_TX_FAILED
    default_retryable = True


class SourceTxRevertedError(DepositError):
    """Source transaction reverted or was never confirmed."""

    reason = FailureReason.SOURCE_TX_REVERTED


class BridgeFailedError(DepositError):
    reason = FailureReason.BRIDGE_FAILED


class BridgeTimeoutError(DepositError):
    """Order still pending at the deadline. Funds may still arrive."""

    reason = FailureReason.BRIDGE_TIMEOUT
    default_funds_in_flight = True


class BridgeStatusUnavailableError(DepositError):
    """The provider could not be reached often enough to know the order status."""

    reason = FailureReason.BRIDGE_STATUS_UNAVAILABLE
    default_funds_in_flight = True


class DestinationTxFailedError(DepositError):
    reason = FailureReason.DESTINATION_TX_FAILED
    default_retryable = True


class WorkflowCancelledError(DepositError):
    reason = FailureReason.CANCELLED


class UnknownWorkflowError(LookupError):
    """No workflow with this id is tracked (never started or already evicted)."""

    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Unknown deposit workflow: {workflow_id}")


class InvalidTransitionError(Exception):
    """Raised when a workflow transition is not allowed."""

    def __init__(self, from_state: WorkflowState, to_state: WorkflowState, message: str = ""):
        self.from_state = from_state
        self.to_state = to_state
        self.message = message or f"Invalid transition from {from_state.value} to {to_state.value}"
        super().__init__(self.message)
