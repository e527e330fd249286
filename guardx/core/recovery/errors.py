"""
Error Classification

Low-level error types raised by signers, RPC endpoints and the bridge provider.
Errors are classified as recoverable (a new attempt may succeed) or
unrecoverable (retrying cannot help without user action).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(str, Enum):
    """Categories of errors for recovery decisions."""

    NETWORK = "network"           # Network/connectivity issues
    RATE_LIMIT = "rate_limit"     # API rate limits
    TIMEOUT = "timeout"           # Operation timed out
    RPC = "rpc"                   # Node returned a JSON-RPC error
    USER_REJECTED = "user_rejected"  # Wallet owner declined the request
    INSUFFICIENT_FUNDS = "insufficient_funds"
    TRANSACTION_REVERTED = "transaction_reverted"
    UNKNOWN = "unknown"


@dataclass
class ErrorContext:
    """Additional context about an error."""

    category: ErrorCategory = ErrorCategory.UNKNOWN
    recoverable: bool = True
    retry_after_seconds: Optional[float] = None
    suggested_action: Optional[str] = None
    chain_id: Optional[int] = None
    tx_hash: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


class RecoverableError(Exception):
    """
    Base class for errors that can be retried.

    These errors are typically transient:
    - Network issues
    - Rate limits
    - Timeouts
    - Node hiccups
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        retry_after: Optional[float] = None,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.retry_after = retry_after
        self.context = context or ErrorContext(category=category, recoverable=True)


class UnrecoverableError(Exception):
    """
    Base class for errors that cannot be retried.

    These errors require the user to act:
    - Signature rejected
    - Transaction reverted
    - Insufficient funds
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.context = context or ErrorContext(category=category, recoverable=False)


class NetworkError(RecoverableError):
    """Network connectivity error."""

    def __init__(self, message: str = "Network error", chain_id: Optional[int] = None):
        super().__init__(
            message,
            category=ErrorCategory.NETWORK,
            context=ErrorContext(
                category=ErrorCategory.NETWORK,
                recoverable=True,
                chain_id=chain_id,
                suggested_action="Retry with exponential backoff",
            ),
        )


class RpcError(RecoverableError):
    """JSON-RPC error returned by a node."""

    def __init__(
        self,
        message: str = "RPC error",
        code: Optional[int] = None,
        chain_id: Optional[int] = None,
    ):
        self.code = code
        super().__init__(
            message,
            category=ErrorCategory.RPC,
            context=ErrorContext(
                category=ErrorCategory.RPC,
                recoverable=True,
                chain_id=chain_id,
                details={"code": code} if code is not None else {},
            ),
        )


class ConfirmationTimeoutError(RecoverableError):
    """A transaction was not confirmed within the allowed window."""

    def __init__(
        self,
        message: str = "Confirmation timed out",
        tx_hash: Optional[str] = None,
        chain_id: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
    ):
        super().__init__(
            message,
            category=ErrorCategory.TIMEOUT,
            context=ErrorContext(
                category=ErrorCategory.TIMEOUT,
                recoverable=True,
                tx_hash=tx_hash,
                chain_id=chain_id,
                suggested_action="Check the transaction on a block explorer",
                details={"timeout_seconds": timeout_seconds} if timeout_seconds else {},
            ),
        )


class UserRejectedError(UnrecoverableError):
    """The wallet owner rejected the signature or network switch."""

    def __init__(self, message: str = "Request rejected by user"):
        super().__init__(
            message,
            category=ErrorCategory.USER_REJECTED,
            context=ErrorContext(
                category=ErrorCategory.USER_REJECTED,
                recoverable=False,
                suggested_action="Approve the request in the wallet",
            ),
        )


class TransactionRevertedError(UnrecoverableError):
    """Transaction reverted on-chain (or during gas estimation)."""

    def __init__(
        self,
        message: str = "Transaction reverted",
        tx_hash: Optional[str] = None,
        reason: Optional[str] = None,
        chain_id: Optional[int] = None,
    ):
        self.revert_reason = reason
        super().__init__(
            message,
            category=ErrorCategory.TRANSACTION_REVERTED,
            context=ErrorContext(
                category=ErrorCategory.TRANSACTION_REVERTED,
                recoverable=False,
                tx_hash=tx_hash,
                chain_id=chain_id,
                suggested_action="Review transaction parameters",
                details={"revert_reason": reason} if reason else {},
            ),
        )


def classify_error(error: Exception) -> ErrorContext:
    """
    Classify an exception and return its error context.

    Already-typed errors keep their own context; anything else is classified
    from its message.
    """
    if isinstance(error, (RecoverableError, UnrecoverableError)):
        return error.context

    message = str(error).lower()

    rejected_patterns = ["user rejected", "user denied", "rejected by user", "request rejected"]
    if any(p in message for p in rejected_patterns):
        return ErrorContext(
            category=ErrorCategory.USER_REJECTED,
            recoverable=False,
            suggested_action="Approve the request in the wallet",
        )

    rate_limit_patterns = ["rate limit", "too many requests", "429", "throttl"]
    if any(p in message for p in rate_limit_patterns):
        return ErrorContext(
            category=ErrorCategory.RATE_LIMIT,
            recoverable=True,
            retry_after_seconds=5.0,
            suggested_action="Wait before retrying",
        )

    network_patterns = ["connection", "network", "unreachable", "refused", "dns", "socket"]
    if any(p in message for p in network_patterns):
        return ErrorContext(
            category=ErrorCategory.NETWORK,
            recoverable=True,
            suggested_action="Check network connectivity",
        )

    timeout_patterns = ["timeout", "timed out", "deadline"]
    if any(p in message for p in timeout_patterns):
        return ErrorContext(
            category=ErrorCategory.TIMEOUT,
            recoverable=True,
            suggested_action="Retry with longer timeout",
        )

    funds_patterns = ["insufficient funds", "not enough", "exceeds balance"]
    if any(p in message for p in funds_patterns):
        return ErrorContext(
            category=ErrorCategory.INSUFFICIENT_FUNDS,
            recoverable=False,
            suggested_action="Add funds to wallet",
        )

    revert_patterns = ["revert", "execution reverted", "out of gas"]
    if any(p in message for p in revert_patterns):
        return ErrorContext(
            category=ErrorCategory.TRANSACTION_REVERTED,
            recoverable=False,
            suggested_action="Review transaction parameters",
        )

    # Unknown errors are not retried: a broadcast may already have happened
    return ErrorContext(
        category=ErrorCategory.UNKNOWN,
        recoverable=False,
        suggested_action="Inspect the error and resubmit",
    )
