"""
Error Recovery Module

Provides error classification and retry logic for resilient
execution of chain and bridge operations.
"""

from .errors import (
    ConfirmationTimeoutError,
    ErrorCategory,
    ErrorContext,
    NetworkError,
    RecoverableError,
    RpcError,
    TransactionRevertedError,
    UnrecoverableError,
    UserRejectedError,
    classify_error,
)
from .strategies import RetryConfig, RetryStrategy

__all__ = [
    # Errors
    "ErrorCategory",
    "ErrorContext",
    "RecoverableError",
    "UnrecoverableError",
    "NetworkError",
    "RpcError",
    "ConfirmationTimeoutError",
    "UserRejectedError",
    "TransactionRevertedError",
    "classify_error",
    # Strategies
    "RetryConfig",
    "RetryStrategy",
]
