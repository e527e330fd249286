"""
Tests for the Error Recovery System

Tests for error classification and retry strategies used around wallet
broadcasts and RPC calls.
"""

import pytest

from guardx.core.recovery import (
    ConfirmationTimeoutError,
    NetworkError,
    RecoverableError,
    RetryConfig,
    RetryStrategy,
    RpcError,
    TransactionRevertedError,
    UnrecoverableError,
    UserRejectedError,
    classify_error,
)
from guardx.core.recovery.errors import ErrorCategory


# =============================================================================
# Error Classification Tests
# =============================================================================

class TestErrorClassification:
    """Tests for error classification."""

    def test_recoverable_error_is_recoverable(self):
        """Test that RecoverableError is classified as recoverable."""
        error = RecoverableError("Test error")
        assert error.context.recoverable is True

    def test_unrecoverable_error_is_not_recoverable(self):
        """Test that UnrecoverableError is classified as not recoverable."""
        error = UnrecoverableError("Test error")
        assert error.context.recoverable is False

    def test_rpc_error_keeps_code(self):
        error = RpcError("execution reverted", code=-32000, chain_id=84532)

        assert error.code == -32000
        assert error.category == ErrorCategory.RPC
        assert error.context.chain_id == 84532
        assert error.context.details == {"code": -32000}

    def test_confirmation_timeout(self):
        error = ConfirmationTimeoutError(tx_hash="0xabc", chain_id=1, timeout_seconds=120)

        assert error.category == ErrorCategory.TIMEOUT
        assert error.context.tx_hash == "0xabc"
        assert error.context.details["timeout_seconds"] == 120

    def test_user_rejected(self):
        error = UserRejectedError()

        assert error.category == ErrorCategory.USER_REJECTED
        assert error.context.recoverable is False

    def test_transaction_reverted_error(self):
        """Test TransactionRevertedError properties."""
        error = TransactionRevertedError(tx_hash="0x123", reason="Vault paused", chain_id=1)

        assert error.category == ErrorCategory.TRANSACTION_REVERTED
        assert error.revert_reason == "Vault paused"
        assert error.context.tx_hash == "0x123"

    def test_typed_errors_keep_their_context(self):
        error = NetworkError("dns failure", chain_id=10)

        assert classify_error(error) is error.context

    @pytest.mark.parametrize(
        "message,category,recoverable",
        [
            ("User denied transaction signature", ErrorCategory.USER_REJECTED, False),
            ("429 Too Many Requests", ErrorCategory.RATE_LIMIT, True),
            ("Connection refused", ErrorCategory.NETWORK, True),
            ("request timed out", ErrorCategory.TIMEOUT, True),
            ("insufficient funds for gas * price + value", ErrorCategory.INSUFFICIENT_FUNDS, False),
            ("execution reverted: PAUSED", ErrorCategory.TRANSACTION_REVERTED, False),
        ],
    )
    def test_classify_by_message(self, message, category, recoverable):
        context = classify_error(Exception(message))

        assert context.category == category
        assert context.recoverable is recoverable

    def test_rate_limit_suggests_wait(self):
        assert classify_error(Exception("rate limit exceeded")).retry_after_seconds == 5.0

    def test_classify_unknown_error(self):
        """Unknown errors are not retried since a broadcast may have happened."""
        context = classify_error(Exception("Something weird happened"))

        assert context.category == ErrorCategory.UNKNOWN
        assert context.recoverable is False


# =============================================================================
# Retry Strategy Tests
# =============================================================================

class TestRetryConfig:
    """Tests for backoff delays."""

    def test_exponential_delays_are_capped(self):
        config = RetryConfig(initial_delay_seconds=1, max_delay_seconds=5, jitter=False)

        assert [config.get_delay(n) for n in range(4)] == [1, 2, 4, 5]

    def test_jitter_stays_in_range(self):
        config = RetryConfig(initial_delay_seconds=10, jitter=True, jitter_factor=0.1)

        for _ in range(20):
            assert 9 <= config.get_delay(0) <= 11


class TestRetryStrategy:
    """Tests for retry strategies."""

    @pytest.mark.asyncio
    async def test_successful_operation(self):
        """Test successful operation doesn't retry."""
        strategy = RetryStrategy(RetryConfig(max_attempts=3))

        call_count = 0

        async def operation():
            nonlocal call_count
            call_count += 1
            return "0xhash"

        result = await strategy.execute(operation)

        assert result == "0xhash"
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_retry_recoverable_error(self):
        """Test retry on recoverable error."""
        strategy = RetryStrategy(RetryConfig(max_attempts=3, initial_delay_seconds=0.001, jitter=False))

        call_count = 0

        async def operation():
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise NetworkError("Temporary failure")
            return "0xhash"

        result = await strategy.execute(operation, context={"operation": "broadcast"})

        assert result == "0xhash"
        assert call_count == 3

    @pytest.mark.asyncio
    async def test_no_retry_unrecoverable(self):
        """Test no retry on unrecoverable error."""
        strategy = RetryStrategy(RetryConfig(max_attempts=3))

        call_count = 0

        async def operation():
            nonlocal call_count
            call_count += 1
            raise UserRejectedError("User denied transaction signature")

        with pytest.raises(UserRejectedError):
            await strategy.execute(operation)

        assert call_count == 1

    @pytest.mark.asyncio
    async def test_no_retry_on_unclassified_exception(self):
        strategy = RetryStrategy(RetryConfig(max_attempts=3))

        call_count = 0

        async def operation():
            nonlocal call_count
            call_count += 1
            raise RuntimeError("wallet crashed")

        with pytest.raises(RuntimeError):
            await strategy.execute(operation)

        assert call_count == 1

    @pytest.mark.asyncio
    async def test_retries_classified_plain_exception(self):
        strategy = RetryStrategy(RetryConfig(max_attempts=2, initial_delay_seconds=0.001, jitter=False))

        call_count = 0

        async def operation():
            nonlocal call_count
            call_count += 1
            if call_count == 1:
                raise OSError("Connection reset by peer")
            return "ok"

        assert await strategy.execute(operation) == "ok"
        assert call_count == 2

    @pytest.mark.asyncio
    async def test_all_retries_exhausted(self):
        """Test the last error propagates when all retries are exhausted."""
        strategy = RetryStrategy(RetryConfig(max_attempts=3, initial_delay_seconds=0.001, jitter=False))

        call_count = 0

        async def operation():
            nonlocal call_count
            call_count += 1
            raise NetworkError("Persistent failure")

        with pytest.raises(NetworkError):
            await strategy.execute(operation)

        assert call_count == 3

    def test_retry_after_is_honoured_and_capped(self):
        strategy = RetryStrategy(RetryConfig(max_delay_seconds=10))

        assert strategy._get_delay(RecoverableError("slow down", retry_after=3), 0) == 3
        assert strategy._get_delay(RecoverableError("slow down", retry_after=60), 0) == 10
