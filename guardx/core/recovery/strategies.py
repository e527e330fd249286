"""
Retry Strategies

Bounded retries with exponential backoff for transient RPC and broadcast
failures.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Callable, Coroutine, Dict, Optional, TypeVar

from .errors import RecoverableError, UnrecoverableError, classify_error

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    initial_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = True
    jitter_factor: float = 0.1

    def get_delay(self, attempt: int) -> float:
        """Calculate delay after the given (zero-based) attempt."""
        delay = min(
            self.initial_delay_seconds * (self.exponential_base ** attempt),
            self.max_delay_seconds,
        )
        if self.jitter:
            jitter_range = delay * self.jitter_factor
            delay += random.uniform(-jitter_range, jitter_range)
        return max(delay, 0)


class RetryStrategy:
    """
    Retries recoverable errors up to ``max_attempts`` times.

    Unrecoverable errors and errors that classify as unrecoverable are
    re-raised on the first occurrence.
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config or RetryConfig()
        self.logger = logger or logging.getLogger(__name__)

    async def execute(
        self,
        operation: Callable[[], Coroutine[Any, Any, T]],
        context: Optional[Dict[str, Any]] = None,
    ) -> T:
        label = (context or {}).get("operation", "operation")

        for attempt in range(self.config.max_attempts):
            try:
                return await operation()
            except Exception as e:
                if not self.should_retry(e, attempt):
                    raise

                delay = self._get_delay(e, attempt)
                self.logger.warning(
                    "%s attempt %d/%d failed: %s. Retrying in %.1fs",
                    label,
                    attempt + 1,
                    self.config.max_attempts,
                    e,
                    delay,
                )
                await asyncio.sleep(delay)

        # should_retry() refuses the last attempt, so the loop always returns or raises
        raise RuntimeError("All retry attempts exhausted")

    def should_retry(self, error: Exception, attempt: int) -> bool:
        if attempt >= self.config.max_attempts - 1:
            return False

        if isinstance(error, UnrecoverableError):
            return False

        if isinstance(error, RecoverableError):
            return True

        return classify_error(error).recoverable

    def _get_delay(self, error: Exception, attempt: int) -> float:
        if isinstance(error, RecoverableError) and error.retry_after:
            return min(error.retry_after, self.config.max_delay_seconds)
        return self.config.get_delay(attempt)
