"""
Bridge Status Poller

Tracks a bridge order from the confirmed source transaction until the
provider reports it fulfilled or failed, or until the deadline passes.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional

from ...config import settings
from ...providers.base import BridgeProvider
from ...providers.debridge import BridgeProviderError, get_debridge_provider
from ..recovery import RetryConfig
from .errors import BridgeStatusUnavailableError, BridgeTimeoutError
from .models import BridgeOrder, BridgeOrderStatus


logger = logging.getLogger(__name__)

FULFILLED_STATUSES = {"fulfilled", "completed", "sentunlock", "claimedunlock"}
FAILED_STATUSES = {"failed", "ordercancelled", "sentordercancel", "claimedordercancel"}


def normalize_order_status(raw: Optional[str]) -> BridgeOrderStatus:
    """Map a provider status string onto pending / fulfilled / failed."""
    value = (raw or "").replace("_", "").replace(" ", "").lower()
    if value in FULFILLED_STATUSES:
        return BridgeOrderStatus.FULFILLED
    if value in FAILED_STATUSES:
        return BridgeOrderStatus.FAILED
    return BridgeOrderStatus.PENDING


def _string_value(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        value = value.get("stringValue")
    if value in (None, ""):
        return None
    return str(value)


def _parse_amount(value: Any) -> Optional[int]:
    text = _string_value(value)
    if text is None:
        return None
    try:
        return int(text)
    except ValueError:
        return None


class BridgeStatusPoller:
    """
    Polls the bridge provider for one order at a time.

    The poller is stateless between calls; all progress lives on the
    ``BridgeOrder`` it is given. Waits use ``asyncio.sleep`` so cancelling
    the calling task stops polling immediately.
    """

    def __init__(
        self,
        provider: Optional[BridgeProvider] = None,
        *,
        interval_seconds: Optional[float] = None,
        backoff: Optional[Literal["fixed", "exponential"]] = None,
        max_interval_seconds: Optional[float] = None,
        max_consecutive_errors: Optional[int] = None,
    ) -> None:
        self._provider = provider
        self.interval_seconds = interval_seconds or settings.bridge_poll_interval_seconds
        self.backoff = backoff or settings.bridge_poll_backoff
        self.max_interval_seconds = max_interval_seconds or settings.bridge_poll_max_interval_seconds
        self.max_consecutive_errors = max_consecutive_errors or settings.bridge_max_consecutive_errors
        self._delays = RetryConfig(
            initial_delay_seconds=self.interval_seconds,
            max_delay_seconds=max(self.max_interval_seconds, self.interval_seconds),
            exponential_base=2.0,
            jitter=False,
        )

    @property
    def provider(self) -> BridgeProvider:
        if self._provider is None:
            self._provider = get_debridge_provider()
        return self._provider

    def next_delay(self, poll_number: int) -> float:
        """Delay before the poll following ``poll_number`` (zero-based)."""
        if self.backoff == "exponential":
            return self._delays.get_delay(poll_number)
        return self.interval_seconds

    async def open_order(self, source_tx_hash: str) -> BridgeOrder:
        """Create the order record for a confirmed source transaction.

        When the provider has not indexed the transaction yet, the order id is
        derived from the tx hash and resolved again on later polls.
        """
        order_id: Optional[str] = None
        try:
            order_ids = await self.provider.find_order_ids(source_tx_hash)
            order_id = order_ids[0] if order_ids else None
        except BridgeProviderError as exc:
            logger.warning("Order lookup for %s failed: %s", source_tx_hash, exc)

        if order_id is None:
            logger.info("Order for %s not indexed yet; tracking by tx hash", source_tx_hash)
            return BridgeOrder(order_id=source_tx_hash, source_tx_hash=source_tx_hash, synthetic=True)

        logger.info("Tracking bridge order %s for %s", order_id, source_tx_hash)
        return BridgeOrder(order_id=order_id, source_tx_hash=source_tx_hash)

    async def poll_until_terminal(
        self,
        order: BridgeOrder,
        deadline_seconds: Optional[float] = None,
    ) -> BridgeOrder:
        """
        Poll until the order is fulfilled or failed.

        Raises:
            BridgeTimeoutError: still pending when the deadline passed
            BridgeStatusUnavailableError: too many consecutive provider errors
        """
        deadline_seconds = deadline_seconds or settings.bridge_deadline_seconds
        loop = asyncio.get_running_loop()
        deadline = loop.time() + deadline_seconds
        consecutive_errors = 0

        while True:
            try:
                await self._poll_once(order)
                consecutive_errors = 0
            except BridgeProviderError as exc:
                consecutive_errors += 1
                logger.warning(
                    "Bridge status check for %s failed (%d/%d): %s",
                    order.order_id,
                    consecutive_errors,
                    self.max_consecutive_errors,
                    exc,
                )
                if not exc.is_transient or consecutive_errors >= self.max_consecutive_errors:
                    raise BridgeStatusUnavailableError(
                        f"Bridge status unavailable after {consecutive_errors} consecutive errors: {exc.message}",
                        details=self._details(order, lastStatusCode=exc.status_code),
                    ) from exc

            if order.is_terminal:
                logger.info("Bridge order %s is %s", order.order_id, order.status.value)
                return order

            remaining = deadline - loop.time()
            if remaining <= 0:
                raise BridgeTimeoutError(
                    f"Bridge order {order.order_id} still pending after {deadline_seconds:g}s; "
                    "funds may still arrive",
                    details=self._details(order),
                )

            await asyncio.sleep(min(self.next_delay(max(order.polls - 1, 0)), remaining))

    async def _poll_once(self, order: BridgeOrder) -> None:
        if order.synthetic:
            order_ids = await self.provider.find_order_ids(order.source_tx_hash)
            if order_ids:
                logger.info("Resolved bridge order %s for %s", order_ids[0], order.source_tx_hash)
                order.order_id = order_ids[0]
                order.synthetic = False

        order.polls += 1
        order.updated_at = datetime.now(timezone.utc)

        if order.synthetic:
            return

        # 404 (None) means the provider has not caught up yet: still pending
        data = await self.provider.get_order(order.order_id)
        if data:
            self._apply(order, data)

    @staticmethod
    def _apply(order: BridgeOrder, data: Dict[str, Any]) -> None:
        raw_status = data.get("status") or data.get("state")
        status = normalize_order_status(raw_status)
        if raw_status != order.provider_status:
            logger.debug("Bridge order %s provider status: %s", order.order_id, raw_status)
        order.provider_status = raw_status
        order.status = status

        dst_tx = (
            _string_value(data.get("dstTxHash"))
            or _string_value(data.get("destinationTxHash"))
            or _string_value((data.get("fulfilledDstEventMetadata") or {}).get("transactionHash"))
        )
        if dst_tx:
            order.destination_tx_hash = dst_tx

        amount_out = _parse_amount(data.get("amountOut"))
        if amount_out is None:
            amount_out = _parse_amount((data.get("takeOffer") or {}).get("amount"))
        if amount_out is not None:
            order.amount_out = amount_out

    @staticmethod
    def _details(order: BridgeOrder, **extra: Any) -> Dict[str, Any]:
        details = {
            "orderId": order.order_id,
            "sourceTxHash": order.source_tx_hash,
            "polls": order.polls,
            "synthetic": order.synthetic,
        }
        details.update(extra)
        return details
