"""Bridge quotes: feasibility, fee and ETA for a deposit request."""

import asyncio
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from ...config import settings
from ...providers.base import BridgeProvider
from ...providers.debridge import BridgeProviderError, get_debridge_provider
from .chain_registry import ChainRegistry, get_chain_registry
from .constants import DEFAULT_ESTIMATED_SECONDS
from .models import DepositRequest, Quote
from .tx_builder import from_base_units, to_base_units


logger = logging.getLogger(__name__)

QUOTE_TIMEOUT_CODE = "QuoteTimeout"
PROVIDER_ERROR_CODE = "ProviderError"
INVALID_REQUEST_CODE = "InvalidRequest"


class QuoteService:
    """Fetches a fresh quote per request. Quotes are never cached."""

    def __init__(
        self,
        provider: Optional[BridgeProvider] = None,
        registry: Optional[ChainRegistry] = None,
        *,
        timeout_seconds: Optional[float] = None,
        slippage_bps: Optional[int] = None,
    ) -> None:
        self._provider = provider
        self._registry = registry or get_chain_registry()
        self.timeout_seconds = timeout_seconds or settings.bridge_quote_timeout_seconds
        self.slippage_bps = settings.bridge_slippage_bps if slippage_bps is None else slippage_bps

    @property
    def provider(self) -> BridgeProvider:
        if self._provider is None:
            self._provider = get_debridge_provider()
        return self._provider

    async def get_quote(self, request: DepositRequest) -> Quote:
        amount = request.parsed_amount()
        if amount is None or amount <= 0:
            return Quote(
                feasible=False,
                errors=[f"Invalid amount: {request.amount!r}"],
                error_code=INVALID_REQUEST_CODE,
            )

        if not request.is_cross_chain:
            # Same-chain deposits need no bridge and no network round-trip
            return Quote(
                feasible=True,
                estimated_seconds=0,
                bridge_fee=Decimal("0"),
                min_amount_out=amount,
                max_amount_out=amount,
                gas_fee=None,
            )

        token = request.token
        destination_token = self._registry.destination_token(
            request.source_chain_id, request.destination_chain_id, token
        )
        payload = {
            "sourceChain": request.source_chain_id,
            "destinationChain": request.destination_chain_id,
            "sourceToken": token.address,
            "destinationToken": destination_token.address,
            "amount": str(to_base_units(amount, token.decimals)),
            "slippage": self.slippage_bps,
        }
        transfer_time = self._registry.estimate_transfer_time(
            request.source_chain_id, request.destination_chain_id
        )

        try:
            data = await asyncio.wait_for(self.provider.precheck(payload), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            return self._timed_out(transfer_time)
        except BridgeProviderError as exc:
            if exc.timed_out:
                return self._timed_out(transfer_time)
            logger.warning("Bridge quote failed: %s", exc)
            return Quote(
                feasible=False,
                errors=[f"Bridge provider error: {exc.message}"],
                error_code=PROVIDER_ERROR_CODE,
                transfer_time=transfer_time,
            )

        return self._parse_precheck(data, amount, token.decimals, destination_token.decimals, transfer_time)

    def _timed_out(self, transfer_time: str) -> Quote:
        logger.warning("Bridge quote timed out after %ss", self.timeout_seconds)
        return Quote(
            feasible=False,
            errors=[f"Bridge quote timed out after {self.timeout_seconds:g}s"],
            error_code=QUOTE_TIMEOUT_CODE,
            transfer_time=transfer_time,
        )

    @staticmethod
    def _parse_precheck(
        data: Dict[str, Any],
        amount: Decimal,
        decimals: int,
        out_decimals: int,
        transfer_time: str,
    ) -> Quote:
        if not isinstance(data, dict):
            return Quote(
                feasible=False,
                errors=["Bridge provider returned an unexpected response"],
                error_code=PROVIDER_ERROR_CODE,
                transfer_time=transfer_time,
            )

        if not data.get("valid"):
            errors: List[str] = [str(e) for e in (data.get("errors") or []) if e]
            return Quote(
                feasible=False,
                errors=errors or ["Bridge route rejected by provider"],
                transfer_time=transfer_time,
            )

        raw = data.get("quote") or {}

        def _units(key: str, default: Decimal, scale: int = decimals) -> Decimal:
            value = raw.get(key)
            if value in (None, ""):
                return default
            try:
                return from_base_units(int(Decimal(str(value))), scale)
            except (InvalidOperation, ValueError):
                return default

        try:
            estimated = int(raw.get("estimatedTime") or DEFAULT_ESTIMATED_SECONDS)
        except (TypeError, ValueError):
            estimated = DEFAULT_ESTIMATED_SECONDS

        return Quote(
            feasible=True,
            errors=[],
            estimated_seconds=estimated,
            bridge_fee=_units("fee", Decimal("0")),
            min_amount_out=_units("minAmountOut", amount, out_decimals),
            max_amount_out=_units("maxAmountOut", amount, out_decimals),
            gas_fee=None,
            transfer_time=transfer_time,
        )
