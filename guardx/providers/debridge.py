"""Async client for the deBridge order API."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..config import settings
from .base import BridgeProvider


logger = logging.getLogger(__name__)


class BridgeProviderError(Exception):
    """Non-2xx response or transport failure from the bridge provider."""

    def __init__(self, message: str, status_code: Optional[int] = None, *, timed_out: bool = False) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.timed_out = timed_out

    @property
    def is_transient(self) -> bool:
        """Transport errors, rate limits and 5xx may succeed on a later attempt."""
        if self.status_code is None:
            return True
        return self.status_code == 429 or self.status_code >= 500


class DeBridgeProvider(BridgeProvider):
    """Thin wrapper around https://api.debridge.finance endpoints."""

    name = "debridge"

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout_s: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        configured = base_url or settings.debridge_base_url
        self.base_urls: List[str] = [configured.rstrip("/")]
        self.api_key = api_key if api_key is not None else settings.debridge_api_key
        self.timeout_s = timeout_s or settings.bridge_quote_timeout_seconds
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {
            "accept": "application/json",
            "content-type": "application/json",
            "user-agent": "GuardXBridgeClient/2025-10",
        }
        if self.api_key:
            headers["authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        merged_headers = {**self._headers(), **(headers or {})}
        last_error: Optional[Exception] = None

        for index, base_url in enumerate(self.base_urls):
            try:
                async with httpx.AsyncClient(
                    base_url=base_url,
                    timeout=self.timeout_s,
                    transport=self._transport,
                ) as client:
                    response = await client.request(method, path, json=json, headers=merged_headers, **kwargs)
                    response.raise_for_status()
                    return response
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                if status in (404, 405) and index < len(self.base_urls) - 1:
                    last_error = exc
                    continue
                raise BridgeProviderError(
                    f"Bridge provider returned HTTP {status} for {method} {path}: {_error_text(exc.response)}",
                    status_code=status,
                ) from exc
            except httpx.RequestError as exc:
                logger.warning("Bridge provider request %s %s%s failed: %r", method, base_url, path, exc)
                last_error = exc
                continue

        if isinstance(last_error, httpx.HTTPStatusError):
            raise BridgeProviderError(
                f"Bridge provider returned HTTP {last_error.response.status_code} for {method} {path}",
                status_code=last_error.response.status_code,
            ) from last_error
        if last_error is not None:
            raise BridgeProviderError(
                f"Bridge provider unreachable for {method} {path}: {last_error!r}",
                timed_out=isinstance(last_error, httpx.TimeoutException),
            ) from last_error
        raise BridgeProviderError("All bridge provider hosts failed without providing an error response")

    async def precheck(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Ask the provider whether a transfer is feasible and what it costs.

        `payload` carries sourceChain, destinationChain, sourceToken,
        destinationToken, amount (base units) and slippage (bps).
        """
        resp = await self._request("POST", "/precheck", json=payload)
        return resp.json()

    async def get_order(self, order_id: str) -> Optional[Dict[str, Any]]:
        """Fetch order status. Returns None when the order is not known yet (404)."""
        try:
            resp = await self._request("GET", f"/order/{order_id}")
        except BridgeProviderError as exc:
            if exc.status_code == 404:
                return None
            raise
        return resp.json()

    async def find_order_ids(self, tx_hash: str) -> List[str]:
        """Order ids created by a source transaction; empty until indexed."""
        try:
            resp = await self._request("GET", f"/tx/{tx_hash}/order-ids")
        except BridgeProviderError as exc:
            if exc.status_code == 404:
                return []
            raise
        data = resp.json()
        raw_ids = data.get("orderIds") if isinstance(data, dict) else data
        order_ids: List[str] = []
        for entry in raw_ids or []:
            # The provider returns either plain strings or {"stringValue": ...}
            if isinstance(entry, dict):
                entry = entry.get("stringValue")
            if entry:
                order_ids.append(str(entry))
        return order_ids

    async def ready(self) -> bool:
        return bool(self.base_urls)

    async def health_check(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": "healthy" if self.base_urls else "unavailable",
            "baseUrl": self.base_urls[0],
            "hasApiKey": bool(self.api_key),
        }


def _error_text(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("errorMessage") or body.get("message") or body.get("error") or body)[:200]
    return str(body)[:200]


# Singleton instance
_provider: Optional[DeBridgeProvider] = None


def get_debridge_provider() -> DeBridgeProvider:
    """Get the singleton bridge provider instance."""
    global _provider
    if _provider is None:
        _provider = DeBridgeProvider()
    return _provider
