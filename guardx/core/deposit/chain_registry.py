"""Static registry of chains where the GuardX vault is deployed."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Dict, List, Mapping, Optional, Union

from ...config import settings
from .constants import (
    BRIDGE_CONTRACT,
    CHAIN_NAMES,
    DEFAULT_MIN_DEPOSIT,
    DEPLOYMENTS,
    L1_CHAINS,
    L2_CHAINS,
    MIN_DEPOSIT_BY_DECIMALS,
    TOKEN_MAPPINGS,
    TRANSFER_TIME_DEFAULT,
    TRANSFER_TIME_L1_TO_L2,
    TRANSFER_TIME_L2_TO_L1,
    TRANSFER_TIME_L2_TO_L2,
    VAULT_CONTRACT,
    ZERO_ADDRESS,
)
from .models import ChainInfo, TokenInfo, UnsupportedChain

ChainLookup = Union[ChainInfo, UnsupportedChain]


def _is_set(address: Optional[str]) -> bool:
    return bool(address) and address.lower() != ZERO_ADDRESS


class ChainRegistry:
    """Chain metadata built once from static deployment tables.

    The registry is read-only after construction, so one instance is
    shared by every workflow.

    Usage:
        registry = get_chain_registry()
        info = registry.resolve(421614)
        if isinstance(info, ChainInfo) and info.is_deployed:
            ...
    """

    def __init__(
        self,
        *,
        deployments: Optional[Mapping[int, Mapping[str, str]]] = None,
        chain_names: Optional[Mapping[int, str]] = None,
        min_deposit_overrides: Optional[Mapping[str, Decimal]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self._names: Dict[int, str] = dict(chain_names if chain_names is not None else CHAIN_NAMES)
        overrides = min_deposit_overrides
        if overrides is None:
            overrides = settings.min_deposit_overrides
        self._min_overrides: Dict[str, Decimal] = {
            symbol.upper(): Decimal(str(value)) for symbol, value in overrides.items()
        }

        self._chains: Dict[int, ChainInfo] = {}
        for chain_id, contracts in (deployments if deployments is not None else DEPLOYMENTS).items():
            self._chains[chain_id] = ChainInfo(
                chain_id=chain_id,
                display_name=self.get_chain_name(chain_id),
                # Deployed when any contract address is set
                is_deployed=any(_is_set(address) for address in contracts.values()),
                contract_addresses=tuple(sorted(contracts.items())),
            )

        self._logger.debug(
            "Chain registry loaded: %d chains, %d deployed",
            len(self._chains),
            len(self.deployed_chains()),
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Lookups
    # ─────────────────────────────────────────────────────────────────────────

    def resolve(self, chain_id: int) -> ChainLookup:
        """Look up a chain. Unknown ids yield ``UnsupportedChain`` instead of raising."""
        info = self._chains.get(chain_id)
        if info is None:
            return UnsupportedChain(chain_id=chain_id, reason=f"Chain {chain_id} is not supported")
        return info

    def get_chain_name(self, chain_id: int) -> str:
        return self._names.get(chain_id, f"Chain {chain_id}")

    def is_deployed(self, chain_id: int) -> bool:
        info = self._chains.get(chain_id)
        return bool(info and info.is_deployed)

    def deployed_chains(self) -> List[ChainInfo]:
        return [info for _, info in sorted(self._chains.items()) if info.is_deployed]

    def all_chains(self) -> List[ChainInfo]:
        return [info for _, info in sorted(self._chains.items())]

    @staticmethod
    def is_cross_chain(source_chain_id: int, destination_chain_id: int) -> bool:
        return source_chain_id != destination_chain_id

    def is_pair_supported(self, source_chain_id: int, destination_chain_id: int) -> bool:
        """Both chains must be known and deployed."""
        return self.is_deployed(source_chain_id) and self.is_deployed(destination_chain_id)

    def vault_address(self, chain_id: int) -> Optional[str]:
        info = self._chains.get(chain_id)
        address = info.contract(VAULT_CONTRACT) if info else None
        return address if _is_set(address) else None

    def bridge_address(self, chain_id: int) -> Optional[str]:
        info = self._chains.get(chain_id)
        address = info.contract(BRIDGE_CONTRACT) if info else None
        return address if _is_set(address) else None

    # ─────────────────────────────────────────────────────────────────────────
    # Tokens
    # ─────────────────────────────────────────────────────────────────────────

    def destination_token(
        self, source_chain_id: int, destination_chain_id: int, token: TokenInfo
    ) -> TokenInfo:
        """The token that arrives on the destination chain, with its own decimals.

        Native stays native; unknown pairs keep the source token.
        """
        if source_chain_id == destination_chain_id or token.is_native:
            return token
        mapped = TOKEN_MAPPINGS.get((source_chain_id, destination_chain_id, token.address.lower()))
        if mapped is None:
            return token
        address, decimals = mapped
        return TokenInfo(address=address, symbol=token.symbol, decimals=decimals)

    def minimum_deposit(self, token: TokenInfo) -> Decimal:
        """Smallest accepted deposit in human units."""
        if token.min_deposit is not None:
            return token.min_deposit
        override = self._min_overrides.get(token.symbol.upper())
        if override is not None:
            return override
        return MIN_DEPOSIT_BY_DECIMALS.get(token.decimals, DEFAULT_MIN_DEPOSIT)

    # ─────────────────────────────────────────────────────────────────────────
    # Hints
    # ─────────────────────────────────────────────────────────────────────────

    @staticmethod
    def estimate_transfer_time(source_chain_id: int, destination_chain_id: int) -> str:
        source_l2 = source_chain_id in L2_CHAINS
        dest_l2 = destination_chain_id in L2_CHAINS
        if source_l2 and dest_l2:
            return TRANSFER_TIME_L2_TO_L2
        if source_chain_id in L1_CHAINS and dest_l2:
            return TRANSFER_TIME_L1_TO_L2
        if source_l2 and destination_chain_id in L1_CHAINS:
            return TRANSFER_TIME_L2_TO_L1
        return TRANSFER_TIME_DEFAULT


# Module-level singleton for convenience
_default_registry: Optional[ChainRegistry] = None


def get_chain_registry() -> ChainRegistry:
    """Get or create the default chain registry singleton."""
    global _default_registry
    if _default_registry is None:
        _default_registry = ChainRegistry()
    return _default_registry
