"""
Transaction builder for vault deposit calls.
"""

import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_DOWN, Decimal
from enum import Enum
from typing import Any, Dict

from eth_utils import is_address, keccak, to_checksum_address


def _selector(signature: str) -> str:
    return "0x" + keccak(text=signature)[:4].hex()


DEPOSIT_ASSET_SIGNATURE = "depositAsset(address,uint256)"
APPROVE_SIGNATURE = "approve(address,uint256)"
INITIATE_CROSS_CHAIN_DEPOSIT_SIGNATURE = "initiateCrossChainDeposit(address,uint256,uint256,address)"

DEPOSIT_ASSET_SELECTOR = _selector(DEPOSIT_ASSET_SIGNATURE)
INITIATE_CROSS_CHAIN_DEPOSIT_SELECTOR = _selector(INITIATE_CROSS_CHAIN_DEPOSIT_SIGNATURE)
ERC20_APPROVE_SELECTOR = _selector(APPROVE_SIGNATURE)
ERC20_BALANCE_OF_SELECTOR = "0x70a08231"  # balanceOf(address)
ERC20_ALLOWANCE_SELECTOR = "0xdd62ed3e"  # allowance(address,address)


def _encode_uint256(value: int) -> str:
    """Encode a uint256 as a 32-byte hex string (without 0x prefix)."""
    if value < 0 or value >= 2**256:
        raise ValueError(f"uint256 out of range: {value}")
    return format(value, "064x")


def _encode_address(address: str) -> str:
    """Encode an address as a 32-byte hex string (without 0x prefix)."""
    addr = address.lower().replace("0x", "")
    return addr.zfill(64)


def is_valid_address(address: str) -> bool:
    return isinstance(address, str) and is_address(address)


def to_base_units(amount: Decimal, decimals: int) -> int:
    """Convert a human amount to integer base units, rounding down."""
    scaled = (amount * (Decimal(10) ** decimals)).quantize(Decimal(1), rounding=ROUND_DOWN)
    return int(scaled)


def from_base_units(value: int, decimals: int) -> Decimal:
    return Decimal(value) / (Decimal(10) ** decimals)


def encode_balance_of(owner: str) -> str:
    return ERC20_BALANCE_OF_SELECTOR + _encode_address(owner)


def encode_allowance(owner: str, spender: str) -> str:
    return ERC20_ALLOWANCE_SELECTOR + _encode_address(owner) + _encode_address(spender)


class DepositCallType(str, Enum):
    """Which contract call a transaction makes."""
    VAULT_DEPOSIT = "vault_deposit"            # depositAsset on the local vault
    CROSS_CHAIN_DEPOSIT = "cross_chain_deposit"  # initiateCrossChainDeposit on the bridge
    TOKEN_APPROVAL = "token_approval"            # ERC-20 approve for the vault or bridge


@dataclass
class PreparedTransaction:
    """A transaction ready to be handed to a wallet signer."""
    tx_id: str
    call_type: DepositCallType
    chain_id: int
    from_address: str
    to_address: str
    data: str                                   # Encoded calldata (hex)
    value: int = 0                              # Wei to send
    description: str = ""
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the ``eth_sendTransaction`` parameter shape."""
        return {
            "from": self.from_address,
            "to": self.to_address,
            "data": self.data,
            "value": hex(self.value),
            "chainId": hex(self.chain_id),
        }


class TransactionBuilder:
    """
    Builds calls into the GuardX contracts.

    Handles:
    - ERC-20 approvals for the vault or bridge
    - Same-chain vault deposits
    - Cross-chain deposits through the bridge contract
    """

    @staticmethod
    def generate_tx_id() -> str:
        return f"tx_{secrets.token_hex(16)}"

    @staticmethod
    def build_vault_deposit(
        chain_id: int,
        from_address: str,
        vault_address: str,
        token_address: str,
        amount: int,
        is_native: bool = False,
        description: str = "",
    ) -> PreparedTransaction:
        """
        Build a ``depositAsset(token, amount)`` call.

        Args:
            chain_id: The chain ID
            from_address: The depositor
            vault_address: The vault contract on this chain
            token_address: The token being deposited (zero address for native)
            amount: Amount in base units
            is_native: Attach ``amount`` as value when depositing the native asset
            description: Human-readable description

        Returns:
            PreparedTransaction ready to be signed
        """
        calldata = (
            DEPOSIT_ASSET_SELECTOR +
            _encode_address(token_address) +
            _encode_uint256(amount)
        )

        return PreparedTransaction(
            tx_id=TransactionBuilder.generate_tx_id(),
            call_type=DepositCallType.VAULT_DEPOSIT,
            chain_id=chain_id,
            from_address=to_checksum_address(from_address),
            to_address=to_checksum_address(vault_address),
            data=calldata,
            value=amount if is_native else 0,
            description=description or f"Deposit into vault on chain {chain_id}",
        )

    @staticmethod
    def build_cross_chain_deposit(
        chain_id: int,
        from_address: str,
        bridge_address: str,
        token_address: str,
        amount: int,
        destination_chain_id: int,
        recipient: str,
        is_native: bool = False,
        description: str = "",
    ) -> PreparedTransaction:
        """
        Build an ``initiateCrossChainDeposit(token, amount, destChainId, recipient)`` call.
        """
        calldata = (
            INITIATE_CROSS_CHAIN_DEPOSIT_SELECTOR +
            _encode_address(token_address) +
            _encode_uint256(amount) +
            _encode_uint256(destination_chain_id) +
            _encode_address(recipient)
        )

        return PreparedTransaction(
            tx_id=TransactionBuilder.generate_tx_id(),
            call_type=DepositCallType.CROSS_CHAIN_DEPOSIT,
            chain_id=chain_id,
            from_address=to_checksum_address(from_address),
            to_address=to_checksum_address(bridge_address),
            data=calldata,
            value=amount if is_native else 0,
            description=description or f"Bridge deposit {chain_id} -> {destination_chain_id}",
        )

    @staticmethod
    def build_approval(
        chain_id: int,
        from_address: str,
        token_address: str,
        spender: str,
        amount: int,
    ) -> PreparedTransaction:
        """Build an ERC-20 ``approve(spender, amount)`` call on ``token_address``."""
        calldata = (
            ERC20_APPROVE_SELECTOR +
            _encode_address(spender) +
            _encode_uint256(amount)
        )

        return PreparedTransaction(
            tx_id=TransactionBuilder.generate_tx_id(),
            call_type=DepositCallType.TOKEN_APPROVAL,
            chain_id=chain_id,
            from_address=to_checksum_address(from_address),
            to_address=to_checksum_address(token_address),
            data=calldata,
            description=f"Approve {to_checksum_address(spender)} on chain {chain_id}",
        )
