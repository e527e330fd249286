"""Static deployment metadata for GuardX vault deposits."""

from decimal import Decimal
from typing import Dict, FrozenSet, Tuple

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Contract names used as keys in DEPLOYMENTS
VAULT_CONTRACT = "CrashGuardCore"
BRIDGE_CONTRACT = "SimpleCrossChainBridge"

CHAIN_NAMES: Dict[int, str] = {
    1: "Ethereum",
    10: "Optimism",
    137: "Polygon",
    8453: "Base",
    42161: "Arbitrum",
    84532: "Base Sepolia",
    421614: "Arbitrum Sepolia",
    11155111: "Ethereum Sepolia",
    11155420: "Optimism Sepolia",
}

L1_CHAINS: FrozenSet[int] = frozenset({1, 11155111})
L2_CHAINS: FrozenSet[int] = frozenset({8453, 84532, 42161, 421614, 10, 11155420})

# Contract addresses per chain. Mainnets are listed but not yet deployed.
DEPLOYMENTS: Dict[int, Dict[str, str]] = {
    421614: {
        "CrashGuardCore": "0xecC8AaF4f40D47576Da9931e554e6F7df53c41CC",
        "SimpleCrossChainBridge": "0x1D568B2a2f67Edb788DA111D153319001378Ee32",
        "PythPriceMonitor": "0x5AF0F97612B3F6cf35F94274C4FD89BA363DDa4f",
        "DEXAggregator": "0x3d07101F65B172232fBd90811dA971904f837c7f",
        "EmergencyExecutor": "0x41Bd52f4102634c7fe62a20957206A18e03Df76A",
        "CrossChainManager": "0x7CFe0469F4b925B99d1631FF71E6eA2C4c197210",
    },
    84532: {
        "CrashGuardCore": "0x714CD1EBAfcD09d67B2605cE46b597876d3A0026",
        "SimpleCrossChainBridge": ZERO_ADDRESS,
        "PythPriceMonitor": "0x820F7145bc8765819A171972A064Af96665a708c",
        "CrossChainManager": "0x3EAc402b3fF08C96dD7A3CB64Cacd0001a6d0538",
    },
    1: {"CrashGuardCore": ZERO_ADDRESS, "SimpleCrossChainBridge": ZERO_ADDRESS},
    11155111: {"CrashGuardCore": ZERO_ADDRESS, "SimpleCrossChainBridge": ZERO_ADDRESS},
    10: {"CrashGuardCore": ZERO_ADDRESS, "SimpleCrossChainBridge": ZERO_ADDRESS},
    137: {"CrashGuardCore": ZERO_ADDRESS, "SimpleCrossChainBridge": ZERO_ADDRESS},
    8453: {"CrashGuardCore": ZERO_ADDRESS, "SimpleCrossChainBridge": ZERO_ADDRESS},
    42161: {"CrashGuardCore": ZERO_ADDRESS, "SimpleCrossChainBridge": ZERO_ADDRESS},
}

# (source chain, destination chain, source token lowercased) -> (destination token, decimals)
TOKEN_MAPPINGS: Dict[Tuple[int, int, str], Tuple[str, int]] = {
    # USDC: Arbitrum Sepolia -> Base Sepolia
    (421614, 84532, "0x75faf114eafb1bdbe2f0316df893fd58ce46aa4d"): ("0x036CbD53842c5426634e7929541eC2318f3dCF7e", 6),
    # USDC: Base Sepolia -> Arbitrum Sepolia
    (84532, 421614, "0x036cbd53842c5426634e7929541ec2318f3dcf7e"): ("0x75faf114eafb1BDbe2F0316DF893fd58CE46AA4d", 6),
}

# Minimum deposit (human units) by token decimals
MIN_DEPOSIT_BY_DECIMALS: Dict[int, Decimal] = {
    18: Decimal("0.000001"),
    6: Decimal("1"),
    8: Decimal("0.01"),
}
DEFAULT_MIN_DEPOSIT = Decimal("1")

# Transfer-time hints shown next to cross-chain quotes
TRANSFER_TIME_L2_TO_L2 = "5-10 minutes"
TRANSFER_TIME_L1_TO_L2 = "10-15 minutes"
TRANSFER_TIME_L2_TO_L1 = "15-30 minutes"
TRANSFER_TIME_DEFAULT = "10-20 minutes"

DEFAULT_ESTIMATED_SECONDS = 300
